from enum import Enum


class ImageKind(Enum):
    VARIATIONS = "variations"   # batch of candidates produced from a text prompt
    UPSCALED = "upscaled"       # single image derived from one source image


class ChildKind(Enum):
    VARIATIONS = "variations"   # full re-generation branch
    UPSCALED = "upscaled"       # keyed by the parent's image slot


class WorkspaceTool(Enum):
    SELECT = "select-tool"
    GRAB = "grab-tool"
    DELETE = "delete-tool"


class HistoryKind(Enum):
    FOCUS_IMAGE = "image-editor"
    TRANSFORM_VIEWPORT = "workspace-transform"


class RequestState(Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


def parse_enum(enum_cls, value):
    """Look up an enum member by value or by name, raising ValueError otherwise."""
    if isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if member.value == value or member.name == str(value).upper():
            return member
    raise ValueError(f"Unknown {enum_cls.__name__}: {value!r}")
