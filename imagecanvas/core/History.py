from logging import getLogger
from typing import Any, Dict, List, NamedTuple, Optional, Union

from .Types import HistoryKind
from .Viewport import Transform

logger = getLogger(__name__)


class FocusImage(NamedTuple):
    image_id: str

    @property
    def kind(self) -> HistoryKind:
        return HistoryKind.FOCUS_IMAGE


class TransformViewport(NamedTuple):
    transform: Transform

    @property
    def kind(self) -> HistoryKind:
        return HistoryKind.TRANSFORM_VIEWPORT


HistoryEntry = Union[FocusImage, TransformViewport]


class NavigationHistory:
    """
    Browser-style list of visited states with a cursor.

    This is not an undo stack for the image graph: entries record where the
    user was looking, and navigating replays them.
    """

    def __init__(self) -> None:
        self._entries: List[HistoryEntry] = []
        self._cursor = -1

    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def can_go_back(self) -> bool:
        return self._cursor > 0

    @property
    def can_go_forward(self) -> bool:
        return self._cursor < len(self._entries) - 1

    def current(self) -> Optional[HistoryEntry]:
        if 0 <= self._cursor < len(self._entries):
            return self._entries[self._cursor]
        return None

    def push(self, entry: HistoryEntry) -> bool:
        """Append after the cursor, dropping forward entries. Returns False for a coalesced refocus."""
        current = self.current()
        if (
            isinstance(entry, FocusImage)
            and isinstance(current, FocusImage)
            and current.image_id == entry.image_id
        ):
            return False
        del self._entries[self._cursor + 1:]
        self._entries.append(entry)
        self._cursor = len(self._entries) - 1
        return True

    def navigate(self, offset: int, editor_focused: bool) -> Optional[HistoryEntry]:
        """
        Move the cursor by ``offset`` and return the entry to replay.

        Going back while nothing is focused does not move the cursor: it
        returns to the state recorded at the cursor instead of skipping it.
        """
        if not self._entries:
            return None
        if offset == -1 and not editor_focused:
            index = self._cursor
        else:
            index = min(max(self._cursor + offset, 0), len(self._entries) - 1)
        self._cursor = index
        return self._entries[index]

    def remove_image(self, image_id: str) -> int:
        """Drop every FocusImage entry for ``image_id``, keeping the cursor on a surviving entry."""
        kept: List[HistoryEntry] = []
        removed_before_cursor = 0
        for index, entry in enumerate(self._entries):
            if isinstance(entry, FocusImage) and entry.image_id == image_id:
                if index <= self._cursor:
                    removed_before_cursor += 1
                continue
            kept.append(entry)
        removed = len(self._entries) - len(kept)
        if removed:
            self._entries = kept
            self._cursor = min(max(self._cursor - removed_before_cursor, 0), len(kept) - 1)
            logger.debug(f"Dropped {removed} history entries for image {image_id}")
        return removed

    def clear(self) -> None:
        self._entries = []
        self._cursor = -1

    # ── persistence ─────────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "history": [entry_to_dict(e) for e in self._entries],
            "historyIndex": self._cursor,
        }

    def load(self, data: Dict[str, Any]) -> None:
        self._entries = [entry_from_dict(e) for e in data.get("history", [])]
        self._cursor = min(int(data.get("historyIndex", -1)), len(self._entries) - 1)


def entry_to_dict(entry: HistoryEntry) -> Dict[str, Any]:
    if isinstance(entry, FocusImage):
        return {"type": HistoryKind.FOCUS_IMAGE.value, "imageId": entry.image_id}
    if isinstance(entry, TransformViewport):
        return {"type": HistoryKind.TRANSFORM_VIEWPORT.value, "transform": entry.transform.to_dict()}
    raise ValueError(f"Unknown history entry {entry!r}")


def entry_from_dict(data: Dict[str, Any]) -> HistoryEntry:
    kind = HistoryKind(data["type"])
    if kind == HistoryKind.FOCUS_IMAGE:
        return FocusImage(data["imageId"])
    if kind == HistoryKind.TRANSFORM_VIEWPORT:
        t = data["transform"]
        return TransformViewport(Transform(t["x"], t["y"], t["scale"]))
    raise ValueError(f"Unknown history entry type {kind!r}")
