from typing import Optional


class ImageCanvasError(Exception):
    """Base class for every error raised by imagecanvas."""


class GenerationError(ImageCanvasError):
    """A generation collaborator failed: transport error or non-success status."""

    def __init__(self, message: str, status: Optional[int] = None, detail: str = ""):
        super().__init__(message)
        self.status = status
        self.detail = detail

    def __str__(self):
        base = super().__str__()
        if self.status is not None:
            return f"{base} (status={self.status}) {self.detail}".rstrip()
        return base


class UploadError(GenerationError):
    """The CDN upload service failed."""


class PersistenceError(ImageCanvasError):
    pass
