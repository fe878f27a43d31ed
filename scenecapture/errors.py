#==============================================================================
# SceneCapture - Error Taxonomy
#==============================================================================
# File: errors.py
# Description: Exceptions raised by the capture pipeline. All of them are
#              fatal for a run; nothing is retried.
#==============================================================================

from typing import Optional


class SceneCaptureError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, frame_index: Optional[int] = None):
        super().__init__(message)
        self.frame_index = frame_index


class ConfigurationError(SceneCaptureError):
    """Invalid bounds or an unusable object set. Raised before any frame."""

    def __init__(self, message: str, issues: Optional[list[str]] = None):
        super().__init__(message)
        self.issues = list(issues or [])

    def __str__(self) -> str:
        if not self.issues:
            return super().__str__()
        return f"{super().__str__()}: " + "; ".join(self.issues)


class CaptureError(SceneCaptureError):
    """Renderer snapshot or image encode failure."""


class PersistenceError(SceneCaptureError):
    """Directory creation or file write failure."""

    def __init__(self, message: str, path=None, frame_index: Optional[int] = None):
        super().__init__(message, frame_index=frame_index)
        self.path = path
