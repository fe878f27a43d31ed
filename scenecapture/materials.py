"""
SceneCapture - Mask Material Override

Scoped swap of every trackable object's material for its flat mask color.

    with MaskMaterialOverride(materials, objects):
        ...  # scene renders as a segmentation mask

On exit, by any path, each object's previous override is put back exactly as
it was, including "no override" (restored as None, never as a default
material).
"""

from typing import Any, Optional, Sequence

from .logging_utils import CaptureLogger
from .scene import MaterialSystem
from .state import TrackedObject


class MaskMaterialOverride:
    """
    Context manager owning the transient saved-material table.

    If installing a mask material fails part way, the objects already
    switched are restored before the error propagates.
    """

    def __init__(
        self,
        materials: MaterialSystem,
        objects: Sequence[TrackedObject],
        logger: Optional[CaptureLogger] = None,
    ):
        self.materials = materials
        self.objects = [obj for obj in objects if obj.trackable]
        self.logger = logger
        self._saved: list[tuple[Any, Optional[Any]]] = []
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def saved(self) -> list[tuple[Any, Optional[Any]]]:
        """(handle, previous override) pairs currently held."""
        return list(self._saved)

    def apply(self) -> None:
        if self._active:
            raise RuntimeError("Mask materials already applied")
        self._active = True
        try:
            for obj in self.objects:
                if obj.mask_color is None:
                    raise RuntimeError(f"Object '{obj.name}' has no mask color assigned")
                previous = self.materials.get_override(obj.handle)
                self._saved.append((obj.handle, previous))
                self.materials.set_override(
                    obj.handle, self.materials.create_unlit_material(obj.mask_color)
                )
        except BaseException:
            self.restore()
            raise
        if self.logger:
            self.logger.debug("Mask materials applied", objects=len(self._saved))

    def restore(self) -> None:
        """Put every saved override back and clear the table."""
        restored = 0
        try:
            # Reverse order so a handle saved twice ends at its original value
            while self._saved:
                handle, previous = self._saved[-1]
                self.materials.set_override(handle, previous)
                self._saved.pop()
                restored += 1
        finally:
            self._active = False
            if self.logger:
                self.logger.debug("Materials restored", objects=restored,
                                  unrestored=len(self._saved))

    def __enter__(self) -> "MaskMaterialOverride":
        self.apply()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
