#==============================================================================
# SceneCapture - Collaborator Interfaces
#==============================================================================
# File: scene.py
# Description: The narrow interfaces through which the capture core drives
#              an external 3D scene: scene graph (discovery and poses),
#              viewport (output size, snapshots, composition cycles) and
#              material overrides. Backends implement these; see
#              scenecapture.backends.
#==============================================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from .state import RGB, Basis3, Vector3


@dataclass(frozen=True)
class SceneNode:
    """A node returned by the renderable-mesh capability query."""
    name: str
    handle: Any


class SceneGraph(ABC):
    """Scene traversal and pose access."""

    @abstractmethod
    def find_renderable_meshes(self, root: Optional[str] = None) -> list[SceneNode]:
        """
        Nodes under `root` (whole scene when None) exposing a renderable mesh.

        The returned order is the discovery order used for the whole run and
        must be stable for an unchanged scene.
        """

    @abstractmethod
    def set_object_pose(self, handle: Any, position: Vector3, yaw: float) -> None:
        """Place an object; yaw in radians about world Y, pitch/roll zero."""

    @abstractmethod
    def get_object_pose(self, handle: Any) -> tuple[Vector3, float]:
        """(position, yaw) of an object."""

    @abstractmethod
    def set_camera(self, position: Vector3, basis: Basis3) -> None:
        """Place the capture camera. `basis` rows are (right, up, back)."""

    @abstractmethod
    def get_camera(self) -> tuple[Vector3, Basis3]:
        """(position, basis) of the capture camera."""

    @abstractmethod
    def set_light_rotation(self, pitch: float, yaw: float, roll: float = 0.0) -> None:
        """Orient the directional light (radians)."""

    @abstractmethod
    def get_light_rotation(self) -> Vector3:
        """(pitch, yaw, roll) of the directional light in radians."""


class Viewport(ABC):
    """Render target the snapshots are taken from."""

    @abstractmethod
    def set_output_size(self, width: int, height: int) -> None:
        """Resolution of subsequent snapshots."""

    @abstractmethod
    def snapshot(self) -> np.ndarray:
        """Current composed image as an HxWx3 (or HxWx4) uint8 array."""

    @abstractmethod
    async def await_composition_cycle(self) -> None:
        """
        Resolve once a full render/composition cycle has completed.

        Scene changes made before the call are reflected in the next
        snapshot only after this resolves.
        """


class MaterialSystem(ABC):
    """Per-object material overrides."""

    @abstractmethod
    def get_override(self, handle: Any) -> Optional[Any]:
        """Current override material, or None when the object has none."""

    @abstractmethod
    def set_override(self, handle: Any, material: Optional[Any]) -> None:
        """Install an override; None removes it."""

    @abstractmethod
    def create_unlit_material(self, color: RGB) -> Any:
        """Flat, unlit, non-specular material of a single color."""
