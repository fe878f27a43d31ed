"""
SceneCapture - Scene State Types

Plain dataclasses describing what is in the scene and what gets written for
a frame. `TrackedObject` is the only mutable type: its pose changes every
frame and its mask color is set once at run start. Everything that ends up
in a FrameRecord is a frozen snapshot.
"""

from dataclasses import dataclass
from typing import Any, Optional

Vector3 = tuple[float, float, float]
Basis3 = tuple[Vector3, Vector3, Vector3]
RGB = tuple[int, int, int]


def hex_color(rgb: RGB) -> str:
    """(255, 0, 0) -> 'FF0000'"""
    return "".join(f"{int(c):02X}" for c in rgb)


def parse_hex_color(value: str) -> RGB:
    """'FF0000' -> (255, 0, 0)"""
    value = value.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Expected RRGGBB hex color, got '{value}'")
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))


@dataclass
class TrackedObject:
    """
    A renderable scene object discovered at run start.

    `handle` is the collaborator's own reference (node id, actor path, ...).
    Objects with `trackable=False` are static background: they keep their
    pose and never appear in masks or metadata.
    """
    name: str
    handle: Any
    position: Vector3 = (0.0, 0.0, 0.0)
    yaw: float = 0.0                  # radians, about world Y
    mask_color: Optional[RGB] = None
    trackable: bool = True

    def snapshot(self) -> "ObjectSnapshot":
        return ObjectSnapshot(
            name=self.name,
            position=self.position,
            yaw=self.yaw,
            mask_color=self.mask_color,
            trackable=self.trackable,
        )


@dataclass(frozen=True)
class ObjectSnapshot:
    """Pose and mask color of one object at capture time."""
    name: str
    position: Vector3
    yaw: float
    mask_color: Optional[RGB]
    trackable: bool = True


@dataclass(frozen=True)
class CameraState:
    """
    Camera position plus a row-major 3x3 basis.

    Rows are (right, up, back): a right-handed orthonormal frame whose
    viewing direction is -back.
    """
    position: Vector3
    basis: Basis3

    @property
    def forward(self) -> Vector3:
        back = self.basis[2]
        return (-back[0], -back[1], -back[2])

    @property
    def radius_xz(self) -> float:
        x, _, z = self.position
        return (x * x + z * z) ** 0.5

    @property
    def height(self) -> float:
        return self.position[1]


@dataclass(frozen=True)
class LightState:
    """Directional light orientation in radians. Roll is always 0."""
    pitch: float
    yaw: float
    roll: float = 0.0

    @property
    def rotation_rad(self) -> Vector3:
        return (self.pitch, self.yaw, self.roll)


@dataclass(frozen=True)
class FrameSample:
    """Everything SceneRandomizer drew for one frame."""
    objects: tuple[ObjectSnapshot, ...]
    camera: CameraState
    light: LightState


@dataclass(frozen=True)
class FrameRecord:
    """
    Complete description of one written frame.

    `rgb` and `mask` are POSIX paths relative to the output directory.
    """
    frame: int
    seed: int
    rgb: str
    mask: str
    camera: CameraState
    light: LightState
    objects: tuple[ObjectSnapshot, ...]
