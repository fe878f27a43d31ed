"""
SceneCapture - Simulated Scene Backend

In-memory scene implementing SceneGraph, Viewport and MaterialSystem.

Mutations go to a live state and only reach the image after a composition
cycle: `snapshot()` renders the state captured by the most recent
`await_composition_cycle()`. Capturing without settling therefore returns
the previous frame's picture, just like a real engine viewport.

Rendering is a simple numpy rasterizer: pinhole projection through the
camera basis, each object drawn as a filled square, far to near. Lit
objects are shaded by the light pitch; objects with an unlit override are
drawn in its flat color.
"""

import asyncio
import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from ..scene import MaterialSystem, SceneGraph, SceneNode, Viewport
from ..state import RGB, Basis3, Vector3

logger = logging.getLogger(__name__)

BACKGROUND_COLOR: RGB = (0, 0, 0)


@dataclass(frozen=True)
class FlatMaterial:
    """Single-color material. Mask materials are unlit with zero specular."""
    color: RGB
    unlit: bool = True
    specular: float = 0.0


@dataclass
class SimulatedObject:
    """One node of the simulated scene."""
    name: str
    position: Vector3 = (0.0, 0.0, 0.0)
    yaw: float = 0.0
    size: float = 0.5
    base_color: RGB = (180, 180, 180)
    renderable: bool = True
    parent: Optional[str] = None


@dataclass
class _SceneFrame:
    objects: dict[int, SimulatedObject] = field(default_factory=dict)
    overrides: dict[int, Any] = field(default_factory=dict)
    camera_position: Vector3 = (0.0, 2.0, 5.0)
    camera_basis: Basis3 = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))
    light_rotation: Vector3 = (-math.pi / 4, 0.0, 0.0)


class SimulatedScene(SceneGraph, Viewport, MaterialSystem):
    """
    Scene graph, viewport and material system in one object.

    Handles are integer node ids in insertion order, which is also the
    traversal order.
    """

    def __init__(self, width: int = 320, height: int = 240, fov_deg: float = 60.0):
        self.width = width
        self.height = height
        self.fov_deg = fov_deg

        self._live = _SceneFrame()
        self._composed = _SceneFrame()
        self._next_handle = 0

        self.cycles = 0
        self.snapshots_taken = 0
        self._snapshot_failures: set[int] = set()

    # ========================================================================
    # SCENE CONSTRUCTION
    # ========================================================================

    def add_object(
        self,
        name: str,
        position: Vector3 = (0.0, 0.0, 0.0),
        yaw: float = 0.0,
        size: float = 0.5,
        base_color: RGB = (180, 180, 180),
        renderable: bool = True,
        parent: Optional[str] = None,
    ) -> int:
        """Add a node and return its handle."""
        handle = self._next_handle
        self._next_handle += 1
        self._live.objects[handle] = SimulatedObject(
            name=name,
            position=tuple(position),
            yaw=yaw,
            size=size,
            base_color=tuple(base_color),
            renderable=renderable,
            parent=parent,
        )
        return handle

    def handle_of(self, name: str) -> int:
        for handle, obj in self._live.objects.items():
            if obj.name == name:
                return handle
        raise KeyError(name)

    def fail_on_snapshot(self, call_index: int) -> None:
        """Make the `call_index`-th (0-based) snapshot call raise."""
        self._snapshot_failures.add(call_index)

    def _object(self, handle: int) -> SimulatedObject:
        try:
            return self._live.objects[handle]
        except KeyError:
            raise KeyError(f"Unknown scene handle {handle}") from None

    def _is_under(self, obj: SimulatedObject, root: str) -> bool:
        seen = set()
        current = obj
        while current is not None and current.name not in seen:
            if current.name == root:
                return True
            seen.add(current.name)
            current = next(
                (o for o in self._live.objects.values() if o.name == current.parent),
                None,
            )
        return False

    # ========================================================================
    # SCENE GRAPH
    # ========================================================================

    def find_renderable_meshes(self, root: Optional[str] = None) -> list[SceneNode]:
        return [
            SceneNode(name=obj.name, handle=handle)
            for handle, obj in self._live.objects.items()
            if obj.renderable and (root is None or self._is_under(obj, root))
        ]

    def set_object_pose(self, handle: int, position: Vector3, yaw: float) -> None:
        obj = self._object(handle)
        obj.position = tuple(position)
        obj.yaw = yaw

    def get_object_pose(self, handle: int) -> tuple[Vector3, float]:
        obj = self._object(handle)
        return obj.position, obj.yaw

    def set_camera(self, position: Vector3, basis: Basis3) -> None:
        self._live.camera_position = tuple(position)
        self._live.camera_basis = tuple(tuple(row) for row in basis)

    def get_camera(self) -> tuple[Vector3, Basis3]:
        return self._live.camera_position, self._live.camera_basis

    def set_light_rotation(self, pitch: float, yaw: float, roll: float = 0.0) -> None:
        self._live.light_rotation = (pitch, yaw, roll)

    def get_light_rotation(self) -> Vector3:
        return self._live.light_rotation

    # ========================================================================
    # MATERIALS
    # ========================================================================

    def get_override(self, handle: int) -> Optional[Any]:
        self._object(handle)
        return self._live.overrides.get(handle)

    def set_override(self, handle: int, material: Optional[Any]) -> None:
        self._object(handle)
        if material is None:
            self._live.overrides.pop(handle, None)
        else:
            self._live.overrides[handle] = material

    def create_unlit_material(self, color: RGB) -> FlatMaterial:
        return FlatMaterial(color=tuple(int(c) for c in color), unlit=True, specular=0.0)

    def has_override_entry(self, handle: int) -> bool:
        """True when an override is installed, as opposed to 'none'."""
        return handle in self._live.overrides

    # ========================================================================
    # VIEWPORT
    # ========================================================================

    def set_output_size(self, width: int, height: int) -> None:
        if width < 1 or height < 1:
            raise ValueError(f"Invalid output size {width}x{height}")
        self.width = width
        self.height = height

    async def await_composition_cycle(self) -> None:
        await asyncio.sleep(0)
        self._composed = copy.deepcopy(self._live)
        self.cycles += 1

    def snapshot(self) -> np.ndarray:
        call_index = self.snapshots_taken
        self.snapshots_taken += 1
        if call_index in self._snapshot_failures:
            logger.debug(f"Injected snapshot failure at call {call_index}")
            raise RuntimeError(f"Simulated snapshot failure (call {call_index})")
        return self.render(self._composed)

    def render(self, frame: Optional[_SceneFrame] = None) -> np.ndarray:
        """Rasterize a scene state (the composed one by default)."""
        frame = frame or self._composed
        image = np.empty((self.height, self.width, 3), dtype=np.uint8)
        image[:, :] = BACKGROUND_COLOR

        eye = np.asarray(frame.camera_position, dtype=np.float64)
        basis = np.asarray(frame.camera_basis, dtype=np.float64)
        focal = (self.width / 2.0) / math.tan(math.radians(self.fov_deg) / 2.0)

        pitch = frame.light_rotation[0]
        shade = 0.35 + 0.65 * max(0.0, math.sin(-pitch))

        drawable = []
        for handle, obj in frame.objects.items():
            if not obj.renderable:
                continue
            rel = np.asarray(obj.position, dtype=np.float64) - eye
            x_cam, y_cam = basis[0] @ rel, basis[1] @ rel
            depth = -(basis[2] @ rel)
            if depth <= 1e-3:
                continue
            drawable.append((depth, handle, obj, x_cam, y_cam))

        # Painter's algorithm: farthest first
        drawable.sort(key=lambda item: (-item[0], item[1]))

        for depth, handle, obj, x_cam, y_cam in drawable:
            cx = self.width / 2.0 + focal * x_cam / depth
            cy = self.height / 2.0 - focal * y_cam / depth
            half = focal * obj.size / depth

            x0 = max(int(math.floor(cx - half)), 0)
            x1 = min(int(math.ceil(cx + half)), self.width)
            y0 = max(int(math.floor(cy - half)), 0)
            y1 = min(int(math.ceil(cy + half)), self.height)
            if x0 >= x1 or y0 >= y1:
                continue

            override = frame.overrides.get(handle)
            if isinstance(override, FlatMaterial):
                color = override.color if override.unlit else _shaded(override.color, shade)
            else:
                color = _shaded(obj.base_color, shade)
            image[y0:y1, x0:x1] = color

        return image


def _shaded(color: RGB, shade: float) -> RGB:
    return tuple(int(round(min(255.0, c * shade))) for c in color)
