#==============================================================================
# SceneCapture - UE5 Remote Control Backend
#==============================================================================
# File: ue5.py
# Description: SceneGraph / Viewport / MaterialSystem over Unreal Engine 5's
#              Remote Control Web API (Remote Control plugin, port 30010).
#
# Coordinates: the capture core works in meters, Y up, right-handed. UE uses
#              centimeters, Z up, left-handed. Conversion swaps Y and Z and
#              scales by `units_per_meter`; yaw flips sign under the swap.
#
# Capture actor: snapshots and mask materials come from a capture actor in
#              the level exposing
#                SetResolution(Width, Height)
#                CaptureFrameBase64() -> PNG as base64 string
#                CreateUnlitMaskMaterial(Color) -> material object path
#==============================================================================

import asyncio
import base64
import binascii
import io
import logging
import math
from typing import Any, Dict, Optional

import numpy as np
import requests
from PIL import Image

from ..errors import CaptureError
from ..randomizer import look_at_basis
from ..scene import MaterialSystem, SceneGraph, SceneNode, Viewport
from ..state import RGB, Basis3, Vector3

logger = logging.getLogger(__name__)

ACTOR_SUBSYSTEM = "/Script/UnrealEd.Default__EditorActorSubsystem"
SYSTEM_LIBRARY = "/Script/Engine.Default__KismetSystemLibrary"
STATIC_MESH_COMPONENT = "/Script/Engine.StaticMeshComponent"


class UE5RemoteScene(SceneGraph, Viewport, MaterialSystem):
    """
    Remote-controlled UE5 level.

    Handles are actor object paths, e.g.
    "/Game/Capture.Capture:PersistentLevel.Cube_2".

    Attributes:
        host: UE5 server hostname
        port: Remote Control API port (default 30010)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        level_path: str,
        capture_actor: str,
        light_actor: str,
        camera_actor: Optional[str] = None,
        host: str = "localhost",
        port: int = 30010,
        timeout: float = 30.0,
        units_per_meter: float = 100.0,
        settle_frames: int = 2,
        poll_interval: float = 0.01,
        verify_connection: bool = True,
    ):
        """
        Initialize the remote scene.

        Args:
            level_path: Level package path, e.g. "/Game/Capture.Capture"
            capture_actor: Actor name of the capture actor
            light_actor: Actor name of the directional light
            camera_actor: Actor name of the camera (defaults to capture_actor)
            settle_frames: Engine frames that make up one composition cycle
            poll_interval: Seconds between engine frame-counter polls

        Raises:
            ConnectionError: If unable to connect to UE5
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.base_url = f"http://{host}:{port}/remote"
        self.level_path = level_path
        self.units_per_meter = units_per_meter
        self.settle_frames = settle_frames
        self.poll_interval = poll_interval
        self.session = requests.Session()

        self.capture_path = self.actor_path(capture_actor)
        self.light_path = self.actor_path(light_actor)
        self.camera_path = self.actor_path(camera_actor or capture_actor)

        if verify_connection:
            self._verify_connection()

    def actor_path(self, actor_name: str) -> str:
        return f"{self.level_path}:PersistentLevel.{actor_name}"

    # ========================================================================
    # REMOTE CONTROL API
    # ========================================================================

    def _verify_connection(self) -> None:
        try:
            self.session.put(
                f"{self.base_url}/object/call",
                json={"objectPath": "", "functionName": ""},
                timeout=5,
            )
        except requests.exceptions.RequestException as e:
            raise ConnectionError(
                f"Failed to connect to UE5 at {self.host}:{self.port}. "
                f"Ensure UE5 is running with Remote Control plugin enabled. Error: {e}"
            ) from e
        logger.info(f"Connected to UE5 at {self.host}:{self.port}")

    def call_function(self, object_path: str, function_name: str,
                      parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Call a function on a UE5 object.

        Raises:
            RuntimeError: non-200 response or network error
        """
        payload = {
            "objectPath": object_path,
            "functionName": function_name,
            "parameters": parameters or {},
            "generateTransaction": False,
        }
        try:
            response = self.session.put(f"{self.base_url}/object/call", json=payload,
                                        timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Network error calling {function_name}: {e}") from e

        if response.status_code != 200:
            raise RuntimeError(
                f"UE5 function call failed: {function_name} on {object_path}. "
                f"Status: {response.status_code}, Error: {response.text or 'No response'}"
            )
        return response.json() if response.text else {}

    def get_property(self, object_path: str, property_name: str) -> Any:
        payload = {
            "objectPath": object_path,
            "propertyName": property_name,
            "access": "READ_ACCESS",
        }
        try:
            response = self.session.put(f"{self.base_url}/object/property", json=payload,
                                        timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Failed to read {property_name} on {object_path}: {e}") from e
        return response.json().get(property_name)

    def set_property(self, object_path: str, property_name: str, value: Any) -> None:
        payload = {
            "objectPath": object_path,
            "propertyName": property_name,
            "propertyValue": {property_name: value},
            "access": "WRITE_ACCESS",
            "generateTransaction": False,
        }
        try:
            response = self.session.put(f"{self.base_url}/object/property", json=payload,
                                        timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Failed to set {property_name} on {object_path}: {e}") from e

    # ========================================================================
    # COORDINATE CONVERSION
    # ========================================================================

    def to_ue_location(self, position: Vector3) -> dict:
        x, y, z = position
        s = self.units_per_meter
        return {"X": x * s, "Y": z * s, "Z": y * s}

    def from_ue_location(self, location: dict) -> Vector3:
        s = self.units_per_meter
        return (location["X"] / s, location["Z"] / s, location["Y"] / s)

    @staticmethod
    def basis_to_rotator(basis: Basis3) -> dict:
        """Camera basis (rows right, up, back) to a UE rotator looking along -back."""
        back = basis[2]
        fx, fy, fz = -back[0], -back[2], -back[1]
        return {
            "Pitch": math.degrees(math.atan2(fz, math.hypot(fx, fy))),
            "Yaw": math.degrees(math.atan2(fy, fx)),
            "Roll": 0.0,
        }

    @staticmethod
    def rotator_forward(rotator: dict) -> Vector3:
        """Unit view direction of a UE rotator, in capture coordinates."""
        pitch = math.radians(rotator["Pitch"])
        yaw = math.radians(rotator["Yaw"])
        fx = math.cos(pitch) * math.cos(yaw)
        fy = math.cos(pitch) * math.sin(yaw)
        fz = math.sin(pitch)
        return (fx, fz, fy)

    # ========================================================================
    # SCENE GRAPH
    # ========================================================================

    def find_renderable_meshes(self, root: Optional[str] = None) -> list[SceneNode]:
        """
        Level actors owning a StaticMeshComponent.

        `root` is a World Outliner folder; actors in it or its subfolders
        are returned.
        """
        actors = self.call_function(ACTOR_SUBSYSTEM, "GetAllLevelActors").get("ReturnValue", [])

        nodes = []
        for path in actors:
            components = self.call_function(
                path, "GetComponentsByClass", {"ComponentClass": STATIC_MESH_COMPONENT}
            ).get("ReturnValue", [])
            if not components:
                continue

            if root is not None:
                folder = str(self.call_function(path, "GetFolderPath").get("ReturnValue", ""))
                if folder != root and not folder.startswith(root + "/"):
                    continue

            label = self.call_function(path, "GetActorLabel").get("ReturnValue") or path.rsplit(".", 1)[-1]
            nodes.append(SceneNode(name=label, handle=path))

        logger.debug(f"Found {len(nodes)} renderable actors of {len(actors)}")
        return nodes

    def set_object_pose(self, handle: str, position: Vector3, yaw: float) -> None:
        self.call_function(handle, "K2_SetActorLocation", {
            "NewLocation": self.to_ue_location(position),
            "bSweep": False,
            "bTeleport": True,
        })
        self.call_function(handle, "K2_SetActorRotation", {
            "NewRotation": {"Pitch": 0.0, "Yaw": -math.degrees(yaw), "Roll": 0.0},
            "bTeleportPhysics": True,
        })

    def get_object_pose(self, handle: str) -> tuple[Vector3, float]:
        location = self.call_function(handle, "K2_GetActorLocation").get("ReturnValue", {})
        rotation = self.call_function(handle, "K2_GetActorRotation").get("ReturnValue", {})
        return self.from_ue_location(location), -math.radians(rotation.get("Yaw", 0.0))

    def set_camera(self, position: Vector3, basis: Basis3) -> None:
        self.call_function(self.camera_path, "K2_SetActorLocation", {
            "NewLocation": self.to_ue_location(position),
            "bSweep": False,
            "bTeleport": True,
        })
        self.call_function(self.camera_path, "K2_SetActorRotation", {
            "NewRotation": self.basis_to_rotator(basis),
            "bTeleportPhysics": True,
        })

    def get_camera(self) -> tuple[Vector3, Basis3]:
        location = self.call_function(self.camera_path, "K2_GetActorLocation").get("ReturnValue", {})
        rotation = self.call_function(self.camera_path, "K2_GetActorRotation").get("ReturnValue", {})
        position = self.from_ue_location(location)
        forward = self.rotator_forward(rotation)
        target = tuple(p + f for p, f in zip(position, forward))
        return position, look_at_basis(position, target)

    def set_light_rotation(self, pitch: float, yaw: float, roll: float = 0.0) -> None:
        self.call_function(self.light_path, "K2_SetActorRotation", {
            "NewRotation": {
                "Pitch": math.degrees(pitch),
                "Yaw": math.degrees(yaw),
                "Roll": math.degrees(roll),
            },
            "bTeleportPhysics": True,
        })

    def get_light_rotation(self) -> Vector3:
        rotation = self.call_function(self.light_path, "K2_GetActorRotation").get("ReturnValue", {})
        return (
            math.radians(rotation.get("Pitch", 0.0)),
            math.radians(rotation.get("Yaw", 0.0)),
            math.radians(rotation.get("Roll", 0.0)),
        )

    # ========================================================================
    # MATERIALS
    # ========================================================================

    def _mesh_component(self, handle: str) -> str:
        components = self.call_function(
            handle, "GetComponentsByClass", {"ComponentClass": STATIC_MESH_COMPONENT}
        ).get("ReturnValue", [])
        if not components:
            raise RuntimeError(f"{handle} has no StaticMeshComponent")
        return components[0]

    def get_override(self, handle: str) -> Optional[tuple]:
        """OverrideMaterials of the first mesh component; None when empty."""
        overrides = self.get_property(self._mesh_component(handle), "OverrideMaterials") or []
        return tuple(overrides) if overrides else None

    def set_override(self, handle: str, material: Optional[Any]) -> None:
        if material is None:
            value = []
        elif isinstance(material, (list, tuple)):
            value = list(material)
        else:
            value = [material]
        self.set_property(self._mesh_component(handle), "OverrideMaterials", value)

    def create_unlit_material(self, color: RGB) -> str:
        r, g, b = color
        result = self.call_function(self.capture_path, "CreateUnlitMaskMaterial", {
            "Color": {"R": r / 255.0, "G": g / 255.0, "B": b / 255.0, "A": 1.0},
        })
        material = result.get("ReturnValue")
        if not material:
            raise RuntimeError(f"Capture actor returned no mask material for {color}")
        return material

    # ========================================================================
    # VIEWPORT
    # ========================================================================

    def set_output_size(self, width: int, height: int) -> None:
        self.call_function(self.capture_path, "SetResolution", {"Width": width, "Height": height})

    def frame_count(self) -> int:
        return int(self.call_function(SYSTEM_LIBRARY, "GetFrameCount").get("ReturnValue", 0))

    async def await_composition_cycle(self) -> None:
        """
        Wait until the engine has rendered `settle_frames` more frames.

        The blocking HTTP polls run in a worker thread so the event loop stays
        free while the engine renders.
        """
        target = await asyncio.to_thread(self.frame_count) + self.settle_frames
        while await asyncio.to_thread(self.frame_count) < target:
            await asyncio.sleep(self.poll_interval)

    def snapshot(self) -> np.ndarray:
        result = self.call_function(self.capture_path, "CaptureFrameBase64")
        encoded = result.get("ReturnValue")
        if not encoded:
            raise CaptureError("Capture actor returned an empty frame")
        try:
            data = base64.b64decode(encoded, validate=True)
            with Image.open(io.BytesIO(data)) as image:
                return np.array(image.convert("RGB"))
        except (binascii.Error, OSError) as e:
            raise CaptureError(f"Could not decode captured frame: {e}") from e

    def close(self) -> None:
        """Close connection and cleanup resources."""
        self.session.close()
        logger.info("Closed UE5 remote scene session")
