"""
Scene backends implementing the collaborator interfaces in scenecapture.scene.

- SimulatedScene: in-memory scene with a numpy rasterizer
- UE5RemoteScene: Unreal Engine 5 over the Remote Control Web API
"""

from .simulated import FlatMaterial, SimulatedScene
from .ue5 import UE5RemoteScene

__all__ = [
    "FlatMaterial",
    "SimulatedScene",
    "UE5RemoteScene",
]
