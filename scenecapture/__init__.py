"""
SceneCapture - Deterministic Synthetic Dataset Capture

Drives an external 3D scene to produce, for every frame, an RGB render, an
instance-segmentation mask and a JSON metadata record (object poses, camera
pose, light pose).

- Seeded, reproducible scene randomization
- Two-pass capture (appearance, then flat mask colors) with guaranteed
  material restore
- Stable per-object mask colors for the whole run
- Fail-fast: a run stops at the first failed frame and never leaves gaps
"""

__version__ = "1.0.0"

from .logging_utils import CaptureLogger, PipelineLogger, LogLevel
from .errors import SceneCaptureError, ConfigurationError, CaptureError, PersistenceError
from .config import RunConfig, load_or_create_config
from .sampler import RandomSampler
from .state import TrackedObject, CameraState, LightState, FrameRecord
from .mask_registry import MaskRegistry, DEFAULT_MASK_PALETTE
from .randomizer import SceneRandomizer, look_at_basis
from .materials import MaskMaterialOverride
from .metadata import MetadataWriter
from .persistence import Persistence, LocalFileStore, ImageEncoder
from .controller import CaptureController, CaptureState, RunResult, RunStatistics

__all__ = [
    "CaptureLogger",
    "PipelineLogger",
    "LogLevel",
    "SceneCaptureError",
    "ConfigurationError",
    "CaptureError",
    "PersistenceError",
    "RunConfig",
    "load_or_create_config",
    "RandomSampler",
    "TrackedObject",
    "CameraState",
    "LightState",
    "FrameRecord",
    "MaskRegistry",
    "DEFAULT_MASK_PALETTE",
    "SceneRandomizer",
    "look_at_basis",
    "MaskMaterialOverride",
    "MetadataWriter",
    "Persistence",
    "LocalFileStore",
    "ImageEncoder",
    "CaptureController",
    "CaptureState",
    "RunResult",
    "RunStatistics",
]
