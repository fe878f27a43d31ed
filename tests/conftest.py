"""
Shared fixtures for the SceneCapture test suite.
"""

import sys
from dataclasses import replace
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from scenecapture.backends.simulated import SimulatedScene
from scenecapture.config import OutputConfig, RenderConfig, RunConfig
from scenecapture.logging_utils import PipelineLogger


def make_config(base_dir: Path, **overrides) -> RunConfig:
    """Small, fast run configuration writing under `base_dir`."""
    config = RunConfig(
        seed=12345,
        num_frames=3,
        render=RenderConfig(width=64, height=48, image_format="png"),
        output=OutputConfig(base_dir=Path(base_dir)),
    )
    return replace(config, **overrides)


def make_scene(object_names=("Cube", "Sphere", "Cone"), with_ground: bool = True) -> SimulatedScene:
    """Simulated scene: optional ground, a camera-less light, and mesh objects."""
    scene = SimulatedScene(width=64, height=48)
    if with_ground:
        scene.add_object("Ground", position=(0.0, 0.0, 0.0), size=0.05, base_color=(90, 90, 90))
    scene.add_object("KeyLight", renderable=False)
    for name in object_names:
        scene.add_object(name, size=0.5, base_color=(180, 180, 180))
    return scene


@pytest.fixture
def quiet_logger() -> PipelineLogger:
    """In-memory pipeline logger that prints nothing."""
    return PipelineLogger(log_dir=None, console_output=False)


@pytest.fixture
def config(tmp_path) -> RunConfig:
    return make_config(tmp_path / "run")


@pytest.fixture
def scene() -> SimulatedScene:
    return make_scene()
