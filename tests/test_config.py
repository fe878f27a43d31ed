"""
RunConfig tests: YAML round trip and validation.
"""

import logging
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest
import yaml

from scenecapture.config import (
    CameraRingConfig,
    RenderConfig,
    RunConfig,
    load_or_create_config,
)
from scenecapture.errors import ConfigurationError

from conftest import make_config

logger = logging.getLogger(__name__)


def test_defaults_are_valid() -> None:
    config = RunConfig()
    assert config.validate() == []
    assert config.camera.radius_min == 4.5
    assert config.camera.height_max == 4.0
    assert config.output.frame_stem(42) == "frame_000042"


def test_yaml_roundtrip(tmp_path) -> None:
    config = make_config(tmp_path / "out", seed=7, num_frames=12, mask_palette=("FF0000", "00FF00"))
    path = tmp_path / "run.yaml"
    config.save(path)

    loaded = RunConfig.load(path)
    assert loaded == config
    assert isinstance(loaded.output.base_dir, Path)
    assert isinstance(loaded.scene.static_object_names, tuple)


def test_partial_yaml_keeps_defaults(tmp_path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text(yaml.dump({"seed": 99, "camera": {"radius_max": 8.0}}), encoding="utf-8")

    config = RunConfig.load(path)
    assert config.seed == 99
    assert config.camera.radius_max == 8.0
    assert config.camera.radius_min == 4.5
    assert config.num_frames == 100


def test_unknown_field_rejected() -> None:
    with pytest.raises(ConfigurationError):
        RunConfig.from_dict({"camera": {"fov": 90}})


def test_missing_file_rejected(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        RunConfig.load(tmp_path / "missing.yaml")


def test_load_or_create(tmp_path) -> None:
    assert load_or_create_config(tmp_path / "missing.yaml") == RunConfig()


def test_validation_issues(tmp_path) -> None:
    config = make_config(
        tmp_path,
        num_frames=0,
        camera=CameraRingConfig(radius_min=6.0, radius_max=5.0, height_min=4.0, height_max=2.0),
        render=RenderConfig(width=0, height=10, image_format="gif"),
        mask_palette=("red",),
    )
    issues = config.validate()
    text = " | ".join(issues)

    assert "num_frames" in text
    assert "radius_min" in text
    assert "height_min" in text
    assert "Resolution" in text
    assert "gif" in text
    assert "red" in text

    with pytest.raises(ConfigurationError) as excinfo:
        config.ensure_valid()
    assert excinfo.value.issues == issues


def test_negative_seed_accepted(tmp_path) -> None:
    config = make_config(tmp_path, seed=-7)
    assert config.validate() == []
    config.ensure_valid()


def test_config_is_frozen() -> None:
    config = RunConfig()
    with pytest.raises(FrozenInstanceError):
        config.seed = 1


def test_shipped_config_matches_defaults() -> None:
    path = Path(__file__).parent.parent / "configs" / "default.yaml"
    assert RunConfig.load(path) == RunConfig()
