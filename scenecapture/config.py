"""
SceneCapture - Run Configuration

Single source of truth for a capture run. Every value is fixed when the run
starts: the dataclasses are frozen and the controller never writes to them.

Loaded from / saved to YAML so a dataset can be regenerated from the
configuration file stored next to it.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Optional
import yaml

from .errors import ConfigurationError


SUPPORTED_IMAGE_FORMATS = ("png", "jpg", "jpeg", "bmp", "tiff")


@dataclass(frozen=True)
class SpawnConfig:
    """
    Object placement bounds.

    Objects rest on the ground plane: x/z are sampled inside a square of
    half-width `spawn_radius`, y is pinned to `object_y`.
    """
    spawn_radius: float = 2.0   # meters
    object_y: float = 0.5       # meters


@dataclass(frozen=True)
class CameraRingConfig:
    """
    Camera ring around the origin.

    Radius is measured in the XZ plane, height along world Y.
    """
    radius_min: float = 4.5     # meters
    radius_max: float = 6.5     # meters
    height_min: float = 2.5     # meters
    height_max: float = 4.0     # meters


@dataclass(frozen=True)
class LightConfig:
    """Directional light angle bounds (degrees)."""
    yaw_min_deg: float = -180.0
    yaw_max_deg: float = 180.0
    pitch_min_deg: float = -75.0
    pitch_max_deg: float = -25.0


@dataclass(frozen=True)
class SceneConfig:
    """Scene graph traversal and static geometry."""
    # Traversal root handed to the scene graph (None = whole scene)
    root: Optional[str] = None

    # Camera look-at target sits this far above the ground plane
    look_at_height: float = 0.5

    # Posed but never randomized, masked or listed in metadata
    static_object_names: tuple[str, ...] = ("Ground",)


@dataclass(frozen=True)
class RenderConfig:
    """Viewport output size and encoded image format."""
    width: int = 640
    height: int = 480
    image_format: str = "png"
    jpeg_quality: int = 95


@dataclass(frozen=True)
class OutputConfig:
    """
    Output directory layout.

    <base_dir>/<rgb_subdir>/<prefix><index>.<ext>
    <base_dir>/<mask_subdir>/<prefix><index>.<ext>
    <base_dir>/<meta_subdir>/<prefix><index>.json
    """
    base_dir: Path = field(default_factory=lambda: Path("output"))

    rgb_subdir: str = "rgb"
    mask_subdir: str = "mask"
    meta_subdir: str = "meta"
    logs_subdir: str = "logs"

    frame_prefix: str = "frame_"
    index_width: int = 6

    @property
    def rgb_dir(self) -> Path:
        return self.base_dir / self.rgb_subdir

    @property
    def mask_dir(self) -> Path:
        return self.base_dir / self.mask_subdir

    @property
    def meta_dir(self) -> Path:
        return self.base_dir / self.meta_subdir

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / self.logs_subdir

    def frame_stem(self, frame_index: int) -> str:
        """File stem for a frame, e.g. 'frame_000042'."""
        return f"{self.frame_prefix}{frame_index:0{self.index_width}d}"


@dataclass(frozen=True)
class RunConfig:
    """
    Master configuration for a capture run.

    Immutable for the whole run.
    """
    seed: int = 12345
    num_frames: int = 100

    spawn: SpawnConfig = field(default_factory=SpawnConfig)
    camera: CameraRingConfig = field(default_factory=CameraRingConfig)
    light: LightConfig = field(default_factory=LightConfig)
    scene: SceneConfig = field(default_factory=SceneConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    # Hex strings ("RRGGBB"); empty means the built-in palette
    mask_palette: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        """Convert to plain types for YAML/JSON serialization."""
        def convert(obj):
            if isinstance(obj, Path):
                return obj.as_posix()
            elif is_dataclass(obj):
                return {f.name: convert(getattr(obj, f.name)) for f in fields(obj)}
            elif isinstance(obj, (list, tuple)):
                return [convert(v) for v in obj]
            return obj
        return convert(self)

    def save(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load(cls, path: Path) -> "RunConfig":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "RunConfig":
        """Create config from a dictionary (missing keys keep defaults)."""
        scene_data = dict(data.get("scene", {}))
        if "static_object_names" in scene_data:
            scene_data["static_object_names"] = tuple(scene_data["static_object_names"])

        output_data = dict(data.get("output", {}))
        if "base_dir" in output_data:
            output_data["base_dir"] = Path(output_data["base_dir"])

        try:
            return cls(
                seed=int(data.get("seed", 12345)),
                num_frames=int(data.get("num_frames", 100)),
                spawn=SpawnConfig(**data.get("spawn", {})),
                camera=CameraRingConfig(**data.get("camera", {})),
                light=LightConfig(**data.get("light", {})),
                scene=SceneConfig(**scene_data),
                render=RenderConfig(**data.get("render", {})),
                output=OutputConfig(**output_data),
                mask_palette=tuple(data.get("mask_palette", ())),
            )
        except TypeError as e:
            raise ConfigurationError(f"Unrecognized configuration field: {e}") from e

    def validate(self) -> list[str]:
        """
        Validate configuration, return list of issues.

        Returns empty list if valid.
        """
        issues = []

        if self.num_frames < 1:
            issues.append(f"num_frames must be at least 1, got {self.num_frames}")

        # Spawn bounds
        if self.spawn.spawn_radius < 0:
            issues.append(f"spawn_radius must be non-negative, got {self.spawn.spawn_radius}")

        # Camera ring
        cam = self.camera
        if cam.radius_min > cam.radius_max:
            issues.append(f"camera radius_min {cam.radius_min} exceeds radius_max {cam.radius_max}")
        if cam.radius_min <= 0:
            issues.append(f"camera radius_min must be positive, got {cam.radius_min}")
        if cam.height_min > cam.height_max:
            issues.append(f"camera height_min {cam.height_min} exceeds height_max {cam.height_max}")
        if cam.height_min <= self.scene.look_at_height and cam.radius_min == 0:
            issues.append("camera may coincide with its look-at target")

        # Light angles
        light = self.light
        if light.yaw_min_deg > light.yaw_max_deg:
            issues.append(f"light yaw_min_deg {light.yaw_min_deg} exceeds yaw_max_deg {light.yaw_max_deg}")
        if light.pitch_min_deg > light.pitch_max_deg:
            issues.append(
                f"light pitch_min_deg {light.pitch_min_deg} exceeds pitch_max_deg {light.pitch_max_deg}"
            )

        # Render / output
        if self.render.width < 1 or self.render.height < 1:
            issues.append(f"Resolution {self.render.width}x{self.render.height} must be positive")
        if self.render.image_format.lower() not in SUPPORTED_IMAGE_FORMATS:
            issues.append(
                f"Unsupported image format '{self.render.image_format}', "
                f"expected one of {list(SUPPORTED_IMAGE_FORMATS)}"
            )
        if self.output.index_width < 1:
            issues.append(f"index_width must be at least 1, got {self.output.index_width}")
        if len({self.output.rgb_subdir, self.output.mask_subdir, self.output.meta_subdir}) != 3:
            issues.append("rgb, mask and meta subdirectories must be distinct")

        for entry in self.mask_palette:
            if len(entry) != 6 or any(c not in "0123456789abcdefABCDEF" for c in entry):
                issues.append(f"Palette entry '{entry}' is not an RRGGBB hex color")

        return issues

    def ensure_valid(self) -> None:
        """Raise ConfigurationError listing every issue found by validate()."""
        issues = self.validate()
        if issues:
            raise ConfigurationError("Invalid run configuration", issues=issues)


def create_default_config() -> RunConfig:
    """Create default run configuration."""
    return RunConfig()


def load_or_create_config(config_path: Optional[Path] = None) -> RunConfig:
    """Load config from file or create default."""
    if config_path and Path(config_path).exists():
        return RunConfig.load(config_path)
    return create_default_config()
