"""
SceneCapture - Capture Controller

Per-frame state machine driving a capture run:

    IDLE -> RANDOMIZING -> SETTLING_RGB -> CAPTURING_RGB
         -> APPLYING_MASK_MATERIALS -> SETTLING_MASK -> CAPTURING_MASK
         -> RESTORING_MATERIALS -> WRITING_METADATA
         -> RANDOMIZING (next frame) | DONE (frame count reached)

Any failure moves to FAILED and is raised as a SceneCaptureError; collaborator
exceptions of other types are wrapped in CaptureError. The SETTLING_* states await
one composition cycle of the viewport so the snapshot that follows reflects
the changes just made.

Fail-fast policy:
- A frame whose rgb, mask and metadata were not all written leaves no files
  behind and does not advance the frame counter
- Mask materials are restored on every exit from the mask pass
- Nothing is retried
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from .config import RunConfig
from .errors import CaptureError, ConfigurationError, PersistenceError, SceneCaptureError
from .logging_utils import PipelineLogger
from .mask_registry import MaskRegistry, palette_from_hex
from .materials import MaskMaterialOverride
from .metadata import MetadataWriter
from .persistence import ImageEncoder, LocalFileStore, Persistence
from .randomizer import SceneRandomizer
from .sampler import RandomSampler
from .scene import MaterialSystem, SceneGraph, Viewport
from .state import FrameRecord, FrameSample, TrackedObject


class CaptureState(Enum):
    """Controller states."""
    IDLE = "idle"
    RANDOMIZING = "randomizing"
    SETTLING_RGB = "settling_rgb"
    CAPTURING_RGB = "capturing_rgb"
    APPLYING_MASK_MATERIALS = "applying_mask_materials"
    SETTLING_MASK = "settling_mask"
    CAPTURING_MASK = "capturing_mask"
    RESTORING_MATERIALS = "restoring_materials"
    WRITING_METADATA = "writing_metadata"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = (CaptureState.DONE, CaptureState.FAILED)

# FAILED is reachable from every non-terminal state
ALLOWED_TRANSITIONS: dict[CaptureState, tuple[CaptureState, ...]] = {
    CaptureState.IDLE: (CaptureState.RANDOMIZING,),
    CaptureState.RANDOMIZING: (CaptureState.SETTLING_RGB,),
    CaptureState.SETTLING_RGB: (CaptureState.CAPTURING_RGB,),
    CaptureState.CAPTURING_RGB: (CaptureState.APPLYING_MASK_MATERIALS,),
    CaptureState.APPLYING_MASK_MATERIALS: (
        CaptureState.SETTLING_MASK,
        CaptureState.RESTORING_MATERIALS,
    ),
    CaptureState.SETTLING_MASK: (
        CaptureState.CAPTURING_MASK,
        CaptureState.RESTORING_MATERIALS,
    ),
    CaptureState.CAPTURING_MASK: (CaptureState.RESTORING_MATERIALS,),
    CaptureState.RESTORING_MATERIALS: (CaptureState.WRITING_METADATA,),
    CaptureState.WRITING_METADATA: (CaptureState.RANDOMIZING, CaptureState.DONE),
    CaptureState.DONE: (),
    CaptureState.FAILED: (),
}


@dataclass
class RunStatistics:
    """Running statistics for a capture run."""
    frames_completed: int = 0
    frame_times_ms: list[float] = field(default_factory=list)
    trackable_objects: int = 0
    static_objects: int = 0
    palette_collisions: int = 0
    failed_frame: Optional[int] = None
    failure: Optional[str] = None

    def add_frame(self, elapsed_ms: float) -> None:
        self.frames_completed += 1
        self.frame_times_ms.append(elapsed_ms)

    def to_dict(self) -> dict:
        total_ms = sum(self.frame_times_ms)
        return {
            "frames_completed": self.frames_completed,
            "trackable_objects": self.trackable_objects,
            "static_objects": self.static_objects,
            "palette_collisions": self.palette_collisions,
            "total_time_ms": total_ms,
            "avg_time_per_frame_ms": total_ms / max(self.frames_completed, 1),
            "max_time_per_frame_ms": max(self.frame_times_ms, default=0.0),
            "failed_frame": self.failed_frame,
            "failure": self.failure,
        }


@dataclass
class RunResult:
    """Outcome of a completed run."""
    frames_completed: int
    final_state: CaptureState
    statistics: RunStatistics
    metadata_paths: list[Path] = field(default_factory=list)
    dataset_info_path: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "frames_completed": self.frames_completed,
            "final_state": self.final_state.value,
            "statistics": self.statistics.to_dict(),
            "metadata_paths": [p.as_posix() for p in self.metadata_paths],
            "dataset_info_path": self.dataset_info_path.as_posix() if self.dataset_info_path else None,
        }


class CaptureController:
    """
    Runs a capture from a RunConfig against one scene backend.

    A single instance drives a single run; frames are produced strictly one
    after another on the calling event loop.
    """

    MODULE_NAME = "CaptureController"

    def __init__(
        self,
        config: RunConfig,
        scene: SceneGraph,
        viewport: Viewport,
        materials: MaterialSystem,
        store: Optional[Persistence] = None,
        sampler: Optional[RandomSampler] = None,
        pipeline_logger: Optional[PipelineLogger] = None,
    ):
        """
        Initialize controller.

        Args:
            config: Run configuration (validated here)
            scene: Scene graph collaborator
            viewport: Render target collaborator
            materials: Material override collaborator
            store: Output storage (local filesystem when None)
            sampler: Random source (a fresh one when None; always re-seeded
                from config.seed)
            pipeline_logger: Log aggregator (when None: files under the output
                logs directory for local storage, in-memory otherwise)

        Raises:
            ConfigurationError: invalid configuration or mask palette
            PersistenceError: the logs directory cannot be created
        """
        config.ensure_valid()

        self.config = config
        self.scene = scene
        self.viewport = viewport
        self.materials = materials
        self.store = store or LocalFileStore()
        self.sampler = sampler or RandomSampler()

        if pipeline_logger is None:
            if isinstance(self.store, LocalFileStore):
                self.store.ensure_directory(config.output.logs_dir)
                pipeline_logger = PipelineLogger(config.output.logs_dir)
            else:
                pipeline_logger = PipelineLogger()
        self._pipeline_logger = pipeline_logger
        self.logger = self._pipeline_logger.get_logger(self.MODULE_NAME)

        self.registry = MaskRegistry(
            palette=palette_from_hex(config.mask_palette),
            logger=self._pipeline_logger.get_logger(MaskRegistry.MODULE_NAME),
        )
        self.randomizer = SceneRandomizer(
            scene=scene,
            logger=self._pipeline_logger.get_logger(SceneRandomizer.MODULE_NAME),
        )
        self.metadata_writer = MetadataWriter(
            store=self.store,
            output=config.output,
            logger=self._pipeline_logger.get_logger(MetadataWriter.MODULE_NAME),
        )
        self.encoder = ImageEncoder(config.render.image_format, config.render.jpeg_quality)

        self._state = CaptureState.IDLE
        self._history: list[tuple[int, CaptureState]] = [(0, CaptureState.IDLE)]
        self._frame_index = 0
        self._objects: list[TrackedObject] = []
        self._prepared = False
        self._stats = RunStatistics()
        self._metadata_paths: list[Path] = []

        self.logger.log_init(
            seed=config.seed,
            num_frames=config.num_frames,
            output_dir=config.output.base_dir,
            resolution=f"{config.render.width}x{config.render.height}",
            image_format=self.encoder.image_format,
        )

    @classmethod
    def from_backend(cls, config: RunConfig, backend, **kwargs) -> "CaptureController":
        """Controller for a backend implementing all three collaborator interfaces."""
        return cls(config, scene=backend, viewport=backend, materials=backend, **kwargs)

    # ========================================================================
    # STATE
    # ========================================================================

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def frame_index(self) -> int:
        """Index of the next frame to capture (= frames completed)."""
        return self._frame_index

    @property
    def objects(self) -> list[TrackedObject]:
        return list(self._objects)

    @property
    def history(self) -> list[tuple[int, CaptureState]]:
        """(frame index, state) for every state entered, in order."""
        return list(self._history)

    @property
    def statistics(self) -> RunStatistics:
        return self._stats

    def _transition(self, new_state: CaptureState) -> None:
        if new_state is CaptureState.FAILED:
            allowed = self._state not in TERMINAL_STATES
        else:
            allowed = new_state in ALLOWED_TRANSITIONS[self._state]
        if not allowed:
            raise RuntimeError(
                f"Illegal capture state transition {self._state.name} -> {new_state.name}"
            )
        self._state = new_state
        self._history.append((self._frame_index, new_state))
        self.logger.debug("State", frame=self._frame_index, state=new_state.name)

    # ========================================================================
    # SETUP
    # ========================================================================

    def prepare(self) -> list[TrackedObject]:
        """
        Discover objects, assign mask colors, create output directories.

        Idempotent; called automatically by the first capture.

        Raises:
            ConfigurationError: no trackable objects in the scene
            PersistenceError: output directories cannot be created
            CaptureError: a scene call failed during discovery or setup
        """
        if self._prepared:
            return self.objects

        try:
            self._objects = self._discover_objects()
            self.registry.assign(self._objects)

            output = self.config.output
            for directory in (output.base_dir, output.rgb_dir, output.mask_dir, output.meta_dir):
                self.store.ensure_directory(directory)

            self.viewport.set_output_size(self.config.render.width, self.config.render.height)
            self.sampler.seed(self.config.seed)
        except SceneCaptureError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = CaptureError(f"Scene setup failed: {e}", frame_index=self._frame_index)
            self._fail(error)
            raise error from e

        self._stats.trackable_objects = sum(1 for o in self._objects if o.trackable)
        self._stats.static_objects = len(self._objects) - self._stats.trackable_objects
        self._stats.palette_collisions = len(self.registry.collisions)
        self._prepared = True

        self.logger.info(
            "Run prepared",
            trackable_objects=self._stats.trackable_objects,
            static_objects=self._stats.static_objects,
            mask_colors=self.registry.to_dict()["assignments"],
        )
        return self.objects

    def _discover_objects(self) -> list[TrackedObject]:
        nodes = self.scene.find_renderable_meshes(self.config.scene.root)
        static_names = set(self.config.scene.static_object_names)

        objects = []
        for node in nodes:
            position, yaw = self.scene.get_object_pose(node.handle)
            objects.append(TrackedObject(
                name=node.name,
                handle=node.handle,
                position=tuple(position),
                yaw=yaw,
                trackable=node.name not in static_names,
            ))

        if not any(o.trackable for o in objects):
            self.logger.error(
                "No trackable objects found",
                reason=f"{len(objects)} renderable meshes, all static or none at all",
                suggested_fix="Check scene.root and scene.static_object_names",
            )
            raise ConfigurationError(
                "Scene has no trackable objects",
                issues=[f"renderable meshes: {[o.name for o in objects]}"],
            )
        return objects

    # ========================================================================
    # FRAME CAPTURE
    # ========================================================================

    async def capture_frame(self) -> FrameRecord:
        """
        Capture one complete frame (rgb, mask, metadata).

        Returns:
            The written FrameRecord

        Raises:
            CaptureError: snapshot, encoding or another scene call failed
            PersistenceError: a file could not be written
            RuntimeError: the run is already finished
        """
        if self._state in TERMINAL_STATES:
            raise RuntimeError(f"Run already finished ({self._state.name})")
        if self._frame_index >= self.config.num_frames:
            raise RuntimeError("Configured frame count already reached")

        self.prepare()

        index = self._frame_index
        start_time = time.time()
        self.logger.debug("Frame started", frame=index)

        try:
            self._transition(CaptureState.RANDOMIZING)
            sample = self.randomizer.randomize(self.config, self.sampler, self._objects)

            self._transition(CaptureState.SETTLING_RGB)
            await self.viewport.await_composition_cycle()

            self._transition(CaptureState.CAPTURING_RGB)
            rgb_bytes = self._capture("rgb", index)

            self._transition(CaptureState.APPLYING_MASK_MATERIALS)
            mask_override = MaskMaterialOverride(self.materials, self._objects, logger=self.logger)
            try:
                mask_override.apply()

                self._transition(CaptureState.SETTLING_MASK)
                await self.viewport.await_composition_cycle()

                self._transition(CaptureState.CAPTURING_MASK)
                mask_bytes = self._capture("mask", index)
            finally:
                self._transition(CaptureState.RESTORING_MATERIALS)
                mask_override.restore()

            self._transition(CaptureState.WRITING_METADATA)
            record = self._write_frame(index, sample, rgb_bytes, mask_bytes)

        except SceneCaptureError as e:
            if e.frame_index is None:
                e.frame_index = index
            self._fail(e)
            raise
        except Exception as e:
            error = CaptureError(
                f"{type(e).__name__} during {self._state.name}: {e}", frame_index=index
            )
            self._fail(error)
            raise error from e

        elapsed_ms = (time.time() - start_time) * 1000
        self._stats.add_frame(elapsed_ms)
        self._frame_index += 1

        self.logger.log_output("Frame completed", frame=index, time_ms=round(elapsed_ms, 3))

        if self._frame_index >= self.config.num_frames:
            self._transition(CaptureState.DONE)
        return record

    def _capture(self, pass_name: str, frame_index: int) -> bytes:
        """Snapshot the viewport and encode it."""
        try:
            pixels = self.viewport.snapshot()
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(
                f"{pass_name} snapshot failed: {e}", frame_index=frame_index
            ) from e

        if pixels is None:
            raise CaptureError(f"{pass_name} snapshot returned no pixels", frame_index=frame_index)

        expected = (self.config.render.height, self.config.render.width)
        if tuple(pixels.shape[:2]) != expected:
            raise CaptureError(
                f"{pass_name} snapshot is {pixels.shape[1]}x{pixels.shape[0]}, "
                f"expected {expected[1]}x{expected[0]}",
                frame_index=frame_index,
            )

        data = self.encoder.encode(pixels)
        self.logger.debug("Snapshot captured", frame=frame_index, pass_name=pass_name, bytes=len(data))
        return data

    def _artifact_path(self, kind: str, frame_index: int) -> Path:
        output = self.config.output
        directory = {"rgb": output.rgb_subdir, "mask": output.mask_subdir}[kind]
        return Path(directory) / f"{output.frame_stem(frame_index)}.{self.encoder.extension}"

    def _write_frame(
        self,
        index: int,
        sample: FrameSample,
        rgb_bytes: bytes,
        mask_bytes: bytes,
    ) -> FrameRecord:
        """Write the frame triple; on failure remove whatever was written."""
        base_dir = self.config.output.base_dir
        rgb_ref = self._artifact_path("rgb", index)
        mask_ref = self._artifact_path("mask", index)

        record = FrameRecord(
            frame=index,
            seed=self.config.seed,
            rgb=rgb_ref.as_posix(),
            mask=mask_ref.as_posix(),
            camera=sample.camera,
            light=sample.light,
            objects=sample.objects,
        )

        written: list[Path] = []
        try:
            # Recorded before each write: a failed write may leave a partial file
            written.append(base_dir / rgb_ref)
            self.store.write_bytes(base_dir / rgb_ref, rgb_bytes)
            written.append(base_dir / mask_ref)
            self.store.write_bytes(base_dir / mask_ref, mask_bytes)
            meta_path = self.metadata_writer.path_for(index)
            written.append(meta_path)
            self.metadata_writer.write(record)
        except PersistenceError:
            self._rollback(written, index)
            raise

        self._metadata_paths.append(meta_path)
        return record

    def _rollback(self, paths: list[Path], frame_index: int) -> None:
        for path in paths:
            try:
                self.store.remove(path)
            except PersistenceError as e:
                self.logger.error(
                    "Could not remove partial frame file",
                    frame=frame_index,
                    path=path,
                    reason=str(e),
                    suggested_fix="Delete the file by hand before reusing the output directory",
                )

    def _fail(self, error: SceneCaptureError) -> None:
        self._stats.failed_frame = error.frame_index
        self._stats.failure = str(error)
        self.logger.critical(
            "Run aborted",
            frame=error.frame_index,
            error_type=type(error).__name__,
            reason=str(error),
            frames_completed=self._frame_index,
        )
        if self._state not in TERMINAL_STATES:
            self._transition(CaptureState.FAILED)
        self._pipeline_logger.write_summary()

    # ========================================================================
    # RUN
    # ========================================================================

    async def run(self) -> RunResult:
        """
        Capture `config.num_frames` frames and write dataset_info.json.

        Raises:
            SceneCaptureError: the first failure; frames already written
                stay valid
        """
        self.prepare()
        self.logger.info("Capture run started", num_frames=self.config.num_frames)

        while self._state is not CaptureState.DONE:
            await self.capture_frame()
            if self._frame_index % 50 == 0:
                self.logger.info(
                    "Progress",
                    frames_completed=self._frame_index,
                    num_frames=self.config.num_frames,
                )

        info_path = self._write_dataset_info()
        self._pipeline_logger.write_summary()

        self.logger.info("Capture run completed", **self._stats.to_dict())
        return RunResult(
            frames_completed=self._frame_index,
            final_state=self._state,
            statistics=self._stats,
            metadata_paths=list(self._metadata_paths),
            dataset_info_path=info_path,
        )

    def run_sync(self) -> RunResult:
        """`run()` for callers without an event loop."""
        return asyncio.run(self.run())

    def _write_dataset_info(self) -> Path:
        info = {
            "created": datetime.now().isoformat(),
            "config": self.config.to_dict(),
            "mask_registry": self.registry.to_dict(),
            "statistics": self._stats.to_dict(),
        }
        path = self.config.output.base_dir / "dataset_info.json"
        self.store.write_text(path, json.dumps(info, indent=2) + "\n")
        self.logger.log_output("dataset info written", path=path)
        return path
