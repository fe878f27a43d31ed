"""
SceneCapture - Scene Randomizer

Draws a new object/camera/light configuration for a frame and applies it to
the live scene.

Draw order (part of the reproducibility contract, never reorder):
1. Objects, in discovery order: x, z, yaw
2. Camera: ring radius, azimuth, height
3. Light: yaw, pitch

Static (non-trackable) objects consume no draws and are never moved.
"""

import math
from typing import Optional, Sequence

import numpy as np

from .config import RunConfig
from .logging_utils import CaptureLogger
from .sampler import RandomSampler
from .scene import SceneGraph
from .state import (
    Basis3,
    CameraState,
    FrameSample,
    LightState,
    TrackedObject,
    Vector3,
)

WORLD_UP = (0.0, 1.0, 0.0)


def look_at_basis(position: Vector3, target: Vector3, up: Vector3 = WORLD_UP) -> Basis3:
    """
    Row-major camera basis looking from `position` at `target`.

    Rows are (right, up, back), a right-handed orthonormal frame.

    Raises:
        ValueError: position equals target, or the view direction is
            parallel to `up`
    """
    eye = np.asarray(position, dtype=np.float64)
    forward = np.asarray(target, dtype=np.float64) - eye
    norm = np.linalg.norm(forward)
    if norm < 1e-9:
        raise ValueError("Camera position coincides with its look-at target")
    forward /= norm

    right = np.cross(forward, np.asarray(up, dtype=np.float64))
    right_norm = np.linalg.norm(right)
    if right_norm < 1e-9:
        raise ValueError("View direction is parallel to the up vector")
    right /= right_norm

    true_up = np.cross(right, forward)
    back = -forward

    return (
        tuple(right.tolist()),
        tuple(true_up.tolist()),
        tuple(back.tolist()),
    )


class SceneRandomizer:
    """
    Samples and applies one scene configuration per call.

    The camera basis is recomputed from the look-at constraint on every
    call; nothing about the previous frame is reused.
    """

    MODULE_NAME = "SceneRandomizer"

    def __init__(self, scene: SceneGraph, logger: Optional[CaptureLogger] = None):
        self.scene = scene
        self.logger = logger or CaptureLogger(self.MODULE_NAME, console_output=False)
        self.logger.log_init(scene=type(scene).__name__)

    def randomize(
        self,
        config: RunConfig,
        sampler: RandomSampler,
        objects: Sequence[TrackedObject],
    ) -> FrameSample:
        """
        Draw and apply object poses, camera pose and light pose.

        Updates `position`/`yaw` of every trackable object in place.

        Returns:
            FrameSample with snapshots of the trackable objects
        """
        self.logger.log_input("randomize", objects=len(objects), draws=sampler.draws)

        snapshots = self._randomize_objects(config, sampler, objects)
        camera = self._randomize_camera(config, sampler)
        light = self._randomize_light(config, sampler)

        self.logger.log_output(
            "scene randomized",
            camera_position=list(camera.position),
            light_rotation_rad=list(light.rotation_rad),
        )
        return FrameSample(objects=snapshots, camera=camera, light=light)

    def _randomize_objects(self, config, sampler, objects):
        spawn = config.spawn
        snapshots = []
        for obj in objects:
            if not obj.trackable:
                continue
            x = sampler.uniform(-spawn.spawn_radius, spawn.spawn_radius)
            z = sampler.uniform(-spawn.spawn_radius, spawn.spawn_radius)
            yaw = sampler.uniform(0.0, math.tau)

            obj.position = (x, spawn.object_y, z)
            obj.yaw = yaw
            self.scene.set_object_pose(obj.handle, obj.position, obj.yaw)
            snapshots.append(obj.snapshot())
        return tuple(snapshots)

    def _randomize_camera(self, config, sampler) -> CameraState:
        ring = config.camera
        radius = sampler.uniform(ring.radius_min, ring.radius_max)
        azimuth = sampler.uniform(0.0, math.tau)
        height = sampler.uniform(ring.height_min, ring.height_max)

        position = (radius * math.cos(azimuth), height, radius * math.sin(azimuth))
        target = (0.0, config.scene.look_at_height, 0.0)
        basis = look_at_basis(position, target)

        self.scene.set_camera(position, basis)
        return CameraState(position=position, basis=basis)

    def _randomize_light(self, config, sampler) -> LightState:
        bounds = config.light
        yaw = math.radians(sampler.uniform(bounds.yaw_min_deg, bounds.yaw_max_deg))
        pitch = math.radians(sampler.uniform(bounds.pitch_min_deg, bounds.pitch_max_deg))

        light = LightState(pitch=pitch, yaw=yaw, roll=0.0)
        self.scene.set_light_rotation(light.pitch, light.yaw, light.roll)
        return light
