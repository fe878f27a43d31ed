"""
SceneRandomizer tests: ranges, draw order and the look-at camera basis.
"""

import logging
import math
from dataclasses import replace

import numpy as np
import pytest

from scenecapture.config import SpawnConfig
from scenecapture.randomizer import SceneRandomizer, look_at_basis
from scenecapture.sampler import RandomSampler
from scenecapture.state import TrackedObject

from conftest import make_config, make_scene

logger = logging.getLogger(__name__)


def discover(scene, static=("Ground",)) -> list[TrackedObject]:
    objects = []
    for node in scene.find_renderable_meshes():
        position, yaw = scene.get_object_pose(node.handle)
        objects.append(TrackedObject(name=node.name, handle=node.handle, position=position,
                                     yaw=yaw, trackable=node.name not in static))
    return objects


def test_ranges_over_200_frames(tmp_path) -> None:
    """
    Validates for every frame:
        - object x/z within spawn radius, y pinned
        - camera on its ring and height band
        - light angles within their degree bounds
    """
    config = make_config(tmp_path)
    scene = make_scene()
    objects = discover(scene)
    sampler = RandomSampler(config.seed)
    randomizer = SceneRandomizer(scene)

    spawn, ring, light = config.spawn, config.camera, config.light
    for _ in range(200):
        sample = randomizer.randomize(config, sampler, objects)

        for obj in sample.objects:
            x, y, z = obj.position
            assert -spawn.spawn_radius <= x <= spawn.spawn_radius
            assert -spawn.spawn_radius <= z <= spawn.spawn_radius
            assert y == spawn.object_y
            assert 0.0 <= obj.yaw < math.tau

        cam = sample.camera
        assert ring.height_min <= cam.height <= ring.height_max
        assert ring.radius_min - 1e-9 <= cam.radius_xz <= ring.radius_max + 1e-9
        assert 2.5 <= cam.position[1] <= 4.0
        assert 4.5 - 1e-9 <= cam.radius_xz <= 6.5 + 1e-9

        assert math.radians(light.pitch_min_deg) <= sample.light.pitch <= math.radians(light.pitch_max_deg)
        assert math.radians(light.yaw_min_deg) <= sample.light.yaw <= math.radians(light.yaw_max_deg)
        assert sample.light.roll == 0.0


def test_draw_order(tmp_path) -> None:
    """Objects (x, z, yaw) then camera (r, azimuth, h) then light (yaw, pitch)."""
    config = make_config(tmp_path)
    scene = make_scene(object_names=("Cube", "Sphere"))
    objects = discover(scene)
    sampler = RandomSampler(config.seed)

    sample = SceneRandomizer(scene).randomize(config, sampler, objects)
    assert sampler.draws == 2 * 3 + 3 + 2

    ref = RandomSampler(config.seed)
    r = config.spawn.spawn_radius
    expected_objects = []
    for _ in range(2):
        x, z, yaw = ref.uniform(-r, r), ref.uniform(-r, r), ref.uniform(0.0, math.tau)
        expected_objects.append(((x, config.spawn.object_y, z), yaw))
    radius = ref.uniform(config.camera.radius_min, config.camera.radius_max)
    azimuth = ref.uniform(0.0, math.tau)
    height = ref.uniform(config.camera.height_min, config.camera.height_max)
    light_yaw = math.radians(ref.uniform(config.light.yaw_min_deg, config.light.yaw_max_deg))
    light_pitch = math.radians(ref.uniform(config.light.pitch_min_deg, config.light.pitch_max_deg))

    assert [(o.position, o.yaw) for o in sample.objects] == expected_objects
    assert sample.camera.position == (radius * math.cos(azimuth), height, radius * math.sin(azimuth))
    assert sample.light.rotation_rad == (light_pitch, light_yaw, 0.0)


def test_seed_12345_single_cube(tmp_path) -> None:
    """One non-ground object 'Cube', spawn_radius 2.0, object_y 0.5."""
    config = make_config(tmp_path, spawn=SpawnConfig(spawn_radius=2.0, object_y=0.5))
    scene = make_scene(object_names=("Cube",))
    objects = discover(scene)

    sample = SceneRandomizer(scene).randomize(config, RandomSampler(12345), objects)
    (cube,) = sample.objects
    assert cube.name == "Cube"
    assert -2.0 <= cube.position[0] <= 2.0
    assert -2.0 <= cube.position[2] <= 2.0
    assert cube.position[1] == 0.5


def test_static_objects_untouched(tmp_path) -> None:
    config = make_config(tmp_path)
    scene = make_scene()
    ground = scene.handle_of("Ground")
    before = scene.get_object_pose(ground)

    objects = discover(scene)
    sample = SceneRandomizer(scene).randomize(config, RandomSampler(1), objects)

    assert scene.get_object_pose(ground) == before
    assert "Ground" not in [o.name for o in sample.objects]


def test_poses_applied_to_scene(tmp_path) -> None:
    config = make_config(tmp_path)
    scene = make_scene()
    objects = discover(scene)
    sample = SceneRandomizer(scene).randomize(config, RandomSampler(5), objects)

    for snap in sample.objects:
        position, yaw = scene.get_object_pose(scene.handle_of(snap.name))
        assert position == snap.position
        assert yaw == snap.yaw

    position, basis = scene.get_camera()
    assert position == sample.camera.position
    assert basis == sample.camera.basis
    assert scene.get_light_rotation() == sample.light.rotation_rad


def test_camera_looks_at_target(tmp_path) -> None:
    """Basis is orthonormal, right-handed, and its forward axis hits the target."""
    config = make_config(tmp_path)
    scene = make_scene()
    objects = discover(scene)
    sampler = RandomSampler(11)
    randomizer = SceneRandomizer(scene)
    target = np.array([0.0, config.scene.look_at_height, 0.0])

    for _ in range(20):
        camera = randomizer.randomize(config, sampler, objects).camera
        basis = np.array(camera.basis)

        np.testing.assert_allclose(basis @ basis.T, np.eye(3), atol=1e-9)
        assert np.linalg.det(basis) == pytest.approx(1.0)

        to_target = target - np.array(camera.position)
        to_target /= np.linalg.norm(to_target)
        np.testing.assert_allclose(camera.forward, to_target, atol=1e-9)

        # Up row leans toward world up, right row stays horizontal
        assert basis[1][1] > 0
        assert basis[0][1] == pytest.approx(0.0, abs=1e-12)


def test_look_at_basis_degenerate() -> None:
    with pytest.raises(ValueError):
        look_at_basis((0.0, 1.0, 0.0), (0.0, 1.0, 0.0))
    with pytest.raises(ValueError):
        look_at_basis((0.0, 5.0, 0.0), (0.0, 0.0, 0.0))


def test_inverted_light_bounds_are_config_errors(tmp_path) -> None:
    from scenecapture.config import LightConfig

    config = make_config(tmp_path, light=replace(LightConfig(), yaw_min_deg=10.0, yaw_max_deg=-10.0))
    assert any("yaw_min_deg" in issue for issue in config.validate())
