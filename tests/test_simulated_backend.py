"""
SimulatedScene tests: capability query, staged composition and rendering.
"""

import asyncio
import logging

import numpy as np
import pytest

from scenecapture.backends.simulated import BACKGROUND_COLOR, FlatMaterial, SimulatedScene
from scenecapture.randomizer import look_at_basis

logger = logging.getLogger(__name__)


def scene_with_cube() -> tuple[SimulatedScene, int]:
    scene = SimulatedScene(width=40, height=30)
    scene.add_object("Light", renderable=False)
    cube = scene.add_object("Cube", position=(0.0, 0.5, 0.0), size=0.5, base_color=(200, 200, 200))
    position = (5.0, 3.0, 0.0)
    scene.set_camera(position, look_at_basis(position, (0.0, 0.5, 0.0)))
    return scene, cube


def test_only_renderable_nodes_discovered() -> None:
    scene, cube = scene_with_cube()
    nodes = scene.find_renderable_meshes()
    assert [(n.name, n.handle) for n in nodes] == [("Cube", cube)]


def test_changes_visible_only_after_cycle() -> None:
    """Snapshots show the state composed by the last composition cycle."""
    scene, cube = scene_with_cube()
    blank = scene.snapshot()
    assert np.all(blank == BACKGROUND_COLOR)

    asyncio.run(scene.await_composition_cycle())
    lit = scene.snapshot()
    assert not np.all(lit == BACKGROUND_COLOR)

    scene.set_override(cube, scene.create_unlit_material((0, 255, 0)))
    np.testing.assert_array_equal(scene.snapshot(), lit)

    asyncio.run(scene.await_composition_cycle())
    masked = scene.snapshot()
    assert np.all(masked == (0, 255, 0), axis=-1).any()
    assert scene.cycles == 2


def test_lit_override_is_shaded() -> None:
    scene, cube = scene_with_cube()
    scene.set_override(cube, FlatMaterial(color=(0, 255, 0), unlit=False))
    asyncio.run(scene.await_composition_cycle())
    assert not np.all(scene.snapshot() == (0, 255, 0), axis=-1).any()


def test_object_behind_camera_not_drawn() -> None:
    scene, cube = scene_with_cube()
    scene.set_object_pose(cube, (10.0, 3.0, 0.0), 0.0)
    asyncio.run(scene.await_composition_cycle())
    assert np.all(scene.snapshot() == BACKGROUND_COLOR)


def test_injected_snapshot_failure() -> None:
    scene, _ = scene_with_cube()
    scene.fail_on_snapshot(1)
    scene.snapshot()
    with pytest.raises(RuntimeError):
        scene.snapshot()
    scene.snapshot()
    assert scene.snapshots_taken == 3


def test_override_none_removes_entry() -> None:
    scene, cube = scene_with_cube()
    scene.set_override(cube, scene.create_unlit_material((1, 2, 3)))
    assert scene.has_override_entry(cube)
    scene.set_override(cube, None)
    assert not scene.has_override_entry(cube)
    assert scene.get_override(cube) is None


def test_unknown_handle() -> None:
    scene, _ = scene_with_cube()
    with pytest.raises(KeyError):
        scene.get_object_pose(99)
