"""
Shared fixtures for the tile scene generator tests.
"""
import random
import sys
from pathlib import Path

import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from wfc_core import Prototype, WfcScene, make_tile


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def corridor_prototypes():
    """Filler (0), x+ connector (1) and x- connector (2) on the +-2 lattice."""
    return [
        Prototype(0, 2, [(0.0, 0.0, 0.0)]),
        Prototype(0, 2, [(2.0, 0.0, 0.0)]),
        Prototype(0, 2, [(-2.0, 0.0, 0.0)]),
    ]


@pytest.fixture
def library_tiles():
    """One prototype per stock tile kind."""
    names = ['floor', 'wall', 'corner', 'double_corner', 'floor_corner',
             'floor_corner_2', 'floor_corner_3', 'floor_wall', 'empty']
    return [make_tile(name, prototype_id=i) for i, name in enumerate(names)]


@pytest.fixture
def floor_scene(rng):
    """A flat 4x1x4 scene where only floors are registered."""
    scene = WfcScene(4, 1, 4, rng=rng)
    scene.insert_block_case(make_tile('floor'))
    return scene
