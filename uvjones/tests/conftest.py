"""
Shared fixtures.
"""

import pytest

from uvjones.coords.antenna import ArrayLayout
from uvjones.coords.earth import LatLngHeight
from uvjones.coords.frames import Direction
from uvjones.tests.builders import ANTENNA_TABLE


@pytest.fixture
def layout():
    return ArrayLayout.from_table(ANTENNA_TABLE, LatLngHeight.mwa())


@pytest.fixture
def eor0():
    return Direction.from_degrees(0.0, -27.0)
