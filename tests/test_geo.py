import math

import pytest

from walkbuddy.services.geo import EARTH_RADIUS_MILES, distance, midpoint


def test_identical_points_are_zero_apart():
    assert distance(37.7749, -122.4194, 37.7749, -122.4194) == 0.0


@pytest.mark.parametrize(
    "p, q",
    [
        ((37.7749, -122.4194), (37.7850, -122.4295)),
        ((-33.8688, 151.2093), (51.5074, -0.1278)),
        ((89.9, 10.0), (-89.9, -170.0)),
        ((0.0, 179.99), (0.0, -179.99)),
    ],
)
def test_distance_is_symmetric(p, q):
    assert distance(*p, *q) == pytest.approx(distance(*q, *p), rel=1e-12, abs=1e-12)


def test_one_block_in_san_francisco():
    d = distance(37.7749, -122.4194, 37.7750, -122.4195)
    assert 0.005 < d < 0.015


def test_one_degree_of_latitude():
    assert distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(EARTH_RADIUS_MILES * math.pi / 180, rel=1e-9)


def test_antimeridian_wraps_around():
    # 0.02 degrees of longitude at the equator, not 359.98
    d = distance(0.0, 179.99, 0.0, -179.99)
    assert d == pytest.approx(EARTH_RADIUS_MILES * math.radians(0.02), rel=1e-6)


def test_near_pole_is_finite_and_small():
    d = distance(89.9999, 0.0, 89.9999, 180.0)
    assert math.isfinite(d)
    assert d < 0.02


def test_antipodal_points_are_half_circumference():
    assert distance(0.0, 0.0, 0.0, 180.0) == pytest.approx(EARTH_RADIUS_MILES * math.pi, rel=1e-9)


def test_midpoint_is_plain_average():
    assert midpoint(37.7749, -122.4194, 37.7750, -122.4195) == pytest.approx((37.77495, -122.41945))
