"""Unit tests for shared.geo."""

import math

import pytest

from shared.geo import bounding_box, distance_km, within_radius

NOUAKCHOTT = (18.0735, -15.9582)


class TestDistance:
    def test_zero_for_same_point(self):
        assert distance_km(*NOUAKCHOTT, *NOUAKCHOTT) == 0

    def test_one_degree_of_latitude(self):
        assert distance_km(0, 0, 1, 0) == pytest.approx(111.195, rel=1e-4)

    def test_symmetric(self):
        a = distance_km(18.0735, -15.9582, 20.94, -17.03)
        b = distance_km(20.94, -17.03, 18.0735, -15.9582)
        assert a == pytest.approx(b)

    def test_antipodal_points_do_not_raise(self):
        assert distance_km(0, 0, 0, 180) == pytest.approx(math.pi * 6371, rel=1e-9)

    def test_nouakchott_to_nouadhibou(self):
        # ~340 km up the coast
        assert 320 < distance_km(*NOUAKCHOTT, 20.94, -17.03) < 360


class TestWithinRadius:
    def test_inside_and_outside(self):
        lat, lng = NOUAKCHOTT
        two_km = (lat + 2 / 111.195, lng)
        assert within_radius(lat, lng, *two_km, 10) is True
        assert within_radius(lat, lng, *two_km, 1) is False

    def test_boundary_is_inclusive(self):
        d = distance_km(0, 0, 0.1, 0)
        assert within_radius(0, 0, 0.1, 0, d) is True


class TestBoundingBox:
    @pytest.mark.parametrize("radius", [1, 10, 50, 500])
    @pytest.mark.parametrize("bearing", range(0, 360, 30))
    def test_contains_every_point_inside_radius(self, radius, bearing):
        lat, lng = NOUAKCHOTT
        # Point at exactly *radius* along *bearing* (spherical destination formula)
        d = radius / 6371.0
        b = math.radians(bearing)
        phi1, lam1 = math.radians(lat), math.radians(lng)
        phi2 = math.asin(
            math.sin(phi1) * math.cos(d) + math.cos(phi1) * math.sin(d) * math.cos(b)
        )
        lam2 = lam1 + math.atan2(
            math.sin(b) * math.sin(d) * math.cos(phi1),
            math.cos(d) - math.sin(phi1) * math.sin(phi2),
        )
        box = bounding_box(lat, lng, radius)
        assert box.contains(math.degrees(phi2), math.degrees(lam2))

    def test_clamped_latitude(self):
        box = bounding_box(89.9, 0, 100)
        assert box.max_lat == 90.0
        assert (box.min_lng, box.max_lng) == (-180.0, 180.0)

    def test_antimeridian_widens_to_full_longitude(self):
        box = bounding_box(0, 179.95, 50)
        assert (box.min_lng, box.max_lng) == (-180.0, 180.0)
        assert box.contains(0, -179.95)

    def test_excludes_far_point(self):
        box = bounding_box(*NOUAKCHOTT, 10)
        assert not box.contains(20.94, -17.03)
