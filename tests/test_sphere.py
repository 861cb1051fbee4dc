"""Tests for the cube-sphere and Fibonacci-sphere topologies."""

import math

import numpy as np
import pytest

from py_worldgen.core.alea_prng import AleaPRNG
from py_worldgen.core.hydrology import Hydrology, HydrologyOptions
from py_worldgen.core.sphere import CubeSphere, Face, FibonacciSphere, SphereSurface


class TestCubeSphere:
    """Test cube-sphere indexing and neighbours."""

    @pytest.fixture
    def sphere(self):
        return CubeSphere(6 * 3 * 3)

    def test_dimensions(self, sphere):
        assert sphere.points_per_side == 3
        assert sphere.points_per_face == 9
        assert sphere.num_points == 54

    def test_rounds_down(self):
        sphere = CubeSphere(100)
        assert sphere.points_per_side == 4
        assert sphere.num_points == 96

    def test_too_small(self):
        with pytest.raises(ValueError):
            CubeSphere(5)

    def test_index_to_face(self, sphere):
        assert sphere.index_to_face(0) == Face.FRONT
        assert sphere.index_to_face(40) == Face.NORTH
        assert sphere.index_to_face(53) == Face.SOUTH
        assert sphere.index_on_face_to_cube_index(4, Face.BACK) == 22

    def test_unit_coordinates(self, sphere):
        np.testing.assert_allclose(np.linalg.norm(sphere.coordinates, axis=1), 1.0)

    def test_face_centres(self, sphere):
        """The middle cell of each face lies on that face's axis."""
        expected = {
            Face.FRONT: (0.0, 1.0, 0.0),
            Face.RIGHT: (1.0, 0.0, 0.0),
            Face.BACK: (0.0, -1.0, 0.0),
            Face.LEFT: (-1.0, 0.0, 0.0),
            Face.NORTH: (0.0, 0.0, 1.0),
            Face.SOUTH: (0.0, 0.0, -1.0),
        }
        for face, axis in expected.items():
            centre = sphere.index_on_face_to_cube_index(4, face)
            np.testing.assert_allclose(sphere.index_to_coordinates(centre), axis, atol=1e-12)

    def test_front_corner_neighbours(self, sphere):
        neighbours = sphere.find_direct_neighbors(0)
        assert sorted(neighbours) == sorted([1, 3, 3 * 9 + 2, 4 * 9 + 6])

    def test_interior_has_four_in_face_neighbours(self, sphere):
        assert sphere.find_direct_neighbors(4) == [3, 5, 1, 7]

    def test_every_point_has_four_neighbours(self, sphere):
        for i in range(sphere.num_points):
            neighbours = sphere.find_direct_neighbors(i)
            assert len(neighbours) == 4
            assert len(set(neighbours)) == 4
            assert i not in neighbours

    @pytest.mark.parametrize("side", [2, 3, 4, 5])
    def test_neighbours_symmetric(self, side):
        sphere = CubeSphere(6 * side * side)
        for i in range(sphere.num_points):
            for j in sphere.find_direct_neighbors(i):
                assert i in sphere.find_direct_neighbors(j)

    def test_neighbours_are_close(self):
        sphere = CubeSphere(6 * 4 * 4)
        for i in range(sphere.num_points):
            for j in sphere.find_direct_neighbors(i):
                assert math.sqrt(((sphere.coordinates[i] - sphere.coordinates[j]) ** 2).sum()) < 0.6

    def test_lat_lon(self, sphere):
        lat, lon = sphere.index_to_lat_lon_deg(sphere.index_on_face_to_cube_index(4, Face.NORTH))
        assert lat == pytest.approx(90.0)
        lat, lon = sphere.index_to_lat_lon_deg(sphere.index_on_face_to_cube_index(4, Face.RIGHT))
        assert lat == pytest.approx(0.0, abs=1e-9)
        assert lon == pytest.approx(90.0)

    def test_lat_lon_to_face(self, sphere):
        assert sphere.lat_lon_deg_to_face(80.0, 10.0) == Face.NORTH
        assert sphere.lat_lon_deg_to_face(-60.0, 10.0) == Face.SOUTH
        assert sphere.lat_lon_deg_to_face(0.0, 0.0) == Face.FRONT
        assert sphere.lat_lon_deg_to_face(10.0, 90.0) == Face.RIGHT
        assert sphere.lat_lon_deg_to_face(10.0, -90.0) == Face.LEFT
        assert sphere.lat_lon_deg_to_face(10.0, 180.0) == Face.BACK

    def test_lat_lon_face_agrees_with_index(self, sphere):
        for i in range(sphere.num_points):
            lat, lon = sphere.index_to_lat_lon_deg(i)
            assert sphere.lat_lon_deg_to_face(lat, lon) == sphere.index_to_face(i)

    def test_export_obj(self, sphere, tmp_path):
        path = tmp_path / "cube.obj"
        _, error = sphere.export_obj(path)
        assert error is None
        lines = path.read_text().splitlines()
        assert len(lines) == sphere.num_points
        x, y, z = sphere.index_to_coordinates(0)
        values = [float(v) for v in lines[0].split()[1:]]
        np.testing.assert_allclose(values, [x, z, -y], atol=1e-6)


class TestFibonacciSphere:
    """Test the golden-angle spiral."""

    @pytest.fixture
    def sphere(self):
        return FibonacciSphere(400)

    def test_too_small(self):
        with pytest.raises(ValueError):
            FibonacciSphere(1)

    def test_unit_coordinates(self, sphere):
        np.testing.assert_allclose(np.linalg.norm(sphere.coordinates, axis=1), 1.0)

    def test_first_point_at_pole(self, sphere):
        np.testing.assert_allclose(sphere.index_to_coordinates(0), (0.0, 1.0, 0.0), atol=1e-12)

    def test_y_descends(self, sphere):
        assert np.all(np.diff(sphere.coordinates[:, 1]) < 0)

    def test_lat_lon_roundtrip(self, sphere):
        for i in (0, 1, 57, 200, 399):
            lat, lon = sphere.index_to_lat_lon_deg(i)
            assert sphere.coordinates_to_index(lat, lon) == i

    def test_neighbours(self, sphere):
        for i in range(sphere.num_points):
            above, below, left, right = sphere.find_nearest_neighbors(i)
            assert left == (i - 1 if i > 0 else -1)
            assert right == (i + 1 if i < sphere.num_points - 1 else -1)
            for n in (above, below):
                assert 0 <= n < sphere.num_points
            neighbours = sphere.neighbours(i)
            assert i not in neighbours
            assert len(neighbours) == len(set(neighbours))

    def test_refined_neighbours_are_local_minima(self, sphere):
        i = 200
        above, below, _, _ = sphere.find_nearest_neighbors(i)
        for n in (above, below):
            d = sphere.euclidean_distance_square(i, n)
            for step in (-1, 1):
                m = n + step
                if m != i and 0 <= m < sphere.num_points:
                    assert sphere.euclidean_distance_square(i, m) >= d

    def test_great_arc(self):
        assert FibonacciSphere.great_arc_distance_lat_lon(0.0, 0.0, 0.0, 90.0) == pytest.approx(90.0)
        assert FibonacciSphere.great_arc_distance_lat_lon(90.0, 0.0, -90.0, 0.0) == pytest.approx(180.0)
        assert FibonacciSphere.great_arc_distance_lat_lon(10.0, 20.0, 10.0, 20.0) == pytest.approx(0.0, abs=1e-6)

    def test_export_obj(self, sphere, tmp_path):
        _, error = sphere.export_obj(tmp_path / "fib.obj")
        assert error is None
        assert len((tmp_path / "fib.obj").read_text().splitlines()) == 400


class TestSphereSurface:
    """Test hydrology on spherical surfaces."""

    @pytest.fixture(params=["cube", "fibonacci"])
    def surface(self, request):
        sphere = CubeSphere(6 * 6 * 6) if request.param == "cube" else FibonacciSphere(216)
        prng = AleaPRNG("sphere")
        elevations = sphere.coordinates[:, 2] + np.array([prng.uniform(0.0, 0.1) for _ in range(sphere.num_points)])
        return SphereSurface(sphere, elevations)

    def test_contract(self, surface):
        assert surface.num_regions == surface.sphere.num_points
        assert surface.width * surface.height == surface.num_regions
        assert not surface.is_border(0)
        assert surface.neighbours(0)

    def test_elevation_mismatch(self):
        with pytest.raises(ValueError):
            SphereSurface(CubeSphere(54), np.zeros(10))

    def test_offset_is_tangent_projection(self, surface):
        a = 40
        for b in surface.neighbours(a):
            dx, dy = surface.offset(a, b)
            d = surface.sphere.coordinates[b] - surface.sphere.coordinates[a]
            assert math.hypot(dx, dy) <= math.sqrt(d @ d) + 1e-12
            assert math.hypot(dx, dy) > 0.0

    def test_hydrology_runs(self, surface):
        hydrology = Hydrology(surface, HydrologyOptions(random_epsilon=False), prng=AleaPRNG(3))
        hydrology.run(ticks=2)
        hydrology.generate_downhill()
        flux = hydrology.calculate_flux()
        n = surface.num_regions
        assert np.all(flux >= 1.0 / n - 1e-15)
        elevation = hydrology.elevation
        for i, d in enumerate(hydrology.downhill):
            if d != -1:
                assert elevation[d] < elevation[i]
