"""Tests for coherent noise generation."""

import math

import numpy as np
import pytest

from py_worldgen.core.alea_prng import AleaPRNG
from py_worldgen.core.noise import MAX_OCTAVES, Noise, NoiseType


@pytest.fixture
def sample_points():
    prng = AleaPRNG("points")
    return [[prng.uniform(-50.0, 50.0) for _ in range(4)] for _ in range(200)]


class TestNoiseConstruction:
    """Test generator tables."""

    def test_invalid_dimensions(self):
        with pytest.raises(ValueError):
            Noise(0)
        with pytest.raises(ValueError):
            Noise(5)

    def test_permutation_table(self):
        noise = Noise(2, prng=AleaPRNG(11))
        assert sorted(noise.perm.tolist()) == list(range(256))

    def test_gradients_are_unit(self):
        noise = Noise(3, prng=AleaPRNG(11))
        lengths = np.linalg.norm(noise.buffer, axis=1)
        np.testing.assert_allclose(lengths, 1.0)

    def test_same_seed_same_tables(self):
        a = Noise(3, prng=AleaPRNG(21))
        b = Noise(3, prng=AleaPRNG(21))
        np.testing.assert_array_equal(a.perm, b.perm)
        np.testing.assert_array_equal(a.buffer, b.buffer)

    def test_octave_weights(self):
        noise = Noise(2, hurst=0.5, lacunarity=2.0, prng=AleaPRNG(1))
        assert noise.exponent.size == MAX_OCTAVES
        assert noise.exponent[0] == pytest.approx(1.0)
        assert noise.exponent[2] == pytest.approx(0.5)


class TestNoiseKernels:
    """Test the three noise kernels."""

    @pytest.mark.parametrize("dimensions", [1, 2, 3, 4])
    @pytest.mark.parametrize("noise_type", [NoiseType.PERLIN, NoiseType.SIMPLEX])
    def test_output_range(self, dimensions, noise_type, sample_points):
        noise = Noise(dimensions, prng=AleaPRNG(dimensions), noise_type=noise_type)
        for point in sample_points:
            value = noise.get(point[:dimensions])
            assert -1.0 <= value <= 1.0

    @pytest.mark.parametrize("dimensions", [1, 2, 3])
    def test_wavelet_range(self, dimensions, sample_points):
        noise = Noise(dimensions, prng=AleaPRNG(dimensions), noise_type=NoiseType.WAVELET)
        values = [noise.get(p[:dimensions]) for p in sample_points[:50]]
        assert all(-1.0 <= v <= 1.0 for v in values)

    def test_wavelet_four_dimensions_is_nan(self):
        noise = Noise(4, prng=AleaPRNG(4), noise_type=NoiseType.WAVELET)
        assert math.isnan(noise.get([0.1, 0.2, 0.3, 0.4]))

    @pytest.mark.parametrize("noise_type", list(NoiseType))
    def test_finite_at_origin(self, noise_type):
        noise = Noise(3, prng=AleaPRNG(8), noise_type=noise_type)
        assert math.isfinite(noise.get([0.0, 0.0, 0.0]))

    def test_perlin_zero_on_lattice(self):
        noise = Noise(2, prng=AleaPRNG(8))
        assert noise.get([3.0, -2.0]) == 0.0

    def test_perlin_varies(self):
        noise = Noise(2, prng=AleaPRNG(8))
        values = noise.get_vectorized(np.linspace(0.1, 9.9, 50), np.linspace(0.3, 7.7, 50))
        assert values.std() > 0.0

    def test_vectorized_matches_scalar(self):
        noise = Noise(2, prng=AleaPRNG(13))
        xs = np.array([0.25, 1.5, -3.75])
        ys = np.array([0.5, 2.25, 4.0])
        vectorized = noise.get_vectorized(xs, ys)
        for x, y, v in zip(xs, ys, vectorized):
            assert noise.get([x, y]) == pytest.approx(v)

    def test_type_override(self):
        noise = Noise(2, prng=AleaPRNG(13))
        simplex = Noise(2, prng=AleaPRNG(13), noise_type=NoiseType.SIMPLEX)
        assert noise.get([0.3, 0.7], NoiseType.SIMPLEX) == simplex.get([0.3, 0.7])


class TestFractalSums:
    """Test fBm and turbulence."""

    @pytest.fixture
    def noise(self):
        return Noise(2, prng=AleaPRNG(99))

    def test_single_octave_fbm_is_kernel(self, noise):
        assert noise.get_fbm([0.3, 0.6], 1) == pytest.approx(noise.get([0.3, 0.6]))

    def test_fbm_range(self, noise, sample_points):
        for point in sample_points[:50]:
            assert -1.0 <= noise.get_fbm(point[:2], 8) <= 1.0

    def test_turbulence_nonnegative(self, noise, sample_points):
        for point in sample_points[:50]:
            assert 0.0 <= noise.get_turbulence(point[:2], 6) <= 1.0

    def test_fractional_octaves(self, noise):
        """A fractional octave count blends in part of the next octave."""
        low = noise.get_fbm([0.37, 0.81], 2)
        high = noise.get_fbm([0.37, 0.81], 3)
        half = noise.get_fbm([0.37, 0.81], 2.5)
        assert half == pytest.approx((low + high) / 2.0)

    def test_fbm_vectorized(self, noise):
        xs = np.array([0.1, 0.2])
        ys = np.array([0.4, 0.8])
        values = noise.get_fbm_vectorized(4, xs, ys)
        assert values[0] == pytest.approx(noise.get_fbm([0.1, 0.4], 4))
        turb = noise.get_turbulence_vectorized(4, xs, ys)
        assert np.all(turb >= 0.0)
