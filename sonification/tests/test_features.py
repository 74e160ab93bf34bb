"""
Tests for per-neuron feature extraction.
"""

import numpy as np
import pytest

from sonification.features import (
    FEATURE_NAMES,
    NUM_FEATURES,
    extract_trace_features,
    temporal_features,
)


def _column(name):
    return FEATURE_NAMES.index(name)


class TestTemporalFeatures:
    """Tests for the nine trace statistics."""

    def test_empty_trace_is_zero(self):
        """Test that an empty trace yields zeros."""
        assert temporal_features([]) == [0.0] * 9

    def test_flat_trace(self):
        """Test that a constant trace has no spread, trend or crossings."""
        mean, std, max_val, min_val, rng, trend, freq, peaks, cov = temporal_features([0.5] * 20)
        assert mean == pytest.approx(0.5)
        assert std == 0.0
        assert max_val == min_val == 0.5
        assert rng == 0.0
        assert trend == 0.0
        assert freq == 0.0
        assert peaks == 0.0
        assert cov == 0.0

    def test_linear_ramp_trend(self):
        """Test that the trend is the least-squares slope."""
        trace = 2.0 + 0.25 * np.arange(50)
        features = temporal_features(trace)
        assert features[5] == pytest.approx(0.25)
        assert features[4] == pytest.approx(0.25 * 49)

    def test_alternating_trace(self):
        """Test crossing frequency and coefficient of variation on 0/1 alternation."""
        trace = [i % 2 for i in range(200)]
        features = temporal_features(trace)
        assert features[0] == pytest.approx(0.5)
        assert features[1] == pytest.approx(0.5)
        assert features[6] == pytest.approx(199 / 400)
        assert features[8] == pytest.approx(1.0)

    def test_sparse_spikes_peak_density(self):
        """Test that isolated spikes above mean + std count as peaks."""
        trace = np.zeros(100)
        trace[5::10] = 1.0
        features = temporal_features(trace)
        assert features[0] == pytest.approx(0.1)
        assert features[1] == pytest.approx(0.3)
        assert features[7] == pytest.approx(0.1)

    def test_non_positive_mean_cov_zero(self):
        """Test that the coefficient of variation is 0 for a non-positive mean."""
        features = temporal_features([-1.0, -2.0, -3.0, -2.0])
        assert features[8] == 0.0

    def test_non_finite_samples_dropped(self):
        """Test that NaN and inf samples are ignored."""
        features = temporal_features([1.0, float("nan"), 3.0, float("inf")])
        assert features[0] == pytest.approx(2.0)
        assert np.all(np.isfinite(features))


class TestExtractTraceFeatures:
    """Tests for the full feature matrix."""

    def test_empty_input(self):
        """Test that no traces give a (0, 11) matrix."""
        features = extract_trace_features([])
        assert features.shape == (0, NUM_FEATURES)

    def test_shape_and_finiteness(self):
        """Test shape and finiteness on mixed input."""
        traces = [[0.1, 0.2, 0.3], [], [float("nan")] * 5, [1.0] * 10]
        features = extract_trace_features(traces)
        assert features.shape == (4, 11)
        assert np.all(np.isfinite(features))

    def test_grid_fallback_without_coordinates(self):
        """Test that neurons without coordinates are spread over a grid."""
        features = extract_trace_features([[0.0] * 5 for _ in range(5)])
        xy = features[:, -2:]
        # ceil(sqrt(5)) = 3
        expected = [[0, 0], [1 / 3, 0], [2 / 3, 0], [0, 1 / 3], [1 / 3, 1 / 3]]
        np.testing.assert_allclose(xy, expected)

    def test_flat_first_neuron_is_all_zero(self):
        """Test that a flat zero trace at grid cell (0, 0) has an all-zero vector."""
        features = extract_trace_features([[0.0] * 20, [i % 2 for i in range(20)]])
        np.testing.assert_array_equal(features[0], np.zeros(11))

    def test_single_neuron_without_coordinates_is_centered(self):
        """Test that a lone neuron without coordinates sits at (0.5, 0.5)."""
        features = extract_trace_features([[1.0, 2.0, 3.0]])
        np.testing.assert_allclose(features[0, -2:], [0.5, 0.5])

    def test_centroid_on_default_canvas(self):
        """Test centroid normalization inside the 512 canvas."""
        coordinates = [[[128, 256], [128, 256]], [[384, 0], [384, 512]]]
        features = extract_trace_features([[0.0] * 5, [0.0] * 5], coordinates)
        np.testing.assert_allclose(features[0, -2:], [0.25, 0.5])
        np.testing.assert_allclose(features[1, -2:], [0.75, 0.5])

    def test_bounding_box_expands_beyond_canvas(self):
        """Test that coordinates outside 512 widen the normalization box."""
        coordinates = [[[1024, 1024]], [[0, 0]]]
        features = extract_trace_features([[0.0] * 5, [0.0] * 5], coordinates)
        np.testing.assert_allclose(features[0, -2:], [1.0, 1.0])
        np.testing.assert_allclose(features[1, -2:], [0.0, 0.0])

    def test_image_size_overrides_bounding_box(self):
        """Test that known image dimensions define the frame and centroids clamp to it."""
        coordinates = [[[50, 25]], [[400, 400]]]
        features = extract_trace_features(
            [[0.0] * 5, [0.0] * 5], coordinates, image_width=100, image_height=100
        )
        np.testing.assert_allclose(features[0, -2:], [0.5, 0.25])
        np.testing.assert_allclose(features[1, -2:], [1.0, 1.0])

    def test_mixed_coordinates_use_grid_for_missing(self):
        """Test that a neuron without coordinates falls back to its grid cell."""
        coordinates = [[[256, 256]], None, [[0, 0]], [[512, 512]]]
        features = extract_trace_features([[0.0] * 5] * 4, coordinates)
        np.testing.assert_allclose(features[1, -2:], [0.5, 0.0])
        np.testing.assert_allclose(features[0, -2:], [0.5, 0.5])

    def test_spatial_features_in_unit_interval(self, mixed_dataset):
        """Test that spatial features stay in [0, 1]."""
        features = extract_trace_features(mixed_dataset.traces, mixed_dataset.coordinates)
        assert np.all(features[:, -2:] >= 0.0)
        assert np.all(features[:, -2:] <= 1.0)
