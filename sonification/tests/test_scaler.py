"""
Tests for feature standardization.
"""

import numpy as np
import pytest
from sklearn.preprocessing import StandardScaler

from sonification.scaler import Standardizer, standardize_features


class TestStandardizer:
    """Tests for the Standardizer class."""

    def test_matches_sklearn(self):
        """Test agreement with sklearn's StandardScaler (population std)."""
        rng = np.random.default_rng(1)
        features = rng.normal(loc=[0, 5, -3], scale=[1, 10, 0.1], size=(50, 3))

        ours = Standardizer().fit_transform(features)
        reference = StandardScaler().fit_transform(features)

        np.testing.assert_allclose(ours, reference, atol=1e-10)

    def test_zero_mean_unit_std(self):
        """Test that every non-constant column ends up with mean 0 and std 1."""
        features = np.array([[1.0, 10.0], [2.0, 20.0], [3.0, 60.0], [6.0, 10.0]])
        standardized = Standardizer().fit_transform(features)
        np.testing.assert_allclose(standardized.mean(axis=0), 0.0, atol=1e-12)
        np.testing.assert_allclose(standardized.std(axis=0), 1.0)

    def test_constant_column_stays_zero(self):
        """Test that a zero-variance column is centered but not scaled."""
        features = np.array([[1.0, 7.0], [2.0, 7.0], [3.0, 7.0]])
        scaler = Standardizer().fit(features)
        standardized = scaler.transform(features)
        np.testing.assert_array_equal(standardized[:, 1], 0.0)
        assert scaler.std_[1] == 1.0

    def test_transform_before_fit_is_identity(self):
        """Test that an unfitted scaler passes data through."""
        features = np.array([[1.0, 2.0]])
        np.testing.assert_array_equal(Standardizer().transform(features), features)

    def test_rejects_non_2d(self):
        """Test that 1-D input is rejected."""
        with pytest.raises(ValueError, match="2D"):
            Standardizer().fit(np.array([1.0, 2.0]))

    def test_state_dict(self):
        """Test serialization of the fitted statistics."""
        scaler = Standardizer().fit(np.array([[0.0], [2.0]]))
        state = scaler.state_dict()
        assert state["mean"] == [1.0]
        assert state["std"] == [1.0]
        assert state["min_std"] == 1e-10


class TestStandardizeFeatures:
    """Tests for the standardize_features helper."""

    def test_returns_statistics(self):
        """Test that means and stds are returned alongside the data."""
        features = np.array([[0.0, 1.0], [4.0, 1.0]])
        standardized, means, stds = standardize_features(features)
        np.testing.assert_allclose(means, [2.0, 1.0])
        np.testing.assert_allclose(stds, [2.0, 1.0])
        np.testing.assert_allclose(standardized, [[-1.0, 0.0], [1.0, 0.0]])

    def test_empty(self):
        """Test that an empty matrix stays empty."""
        standardized, means, stds = standardize_features(np.empty((0, 11)))
        assert standardized.shape == (0, 11)
        assert means.size == 0
        assert stds.size == 0
