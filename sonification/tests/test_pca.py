"""
Tests for PCA via power iteration.
"""

import numpy as np
import pytest

from sonification.pca import PCAResult, compute_covariance, perform_pca, power_iteration
from sonification.scaler import standardize_features
from sonification.seeded_random import SeededRandom


@pytest.fixture
def correlated_features():
    """Five features with a clearly separated eigen-spectrum."""
    rng = np.random.default_rng(3)
    latent = rng.normal(size=(200, 2))
    noise = rng.normal(scale=0.1, size=(200, 5))
    mixing = np.array(
        [
            [3.0, 2.0, 1.0, 0.0, 0.5],
            [0.0, 1.0, -1.0, 2.0, 0.0],
        ]
    )
    return latent @ mixing + noise


def _reference_covariance(features):
    standardized, _, _ = standardize_features(features)
    centered = standardized - standardized.mean(axis=0)
    return compute_covariance(centered)


class TestComputeCovariance:
    """Tests for the sample covariance."""

    def test_matches_numpy(self, correlated_features):
        """Test agreement with np.cov."""
        centered = correlated_features - correlated_features.mean(axis=0)
        np.testing.assert_allclose(
            compute_covariance(centered), np.cov(correlated_features, rowvar=False)
        )

    def test_single_row_is_zero(self):
        """Test that fewer than two rows give a zero matrix."""
        np.testing.assert_array_equal(compute_covariance(np.ones((1, 3))), np.zeros((3, 3)))


class TestPowerIteration:
    """Tests for the eigenvector extraction."""

    def test_diagonal_matrix(self):
        """Test recovery of axis-aligned eigenvectors."""
        matrix = np.diag([5.0, 2.0, 1.0])
        vectors, values = power_iteration(matrix, 2, SeededRandom(1))
        np.testing.assert_allclose(values, [5.0, 2.0], atol=1e-6)
        np.testing.assert_allclose(np.abs(vectors), [[1, 0, 0], [0, 1, 0]], atol=1e-6)

    def test_zero_matrix(self):
        """Test that a zero matrix yields zero eigenvalues without NaNs."""
        vectors, values = power_iteration(np.zeros((3, 3)), 2, SeededRandom(1))
        assert vectors.shape == (2, 3)
        assert np.all(np.isfinite(vectors))
        np.testing.assert_array_equal(values, [0.0, 0.0])


class TestPerformPCA:
    """Tests for the full PCA."""

    def test_shapes(self, correlated_features):
        """Test the result shapes."""
        result = perform_pca(correlated_features, 3, rng=SeededRandom(7))
        assert result.components.shape == (3, 5)
        assert result.transformed.shape == (200, 3)
        assert result.explained_variance.shape == (3,)
        assert result.n_components == 3

    def test_components_orthonormal(self, correlated_features):
        """Test that components are unit length and mutually orthogonal."""
        result = perform_pca(correlated_features, 3, rng=SeededRandom(7))
        gram = result.components @ result.components.T
        np.testing.assert_allclose(gram, np.eye(3), atol=1e-6)

    def test_matches_eigh(self, correlated_features):
        """Test the leading eigenpairs against a dense eigendecomposition."""
        result = perform_pca(correlated_features, 2, rng=SeededRandom(7))
        covariance = _reference_covariance(correlated_features)
        values, vectors = np.linalg.eigh(covariance)
        order = np.argsort(values)[::-1]

        np.testing.assert_allclose(result.eigenvalues, values[order[:2]], rtol=1e-4)
        for i in range(2):
            alignment = abs(float(np.dot(result.components[i], vectors[:, order[i]])))
            assert alignment == pytest.approx(1.0, abs=1e-4)

    def test_explained_variance_ratio(self, correlated_features):
        """Test that explained variance is eigenvalue over total variance."""
        result = perform_pca(correlated_features, 3, rng=SeededRandom(7))
        total = np.trace(_reference_covariance(correlated_features))
        np.testing.assert_allclose(result.explained_variance, result.eigenvalues / total)
        assert result.explained_variance.sum() <= 1.0 + 1e-9
        assert np.all(np.diff(result.explained_variance) <= 1e-9)

    def test_sign_convention(self, correlated_features):
        """Test that the largest-magnitude loading of each component is positive."""
        result = perform_pca(correlated_features, 3, rng=SeededRandom(7))
        for component in result.components:
            assert component[np.argmax(np.abs(component))] > 0

    def test_deterministic_for_seed(self, correlated_features):
        """Test that the same seed reproduces the same result."""
        first = perform_pca(correlated_features, 3, rng=SeededRandom(99))
        second = perform_pca(correlated_features, 3, rng=SeededRandom(99))
        np.testing.assert_array_equal(first.components, second.components)
        np.testing.assert_array_equal(first.transformed, second.transformed)

    def test_projection_is_standardized_data(self, correlated_features):
        """Test that transformed rows are centered standardized rows times components."""
        result = perform_pca(correlated_features, 2, rng=SeededRandom(7))
        standardized, _, _ = standardize_features(correlated_features)
        expected = (standardized - standardized.mean(axis=0)) @ result.components.T
        np.testing.assert_allclose(result.transformed, expected)

    def test_components_clamped_to_dimensions(self):
        """Test that more components than features are clamped."""
        features = np.random.default_rng(0).normal(size=(10, 2))
        result = perform_pca(features, 5, rng=SeededRandom(1))
        assert result.components.shape == (2, 2)

    def test_single_neuron(self):
        """Test that one neuron projects to the origin with uniform explained variance."""
        result = perform_pca(np.array([[1.0, 2.0, 3.0]]), 3, rng=SeededRandom(1))
        np.testing.assert_array_equal(result.transformed, np.zeros((1, 3)))
        np.testing.assert_allclose(result.explained_variance, [1 / 3] * 3)
        assert np.all(np.isfinite(result.components))

    def test_empty(self):
        """Test that no neurons give an empty result."""
        result = perform_pca(np.empty((0, 11)), 3)
        assert result.n_components == 0
        assert result.transformed.shape[0] == 0
        assert result.explained_variance.size == 0


class TestPCAResult:
    """Tests for the PCAResult container."""

    def test_coordinates_out_of_range(self):
        """Test that an unknown neuron index yields empty coordinates."""
        result = perform_pca(np.eye(4), 2, rng=SeededRandom(1))
        assert result.coordinates(10).size == 0
        assert result.coordinates(0).shape == (2,)

    def test_to_dict_lists(self):
        """Test that to_dict converts arrays to lists."""
        data = PCAResult.empty(11).to_dict()
        assert data["components"] == []
        assert data["explained_variance"] == []
