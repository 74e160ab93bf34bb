"""
Principal component analysis of neuron feature vectors.

Features are z-scored, their covariance matrix is decomposed with power
iteration plus Gram-Schmidt deflation, and every neuron is projected onto the
leading components. Start vectors come from the caller's SeededRandom so the
embedding is reproducible for a given seed.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np
from loguru import logger

from sonification.scaler import standardize_features
from sonification.seeded_random import SeededRandom

POWER_ITERATIONS = 100
# Below this norm a vector is considered to have vanished
NORM_EPS = 1e-10


@dataclass(frozen=True)
class PCAResult:
    """Projection of the neuron population onto its principal components."""

    components: np.ndarray  # (k, D), unit rows
    transformed: np.ndarray  # (N, k)
    explained_variance: np.ndarray  # (k,), fraction of total variance
    eigenvalues: np.ndarray = field(default_factory=lambda: np.empty(0))

    @property
    def n_components(self) -> int:
        return int(self.components.shape[0])

    def coordinates(self, neuron_index: int) -> np.ndarray:
        """Projected coordinates of one neuron (empty if out of range)."""
        if 0 <= neuron_index < self.transformed.shape[0]:
            return self.transformed[neuron_index]
        return np.empty(0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "components": self.components.tolist(),
            "transformed": self.transformed.tolist(),
            "explained_variance": self.explained_variance.tolist(),
            "eigenvalues": self.eigenvalues.tolist(),
        }

    @classmethod
    def empty(cls, num_features: int = 0) -> "PCAResult":
        return cls(
            components=np.empty((0, num_features)),
            transformed=np.empty((0, 0)),
            explained_variance=np.empty(0),
            eigenvalues=np.empty(0),
        )


def compute_covariance(centered: np.ndarray) -> np.ndarray:
    """Sample covariance of already-centered rows (zeros when fewer than 2 rows)."""
    centered = np.asarray(centered, dtype=np.float64)
    n, d = centered.shape
    if n < 2:
        return np.zeros((d, d))
    return centered.T @ centered / (n - 1)


def _deflate(vector: np.ndarray, basis: list[np.ndarray]) -> np.ndarray:
    for prev in basis:
        vector = vector - np.dot(vector, prev) * prev
    return vector


def power_iteration(
    matrix: np.ndarray,
    num_components: int,
    rng: SeededRandom,
    max_iterations: int = POWER_ITERATIONS,
) -> tuple[np.ndarray, np.ndarray]:
    """Approximate the leading eigenvectors of a symmetric matrix.

    Each eigenvector starts from a random vector drawn from ``rng``, has all
    previously found eigenvectors projected out, and is repeatedly multiplied
    by the matrix, deflated and renormalized. The sign is fixed so the
    largest-magnitude loading is positive.

    Args:
        matrix: Symmetric (D, D) matrix
        num_components: Number of eigenvectors to extract
        rng: Source of start vectors
        max_iterations: Iteration budget per eigenvector

    Returns:
        (eigenvectors (k, D), eigenvalue estimates (k,)) where each estimate is ||M v||
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    n = matrix.shape[0]
    eigenvectors: list[np.ndarray] = []
    eigenvalues: list[float] = []

    for _ in range(num_components):
        v = np.array([rng.next() - 0.5 for _ in range(n)], dtype=np.float64)
        norm = np.linalg.norm(v)
        if norm > NORM_EPS:
            v = v / norm

        for prev in eigenvectors:
            v = v - np.dot(v, prev) * prev
            norm = np.linalg.norm(v)
            if norm > NORM_EPS:
                v = v / norm

        iterations = 0
        for iterations in range(1, max_iterations + 1):
            new_v = _deflate(matrix @ v, eigenvectors)
            norm = np.linalg.norm(new_v)
            if norm < NORM_EPS:
                break
            v = new_v / norm

        if n and v[np.argmax(np.abs(v))] < 0:
            v = -v

        av = matrix @ v
        eigenvectors.append(v)
        eigenvalues.append(float(np.sqrt(np.dot(av, av))))
        logger.debug(
            f"Component {len(eigenvectors)}: eigenvalue ~ {eigenvalues[-1]:.6f} "
            f"after {iterations} iterations"
        )

    if not eigenvectors:
        return np.empty((0, n)), np.empty(0)
    return np.vstack(eigenvectors), np.asarray(eigenvalues)


def perform_pca(
    features: np.ndarray,
    num_components: int = 3,
    rng: SeededRandom | None = None,
    max_iterations: int = POWER_ITERATIONS,
) -> PCAResult:
    """Standardize features and project them onto their top principal components.

    Standardization always runs first; without it features with large native
    ranges (raw max, coordinates) would dominate the covariance.

    Args:
        features: (N, D) raw feature matrix
        num_components: Requested number of components, clamped to D
        rng: Random source for power iteration start vectors
        max_iterations: Power iteration budget per component

    Returns:
        PCAResult; empty when there are no neurons
    """
    features = np.asarray(features, dtype=np.float64)
    if features.ndim != 2 or features.shape[0] == 0:
        return PCAResult.empty(features.shape[1] if features.ndim == 2 else 0)

    rng = rng if rng is not None else SeededRandom()
    num_features = features.shape[1]
    k = max(0, min(int(num_components), num_features))

    standardized, _, _ = standardize_features(features)
    centered = standardized - standardized.mean(axis=0)
    covariance = compute_covariance(centered)

    components, eigenvalues = power_iteration(covariance, k, rng, max_iterations)
    transformed = centered @ components.T

    total_variance = float(np.trace(covariance))
    if total_variance > 0 and k:
        explained_variance = eigenvalues / total_variance
    else:
        explained_variance = np.full(k, 1.0 / k) if k else np.empty(0)

    logger.debug(
        f"PCA: {features.shape[0]} neurons x {num_features} features -> {k} components, "
        f"explained variance {np.round(explained_variance, 3).tolist()}"
    )

    return PCAResult(
        components=components,
        transformed=transformed,
        explained_variance=explained_variance,
        eigenvalues=eigenvalues,
    )
