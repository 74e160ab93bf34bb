"""Per-feature z-score standardization over the neuron population."""

from typing import Any, Optional

import numpy as np

# Columns whose population std falls below this are treated as constant
MIN_STD = 1e-10


class Standardizer:
    """Fits column means and population standard deviations of a feature matrix.

    Constant columns get a unit scale, so they are centered but not divided,
    which keeps zero-variance features at exactly zero after transform.
    """

    def __init__(self, min_std: float = MIN_STD) -> None:
        self.min_std = float(min_std)
        self._fitted = False
        self._mean: Optional[np.ndarray] = None
        self._std: Optional[np.ndarray] = None

    @property
    def mean_(self) -> Optional[np.ndarray]:
        return self._mean

    @property
    def std_(self) -> Optional[np.ndarray]:
        return self._std

    def fit(self, features: np.ndarray) -> "Standardizer":
        features = np.asarray(features, dtype=np.float64)
        if features.ndim != 2:
            raise ValueError("Features must be a 2D array [N, D]")

        if features.shape[0] == 0:
            self._mean = np.zeros(features.shape[1])
            self._std = np.ones(features.shape[1])
        else:
            self._mean = features.mean(axis=0)
            std = np.sqrt(((features - self._mean) ** 2).mean(axis=0))
            self._std = np.where(std < self.min_std, 1.0, std)
        self._fitted = True
        return self

    def transform(self, features: np.ndarray) -> np.ndarray:
        features = np.asarray(features, dtype=np.float64)
        if not self._fitted or features.size == 0:
            return features
        assert self._mean is not None and self._std is not None
        return (features - self._mean) / self._std

    def fit_transform(self, features: np.ndarray) -> np.ndarray:
        return self.fit(features).transform(features)

    def state_dict(self) -> dict[str, Any]:
        state: dict[str, Any] = {"min_std": self.min_std}
        if self._mean is not None:
            state["mean"] = self._mean.tolist()
        if self._std is not None:
            state["std"] = self._std.tolist()
        return state


def standardize_features(
    features: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Z-score every column of ``features``.

    Returns:
        (standardized, means, stds) where stds already has constant columns set to 1
    """
    features = np.asarray(features, dtype=np.float64)
    if features.size == 0:
        width = features.shape[1] if features.ndim == 2 else 0
        return np.empty((0, width)), np.empty(0), np.empty(0)

    scaler = Standardizer()
    standardized = scaler.fit_transform(features)
    return standardized, scaler.mean_, scaler.std_
