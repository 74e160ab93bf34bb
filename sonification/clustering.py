"""
K-means clustering of PCA-projected neurons and cluster-count selection.

Centroids are seeded with k-means++ and refined with Lloyd iterations; all
random draws go through the caller's SeededRandom so a given seed always
produces the same partition. ``suggest_optimal_k`` combines the elbow of the
inertia curve with the mean silhouette width to recommend a cluster count.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np
from loguru import logger
from sklearn.metrics import pairwise_distances

from sonification.seeded_random import SeededRandom

DEFAULT_MAX_ITERATIONS = 100
DEFAULT_TOLERANCE = 1e-6

# Cluster-count selection
SELECTION_ITERATIONS = 50
MIN_POINTS_FOR_SELECTION = 4
# Empirical gate: silhouette is trusted over the elbow only above this width
SILHOUETTE_GATE = 0.3
MIN_RECOMMENDED_K = 2
MAX_RECOMMENDED_K = 8


@dataclass
class Cluster:
    """A group of neurons sharing a centroid in PCA space."""

    id: int
    centroid: np.ndarray
    neurons: list[int] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.neurons)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "centroid": np.asarray(self.centroid).tolist(),
            "neurons": list(self.neurons),
        }


@dataclass
class ClusterCountRecommendation:
    """Advisory cluster count with the curves it was derived from.

    ``inertias[i]`` and ``silhouette_scores[i]`` describe k = i + 1; the
    silhouette of k = 1 is reported as 0.
    """

    optimal_k: int
    inertias: list[float] = field(default_factory=list)
    silhouette_scores: list[float] = field(default_factory=list)
    elbow_k: int | None = None
    silhouette_k: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "optimal_k": self.optimal_k,
            "inertias": list(self.inertias),
            "silhouette_scores": list(self.silhouette_scores),
            "elbow_k": self.elbow_k,
            "silhouette_k": self.silhouette_k,
        }


def _as_points(data) -> np.ndarray:
    points = np.asarray(data, dtype=np.float64)
    if points.ndim == 1:
        points = points.reshape(-1, 1) if points.size else points.reshape(0, 0)
    return np.nan_to_num(points, nan=0.0, posinf=0.0, neginf=0.0)


def _squared_distances(points: np.ndarray, centroid: np.ndarray) -> np.ndarray:
    diff = points - centroid
    return np.einsum("ij,ij->i", diff, diff)


def initialize_centroids(data: np.ndarray, k: int, rng: SeededRandom) -> np.ndarray:
    """Pick k initial centroids with the k-means++ scheme.

    The first centroid is a uniformly drawn point; each further one is drawn
    with probability proportional to its squared distance from the nearest
    centroid chosen so far (roulette wheel over the cumulative weights).
    """
    n = data.shape[0]
    centroids = [data[rng.next_int(0, n)].copy()]
    nearest = _squared_distances(data, centroids[0])

    for _ in range(1, k):
        remaining = rng.next() * float(nearest.sum())
        chosen = 0
        for j, weight in enumerate(nearest):
            remaining -= weight
            if remaining <= 0:
                chosen = j
                break
        centroids.append(data[chosen].copy())
        nearest = np.minimum(nearest, _squared_distances(data, centroids[-1]))

    return np.vstack(centroids)


def assign_clusters(data: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Index of the nearest centroid for every point (lowest index wins ties)."""
    distances = np.stack([_squared_distances(data, c) for c in centroids], axis=1)
    return np.argmin(distances, axis=1)


def update_centroids(
    data: np.ndarray, assignments: np.ndarray, k: int, rng: SeededRandom
) -> np.ndarray:
    """Mean of each cluster's points; an empty cluster is reseeded to a random point."""
    n = data.shape[0]
    centroids = np.empty((k, data.shape[1]), dtype=np.float64)
    counts = np.bincount(assignments, minlength=k)

    for i in range(k):
        if counts[i] == 0:
            replacement = rng.next_int(0, n)
            logger.debug(f"Cluster {i} is empty; reseeding at point {replacement}")
            centroids[i] = data[replacement]
        else:
            centroids[i] = data[assignments == i].mean(axis=0)
    return centroids


def kmeans(
    data,
    k: int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    rng: SeededRandom | None = None,
) -> list[Cluster]:
    """Partition points into k clusters.

    Args:
        data: (N, d) points
        k: Requested number of clusters, clamped to [1, N]
        max_iterations: Lloyd iteration budget
        tolerance: Convergence threshold on every centroid's displacement
        rng: Random source for seeding and empty-cluster recovery

    Returns:
        k clusters with ids 0..k-1; every point index belongs to exactly one.
        Empty input returns an empty list.
    """
    points = _as_points(data)
    n = points.shape[0]
    if n == 0:
        return []

    rng = rng if rng is not None else SeededRandom()
    if k > n:
        logger.debug(f"Requested {k} clusters for {n} points; clamping to {n}")
    k = max(1, min(int(k), n))

    centroids = initialize_centroids(points, k, rng)
    assignments = None
    iteration = 0

    for iteration in range(1, max_iterations + 1):
        previous = centroids
        assignments = assign_clusters(points, centroids)
        centroids = update_centroids(points, assignments, k, rng)

        shifts = np.linalg.norm(centroids - previous, axis=1)
        if np.all(shifts <= tolerance):
            logger.debug(f"k-means (k={k}) converged after {iteration} iterations")
            break

    if assignments is None:
        assignments = assign_clusters(points, centroids)

    clusters = [Cluster(id=i, centroid=centroids[i], neurons=[]) for i in range(k)]
    for idx, label in enumerate(assignments):
        clusters[int(label)].neurons.append(idx)
    return clusters


def cluster_labels(clusters: list[Cluster], num_points: int) -> np.ndarray:
    """Flat label array from a partition (-1 for points not in any cluster)."""
    labels = np.full(num_points, -1, dtype=np.int64)
    for position, cluster in enumerate(clusters):
        for idx in cluster.neurons:
            if 0 <= idx < num_points:
                labels[idx] = position
    return labels


def compute_inertia(data, clusters: list[Cluster]) -> float:
    """Within-cluster sum of squared distances to the centroids."""
    points = _as_points(data)
    inertia = 0.0
    for cluster in clusters:
        if cluster.neurons:
            inertia += float(
                _squared_distances(points[cluster.neurons], np.asarray(cluster.centroid)).sum()
            )
    return inertia


def silhouette_score(data, clusters: list[Cluster]) -> float:
    """Mean silhouette width of a partition, in [-1, 1].

    For each point, ``a`` is its mean distance to the other members of its
    cluster (0 for a singleton) and ``b`` the smallest mean distance to the
    members of another non-empty cluster; the point scores
    ``(b - a) / max(a, b)``, or 0 when both are 0. Returns 0 for fewer than
    two clusters or points.
    """
    points = _as_points(data)
    n = points.shape[0]
    if len(clusters) < 2 or n < 2:
        return 0.0

    labels = cluster_labels(clusters, n)
    members = [np.asarray(c.neurons, dtype=np.int64) for c in clusters]
    distances = pairwise_distances(points, metric="euclidean")

    total = 0.0
    count = 0
    for i in range(n):
        own = labels[i]
        if own < 0:
            continue

        others_in_own = members[own][members[own] != i]
        a = float(distances[i, others_in_own].mean()) if others_in_own.size else 0.0

        b = np.inf
        for position, group in enumerate(members):
            if position == own or group.size == 0:
                continue
            b = min(b, float(distances[i, group].mean()))
        if not np.isfinite(b):
            continue

        largest = max(a, b)
        total += (b - a) / largest if largest > 0 else 0.0
        count += 1

    return total / count if count else 0.0


def suggest_optimal_k(
    data,
    max_k: int = MAX_RECOMMENDED_K,
    rng: SeededRandom | None = None,
    max_iterations: int = SELECTION_ITERATIONS,
    silhouette_gate: float = SILHOUETTE_GATE,
) -> ClusterCountRecommendation:
    """Recommend a cluster count from the elbow and silhouette heuristics.

    k-means is run for every k in 1..min(max_k, N // 2). The elbow candidate
    is the k with the largest relative inertia drop from k - 1; the
    silhouette candidate is the k >= 2 with the widest mean silhouette. The
    silhouette candidate wins when its score exceeds ``silhouette_gate``.
    The result is clamped to [2, 8].

    Args:
        data: (N, d) points
        max_k: Largest cluster count to evaluate
        rng: Random source shared by all k-means runs
        max_iterations: Lloyd iteration budget per run
        silhouette_gate: Minimum silhouette to prefer the silhouette candidate

    Returns:
        ClusterCountRecommendation; fewer than 4 points yields min(2, N) with empty curves
    """
    points = _as_points(data)
    n = points.shape[0]
    if n < MIN_POINTS_FOR_SELECTION:
        return ClusterCountRecommendation(optimal_k=min(MIN_RECOMMENDED_K, n))

    rng = rng if rng is not None else SeededRandom()
    max_k = max(1, min(int(max_k), n // 2))

    inertias: list[float] = []
    silhouettes: list[float] = []
    for k in range(1, max_k + 1):
        clusters = kmeans(points, k, max_iterations=max_iterations, rng=rng)
        inertias.append(compute_inertia(points, clusters))
        silhouettes.append(silhouette_score(points, clusters) if k >= 2 else 0.0)

    elbow_k = MIN_RECOMMENDED_K
    best_drop = 0.0
    for idx in range(1, len(inertias)):
        if inertias[idx - 1] > 0:
            drop = (inertias[idx - 1] - inertias[idx]) / inertias[idx - 1]
            if drop > best_drop:
                best_drop = drop
                elbow_k = idx + 1

    silhouette_k = MIN_RECOMMENDED_K
    best_silhouette = -1.0
    for idx in range(1, len(silhouettes)):
        if silhouettes[idx] > best_silhouette:
            best_silhouette = silhouettes[idx]
            silhouette_k = idx + 1

    optimal_k = silhouette_k if best_silhouette > silhouette_gate else elbow_k
    optimal_k = max(MIN_RECOMMENDED_K, min(optimal_k, MAX_RECOMMENDED_K))

    logger.info(
        f"Cluster count: elbow={elbow_k}, silhouette={silhouette_k} "
        f"(score {best_silhouette:.3f}) -> k={optimal_k}"
    )
    return ClusterCountRecommendation(
        optimal_k=optimal_k,
        inertias=inertias,
        silhouette_scores=silhouettes,
        elbow_k=elbow_k,
        silhouette_k=silhouette_k,
    )
