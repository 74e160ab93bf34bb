"""
End-to-end sonification analysis.

features -> standardization + PCA -> (cluster-count selection) -> k-means ->
role assignment. One SeededRandom, derived from the dataset's identity unless
given, is threaded through every stage so re-analysing the same dataset
reproduces the same clusters.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np
from loguru import logger

from sonification.clustering import (
    Cluster,
    ClusterCountRecommendation,
    kmeans,
    suggest_optimal_k,
)
from sonification.config import AnalysisConfig
from sonification.dataset import CalciumDataset
from sonification.features import FEATURE_NAMES, extract_trace_features
from sonification.pca import PCAResult, perform_pca
from sonification.roles import (
    ClusterProfile,
    InstrumentRole,
    classify_cluster,
    population_statistics,
)
from sonification.seeded_random import SeededRandom, hash_dataset

DEFAULT_DATASET_NAME = "dataset"


@dataclass
class SonificationResult:
    """Everything a playback layer needs from one analysis run."""

    seed: int
    features: np.ndarray
    pca: PCAResult
    clusters: list[Cluster] = field(default_factory=list)
    roles: list[InstrumentRole] = field(default_factory=list)
    profiles: list[ClusterProfile | None] = field(default_factory=list)
    recommendation: ClusterCountRecommendation | None = None

    @property
    def n_clusters(self) -> int:
        return len(self.clusters)

    def role_for(self, cluster_id: int) -> InstrumentRole | None:
        for cluster, role in zip(self.clusters, self.roles):
            if cluster.id == cluster_id:
                return role
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "seed": self.seed,
            "feature_names": list(FEATURE_NAMES),
            "features": self.features.tolist(),
            "pca": self.pca.to_dict(),
            "recommendation": self.recommendation.to_dict() if self.recommendation else None,
            "clusters": [
                {
                    **cluster.to_dict(),
                    "role": role.value,
                    "role_description": role.description,
                    "profile": profile.to_dict() if profile else None,
                }
                for cluster, role, profile in zip(self.clusters, self.roles, self.profiles)
            ],
        }


def dataset_seed(dataset: CalciumDataset) -> int:
    """Seed derived from the dataset's name, neuron count and frame count."""
    return hash_dataset(
        dataset.name or DEFAULT_DATASET_NAME, len(dataset.neurons), dataset.frames
    )


def analyze_dataset(
    dataset: CalciumDataset,
    config: AnalysisConfig | None = None,
    rng: SeededRandom | None = None,
) -> SonificationResult:
    """Cluster a dataset's neurons and assign each cluster an instrument role.

    Args:
        dataset: Neurons with traces (and optional coordinates)
        config: Analysis parameters; defaults when omitted
        rng: Random source; when omitted one is seeded from ``config.seed`` or
            from the dataset's identity

    Returns:
        SonificationResult; empty structures when the dataset has no neurons
    """
    config = config or AnalysisConfig()
    seed = config.seed if config.seed is not None else dataset_seed(dataset)
    if rng is None:
        rng = SeededRandom(seed)
    else:
        seed = rng.state

    if not dataset.neurons:
        logger.info("Dataset has no neurons; nothing to analyse")
        return SonificationResult(
            seed=seed,
            features=extract_trace_features([]),
            pca=PCAResult.empty(len(FEATURE_NAMES)),
        )

    features = extract_trace_features(
        dataset.traces,
        dataset.coordinates,
        dataset.image_width,
        dataset.image_height,
    )
    pca = perform_pca(
        features,
        config.n_components,
        rng=rng,
        max_iterations=config.power_iterations,
    )

    recommendation = None
    if config.auto_clusters:
        recommendation = suggest_optimal_k(
            pca.transformed,
            config.max_k,
            rng=rng,
            max_iterations=config.selection_iterations,
            silhouette_gate=config.silhouette_gate,
        )
        n_clusters = max(2, min(recommendation.optimal_k, config.max_auto_clusters))
    else:
        n_clusters = int(config.n_clusters)

    clusters = kmeans(
        pca.transformed,
        n_clusters,
        max_iterations=config.max_iterations,
        tolerance=config.tolerance,
        rng=rng,
    )

    population = population_statistics(dataset, config.roles)
    roles: list[InstrumentRole] = []
    profiles: list[ClusterProfile | None] = []
    for idx, cluster in enumerate(clusters):
        role, profile = classify_cluster(cluster, idx, dataset, pca, config.roles, population)
        roles.append(role)
        profiles.append(profile)

    logger.info(
        f"Analysed '{dataset.name or DEFAULT_DATASET_NAME}' (seed {seed}): "
        f"{len(dataset.neurons)} neurons -> {len(clusters)} clusters "
        f"[{', '.join(r.value for r in roles)}]"
    )

    return SonificationResult(
        seed=seed,
        features=features,
        pca=pca,
        clusters=clusters,
        roles=roles,
        profiles=profiles,
        recommendation=recommendation,
    )
