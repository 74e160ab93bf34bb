"""
Calcium Imaging Sonification

Turns multi-neuron calcium imaging traces into cluster-level instrument roles:
- Per-neuron temporal and spatial feature extraction
- Standardized PCA via seeded power iteration
- k-means++ clustering with automatic cluster-count selection
- Rule-based instrument role assignment from signal statistics
"""

from .seeded_random import SeededRandom, hash_dataset
from .dataset import (
    CalciumDataset,
    Neuron,
    load_dataset,
    normalize_traces,
    add_datasets,
    subtract_datasets,
    average_datasets,
)
from .features import FEATURE_NAMES, extract_trace_features
from .scaler import Standardizer, standardize_features
from .pca import PCAResult, perform_pca
from .clustering import (
    Cluster,
    ClusterCountRecommendation,
    kmeans,
    silhouette_score,
    suggest_optimal_k,
)
from .roles import InstrumentRole, RoleThresholds, assign_role, assign_roles, classify_cluster
from .metrics import calculate_musical_concordance, centered_difference, analyze_difference
from .config import AnalysisConfig, load_config, load_config_from_string
from .analysis import SonificationResult, analyze_dataset

__all__ = [
    # Randomness
    "SeededRandom",
    "hash_dataset",
    # Data model
    "CalciumDataset",
    "Neuron",
    "load_dataset",
    "normalize_traces",
    "add_datasets",
    "subtract_datasets",
    "average_datasets",
    # Embedding
    "FEATURE_NAMES",
    "extract_trace_features",
    "Standardizer",
    "standardize_features",
    "PCAResult",
    "perform_pca",
    # Clustering
    "Cluster",
    "ClusterCountRecommendation",
    "kmeans",
    "silhouette_score",
    "suggest_optimal_k",
    # Roles
    "InstrumentRole",
    "RoleThresholds",
    "assign_role",
    "assign_roles",
    "classify_cluster",
    # Comparison
    "calculate_musical_concordance",
    "centered_difference",
    "analyze_difference",
    # Configuration and pipeline
    "AnalysisConfig",
    "load_config",
    "load_config_from_string",
    "SonificationResult",
    "analyze_dataset",
]

__version__ = "0.1.0"
