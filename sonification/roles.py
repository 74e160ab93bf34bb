"""
Instrument role assignment for neuron clusters.

Each cluster is profiled from the raw traces of its members (oscillation
frequency, spike rate, variability, synchronization) and from its position in
PCA space. Frequency and spike-rate bands are relative to population medians
so the same rules work across datasets with different frame rates and units.
The profile is then matched against an ordered rule table; the first rule
that holds decides the role.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, NamedTuple, Sequence

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field

from sonification.clustering import Cluster
from sonification.dataset import CalciumDataset
from sonification.pca import PCAResult

# Oscillation estimate
MIN_TRACE_FOR_OSCILLATION = 10
MAX_AUTOCORR_LAG = 50
# A frame-to-frame rise above this many stds counts as a spike
SPIKE_STD_MULTIPLIER = 2.0

# Frequency bands relative to the population median
LOW_FREQ_MULTIPLIER = 0.7
HIGH_FREQ_MULTIPLIER = 1.5
PCA_LOW_FREQ_GATE = -0.2
PCA_HIGH_FREQ_GATE = 0.3

# Spike-rate bands relative to the population median
SUSTAINED_SPIKE_MULTIPLIER = 0.8
PERCUSSIVE_SPIKE_MULTIPLIER = 1.5
PLUCKED_MIN_SPIKE_MULTIPLIER = 0.5

VARIABILITY_COV = 0.4
HARMONIC_SYNC = 0.5
PERCUSSIVE_MAX_SYNC = 0.5

NOTABLE_ACTIVITY = 0.25
MODEST_ACTIVITY = 0.5
ENSEMBLE_ACTIVITY = 0.15
PCA_TIMBRAL_GATE = 0.5

POPULATION_SAMPLE_SIZE = 100
DEFAULT_MEDIAN_FREQUENCY = 1.0
DEFAULT_MEDIAN_SPIKE_RATE = 0.05


class InstrumentRole(str, Enum):
    """Fixed vocabulary of cluster roles, valued by the instrument that plays them."""

    PERCUSSIVE = "drum"
    BASS = "bass"
    LEAD = "trumpet"
    MELODIC = "flute"
    HARMONIC = "strings"
    TIMBRAL = "bell"
    PLUCKED = "guitar"
    GENERAL = "piano"

    @property
    def description(self) -> str:
        return _ROLE_DESCRIPTIONS[self]


_ROLE_DESCRIPTIONS = {
    InstrumentRole.PERCUSSIVE: "percussive/rhythmic",
    InstrumentRole.BASS: "bass/foundation",
    InstrumentRole.LEAD: "lead/dynamic",
    InstrumentRole.MELODIC: "melodic/sustained",
    InstrumentRole.HARMONIC: "harmonic/ensemble",
    InstrumentRole.TIMBRAL: "distinctive/timbral",
    InstrumentRole.PLUCKED: "plucked/attack",
    InstrumentRole.GENERAL: "general-purpose",
}

# Used when a cluster has no members or no embedding is available
FALLBACK_ROTATION = (
    InstrumentRole.GENERAL,
    InstrumentRole.BASS,
    InstrumentRole.HARMONIC,
    InstrumentRole.MELODIC,
    InstrumentRole.PLUCKED,
    InstrumentRole.TIMBRAL,
    InstrumentRole.PERCUSSIVE,
    InstrumentRole.LEAD,
)


class RoleThresholds(BaseModel):
    """Heuristic constants of the role rules."""

    low_freq_multiplier: float = Field(default=LOW_FREQ_MULTIPLIER, gt=0.0)
    high_freq_multiplier: float = Field(default=HIGH_FREQ_MULTIPLIER, gt=0.0)
    pca_low_freq_gate: float = PCA_LOW_FREQ_GATE
    pca_high_freq_gate: float = PCA_HIGH_FREQ_GATE
    sustained_spike_multiplier: float = Field(default=SUSTAINED_SPIKE_MULTIPLIER, ge=0.0)
    percussive_spike_multiplier: float = Field(default=PERCUSSIVE_SPIKE_MULTIPLIER, ge=0.0)
    plucked_min_spike_multiplier: float = Field(default=PLUCKED_MIN_SPIKE_MULTIPLIER, ge=0.0)
    variability_cov: float = Field(default=VARIABILITY_COV, ge=0.0)
    harmonic_sync: float = Field(default=HARMONIC_SYNC, ge=0.0, le=1.0)
    percussive_max_sync: float = Field(default=PERCUSSIVE_MAX_SYNC, ge=0.0, le=1.0)
    notable_activity: float = NOTABLE_ACTIVITY
    modest_activity: float = MODEST_ACTIVITY
    ensemble_activity: float = ENSEMBLE_ACTIVITY
    pca_timbral_gate: float = Field(default=PCA_TIMBRAL_GATE, ge=0.0)
    population_sample_size: int = Field(default=POPULATION_SAMPLE_SIZE, ge=1)
    default_median_frequency: float = Field(default=DEFAULT_MEDIAN_FREQUENCY, gt=0.0)
    default_median_spike_rate: float = Field(default=DEFAULT_MEDIAN_SPIKE_RATE, ge=0.0)


def _finite(trace: Sequence[float] | None) -> np.ndarray:
    if trace is None:
        return np.empty(0)
    values = np.asarray(trace, dtype=np.float64).ravel()
    return values[np.isfinite(values)]


def oscillation_frequency(trace: Sequence[float], fps: float) -> float:
    """Dominant oscillation frequency in Hz from the trace's autocorrelation.

    The lag in [2, min(len / 2, 50)) with the largest mean lagged product is
    taken as the period; with no positive correlation the period is 1 frame.
    Traces shorter than 10 frames return 0.
    """
    values = _finite(trace)
    n = values.size
    if n < MIN_TRACE_FOR_OSCILLATION:
        return 0.0

    max_lag = min(n / 2, MAX_AUTOCORR_LAG)
    best_correlation = 0.0
    best_period = 1
    for lag in range(2, math.ceil(max_lag)):
        correlation = float(np.dot(values[:-lag], values[lag:])) / (n - lag)
        if correlation > best_correlation:
            best_correlation = correlation
            best_period = lag

    return fps / best_period


def count_spikes(trace: Sequence[float]) -> int:
    """Frame-to-frame rises larger than twice the trace's standard deviation."""
    values = _finite(trace)
    if values.size < 2:
        return 0
    threshold = SPIKE_STD_MULTIPLIER * float(values.std())
    return int(np.count_nonzero(np.diff(values) > threshold))


def pairwise_synchronization(traces: Sequence[Sequence[float]]) -> float:
    """Mean zero-lag correlation over all trace pairs, mapped from [-1, 1] to [0, 1].

    Each pair is compared over its common length; a pair in which either
    trace is flat contributes a correlation of 0. Fewer than two traces
    returns 0.
    """
    arrays = [np.nan_to_num(np.asarray(t, dtype=np.float64)) for t in traces]
    total = 0.0
    pairs = 0
    for i in range(len(arrays)):
        for j in range(i + 1, len(arrays)):
            length = min(arrays[i].size, arrays[j].size)
            if length == 0:
                continue
            a = arrays[i][:length] - arrays[i][:length].mean()
            b = arrays[j][:length] - arrays[j][:length].mean()
            denominator = math.sqrt(float(np.dot(a, a)) * float(np.dot(b, b)))
            r = float(np.dot(a, b)) / denominator if denominator > 0 else 0.0
            total += (r + 1) / 2
            pairs += 1
    return total / pairs if pairs else 0.0


@dataclass(frozen=True)
class PopulationStatistics:
    """Dataset-wide reference levels the cluster bands are measured against."""

    median_frequency: float
    median_spike_rate: float


def _median_upper(values: list[float]) -> float:
    return sorted(values)[len(values) // 2]


def population_statistics(
    dataset: CalciumDataset, thresholds: RoleThresholds | None = None
) -> PopulationStatistics:
    """Estimate median oscillation frequency and spike rate from evenly spaced neurons."""
    thresholds = thresholds or RoleThresholds()
    neurons = dataset.neurons
    frames = dataset.frames or max((len(n.trace) for n in neurons), default=0)

    frequencies: list[float] = []
    spike_rates: list[float] = []
    sample_size = min(thresholds.population_sample_size, len(neurons))
    for i in range(sample_size):
        trace = neurons[int(i / sample_size * len(neurons))].trace
        frequency = oscillation_frequency(trace, dataset.fps)
        if frequency > 0:
            frequencies.append(frequency)
        if frames > 0:
            spike_rates.append(count_spikes(trace) / frames)

    return PopulationStatistics(
        median_frequency=_median_upper(frequencies)
        if frequencies
        else thresholds.default_median_frequency,
        median_spike_rate=_median_upper(spike_rates)
        if spike_rates
        else thresholds.default_median_spike_rate,
    )


@dataclass(frozen=True)
class ClusterProfile:
    """Signal statistics of one cluster and the bands they fall into."""

    mean_activity: float
    variance: float
    coefficient_of_variation: float
    oscillation_frequency: float
    spike_rate: float
    synchronization: float
    pca_primary: float
    pca_secondary: float
    population: PopulationStatistics
    thresholds: RoleThresholds

    @property
    def is_low_freq(self) -> bool:
        t = self.thresholds
        return (
            self.oscillation_frequency < self.population.median_frequency * t.low_freq_multiplier
            or self.pca_primary < t.pca_low_freq_gate
        )

    @property
    def is_high_freq(self) -> bool:
        t = self.thresholds
        return (
            self.oscillation_frequency > self.population.median_frequency * t.high_freq_multiplier
            or self.pca_primary > t.pca_high_freq_gate
        )

    @property
    def is_mid_freq(self) -> bool:
        return not self.is_low_freq and not self.is_high_freq

    @property
    def is_sustained(self) -> bool:
        return self.spike_rate < self.population.median_spike_rate * self.thresholds.sustained_spike_multiplier

    @property
    def is_percussive(self) -> bool:
        return self.spike_rate > self.population.median_spike_rate * self.thresholds.percussive_spike_multiplier

    @property
    def is_moderate(self) -> bool:
        return not self.is_sustained and not self.is_percussive

    @property
    def is_variable(self) -> bool:
        return self.coefficient_of_variation > self.thresholds.variability_cov

    @property
    def is_stable(self) -> bool:
        return self.coefficient_of_variation < self.thresholds.variability_cov

    @property
    def is_harmonic(self) -> bool:
        return self.synchronization > self.thresholds.harmonic_sync

    def to_dict(self) -> dict[str, Any]:
        return {
            "mean_activity": self.mean_activity,
            "variance": self.variance,
            "coefficient_of_variation": self.coefficient_of_variation,
            "oscillation_frequency": self.oscillation_frequency,
            "spike_rate": self.spike_rate,
            "synchronization": self.synchronization,
            "pca_primary": self.pca_primary,
            "pca_secondary": self.pca_secondary,
            "median_frequency": self.population.median_frequency,
            "median_spike_rate": self.population.median_spike_rate,
        }


def profile_cluster(
    cluster: Cluster,
    dataset: CalciumDataset,
    pca_result: PCAResult,
    thresholds: RoleThresholds | None = None,
    population: PopulationStatistics | None = None,
) -> ClusterProfile:
    """Compute the signal statistics of a cluster from its members' raw traces.

    The PCA position is taken from the cluster's first member.
    """
    thresholds = thresholds or RoleThresholds()
    population = population or population_statistics(dataset, thresholds)
    members = [i for i in cluster.neurons if 0 <= i < len(dataset.neurons)]
    frames = dataset.frames or max((len(n.trace) for n in dataset.neurons), default=0)

    total_activity = 0.0
    spike_count = 0
    variances: list[float] = []
    frequencies: list[float] = []
    for idx in members:
        values = _finite(dataset.neurons[idx].trace)
        if values.size == 0:
            continue
        total_activity += float(values.mean())
        variances.append(float(values.var()))
        frequency = oscillation_frequency(values, dataset.fps)
        if frequency > 0:
            frequencies.append(frequency)
        spike_count += count_spikes(values)

    mean_activity = total_activity / len(members) if members else 0.0
    variance = float(np.mean(variances)) if variances else 0.0
    spike_rate = spike_count / (len(members) * frames) if members and frames else 0.0

    coords = pca_result.coordinates(members[0]) if members else np.empty(0)

    return ClusterProfile(
        mean_activity=mean_activity,
        variance=variance,
        coefficient_of_variation=math.sqrt(variance) / mean_activity if mean_activity > 0 else 0.0,
        oscillation_frequency=float(np.mean(frequencies)) if frequencies else 0.0,
        spike_rate=spike_rate,
        synchronization=pairwise_synchronization([dataset.neurons[i].trace for i in members]),
        pca_primary=float(coords[0]) if coords.size > 0 else 0.0,
        pca_secondary=float(coords[1]) if coords.size > 1 else 0.0,
        population=population,
        thresholds=thresholds,
    )


class RoleRule(NamedTuple):
    name: str
    matches: Callable[[ClusterProfile], bool]
    role: InstrumentRole


def _spike_ratio_above(p: ClusterProfile, multiplier: float) -> bool:
    return p.spike_rate > p.population.median_spike_rate * multiplier


# Evaluated top to bottom; conditions overlap, so order is significant.
ROLE_RULES: tuple[RoleRule, ...] = (
    RoleRule(
        "rhythmic",
        lambda p: p.is_percussive and p.synchronization < p.thresholds.percussive_max_sync,
        InstrumentRole.PERCUSSIVE,
    ),
    RoleRule(
        "foundation",
        lambda p: p.is_low_freq
        and (p.is_stable or p.mean_activity > p.thresholds.notable_activity),
        InstrumentRole.BASS,
    ),
    RoleRule(
        "dynamic_lead",
        lambda p: p.is_high_freq
        and p.is_variable
        and p.mean_activity > p.thresholds.notable_activity,
        InstrumentRole.LEAD,
    ),
    RoleRule(
        "sustained_melody",
        lambda p: p.is_high_freq
        and p.is_sustained
        and p.mean_activity < p.thresholds.modest_activity,
        InstrumentRole.MELODIC,
    ),
    RoleRule(
        "ensemble",
        lambda p: p.is_mid_freq
        and p.is_sustained
        and (p.is_harmonic or p.mean_activity > p.thresholds.ensemble_activity),
        InstrumentRole.HARMONIC,
    ),
    RoleRule(
        "distinctive",
        lambda p: abs(p.pca_secondary) > p.thresholds.pca_timbral_gate
        and p.mean_activity < p.thresholds.modest_activity,
        InstrumentRole.TIMBRAL,
    ),
    RoleRule(
        "plucked",
        lambda p: p.is_moderate
        and p.is_mid_freq
        and _spike_ratio_above(p, p.thresholds.plucked_min_spike_multiplier),
        InstrumentRole.PLUCKED,
    ),
    # Single-characteristic rules for clusters no combined rule claimed
    RoleRule("high_variable", lambda p: p.is_high_freq and p.is_variable, InstrumentRole.LEAD),
    RoleRule("high", lambda p: p.is_high_freq, InstrumentRole.MELODIC),
    RoleRule("low", lambda p: p.is_low_freq, InstrumentRole.BASS),
    RoleRule(
        "percussive_attack",
        lambda p: p.is_percussive and _spike_ratio_above(p, 1.0),
        InstrumentRole.PLUCKED,
    ),
    RoleRule(
        "sustained_harmony",
        lambda p: p.is_sustained and p.is_harmonic,
        InstrumentRole.HARMONIC,
    ),
)


def classify_profile(
    profile: ClusterProfile, rules: Sequence[RoleRule] = ROLE_RULES
) -> tuple[InstrumentRole, str]:
    """Return the role of the first matching rule and that rule's name."""
    for rule in rules:
        if rule.matches(profile):
            return rule.role, rule.name
    return InstrumentRole.GENERAL, "fallback"


def classify_cluster(
    cluster: Cluster,
    cluster_index: int,
    dataset: CalciumDataset,
    pca_result: PCAResult | None,
    thresholds: RoleThresholds | None = None,
    population: PopulationStatistics | None = None,
) -> tuple[InstrumentRole, ClusterProfile | None]:
    """Classify one cluster into an instrument role, keeping the profile it was judged on.

    Args:
        cluster: The cluster to classify
        cluster_index: Position of the cluster, used only for the fallback rotation
        dataset: Dataset holding the raw traces and frame rate
        pca_result: Embedding the cluster was computed in
        thresholds: Rule constants
        population: Precomputed population medians (computed when omitted)

    Returns:
        (role, profile); when the cluster is empty or no embedding is
        available the role comes from the fallback rotation and the profile
        is None
    """
    if pca_result is None or not cluster.neurons:
        return FALLBACK_ROTATION[cluster_index % len(FALLBACK_ROTATION)], None

    profile = profile_cluster(cluster, dataset, pca_result, thresholds, population)
    role, rule_name = classify_profile(profile)
    logger.debug(f"Cluster {cluster.id}: rule '{rule_name}' -> {role.value}")
    return role, profile


def assign_role(
    cluster: Cluster,
    cluster_index: int,
    dataset: CalciumDataset,
    pca_result: PCAResult | None,
    thresholds: RoleThresholds | None = None,
    population: PopulationStatistics | None = None,
) -> InstrumentRole:
    """Role of one cluster (see classify_cluster)."""
    role, _ = classify_cluster(cluster, cluster_index, dataset, pca_result, thresholds, population)
    return role


def assign_roles(
    clusters: Sequence[Cluster],
    dataset: CalciumDataset,
    pca_result: PCAResult | None,
    thresholds: RoleThresholds | None = None,
) -> list[InstrumentRole]:
    """Classify every cluster, sharing one population estimate."""
    thresholds = thresholds or RoleThresholds()
    population = population_statistics(dataset, thresholds) if dataset.neurons else None
    return [
        assign_role(cluster, idx, dataset, pca_result, thresholds, population)
        for idx, cluster in enumerate(clusters)
    ]
