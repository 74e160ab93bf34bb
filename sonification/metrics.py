"""Comparison metrics between two recordings, phrased in musical terms."""

from dataclasses import asdict, dataclass
from typing import Any

import numpy as np

from sonification.dataset import CalciumDataset, subtract_datasets

ACTIVE_THRESHOLD = 0.1

SYNC_WEIGHT = 0.4
HARMONIC_WEIGHT = 0.3
PATTERN_WEIGHT = 0.3


@dataclass
class MusicalConcordance:
    """How alike two datasets would sound when played together (scores in [-1, 1])."""

    overall_score: float
    synchronization: float
    harmonic_similarity: float
    activity_pattern_similarity: float
    interpretation: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DifferenceAnalysis:
    """Summary of a dataset produced by subtracting two recordings."""

    average_difference: float
    max_difference: float
    difference_variance: float
    interpretation: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def cross_correlation(trace1, trace2) -> float:
    """Pearson correlation over the common length (0 if either side is flat)."""
    length = min(len(trace1), len(trace2))
    if length == 0:
        return 0.0
    a = np.asarray(trace1[:length], dtype=np.float64)
    b = np.asarray(trace2[:length], dtype=np.float64)
    a = a - a.mean()
    b = b - b.mean()
    denominator = np.sqrt(np.dot(a, a) * np.dot(b, b))
    if denominator == 0 or not np.isfinite(denominator):
        return 0.0
    return float(np.dot(a, b) / denominator)


def _paired_traces(dataset1: CalciumDataset, dataset2: CalciumDataset):
    num_neurons = min(len(dataset1.neurons), len(dataset2.neurons))
    num_frames = min(dataset1.frames, dataset2.frames)
    for i in range(num_neurons):
        yield (
            np.asarray(dataset1.neurons[i].trace[:num_frames], dtype=np.float64),
            np.asarray(dataset2.neurons[i].trace[:num_frames], dtype=np.float64),
        )


def synchronization(dataset1: CalciumDataset, dataset2: CalciumDataset) -> float:
    """Fraction of frames in which paired neurons are both active or both silent."""
    scores = []
    for trace1, trace2 in _paired_traces(dataset1, dataset2):
        if trace1.size == 0 or trace2.size == 0:
            continue
        length = min(trace1.size, trace2.size)
        active1 = trace1[:length] > ACTIVE_THRESHOLD
        active2 = trace2[:length] > ACTIVE_THRESHOLD
        scores.append(np.count_nonzero(active1 == active2) / length)
    return float(np.mean(scores)) if scores else 0.0


def harmonic_similarity(dataset1: CalciumDataset, dataset2: CalciumDataset) -> float:
    """Mean correlation between paired neurons' traces."""
    correlations = [cross_correlation(t1, t2) for t1, t2 in _paired_traces(dataset1, dataset2)]
    return float(np.mean(correlations)) if correlations else 0.0


def _population_activity(dataset: CalciumDataset, num_frames: int) -> np.ndarray:
    activity = np.zeros(num_frames)
    if not dataset.neurons:
        return activity
    for neuron in dataset.neurons:
        values = np.nan_to_num(np.asarray(neuron.trace[:num_frames], dtype=np.float64))
        activity[: values.size] += values
    return activity / len(dataset.neurons)


def activity_pattern_similarity(dataset1: CalciumDataset, dataset2: CalciumDataset) -> float:
    """Correlation of the two datasets' per-frame mean activity."""
    num_frames = min(dataset1.frames, dataset2.frames)
    return cross_correlation(
        _population_activity(dataset1, num_frames),
        _population_activity(dataset2, num_frames),
    )


def _interpret_concordance(score: float) -> str:
    if score > 0.7:
        return (
            "Highly Concordant - Datasets have very similar activity patterns. "
            "They would sound harmonious when played together."
        )
    if score > 0.3:
        return "Moderately Concordant - Datasets share some similarities but have notable differences."
    if score > -0.3:
        return "Neutral - Datasets are neither particularly similar nor dissimilar."
    if score > -0.7:
        return (
            "Moderately Discordant - Datasets have different activity patterns. "
            "Differences would be audible."
        )
    return (
        "Highly Discordant - Datasets have very different activity patterns. "
        "They would sound quite different when played."
    )


def calculate_musical_concordance(
    dataset1: CalciumDataset, dataset2: CalciumDataset
) -> MusicalConcordance:
    """Weighted blend of synchronization, harmonic and activity-pattern similarity."""
    sync = synchronization(dataset1, dataset2)
    harmonic = harmonic_similarity(dataset1, dataset2)
    pattern = activity_pattern_similarity(dataset1, dataset2)

    overall = (
        sync * SYNC_WEIGHT
        + (harmonic + 1) / 2 * HARMONIC_WEIGHT
        + (pattern + 1) / 2 * PATTERN_WEIGHT
    ) * 2 - 1

    return MusicalConcordance(
        overall_score=overall,
        synchronization=sync,
        harmonic_similarity=harmonic,
        activity_pattern_similarity=pattern,
        interpretation=_interpret_concordance(overall),
    )


def centered_difference(dataset1: CalciumDataset, dataset2: CalciumDataset) -> CalciumDataset:
    """Subtract two recordings and rescale so that 0.5 means no change.

    Traces are taken to lie in [0, 1], so each raw difference d in [-1, 1]
    becomes ``(d + 1) / 2``, clipped into [0, 1].
    """
    difference = subtract_datasets(dataset1, dataset2)
    for neuron in difference.neurons:
        values = np.nan_to_num(np.asarray(neuron.trace, dtype=np.float64))
        neuron.trace = np.clip((values + 1) / 2, 0.0, 1.0).tolist()
    difference.metadata["scale"] = "centered"
    return difference


def analyze_difference(difference_dataset: CalciumDataset) -> DifferenceAnalysis:
    """Summarize a centered difference dataset (see centered_difference), where 0.5 means no change."""
    samples = [
        np.asarray(n.trace, dtype=np.float64) for n in difference_dataset.neurons if len(n.trace)
    ]
    if not samples:
        return DifferenceAnalysis(
            average_difference=0.0,
            max_difference=0.0,
            difference_variance=0.0,
            interpretation="No differences detected (datasets are identical)",
        )

    differences = np.abs(np.concatenate(samples) - 0.5) * 2
    average = float(differences.mean())

    if average < 0.1:
        interpretation = (
            "Minimal differences - Datasets are very similar. "
            "The subtraction reveals only minor variations."
        )
    elif average < 0.3:
        interpretation = (
            "Moderate differences - Some notable differences exist between datasets, "
            "particularly in timing or amplitude."
        )
    elif average < 0.5:
        interpretation = "Significant differences - Datasets differ substantially in their activity patterns."
    else:
        interpretation = (
            "Major differences - Datasets have fundamentally different activity patterns. "
            "The difference reveals distinct neural behaviors."
        )

    return DifferenceAnalysis(
        average_difference=average,
        max_difference=float(differences.max()),
        difference_variance=float(differences.var()),
        interpretation=interpretation,
    )
