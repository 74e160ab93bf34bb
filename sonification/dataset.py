"""
In-memory calcium imaging dataset model.

Traces are assumed to be already extracted from the image stack (one value per
frame per neuron). This module holds the data model, a JSON loader for
pre-extracted traces, baseline normalization and element-wise dataset
arithmetic used when comparing recordings.
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import numpy as np
from loguru import logger

DEFAULT_FPS = 10.0
BASELINE_PERCENTILE = 0.1


@dataclass
class Neuron:
    """One region of interest and its fluorescence trace."""

    id: int
    trace: list[float]
    name: str = ""
    coordinates: list[list[float]] | None = None

    def __post_init__(self):
        if not self.name:
            self.name = f"neuron_{self.id}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "trace": list(self.trace),
        }
        if self.coordinates is not None:
            data["coordinates"] = [list(c) for c in self.coordinates]
        return data


@dataclass
class CalciumDataset:
    """A set of neurons recorded together at a common frame rate."""

    neurons: list[Neuron] = field(default_factory=list)
    frames: int = 0
    fps: float = DEFAULT_FPS
    name: str | None = None
    image_width: int | None = None
    image_height: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.frames and self.neurons:
            self.frames = max(len(n.trace) for n in self.neurons)

    @property
    def traces(self) -> list[list[float]]:
        return [n.trace for n in self.neurons]

    @property
    def coordinates(self) -> list[list[list[float]] | None]:
        return [n.coordinates for n in self.neurons]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CalciumDataset":
        """Build a dataset from its JSON representation.

        Raises:
            ValueError: If ``neurons`` is missing or a neuron has no trace
        """
        raw_neurons = data.get("neurons")
        if raw_neurons is None:
            raise ValueError("Dataset is missing the 'neurons' list")

        neurons = []
        for idx, raw in enumerate(raw_neurons):
            if "trace" not in raw:
                raise ValueError(f"Neuron {idx} has no 'trace'")
            neurons.append(
                Neuron(
                    id=int(raw.get("id", idx)),
                    name=raw.get("name", ""),
                    trace=[float(v) for v in raw["trace"]],
                    coordinates=raw.get("coordinates"),
                )
            )

        return cls(
            neurons=neurons,
            frames=int(data.get("frames", 0) or 0),
            fps=float(data.get("fps") or DEFAULT_FPS),
            name=data.get("name") or data.get("dataset_name"),
            image_width=data.get("image_width"),
            image_height=data.get("image_height"),
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "frames": self.frames,
            "fps": self.fps,
            "image_width": self.image_width,
            "image_height": self.image_height,
            "metadata": self.metadata,
            "neurons": [n.to_dict() for n in self.neurons],
        }


def load_dataset(path: str | Path) -> CalciumDataset:
    """Load a dataset of pre-extracted traces from a JSON file.

    Args:
        path: Path to the JSON document

    Returns:
        Parsed CalciumDataset; the file stem is used as name when none is stored

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the document is not a valid dataset
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset file not found: {path}")

    with open(path, "r") as f:
        payload = json.load(f)

    if not isinstance(payload, dict):
        raise ValueError(f"Dataset file {path} must contain a JSON object")

    dataset = CalciumDataset.from_dict(payload)
    if not dataset.name:
        dataset.name = path.stem
    logger.info(
        f"Loaded dataset '{dataset.name}': {len(dataset.neurons)} neurons x "
        f"{dataset.frames} frames @ {dataset.fps} fps"
    )
    return dataset


def normalize_traces(traces: list[list[float]]) -> list[list[float]]:
    """Baseline-subtract and scale each trace into [0, 1].

    The baseline is the 10th-percentile sample; a trace with no excursion
    above its baseline becomes all zeros.
    """
    normalized = []
    for trace in traces:
        values = np.asarray(trace, dtype=np.float64)
        if values.size == 0:
            normalized.append([])
            continue

        ordered = np.sort(values)
        baseline = ordered[int(math.floor(values.size * BASELINE_PERCENTILE))]
        shifted = values - baseline
        peak = shifted.max()
        if peak == 0 or not np.isfinite(peak):
            normalized.append([0.0] * values.size)
            continue
        normalized.append(np.maximum(0.0, shifted / peak).tolist())
    return normalized


def _align_traces(trace1: list[float], trace2: list[float]) -> tuple[list[float], list[float]]:
    length = max(len(trace1), len(trace2))
    return (
        list(trace1) + [0.0] * (length - len(trace1)),
        list(trace2) + [0.0] * (length - len(trace2)),
    )


def _combine_datasets(
    dataset1: CalciumDataset,
    dataset2: CalciumDataset,
    op: Callable[[float, float], float],
    name: str,
    description: str,
) -> CalciumDataset:
    neurons = []
    for index in range(max(len(dataset1.neurons), len(dataset2.neurons))):
        n1 = dataset1.neurons[index] if index < len(dataset1.neurons) else None
        n2 = dataset2.neurons[index] if index < len(dataset2.neurons) else None

        trace1 = n1.trace if n1 else [0.0] * len(n2.trace)
        trace2 = n2.trace if n2 else [0.0] * len(n1.trace)
        trace1, trace2 = _align_traces(trace1, trace2)

        neurons.append(
            Neuron(
                id=index,
                name=(n1.name if n1 else "") or (n2.name if n2 else ""),
                trace=[op(a, b) for a, b in zip(trace1, trace2)],
                coordinates=(n1.coordinates if n1 else None)
                or (n2.coordinates if n2 else None),
            )
        )

    return CalciumDataset(
        neurons=neurons,
        frames=max(dataset1.frames, dataset2.frames),
        fps=dataset1.fps or dataset2.fps or DEFAULT_FPS,
        name=name,
        image_width=dataset1.image_width or dataset2.image_width,
        image_height=dataset1.image_height or dataset2.image_height,
        metadata={"source": "operation", "description": description},
    )


def add_datasets(dataset1: CalciumDataset, dataset2: CalciumDataset) -> CalciumDataset:
    """Sum corresponding neuron traces of two datasets."""
    a = dataset1.name or "Dataset1"
    b = dataset2.name or "Dataset2"
    return _combine_datasets(
        dataset1, dataset2, lambda x, y: x + y, f"{a} + {b}", f"Sum of {a} and {b}"
    )


def subtract_datasets(dataset1: CalciumDataset, dataset2: CalciumDataset) -> CalciumDataset:
    """Subtract dataset2's traces from dataset1's, neuron by neuron."""
    a = dataset1.name or "Dataset1"
    b = dataset2.name or "Dataset2"
    return _combine_datasets(
        dataset1,
        dataset2,
        lambda x, y: x - y,
        f"{a} - {b}",
        f"Difference of {a} and {b}",
    )


def average_datasets(dataset1: CalciumDataset, dataset2: CalciumDataset) -> CalciumDataset:
    """Average corresponding neuron traces of two datasets."""
    a = dataset1.name or "Dataset1"
    b = dataset2.name or "Dataset2"
    return _combine_datasets(
        dataset1,
        dataset2,
        lambda x, y: (x + y) / 2,
        f"Average of {a} and {b}",
        f"Average of {a} and {b}",
    )
