"""
Pytest fixtures for sonification tests.
"""

import json
import sys
from pathlib import Path

import numpy as np
import pytest

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from sonification.dataset import CalciumDataset, Neuron


def make_dataset(traces, coordinates=None, fps=10.0, name="test_dataset", **kwargs):
    """Build a CalciumDataset from plain traces."""
    coordinates = coordinates or [None] * len(traces)
    neurons = [
        Neuron(id=i, trace=list(map(float, trace)), coordinates=coords)
        for i, (trace, coords) in enumerate(zip(traces, coordinates))
    ]
    return CalciumDataset(neurons=neurons, fps=fps, name=name, **kwargs)


@pytest.fixture
def sine_dataset():
    """10 neurons, 200 frames, same-phase sines differing only in amplitude."""
    frames = np.arange(200)
    traces = [
        0.5 + 0.4 * amplitude * np.sin(2 * np.pi * frames / 20)
        for amplitude in np.linspace(0.1, 1.0, 10)
    ]
    return make_dataset(traces, coordinates=[[[0, 0]] for _ in traces], name="sines")


@pytest.fixture
def mixed_dataset():
    """30 neurons from three distinct activity families."""
    rng = np.random.default_rng(7)
    frames = np.arange(300)
    traces = []
    coordinates = []
    for i in range(10):
        # Slow, bright oscillators in one corner
        traces.append(0.6 + 0.3 * np.sin(2 * np.pi * frames / 60) + rng.normal(0, 0.01, 300))
        coordinates.append([[20 + i, 30], [22 + i, 32]])
    for i in range(10):
        # Sparse spikers in the opposite corner
        trace = np.zeros(300)
        trace[rng.choice(300, 15, replace=False)] = 1.0
        traces.append(trace)
        coordinates.append([[480, 470 + i], [482, 472 + i]])
    for i in range(10):
        # Fast, dim flicker near the center
        traces.append(0.1 + 0.05 * np.sin(2 * np.pi * frames / 4) + rng.normal(0, 0.01, 300))
        coordinates.append([[256 + i, 256], [258 + i, 258]])
    return make_dataset(traces, coordinates=coordinates, fps=30.0, name="mixed")


@pytest.fixture
def blob_points():
    """Three tight, far-apart 2-D blobs of 10 points each."""
    rng = np.random.default_rng(0)
    centers = np.array([[0.0, 0.0], [100.0, 0.0], [0.0, 100.0]])
    points = np.vstack([c + rng.normal(0, 0.1, size=(10, 2)) for c in centers])
    labels = np.repeat(np.arange(3), 10)
    return points, labels


@pytest.fixture
def dataset_file(tmp_path, mixed_dataset):
    """The mixed dataset written as JSON."""
    path = tmp_path / "mixed.json"
    with open(path, "w") as f:
        json.dump(mixed_dataset.to_dict(), f)
    return path


@pytest.fixture
def sample_config_yaml():
    """Return a minimal sample configuration YAML."""
    return """
n_components: 3
n_clusters: 4
max_iterations: 50
seed: 42
roles:
  harmonic_sync: 0.6
"""
