"""Per-neuron feature vectors from fluorescence traces and ROI coordinates."""

import math
from typing import Iterable, Iterator, Sequence

import numpy as np
from loguru import logger

FEATURE_NAMES: tuple[str, ...] = (
    "mean",
    "std",
    "max",
    "min",
    "range",
    "trend",
    "oscillation_frequency",
    "peak_density",
    "coefficient_of_variation",
    "norm_x",
    "norm_y",
)
NUM_FEATURES = len(FEATURE_NAMES)
NUM_TEMPORAL_FEATURES = 9

# Canvas assumed for pixel coordinates when no image size is known
DEFAULT_CANVAS_SIZE = 512.0


def _finite_values(trace: Iterable[float] | None) -> np.ndarray:
    """Return the finite samples of a trace as a float array (non-finite samples are dropped)."""
    if trace is None:
        return np.empty(0, dtype=np.float64)
    try:
        values = np.asarray(list(trace), dtype=np.float64).ravel()
    except (TypeError, ValueError):
        return np.empty(0, dtype=np.float64)
    return values[np.isfinite(values)]


def _valid_points(coords: Iterable[Sequence[float]] | None) -> Iterator[tuple[float, float]]:
    for point in coords or []:
        try:
            x, y = float(point[0]), float(point[1])
        except (TypeError, ValueError, IndexError):
            continue
        if math.isfinite(x) and math.isfinite(y):
            yield x, y


def temporal_features(trace: Iterable[float] | None) -> list[float]:
    """Compute the nine temporal features of a single trace.

    Order: mean, std, max, min, range, trend, oscillation frequency estimate,
    peak density, coefficient of variation. An empty trace yields zeros.
    """
    values = _finite_values(trace)
    n = values.size
    if n == 0:
        return [0.0] * NUM_TEMPORAL_FEATURES

    mean = float(values.mean())
    std = float(values.std())
    max_val = float(values.max())
    min_val = float(values.min())

    # Least-squares slope against frame index
    idx = np.arange(n, dtype=np.float64)
    x_centered = idx - (n - 1) / 2
    denominator = float(np.dot(x_centered, x_centered))
    trend = float(np.dot(x_centered, values - mean)) / denominator if denominator > 0 else 0.0

    # Crossings of the mean, two per cycle
    centered = values - mean
    crossings = int(np.count_nonzero(centered[1:] * centered[:-1] < 0))
    freq_estimate = crossings / (2 * n)

    peaks = 0
    if n >= 3:
        interior = values[1:-1]
        is_peak = (
            (interior > values[:-2])
            & (interior > values[2:])
            & (interior > mean + std)
        )
        peaks = int(np.count_nonzero(is_peak))

    coefficient_of_variation = std / mean if mean > 0 else 0.0

    return [
        mean,
        std,
        max_val,
        min_val,
        max_val - min_val,
        trend,
        freq_estimate,
        peaks / n,
        coefficient_of_variation,
    ]


def _coordinate_frame(
    coordinates: Sequence[Sequence[Sequence[float]] | None],
    image_width: float | None,
    image_height: float | None,
) -> tuple[float, float, float, float, bool]:
    """Bounding box used to normalize centroids, and whether any ROI has coordinates."""
    min_x, max_x = 0.0, DEFAULT_CANVAS_SIZE
    min_y, max_y = 0.0, DEFAULT_CANVAS_SIZE
    has_coordinates = False

    for coords in coordinates:
        if not coords:
            continue
        has_coordinates = True
        for x, y in _valid_points(coords):
            min_x, max_x = min(min_x, x), max(max_x, x)
            min_y, max_y = min(min_y, y), max(max_y, y)

    if image_width and image_height:
        min_x, max_x = 0.0, float(image_width)
        min_y, max_y = 0.0, float(image_height)
        has_coordinates = True

    return min_x, max_x, min_y, max_y, has_coordinates


def extract_trace_features(
    traces: Sequence[Iterable[float]],
    coordinates: Sequence[Sequence[Sequence[float]] | None] | None = None,
    image_width: float | None = None,
    image_height: float | None = None,
) -> np.ndarray:
    """Build the 11-dimensional feature vector of every neuron.

    Spatial features are the ROI centroid normalized into [0, 1] by the union
    bounding box of all ROIs (the default 512x512 canvas included), or by the
    image size when both dimensions are given. Neurons without usable
    coordinates are spread over a ``ceil(sqrt(N))`` grid by index so they do
    not collapse onto one point.

    Args:
        traces: One trace per neuron
        coordinates: Optional per-neuron list of (x, y) pixel coordinates
        image_width: Optional image width in pixels
        image_height: Optional image height in pixels

    Returns:
        (N, 11) float array, columns ordered as FEATURE_NAMES
    """
    num_neurons = len(traces)
    if num_neurons == 0:
        return np.empty((0, NUM_FEATURES), dtype=np.float64)

    coords_per_neuron = list(coordinates) if coordinates is not None else []
    coords_per_neuron += [None] * (num_neurons - len(coords_per_neuron))

    min_x, max_x, min_y, max_y, has_coordinates = _coordinate_frame(
        coords_per_neuron, image_width, image_height
    )
    coord_width = (max_x - min_x) or DEFAULT_CANVAS_SIZE
    coord_height = (max_y - min_y) or DEFAULT_CANVAS_SIZE
    grid_size = math.ceil(math.sqrt(num_neurons))

    features = np.zeros((num_neurons, NUM_FEATURES), dtype=np.float64)
    grid_fallbacks = 0

    for idx, trace in enumerate(traces):
        features[idx, :NUM_TEMPORAL_FEATURES] = temporal_features(trace)

        norm_x, norm_y = 0.5, 0.5
        has_valid_coords = False

        if has_coordinates and coords_per_neuron[idx]:
            points = list(_valid_points(coords_per_neuron[idx]))
            if points:
                center_x = sum(p[0] for p in points) / len(points)
                center_y = sum(p[1] for p in points) / len(points)
                norm_x = min(1.0, max(0.0, (center_x - min_x) / coord_width))
                norm_y = min(1.0, max(0.0, (center_y - min_y) / coord_height))
                has_valid_coords = True

        if not has_valid_coords and num_neurons > 1:
            norm_x = (idx % grid_size) / grid_size
            norm_y = (idx // grid_size) / grid_size
            grid_fallbacks += 1

        features[idx, NUM_TEMPORAL_FEATURES] = norm_x
        features[idx, NUM_TEMPORAL_FEATURES + 1] = norm_y

    if grid_fallbacks:
        logger.debug(
            f"{grid_fallbacks}/{num_neurons} neurons without coordinates placed on a "
            f"{grid_size}x{grid_size} grid"
        )

    return np.nan_to_num(features, nan=0.0, posinf=0.0, neginf=0.0)
