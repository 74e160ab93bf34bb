"""
Deterministic pseudo-random source for reproducible analyses.

A 32-bit linear congruential generator whose output sequence depends only on
the seed, so the same dataset always yields the same PCA start vectors and
k-means++ draws. One instance is created per analysis run and passed
explicitly to every stage that consumes randomness.
"""

# LCG parameters (Numerical Recipes)
LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2**32

DEFAULT_SEED = 12345


class SeededRandom:
    """Linear congruential generator producing floats in [0, 1)."""

    def __init__(self, seed: int = DEFAULT_SEED) -> None:
        self._state = int(seed) % LCG_MODULUS

    def seed(self, seed: int) -> None:
        """Reset the generator state."""
        self._state = int(seed) % LCG_MODULUS

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> float:
        """Advance the generator and return a float in [0, 1)."""
        self._state = (self._state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return self._state / LCG_MODULUS

    def next_int(self, low: int, high: int) -> int:
        """Return an integer in [low, high)."""
        return int(self.next() * (high - low)) + low

    def next_float(self, low: float, high: float) -> float:
        """Return a float in [low, high)."""
        return self.next() * (high - low) + low


def hash_dataset(dataset_name: str, neuron_count: int, frame_count: int) -> int:
    """Derive a non-negative seed from a dataset's identity.

    Rolling ``hash * 31 + code_unit`` over ``"{name}_{neurons}_{frames}"``,
    wrapped to a signed 32-bit integer after every step. Characters are
    consumed as UTF-16 code units, so a character outside the Basic
    Multilingual Plane contributes its two surrogates.

    Args:
        dataset_name: Human-readable dataset identifier
        neuron_count: Number of neurons in the dataset
        frame_count: Number of frames per trace

    Returns:
        Absolute value of the wrapped hash
    """
    key = f"{dataset_name}_{neuron_count}_{frame_count}"
    encoded = key.encode("utf-16-le")

    value = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        value = (value * 31 + code_unit) & 0xFFFFFFFF

    if value >= 2**31:
        value -= 2**32
    return abs(value)
