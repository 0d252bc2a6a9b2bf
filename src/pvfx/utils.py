# utils.py
import math

import numpy as np

from .state import BIN_DTYPE, RAW_DTYPE

# =========================
# Scratch buffers
# =========================


class ScratchPlanes:
    """Reusable ``(channels, bins)`` work planes for one effect instance.

    Effects evaluate their per-bin arithmetic through numpy ufuncs with
    ``out=`` targets taken from here, so a call to ``process`` does not need
    fresh frame-sized arrays once the effect has been constructed.
    """

    __slots__ = ("shape", "planes", "mask", "flag")

    def __init__(self, channels: int, bins: int, count: int = 2) -> None:
        self.shape = (int(channels), int(bins))
        self.planes = tuple(np.zeros(self.shape, RAW_DTYPE) for _ in range(int(count)))
        self.mask = np.zeros(self.shape, dtype=bool)
        self.flag = np.zeros(self.shape, dtype=bool)

    def __getitem__(self, index: int) -> np.ndarray:
        return self.planes[index]


# =========================
# Scalar helpers
# =========================


def clamp(value, lo, hi):
    """Saturate ``value`` into ``[lo, hi]``. NaN passes through unchanged."""

    value = float(value)
    if value != value:
        return value
    return min(max(value, lo), hi)


def clamp_index(value, lo, hi):
    """Saturate a count/length parameter and truncate it to ``int``.

    NaN maps to ``lo`` and infinities saturate to the nearest bound.
    """

    try:
        value = float(value)
    except (TypeError, ValueError):
        return int(lo)
    if value != value:
        return int(lo)
    if value <= lo:
        return int(lo)
    if value >= hi:
        return int(hi)
    return int(value)


def lerp(a, b, x, out=None, tmp=None):
    """Blend ``a`` and ``b`` as ``a*x + b*(1-x)``.

    ``x == 1`` returns ``a`` and ``x == 0`` returns ``b``. When ``out`` is
    given the result is written in place; ``tmp`` (same shape) avoids the
    temporary for the ``b`` term and may not alias ``a`` or ``b``. ``out`` may
    alias either operand. Non-finite operands propagate without warnings.
    """

    with np.errstate(invalid="ignore", over="ignore"):
        if out is None:
            return a * x + b * (1.0 - x)
        if tmp is None:
            tmp = np.multiply(b, 1.0 - x)
        else:
            np.multiply(b, 1.0 - x, out=tmp)
        np.multiply(a, x, out=out)
        np.add(out, tmp, out=out)
    return out


def fmod(a, b, out=None):
    """Floor-based real modulus ``a - b*floor(a/b)``; infinite ``b`` returns ``a``.

    ``b`` is a scalar. ``out`` must not alias ``a``.
    """

    if math.isinf(b):
        if out is None:
            return a
        np.copyto(out, a)
        return out
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if out is None:
            return a - b * np.floor(np.divide(a, b))
        np.divide(a, b, out=out)
        np.floor(out, out=out)
        np.multiply(out, b, out=out)
        np.subtract(a, out, out=out)
    return out


def log2p1(value, out=None):
    """Return ``log2(value + 1)``, the loudness/slope scale used by gates and delays."""

    with np.errstate(divide="ignore", invalid="ignore"):
        if out is None:
            return np.log2(np.add(value, 1.0))
        np.add(value, 1.0, out=out)
        np.log2(out, out=out)
    return out


def bin_centres(sample_rate, bins, scale=1.0):
    """Nominal centre frequency of every bin: ``fpb*j + fpb/2``."""

    freq_per_bin = float(sample_rate) / float(bins) * float(scale)
    return freq_per_bin * np.arange(int(bins), dtype=RAW_DTYPE) + freq_per_bin / 2.0


# =========================
# Frame helpers
# =========================


def make_frame(channels, bins):
    """Return a zeroed ``(channels, bins)`` frame of :data:`BIN_DTYPE`."""

    return np.zeros((int(channels), int(bins)), dtype=BIN_DTYPE)


def frame_from_arrays(amp, freq):
    """Pack amplitude and frequency arrays of equal shape into a frame."""

    amp = np.asarray(amp, dtype=RAW_DTYPE)
    freq = np.asarray(freq, dtype=RAW_DTYPE)
    if amp.ndim == 1:
        amp = amp[None, :]
    if freq.ndim == 1:
        freq = freq[None, :]
    if amp.shape != freq.shape or amp.ndim != 2:
        raise ValueError(f"amp/freq must share a (C,N) shape; got {amp.shape} and {freq.shape}")
    frame = np.empty(amp.shape, dtype=BIN_DTYPE)
    frame["amp"] = amp
    frame["freq"] = freq
    return frame


def assert_frame(x, channels=None, bins=None, *, name="frame"):
    """Validate that ``x`` is a ``(channels, bins)`` bin frame and return it."""

    a = np.asarray(x)
    if a.dtype != BIN_DTYPE:
        raise TypeError(f"{name}: expected dtype {BIN_DTYPE}, got {a.dtype}")
    if a.ndim != 2:
        raise ValueError(f"{name}: expected (C,N), got rank {a.ndim}, shape={a.shape}")
    if channels is not None and a.shape[0] != channels:
        raise ValueError(f"{name}: expected {channels} channels, got {a.shape[0]}")
    if bins is not None and a.shape[1] != bins:
        raise ValueError(f"{name}: expected {bins} bins, got {a.shape[1]}")
    return a


__all__ = [
    "ScratchPlanes",
    "assert_frame",
    "bin_centres",
    "clamp",
    "clamp_index",
    "fmod",
    "frame_from_arrays",
    "lerp",
    "log2p1",
    "make_frame",
]
