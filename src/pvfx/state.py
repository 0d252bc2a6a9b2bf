"""Shared dtypes and capacity constants."""

from __future__ import annotations

import numpy as np

# =========================
# Settings / fidelity
# =========================
RAW_DTYPE = "float64"

# One frequency-domain sample: amplitude plus frequency in Hz.
BIN_DTYPE = np.dtype([("amp", RAW_DTYPE), ("freq", RAW_DTYPE)])

# =========================
# History capacities (frames)
# =========================
AMP_DELAY_MAX = 2000
REPEATER_MAX_LENGTH = 2000
SCRAMBLER_MAX_LENGTH = 4096
STENCIL_SIZE = 4
STENCIL_MAX = (1 << (STENCIL_SIZE * STENCIL_SIZE)) - 1

# =========================
# Host conventions
# =========================
DEFAULT_BINS = 256
DEFAULT_TIME_DIVS = 32
DEFAULT_CHANNELS = 2
DEFAULT_SAMPLE_RATE = 44100


__all__ = [
    "RAW_DTYPE",
    "BIN_DTYPE",
    "AMP_DELAY_MAX",
    "REPEATER_MAX_LENGTH",
    "SCRAMBLER_MAX_LENGTH",
    "STENCIL_SIZE",
    "STENCIL_MAX",
    "DEFAULT_BINS",
    "DEFAULT_TIME_DIVS",
    "DEFAULT_CHANNELS",
    "DEFAULT_SAMPLE_RATE",
]
