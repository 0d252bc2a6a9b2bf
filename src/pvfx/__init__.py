"""Spectral-domain effects for phase-vocoder frames."""

from __future__ import annotations

from .dispatch import EffectSlot, create_effect, effect_names
from .effect_benchmarks import run_effect_benchmarks
from .effects import EFFECT_TYPES, Effect
from .state import BIN_DTYPE
from .utils import make_frame

__all__ = [
    "BIN_DTYPE",
    "EFFECT_TYPES",
    "Effect",
    "EffectSlot",
    "create_effect",
    "effect_names",
    "make_frame",
    "run_effect_benchmarks",
]
