"""Host-side effect selection: name -> configured effect instance."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict

import numpy as np

from . import diagnostics
from .contracts import get_effect_contract
from .effects import EFFECT_TYPES, Effect, Through
from .utils import assert_frame, make_frame

FALLBACK_EFFECT = "Through"

# Tunables the reference host wires up for each effect.
DEFAULT_PARAMS: Dict[str, Dict[str, Any]] = {
    "Through": {},
    "Centroid": {},
    "AmpDelay": {
        "delay": 1.0,
        "max_delay": 1,
        "freq_mix": 1.0,
        "amp_mix": 1.0,
        "freq_feedback": 1.0,
        "amp_feedback": 1.0,
    },
    "BinFlipper": {"nyquist_multiplier": 0.01},
    "DomainXOver": {"add": 15.0, "shift": 0.5, "alpha": 0.5},
    "ExpAvg": {"freq_alpha": 0.8, "amp_alpha": 0.2, "freq_mix": 0.3, "amp_mix": 0.7},
    "FormantShifter": {"shift": 0.0},
    "FreqShifter": {"shift": 8.0},
    "Gate": {"gate": 0.5, "duck": 7.0},
    "ModularAmp": {"factor": 12.5},
    "PitchShifter": {"shift": 8.0},
    "Repeater": {"length": 10, "freq_hold": 0.5, "amp_hold": 0.2, "decay": 0.1, "mix": 0.5},
    "Scrambler": {"length": 10, "increment": 1},
    "SlopeFilter": {"freq_min": 0.1, "freq_max": 0.8, "amp_min": 0.1, "amp_max": 0.8},
    "Stencil": {"stencil": 100},
    "TimeBlur": {
        "freq_alpha": 0.5,
        "amp_alpha": 0.5,
        "freq_mix": 0.5,
        "amp_mix": 1.0,
        "replace_high": 0.8,
        "replace_low": 0.2,
    },
}


def effect_names() -> list[str]:
    """Canonical effect names (one per effect class)."""

    return sorted({cls.type_name for cls in EFFECT_TYPES.values()})


def resolve_effect_type(name: str) -> type[Effect] | None:
    return EFFECT_TYPES.get(str(name))


def create_effect(
    name: str,
    channels: int,
    bins: int,
    params: Mapping[str, Any] | None = None,
) -> Effect:
    """Build the effect registered as ``name`` for a ``channels x bins`` stream.

    Unknown names resolve to :class:`Through` so audio keeps flowing. Unknown
    tunables for a known effect are a configuration error.
    """

    cls = resolve_effect_type(name)
    if cls is None:
        diagnostics.log_effect_event(
            f"unknown effect '{name}', falling back to {FALLBACK_EFFECT}"
        )
        return Through(channels, bins)

    merged = dict(DEFAULT_PARAMS.get(cls.type_name, {}))
    if params:
        if not isinstance(params, Mapping):
            raise TypeError(f"{cls.type_name}: params must be a mapping")
        merged.update(params)

    contract = get_effect_contract(cls.type_name)
    allowed = contract.param_names() if contract is not None else cls.tunables
    unknown = sorted(key for key in merged if key not in allowed)
    if unknown:
        raise TypeError(f"{cls.type_name}: unknown parameter(s) {', '.join(unknown)}")

    effect = cls(channels, bins, **merged)
    diagnostics.log_effect_event(f"created {effect!r}")
    return effect


class EffectSlot:
    """Exclusive owner of the currently selected effect and its output frame.

    The slot mirrors the host's dispatch point: it swaps effects on selection
    and runs exactly one effect per frame into a frame buffer it owns, so the
    effect never sees aliased input and output.
    """

    __slots__ = ("channels", "bins", "selection", "effect", "_output")

    def __init__(
        self,
        channels: int,
        bins: int,
        selection: str = FALLBACK_EFFECT,
        params: Mapping[str, Any] | None = None,
    ) -> None:
        self.channels = int(channels)
        self.bins = int(bins)
        self._output = make_frame(self.channels, self.bins)
        self.selection = FALLBACK_EFFECT
        self.effect: Effect = Through(self.channels, self.bins)
        self.select(selection, params)

    def select(self, name: str, params: Mapping[str, Any] | None = None) -> Effect:
        """Replace the active effect; history of the previous one is discarded."""

        self.effect = create_effect(name, self.channels, self.bins, params)
        self.selection = self.effect.type_name
        return self.effect

    def run(self, sample_rate: float, input_frame: np.ndarray) -> np.ndarray:
        """Process ``input_frame`` and return the slot-owned output frame.

        The returned frame is overwritten by the next call.
        """

        frame = assert_frame(input_frame, self.channels, self.bins, name="slot.in")
        if np.shares_memory(frame, self._output):
            frame = frame.copy()
        self.effect.process(float(sample_rate), self.channels, self.bins, frame, self._output)
        return self._output


__all__ = [
    "DEFAULT_PARAMS",
    "EffectSlot",
    "FALLBACK_EFFECT",
    "create_effect",
    "effect_names",
    "resolve_effect_type",
]
