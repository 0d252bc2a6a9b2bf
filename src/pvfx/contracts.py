"""Static contracts describing each effect's tunables and their valid ranges.

Effects saturate their public attributes through these ranges at the start
of every call, so the registry is the one place a range is written down.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from .state import (
    AMP_DELAY_MAX,
    REPEATER_MAX_LENGTH,
    SCRAMBLER_MAX_LENGTH,
    STENCIL_MAX,
)
from .utils import clamp, clamp_index


@dataclass(frozen=True)
class ParamRange:
    """Valid range of one tunable; ``integer`` marks count/length/bitmask values."""

    name: str
    lo: float
    hi: float
    integer: bool = False

    def saturate(self, value):
        """Clamp ``value`` into range. NaN passes through unless ``integer`` (then ``lo``)."""

        if self.integer:
            return clamp_index(value, int(self.lo), int(self.hi))
        return clamp(value, self.lo, self.hi)


@dataclass(frozen=True)
class EffectContract:
    """Captures the configuration surface of an effect implementation."""

    type_name: str
    params: Tuple[ParamRange, ...] = ()

    def param_names(self) -> Tuple[str, ...]:
        return tuple(param.name for param in self.params)

    def param(self, name: str) -> ParamRange:
        for param in self.params:
            if param.name == name:
                return param
        raise KeyError(f"{self.type_name}: unknown parameter '{name}'")


class EffectContractRegistry:
    """Registry of effect contracts keyed by effect type name."""

    def __init__(self) -> None:
        self._contracts: Dict[str, EffectContract] = {}

    def register(self, contract: EffectContract) -> None:
        if contract.type_name in self._contracts:
            raise ValueError(f"Duplicate contract registration for {contract.type_name}")
        self._contracts[contract.type_name] = contract

    def get(self, type_name: str) -> EffectContract | None:
        return self._contracts.get(type_name)

    def contracts(self) -> Iterable[EffectContract]:
        return tuple(self._contracts.values())


_REGISTRY = EffectContractRegistry()


def get_effect_contract(type_name: str) -> EffectContract | None:
    """Return the registered contract for ``type_name`` (if any)."""

    return _REGISTRY.get(type_name)


def register_effect_contract(contract: EffectContract) -> None:
    """Register ``contract`` for the associated effect type."""

    _REGISTRY.register(contract)


def effect_contracts() -> Tuple[EffectContract, ...]:
    return tuple(_REGISTRY.contracts())


def _unit(name: str) -> ParamRange:
    return ParamRange(name, 0.0, 1.0)


def _bootstrap() -> None:
    """Populate the registry with the built-in effect contracts."""

    register_effect_contract(EffectContract(type_name="Through"))
    register_effect_contract(EffectContract(type_name="Centroid"))
    register_effect_contract(
        EffectContract(type_name="BinFlipper", params=(_unit("nyquist_multiplier"),))
    )
    register_effect_contract(
        EffectContract(
            type_name="Gate",
            params=(ParamRange("gate", 0.0, 8.0), ParamRange("duck", 0.0, 8.0)),
        )
    )
    register_effect_contract(
        EffectContract(type_name="ModularAmp", params=(ParamRange("factor", 0.0, 25.0),))
    )
    for shifter in ("FormantShifter", "FreqShifter", "PitchShifter"):
        register_effect_contract(
            EffectContract(
                type_name=shifter,
                params=(ParamRange("shift", 0.0, 8.0),),
            )
        )
    register_effect_contract(
        EffectContract(
            type_name="DomainXOver",
            params=(ParamRange("add", 0.0, 25.0), _unit("shift"), _unit("alpha")),
        )
    )
    register_effect_contract(
        EffectContract(
            type_name="ExpAvg",
            params=(
                _unit("freq_alpha"),
                _unit("amp_alpha"),
                _unit("freq_mix"),
                _unit("amp_mix"),
            ),
        )
    )
    register_effect_contract(
        EffectContract(
            type_name="AmpDelay",
            params=(
                ParamRange("delay", 0.0, float(AMP_DELAY_MAX)),
                ParamRange("max_delay", 1, AMP_DELAY_MAX, integer=True),
                _unit("freq_mix"),
                _unit("amp_mix"),
                _unit("freq_feedback"),
                _unit("amp_feedback"),
            ),
        )
    )
    register_effect_contract(
        EffectContract(
            type_name="Repeater",
            params=(
                ParamRange("length", 1, REPEATER_MAX_LENGTH, integer=True),
                _unit("freq_hold"),
                _unit("amp_hold"),
                _unit("decay"),
                _unit("mix"),
            ),
        )
    )
    register_effect_contract(
        EffectContract(
            type_name="Scrambler",
            params=(
                ParamRange("length", 1, SCRAMBLER_MAX_LENGTH, integer=True),
                ParamRange("increment", 1, SCRAMBLER_MAX_LENGTH, integer=True),
            ),
        )
    )
    register_effect_contract(
        EffectContract(
            type_name="SlopeFilter",
            params=(
                ParamRange("freq_min", 0.0, 0.1),
                ParamRange("freq_max", 0.0, 0.1),
                ParamRange("amp_min", 0.0, 8.0),
                ParamRange("amp_max", 0.0, 8.0),
            ),
        )
    )
    register_effect_contract(
        EffectContract(
            type_name="TimeBlur",
            params=(
                _unit("freq_alpha"),
                _unit("amp_alpha"),
                _unit("freq_mix"),
                _unit("amp_mix"),
                _unit("replace_high"),
                _unit("replace_low"),
            ),
        )
    )
    register_effect_contract(
        EffectContract(
            type_name="Stencil",
            params=(ParamRange("stencil", 0, STENCIL_MAX, integer=True),),
        )
    )


_bootstrap()


__all__ = [
    "EffectContract",
    "EffectContractRegistry",
    "ParamRange",
    "effect_contracts",
    "get_effect_contract",
    "register_effect_contract",
]
