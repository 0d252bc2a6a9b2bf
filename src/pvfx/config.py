"""Configuration loading for an effect slot."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, MutableMapping

from .dispatch import EffectSlot
from .state import (
    DEFAULT_BINS,
    DEFAULT_CHANNELS,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_TIME_DIVS,
)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "configs" / "default.json"


@dataclass(slots=True)
class EngineConfig:
    """Shape of the frames the phase vocoder hands to the effect."""

    bins: int = DEFAULT_BINS
    time_divs: int = DEFAULT_TIME_DIVS


@dataclass(slots=True)
class EffectConfig:
    name: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AppConfig:
    sample_rate: int
    channels: int
    engine: EngineConfig
    effect: EffectConfig


def _normalise_engine(data: MutableMapping[str, Any]) -> EngineConfig:
    bins = int(data.get("bins", DEFAULT_BINS))
    time_divs = int(data.get("time_divs", DEFAULT_TIME_DIVS))
    if bins <= 0:
        raise ValueError("engine.bins must be a positive integer")
    if time_divs <= 0:
        raise ValueError("engine.time_divs must be a positive integer")
    return EngineConfig(bins=bins, time_divs=time_divs)


def _normalise_effect(data: Mapping[str, Any]) -> EffectConfig:
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError("effect.name must be provided")
    params = data.get("params", {}) or {}
    if not isinstance(params, Mapping):
        raise TypeError("effect.params must be a mapping of tunable names to numbers")
    return EffectConfig(name=name, params=dict(params))


def load_configuration(path: str | Path) -> AppConfig:
    """Load an :class:`AppConfig` from ``path``."""

    with open(path, "r", encoding="utf8") as fh:
        raw = json.load(fh)
    engine = _normalise_engine(dict(raw.get("engine", {}) or {}))
    effect = _normalise_effect(raw.get("effect", {}) or {})
    sample_rate = int(raw.get("sample_rate", DEFAULT_SAMPLE_RATE))
    channels = int(raw.get("channels", DEFAULT_CHANNELS))
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    if channels <= 0:
        raise ValueError("channels must be positive")
    return AppConfig(sample_rate=sample_rate, channels=channels, engine=engine, effect=effect)


def build_slot(config: AppConfig) -> EffectSlot:
    """Create the effect slot described by ``config``."""

    return EffectSlot(
        config.channels,
        config.engine.bins,
        selection=config.effect.name,
        params=config.effect.params,
    )


__all__ = [
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "EffectConfig",
    "EngineConfig",
    "build_slot",
    "load_configuration",
]
