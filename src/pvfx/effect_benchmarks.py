"""Utilities for benchmarking individual effects across frame shapes.

This module provides a small harness that instantiates each registered effect,
feeds it synthetic frames, and records the per-call latency for a set of
channel counts and bin counts.  Per-call cost should scale with
``channels x bins`` only, so a row that grows faster than that points at an
effect doing more work than its frame requires.
"""

from __future__ import annotations

import argparse
import time
import zlib
from dataclasses import dataclass
from typing import Iterable, Mapping

import numpy as np

from .dispatch import create_effect, effect_names
from .state import RAW_DTYPE
from .utils import frame_from_arrays, make_frame


@dataclass(slots=True)
class BenchmarkStats:
    """Simple statistics captured for each (effect, channels, bins) triple."""

    mean_seconds: float
    stdev_seconds: float
    min_seconds: float
    max_seconds: float


def _random_frame(
    rng: np.random.Generator,
    channels: int,
    bins: int,
    sample_rate: float,
) -> np.ndarray:
    amp = rng.uniform(0.0, 50.0, size=(channels, bins)).astype(RAW_DTYPE, copy=False)
    freq_per_bin = sample_rate / bins
    centres = freq_per_bin * (np.arange(bins, dtype=RAW_DTYPE) + 0.5)
    jitter = rng.uniform(-0.5, 0.5, size=(channels, bins)) * freq_per_bin
    return frame_from_arrays(amp, centres[None, :] + jitter)


def _frame_seed(seed: int, name: str, channels: int, bins: int) -> int:
    """RNG seed for one benchmark shape; stable across interpreter runs."""

    return seed + zlib.crc32(f"{name}:{channels}:{bins}".encode("utf-8"))


def run_effect_benchmarks(
    channel_counts: Iterable[int],
    *,
    bins: int = 256,
    bin_counts: Iterable[int] | None = None,
    sample_rate: float = 48_000.0,
    iterations: int = 5,
    effects: Iterable[str] | None = None,
    seed: int = 0,
) -> dict[str, dict[int, dict[int, BenchmarkStats]]]:
    """Execute the benchmark suite and return ``{effect: {bins: {channels: stats}}}``.

    ``bins`` benchmarks a single bin count; ``bin_counts`` sweeps several.
    """

    available = effect_names()
    selected = list(effects) if effects is not None else available
    unknown = sorted(name for name in selected if name not in available)
    if unknown:
        raise KeyError(f"Unknown effects requested: {', '.join(unknown)}")

    bin_counts_list = list(bin_counts if bin_counts is not None else [bins])
    if not bin_counts_list:
        raise ValueError("at least one bin count must be provided")
    for count in bin_counts_list:
        if count <= 0:
            raise ValueError("bin counts must be positive integers")

    channel_counts_list = list(channel_counts)
    results: dict[str, dict[int, dict[int, BenchmarkStats]]] = {}
    for name in selected:
        per_bins: dict[int, dict[int, BenchmarkStats]] = {}
        for count in bin_counts_list:
            per_channels: dict[int, BenchmarkStats] = {}
            for channels in channel_counts_list:
                if channels <= 0:
                    raise ValueError("channel counts must be positive integers")
                rng = np.random.default_rng(_frame_seed(seed, name, channels, count))
                effect = create_effect(name, channels, count)
                output = make_frame(channels, count)

                # Warm-up call so first-touch page faults stay out of the samples.
                warm = _random_frame(rng, channels, count, sample_rate)
                effect.process(sample_rate, channels, count, warm, output)

                times: list[float] = []
                for _ in range(iterations):
                    frame = _random_frame(rng, channels, count, sample_rate)
                    start = time.perf_counter()
                    effect.process(sample_rate, channels, count, frame, output)
                    elapsed = time.perf_counter() - start
                    times.append(elapsed)

                times_arr = np.array(times, dtype=RAW_DTYPE)
                per_channels[channels] = BenchmarkStats(
                    mean_seconds=float(times_arr.mean()),
                    stdev_seconds=float(times_arr.std(ddof=0)),
                    min_seconds=float(times_arr.min()),
                    max_seconds=float(times_arr.max()),
                )
            per_bins[count] = per_channels
        results[name] = per_bins
    return results


def _cell(stats: BenchmarkStats | None) -> str:
    if stats is None:
        return "-"
    return f"{stats.mean_seconds * 1e6:9.1f} us (min {stats.min_seconds * 1e6:.1f})"


def _format_table(results: Mapping[str, Mapping[int, Mapping[int, BenchmarkStats]]]) -> str:
    """Render one block per bin count, one row per effect, one column per channel count."""

    shapes = {(count, ch) for per_bins in results.values() for count, per in per_bins.items() for ch in per}
    if not shapes:
        return "No results"
    bin_counts = sorted({count for count, _ in shapes})
    channel_counts = sorted({ch for _, ch in shapes})
    name_width = max(len(name) for name in results) + 2

    blocks: list[str] = []
    for count in bin_counts:
        cells = {
            name: [_cell(results[name].get(count, {}).get(ch)) for ch in channel_counts]
            for name in sorted(results)
        }
        col_width = max(len(text) for row in cells.values() for text in row) + 2
        title = f"{count} bins".ljust(name_width)
        out = [title + "".join(f"{ch} ch".rjust(col_width) for ch in channel_counts)]
        out.append("=" * len(out[0]))
        for name, row in cells.items():
            out.append(name.ljust(name_width) + "".join(text.rjust(col_width) for text in row))
        blocks.append("\n".join(out))
    return "\n\n".join(blocks)


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Benchmark pvfx effects across frame shapes")
    parser.add_argument("--sample-rate", type=float, default=48_000.0, help="Sample rate")
    parser.add_argument(
        "--channels",
        type=int,
        nargs="*",
        default=[1, 2],
        help="Channel counts to benchmark",
    )
    parser.add_argument(
        "--bins",
        type=int,
        nargs="*",
        default=[64, 256],
        help="Bin counts to benchmark",
    )
    parser.add_argument("--iterations", type=int, default=5, help="Samples per measurement")
    parser.add_argument("--seed", type=int, default=0, help="RNG seed for synthetic frames")
    parser.add_argument(
        "--effects",
        nargs="*",
        default=None,
        help="Optional subset of effect names to benchmark",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available effect names and exit",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.list:
        for name in effect_names():
            print(name)
        return 0

    results = run_effect_benchmarks(
        args.channels,
        bin_counts=args.bins,
        sample_rate=args.sample_rate,
        iterations=args.iterations,
        effects=args.effects,
        seed=args.seed,
    )
    print(_format_table(results))
    return 0


__all__ = [
    "BenchmarkStats",
    "main",
    "run_effect_benchmarks",
]


if __name__ == "__main__":  # pragma: no cover - manual invocation helper
    raise SystemExit(main())
