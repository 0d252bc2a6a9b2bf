# effects.py
from __future__ import annotations

import numpy as np

from . import diagnostics
from .contracts import get_effect_contract
from .state import (
    BIN_DTYPE,
    RAW_DTYPE,
    REPEATER_MAX_LENGTH,
    SCRAMBLER_MAX_LENGTH,
    STENCIL_SIZE,
)
from .utils import ScratchPlanes, fmod, lerp, log2p1

# =========================
# Effect base
# =========================
#
# Every effect consumes one ``(channels, bins)`` frame of BIN_DTYPE and fully
# overwrites an output frame of the same shape. Tunables are plain public
# attributes; each ``process`` call saturates them through the effect's
# registered contract before use, so hosts may write unranged control data
# between calls. Non-finite bins propagate without floating-point warnings.
class Effect:
    """Base class for per-frame spectral effects."""

    __slots__ = ("channels", "bins", "_contract", "_scratch", "_ramp", "_line")

    type_name = "Effect"
    tunables: tuple[str, ...] = ()
    scratch_planes = 2

    def __init__(self, channels: int, bins: int) -> None:
        channels = int(channels)
        bins = int(bins)
        if channels <= 0 or bins <= 0:
            raise ValueError(
                f"{self.type_name}: channels and bins must be positive, got {channels}x{bins}"
            )
        self.channels = channels
        self.bins = bins
        self._contract = get_effect_contract(self.type_name)
        self._scratch = ScratchPlanes(channels, bins, self.scratch_planes)
        self._ramp = np.arange(bins, dtype=RAW_DTYPE)
        self._line = np.zeros(bins, dtype=RAW_DTYPE)

    def parameters(self) -> dict[str, object]:
        """Return the current (unclamped) tunable values."""

        return {name: getattr(self, name) for name in self.tunables}

    def _clamp(self, name: str):
        """Current value of tunable ``name`` saturated into its contract range."""

        return self._contract.param(name).saturate(getattr(self, name))

    def _centre_line(self, freq_per_bin: float) -> np.ndarray:
        """Fill the per-bin centre frequencies ``fpb*j + fpb/2``."""

        np.multiply(self._ramp, freq_per_bin, out=self._line)
        self._line += freq_per_bin / 2.0
        return self._line

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        raise NotImplementedError

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in self.parameters().items())
        return f"{type(self).__name__}({self.channels}x{self.bins}{', ' if params else ''}{params})"


# =========================
# Stateless effects
# =========================


class Through(Effect):
    """Copy input to output unchanged."""

    __slots__ = ()
    type_name = "Through"
    scratch_planes = 0

    def __init__(self, channels: int = 1, bins: int = 1) -> None:
        super().__init__(channels, bins)

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        np.copyto(output_frame, input_frame)


class Centroid(Effect):
    """Pin every bin's frequency to the bin centre."""

    __slots__ = ()
    type_name = "Centroid"
    scratch_planes = 0

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        centres = self._centre_line(sample_rate / bins)
        np.copyto(output_frame["amp"], input_frame["amp"])
        np.copyto(output_frame["freq"], centres)


class BinFlipper(Effect):
    """Mirror each bin's frequency around its (scaled) centre frequency."""

    __slots__ = ("nyquist_multiplier",)
    type_name = "BinFlipper"
    tunables = ("nyquist_multiplier",)
    scratch_planes = 1

    def __init__(self, channels: int, bins: int, nyquist_multiplier: float = 0.01) -> None:
        super().__init__(channels, bins)
        self.nyquist_multiplier = nyquist_multiplier

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        mult = self._clamp("nyquist_multiplier")
        with np.errstate(invalid="ignore", over="ignore"):
            expect = self._centre_line(sample_rate / bins * mult)
            tmp = self._scratch[0]
            np.subtract(input_frame["freq"], expect, out=tmp)
            np.negative(tmp, out=tmp)
            np.add(tmp, expect, out=output_frame["freq"])
        np.copyto(output_frame["amp"], input_frame["amp"])


class Gate(Effect):
    """Silence bins whose log-amplitude is below ``gate`` or above ``duck``."""

    __slots__ = ("gate", "duck")
    type_name = "Gate"
    tunables = ("gate", "duck")
    scratch_planes = 1

    def __init__(self, channels: int, bins: int, gate: float = 0.5, duck: float = 7.0) -> None:
        super().__init__(channels, bins)
        self.gate = gate
        self.duck = duck

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        gate = self._clamp("gate")
        duck = self._clamp("duck")
        level = log2p1(input_frame["amp"], out=self._scratch[0])
        muted = self._scratch.mask
        with np.errstate(invalid="ignore"):
            np.less(level, gate, out=muted)
            np.greater(level, duck, out=self._scratch.flag)
        np.logical_or(muted, self._scratch.flag, out=muted)
        np.copyto(output_frame["freq"], input_frame["freq"])
        np.copyto(output_frame["amp"], input_frame["amp"])
        np.copyto(output_frame["amp"], 0.0, where=muted)


class ModularAmp(Effect):
    """Floating point modulus of each bin's amplitude."""

    __slots__ = ("factor",)
    type_name = "ModularAmp"
    tunables = ("factor",)
    scratch_planes = 0

    def __init__(self, channels: int, bins: int, factor: float = 12.5) -> None:
        super().__init__(channels, bins)
        self.factor = factor

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        factor = self._clamp("factor")
        np.copyto(output_frame["freq"], input_frame["freq"])
        fmod(input_frame["amp"], factor, out=output_frame["amp"])


class _LowerHalfShifter(Effect):
    """Shared index mapping for the shifters: ``idx = trunc(j*shift)`` for ``j < bins/2``.

    Bins are only mapped within the lower half of the range; everything else
    in the output frame stays at the zero bin. ``_source`` and ``_gather`` are
    contiguous ``(channels, bins/2)`` planes so the gathers run through
    ``np.take(..., out=...)`` without temporaries.
    """

    __slots__ = ("shift", "_half", "_scaled", "_index", "_source", "_gather")
    tunables = ("shift",)
    scratch_planes = 0

    def __init__(self, channels: int, bins: int, shift: float = 1.0) -> None:
        super().__init__(channels, bins)
        self.shift = shift
        self._half = self.bins // 2
        self._scaled = np.zeros(self._half, dtype=RAW_DTYPE)
        self._index = np.zeros(self._half, dtype=np.intp)
        self._source = np.zeros((self.channels, self._half), dtype=RAW_DTYPE)
        self._gather = np.zeros((self.channels, self._half), dtype=RAW_DTYPE)

    def _map(self, shift: float) -> int:
        """Fill ``_index`` and return how many leading sources land in range.

        ``idx`` never decreases with ``j``, so the in-range sources are a prefix.
        """

        half = self._half
        if shift != shift:
            shift = 0.0
        np.multiply(self._ramp[:half], shift, out=self._scaled)
        np.trunc(self._scaled, out=self._scaled)
        self._index[...] = self._scaled
        return int(np.searchsorted(self._index, half, side="left"))


class FormantShifter(_LowerHalfShifter):
    """Resample the amplitude envelope of the lower half while keeping frequencies."""

    __slots__ = ()
    type_name = "FormantShifter"

    def __init__(self, channels: int, bins: int, shift: float = 0.0) -> None:
        super().__init__(channels, bins, shift)

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        shift = self._clamp("shift")
        output_frame.fill(0)
        half = self._half
        if half == 0:
            return
        valid = self._map(shift)
        np.copyto(self._source, input_frame["amp"][:, :half])
        # Indices past the valid prefix are clipped and never copied out.
        np.take(self._source, self._index, axis=1, out=self._gather, mode="clip")
        np.copyto(output_frame["amp"][:, :valid], self._gather[:, :valid])
        np.copyto(output_frame["freq"][:, :half], input_frame["freq"][:, :half])


class FreqShifter(_LowerHalfShifter):
    """Move each lower-half bin's scaled frequency to bin ``trunc(j*shift)``."""

    __slots__ = ("_positions", "_winner", "_present")
    type_name = "FreqShifter"

    def __init__(self, channels: int, bins: int, shift: float = 8.0) -> None:
        super().__init__(channels, bins, shift)
        self._positions = np.arange(self._half, dtype=np.intp)
        self._winner = np.zeros(self._half, dtype=np.intp)
        self._present = np.zeros(self._half, dtype=bool)

    def _write_frequencies(self, input_frame, output_frame, shift: float, valid: int) -> None:
        half = self._half
        winner = self._winner
        # Sources are put in ascending order, so the highest source bin wins a
        # shared target. Targets nobody maps to keep -1.
        winner.fill(-1)
        np.put(winner, self._index[:valid], self._positions[:valid], mode="clip")
        np.greater_equal(winner, 0, out=self._present)
        np.copyto(self._source, input_frame["freq"][:, :half])
        np.take(self._source, winner, axis=1, out=self._gather, mode="clip")
        self._gather *= shift
        np.copyto(output_frame["freq"][:, :half], self._gather, where=self._present)

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        shift = self._clamp("shift")
        output_frame.fill(0)
        half = self._half
        if half == 0:
            return
        valid = self._map(shift)
        with np.errstate(invalid="ignore", over="ignore"):
            self._write_frequencies(input_frame, output_frame, shift, valid)
        np.copyto(output_frame["amp"][:, :half], input_frame["amp"][:, :half])


class PitchShifter(FreqShifter):
    """Like :class:`FreqShifter` but amplitudes of sources sharing a target are summed."""

    __slots__ = ()
    type_name = "PitchShifter"

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        shift = self._clamp("shift")
        output_frame.fill(0)
        if self._half == 0:
            return
        valid = self._map(shift)
        with np.errstate(invalid="ignore", over="ignore"):
            self._write_frequencies(input_frame, output_frame, shift, valid)
            np.add.at(
                output_frame["amp"],
                (slice(None), self._index[:valid]),
                input_frame["amp"][:, :valid],
            )


class DomainXOver(Effect):
    """Modulate bin frequency by the distance of its amplitude from a running average.

    The average runs upward through the bins of each channel, seeded from bin
    0 and updated with ``alpha`` after each bin is emitted.
    """

    __slots__ = ("add", "shift", "alpha", "_avg", "_col")
    type_name = "DomainXOver"
    tunables = ("add", "shift", "alpha")
    scratch_planes = 0

    def __init__(
        self, channels: int, bins: int, add: float = 15.0, shift: float = 0.5, alpha: float = 0.5
    ) -> None:
        super().__init__(channels, bins)
        self.add = add
        self.shift = shift
        self.alpha = alpha
        self._avg = np.zeros(self.channels, dtype=RAW_DTYPE)
        self._col = np.zeros(self.channels, dtype=RAW_DTYPE)

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        freq_per_bin = sample_rate / bins
        add = self._clamp("add")
        shift = self._clamp("shift")
        alpha = self._clamp("alpha")
        amp = input_frame["amp"]
        freq = input_frame["freq"]
        out_freq = output_frame["freq"]
        avg = self._avg
        col = self._col
        offset = shift * freq_per_bin
        np.copyto(avg, amp[:, 0])
        with np.errstate(invalid="ignore", over="ignore"):
            for j in range(bins):
                np.subtract(avg, amp[:, j], out=col)
                col *= add
                np.add(freq[:, j], offset, out=out_freq[:, j])
                out_freq[:, j] += col
                lerp(avg, amp[:, j], alpha, out=avg, tmp=col)
        np.copyto(output_frame["amp"], amp)


class ExpAvg(Effect):
    """Blend each bin with an exponential average of the lower-pitched bins."""

    __slots__ = ("freq_alpha", "amp_alpha", "freq_mix", "amp_mix", "_avg_freq", "_avg_amp", "_tmp")
    type_name = "ExpAvg"
    tunables = ("freq_alpha", "amp_alpha", "freq_mix", "amp_mix")
    scratch_planes = 0

    def __init__(
        self,
        channels: int,
        bins: int,
        freq_alpha: float = 0.8,
        amp_alpha: float = 0.2,
        freq_mix: float = 0.3,
        amp_mix: float = 0.7,
    ) -> None:
        super().__init__(channels, bins)
        self.freq_alpha = freq_alpha
        self.amp_alpha = amp_alpha
        self.freq_mix = freq_mix
        self.amp_mix = amp_mix
        self._avg_freq = np.zeros(self.channels, dtype=RAW_DTYPE)
        self._avg_amp = np.zeros(self.channels, dtype=RAW_DTYPE)
        self._tmp = np.zeros(self.channels, dtype=RAW_DTYPE)

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        freq_alpha = self._clamp("freq_alpha")
        amp_alpha = self._clamp("amp_alpha")
        freq_mix = self._clamp("freq_mix")
        amp_mix = self._clamp("amp_mix")
        amp = input_frame["amp"]
        freq = input_frame["freq"]
        out_amp = output_frame["amp"]
        out_freq = output_frame["freq"]
        avg_freq = self._avg_freq
        avg_amp = self._avg_amp
        tmp = self._tmp
        np.copyto(avg_freq, freq[:, 0])
        np.copyto(avg_amp, amp[:, 0])
        for j in range(bins):
            lerp(avg_freq, freq[:, j], freq_mix, out=out_freq[:, j], tmp=tmp)
            lerp(avg_amp, amp[:, j], amp_mix, out=out_amp[:, j], tmp=tmp)
            lerp(avg_freq, freq[:, j], freq_alpha, out=avg_freq, tmp=tmp)
            lerp(avg_amp, amp[:, j], amp_alpha, out=avg_amp, tmp=tmp)


# =========================
# Stateful effects
# =========================
#
# History grids are laid out ``[slot][channel][bin]`` and allocated once.
# Cursors are wrapped after every call so ``cursor < active length`` holds
# between calls.


class AmpDelay(Effect):
    """Delay each bin by an amount proportional to its log-amplitude.

    Louder bins are written further ahead of the read cursor. The slot under
    the cursor is read, blended with the live input and then scaled by the
    feedback factors so it can recirculate when the cursor wraps.
    """

    __slots__ = (
        "delay",
        "max_delay",
        "freq_mix",
        "amp_mix",
        "freq_feedback",
        "amp_feedback",
        "_buffer",
        "_capacity",
        "_time",
        "_offsets",
        "_rows",
        "_cols",
    )
    type_name = "AmpDelay"
    tunables = ("delay", "max_delay", "freq_mix", "amp_mix", "freq_feedback", "amp_feedback")

    def __init__(
        self,
        channels: int,
        bins: int,
        delay: float = 1.0,
        max_delay: int = 1,
        freq_mix: float = 1.0,
        amp_mix: float = 1.0,
        freq_feedback: float = 1.0,
        amp_feedback: float = 1.0,
    ) -> None:
        super().__init__(channels, bins)
        self.delay = delay
        self.max_delay = max_delay
        self.freq_mix = freq_mix
        self.amp_mix = amp_mix
        self.freq_feedback = freq_feedback
        self.amp_feedback = amp_feedback
        self._capacity = self._clamp("max_delay")
        self._buffer = np.zeros((self._capacity, self.channels, self.bins), dtype=BIN_DTYPE)
        self._time = 0
        self._offsets = np.zeros((self.channels, self.bins), dtype=np.intp)
        self._rows = np.arange(self.channels)[:, None]
        self._cols = np.arange(self.bins)[None, :]

    @property
    def cursor(self) -> int:
        return self._time

    @property
    def history_length(self) -> int:
        return int(self._buffer.shape[0])

    def _resize(self, capacity: int) -> None:
        diagnostics.log_effect_event(
            f"{self.type_name}: history resized {self._capacity} -> {capacity} frames"
        )
        self._buffer = np.zeros((capacity, self.channels, self.bins), dtype=BIN_DTYPE)
        self._capacity = capacity
        self._time = 0

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        delay = self._clamp("delay")
        max_delay = self._clamp("max_delay")
        freq_mix = self._clamp("freq_mix")
        amp_mix = self._clamp("amp_mix")
        freq_feedback = self._clamp("freq_feedback")
        amp_feedback = self._clamp("amp_feedback")

        if max_delay != self._capacity:
            self._resize(max_delay)
        self._time %= max_delay
        time = self._time

        with np.errstate(invalid="ignore", over="ignore"):
            scaled = log2p1(input_frame["amp"], out=self._scratch[0])
            scaled *= delay
            # Offsets that are negative or not finite schedule into the current slot.
            unscheduled = np.isfinite(scaled, out=self._scratch.mask)
            np.logical_not(unscheduled, out=unscheduled)
            np.copyto(scaled, 0.0, where=unscheduled)
            np.maximum(scaled, 0.0, out=scaled)
            np.trunc(scaled, out=scaled)
            np.fmod(scaled, float(max_delay), out=scaled)
            offsets = self._offsets
            offsets[...] = scaled
            offsets += time
            np.remainder(offsets, max_delay, out=offsets)
            self._buffer[offsets, self._rows, self._cols] = input_frame

            current = self._buffer[time]
            tmp = self._scratch[1]
            lerp(current["amp"], input_frame["amp"], amp_mix, out=output_frame["amp"], tmp=tmp)
            lerp(current["freq"], input_frame["freq"], freq_mix, out=output_frame["freq"], tmp=tmp)
            current["freq"] *= freq_feedback
            current["amp"] *= amp_feedback
        self._time = (time + 1) % max_delay


class Repeater(Effect):
    """Capture a loop of ``length`` frames and replay it indefinitely.

    ``freq_hold``/``amp_hold`` blend loop content with new input as each slot
    is revisited (1.0 freezes the loop). ``mix`` is the amplitude dry/wet;
    output frequency always comes from the loop.
    """

    __slots__ = ("length", "freq_hold", "amp_hold", "decay", "mix", "_buffer", "_time")
    type_name = "Repeater"
    tunables = ("length", "freq_hold", "amp_hold", "decay", "mix")
    scratch_planes = 1

    def __init__(
        self,
        channels: int,
        bins: int,
        length: int = 10,
        freq_hold: float = 0.5,
        amp_hold: float = 0.2,
        decay: float = 0.1,
        mix: float = 0.5,
    ) -> None:
        super().__init__(channels, bins)
        self.length = length
        self.freq_hold = freq_hold
        self.amp_hold = amp_hold
        self.decay = decay
        self.mix = mix
        self._buffer = np.zeros(
            (REPEATER_MAX_LENGTH, self.channels, self.bins), dtype=BIN_DTYPE
        )
        self._time = 0

    @property
    def cursor(self) -> int:
        return self._time

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        length = self._clamp("length")
        freq_hold = self._clamp("freq_hold")
        amp_hold = self._clamp("amp_hold")
        decay = self._clamp("decay")
        mix = self._clamp("mix")

        self._time %= length
        slot = self._buffer[self._time]
        slot_amp = slot["amp"]
        slot_freq = slot["freq"]
        tmp = self._scratch[0]
        with np.errstate(invalid="ignore", over="ignore"):
            lerp(slot_amp, input_frame["amp"], amp_hold, out=slot_amp, tmp=tmp)
            lerp(slot_freq, input_frame["freq"], freq_hold, out=slot_freq, tmp=tmp)
            lerp(slot_amp, input_frame["amp"], mix, out=output_frame["amp"], tmp=tmp)
            np.copyto(output_frame["freq"], slot_freq)
            slot_amp *= decay
        self._time = (self._time + 1) % length


class Scrambler(Effect):
    """Reorder frames through a circular buffer read with a separate stride.

    The read happens before the write, so with ``increment == 1`` the output
    lags the input by exactly ``length`` frames.
    """

    __slots__ = ("length", "increment", "_buffer", "_time", "_k")
    type_name = "Scrambler"
    tunables = ("length", "increment")
    scratch_planes = 0

    def __init__(self, channels: int, bins: int, length: int = 10, increment: int = 1) -> None:
        super().__init__(channels, bins)
        self.length = length
        self.increment = increment
        self._buffer = np.zeros(
            (SCRAMBLER_MAX_LENGTH, self.channels, self.bins), dtype=BIN_DTYPE
        )
        self._time = 0
        self._k = 0

    @property
    def cursor(self) -> int:
        return self._time

    @property
    def read_cursor(self) -> int:
        return self._k

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        length = self._clamp("length")
        increment = self._clamp("increment")

        self._time %= length
        self._k %= length
        np.copyto(output_frame, self._buffer[self._k])
        np.copyto(self._buffer[self._time], input_frame)
        self._time = (self._time + 1) % length
        self._k = (self._k + increment) % length


class SlopeFilter(Effect):
    """Mute bins whose amplitude or frequency is changing too slowly or too fast."""

    __slots__ = ("freq_min", "freq_max", "amp_min", "amp_max", "_previous")
    type_name = "SlopeFilter"
    tunables = ("freq_min", "freq_max", "amp_min", "amp_max")
    scratch_planes = 3

    def __init__(
        self,
        channels: int,
        bins: int,
        freq_min: float = 0.1,
        freq_max: float = 0.8,
        amp_min: float = 0.1,
        amp_max: float = 0.8,
    ) -> None:
        super().__init__(channels, bins)
        self.freq_min = freq_min
        self.freq_max = freq_max
        self.amp_min = amp_min
        self.amp_max = amp_max
        self._previous = np.zeros((self.channels, self.bins), dtype=BIN_DTYPE)

    def _slope(self, current, previous, out, tmp):
        log2p1(current, out=out)
        log2p1(previous, out=tmp)
        with np.errstate(invalid="ignore", over="ignore"):
            np.subtract(out, tmp, out=out)
        np.abs(out, out=out)
        return out

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        freq_min = self._clamp("freq_min")
        freq_max = self._clamp("freq_max")
        amp_min = self._clamp("amp_min")
        amp_max = self._clamp("amp_max")

        scratch = self._scratch
        muted = scratch.mask
        flag = scratch.flag
        amp_slope = self._slope(input_frame["amp"], self._previous["amp"], scratch[0], scratch[2])
        freq_slope = self._slope(input_frame["freq"], self._previous["freq"], scratch[1], scratch[2])
        with np.errstate(invalid="ignore"):
            np.less(amp_slope, amp_min, out=muted)
            np.greater(amp_slope, amp_max, out=flag)
            muted |= flag
            np.less(freq_slope, freq_min, out=flag)
            muted |= flag
            np.greater(freq_slope, freq_max, out=flag)
            muted |= flag

        np.copyto(output_frame["freq"], input_frame["freq"])
        np.copyto(output_frame["amp"], input_frame["amp"])
        np.copyto(output_frame["amp"], 0.0, where=muted)
        np.copyto(self._previous, input_frame)


class TimeBlur(Effect):
    """Exponentially smooth bins across time with asymmetric attack/release.

    After smoothing, ``replace_high`` pulls the smoothed amplitude toward a
    louder instantaneous value and ``replace_low`` toward a quieter one.
    """

    __slots__ = (
        "freq_alpha",
        "amp_alpha",
        "freq_mix",
        "amp_mix",
        "replace_high",
        "replace_low",
        "_smoothed",
    )
    type_name = "TimeBlur"
    tunables = ("freq_alpha", "amp_alpha", "freq_mix", "amp_mix", "replace_high", "replace_low")

    def __init__(
        self,
        channels: int,
        bins: int,
        freq_alpha: float = 0.5,
        amp_alpha: float = 0.5,
        freq_mix: float = 0.5,
        amp_mix: float = 1.0,
        replace_high: float = 0.8,
        replace_low: float = 0.2,
    ) -> None:
        super().__init__(channels, bins)
        self.freq_alpha = freq_alpha
        self.amp_alpha = amp_alpha
        self.freq_mix = freq_mix
        self.amp_mix = amp_mix
        self.replace_high = replace_high
        self.replace_low = replace_low
        self._smoothed = np.zeros((self.channels, self.bins), dtype=BIN_DTYPE)

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        freq_alpha = self._clamp("freq_alpha")
        amp_alpha = self._clamp("amp_alpha")
        freq_mix = self._clamp("freq_mix")
        amp_mix = self._clamp("amp_mix")
        replace_high = self._clamp("replace_high")
        replace_low = self._clamp("replace_low")

        amp = input_frame["amp"]
        freq = input_frame["freq"]
        smooth_amp = self._smoothed["amp"]
        smooth_freq = self._smoothed["freq"]
        tmp = self._scratch[0]
        candidate = self._scratch[1]
        louder = self._scratch.mask

        with np.errstate(invalid="ignore", over="ignore"):
            lerp(smooth_freq, freq, freq_alpha, out=smooth_freq, tmp=tmp)
            lerp(smooth_amp, amp, amp_alpha, out=smooth_amp, tmp=tmp)

            np.greater(amp, smooth_amp, out=louder)
            lerp(amp, smooth_amp, replace_high, out=candidate, tmp=tmp)
            np.copyto(smooth_amp, candidate, where=louder)

            np.less(amp, smooth_amp, out=louder)
            lerp(amp, smooth_amp, replace_low, out=candidate, tmp=tmp)
            np.copyto(smooth_amp, candidate, where=louder)

            lerp(smooth_freq, freq, freq_mix, out=output_frame["freq"], tmp=tmp)
            lerp(smooth_amp, amp, amp_mix, out=output_frame["amp"], tmp=tmp)


class Stencil(Effect):
    """Average a programmable 4x4 neighbourhood of bins over the last 4 frames.

    Bit ``x*4 + y`` of ``stencil`` enables the tap at bin ``j + x - 2`` of the
    frame ``y`` steps back from the newest. Taps that would fall within two
    bins of either edge are skipped. Bins with no contributing tap stay at
    zero.
    """

    __slots__ = ("stencil", "_buffer", "_time", "_taps", "_tapped")
    type_name = "Stencil"
    tunables = ("stencil",)
    scratch_planes = 0

    def __init__(self, channels: int, bins: int, stencil: int = 100) -> None:
        super().__init__(channels, bins)
        self.stencil = stencil
        self._buffer = np.zeros((STENCIL_SIZE, self.channels, self.bins), dtype=BIN_DTYPE)
        self._time = 0
        self._taps = np.zeros(self.bins, dtype=RAW_DTYPE)
        self._tapped = np.zeros(self.bins, dtype=bool)

    @property
    def cursor(self) -> int:
        return self._time

    def process(self, sample_rate, channels, bins, input_frame, output_frame):
        stencil = self._clamp("stencil")
        size = STENCIL_SIZE

        self._time %= size
        time = self._time
        np.copyto(self._buffer[time], input_frame)
        output_frame.fill(0)
        out_amp = output_frame["amp"]
        out_freq = output_frame["freq"]
        taps = self._taps
        taps.fill(0.0)

        with np.errstate(invalid="ignore", over="ignore"):
            for x in range(size):
                lo = max(0, 2 - x)
                hi = bins - 2 - x
                if hi <= lo:
                    continue
                for y in range(size):
                    if not (stencil >> (x * size + y)) & 1:
                        continue
                    frame = self._buffer[(time + size - y) % size]
                    src = slice(lo + x - 2, hi + x - 2)
                    out_amp[:, lo:hi] += frame["amp"][:, src]
                    out_freq[:, lo:hi] += frame["freq"][:, src]
                    taps[lo:hi] += 1.0

            tapped = np.greater(taps, 0.0, out=self._tapped)
            np.divide(out_amp, taps, out=out_amp, where=tapped)
            np.divide(out_freq, taps, out=out_freq, where=tapped)
        self._time = (time + 1) % size


EFFECT_TYPES = {
    "Through": Through,
    "through": Through,
    "Centroid": Centroid,
    "centroid": Centroid,
    "BinFlipper": BinFlipper,
    "bin_flipper": BinFlipper,
    "Gate": Gate,
    "gate": Gate,
    "ModularAmp": ModularAmp,
    "modular_amp": ModularAmp,
    "FormantShifter": FormantShifter,
    "formant_shifter": FormantShifter,
    "FreqShifter": FreqShifter,
    "freq_shifter": FreqShifter,
    "PitchShifter": PitchShifter,
    "pitch_shifter": PitchShifter,
    "DomainXOver": DomainXOver,
    "domain_xover": DomainXOver,
    "ExpAvg": ExpAvg,
    "exp_avg": ExpAvg,
    "AmpDelay": AmpDelay,
    "amp_delay": AmpDelay,
    "Repeater": Repeater,
    "repeater": Repeater,
    "Scrambler": Scrambler,
    "scrambler": Scrambler,
    "SlopeFilter": SlopeFilter,
    "slope_filter": SlopeFilter,
    "TimeBlur": TimeBlur,
    "time_blur": TimeBlur,
    "Stencil": Stencil,
    "stencil": Stencil,
}


__all__ = [
    "EFFECT_TYPES",
    "Effect",
    "Through",
    "Centroid",
    "BinFlipper",
    "Gate",
    "ModularAmp",
    "FormantShifter",
    "FreqShifter",
    "PitchShifter",
    "DomainXOver",
    "ExpAvg",
    "AmpDelay",
    "Repeater",
    "Scrambler",
    "SlopeFilter",
    "TimeBlur",
    "Stencil",
]
