# -*- coding: utf-8 -*-
########################
# timing_model.py
########################
# Purpose:
# - Beat <-> millisecond conversion shared by chart_parser (build time) and JudgeEngine (play time).
# - Single source of truth for song time during a play session.
#
# Design notes:
# - Conversion functions are pure and stateless.
# - Arithmetic is generic over numbers: Fraction inputs stay exact, float inputs stay float.
# - Chart times are always recomputed from beat indexes, never accumulated row by row.
# - TimingModel clamps player time to non-negative and applies an AV offset.
#
########################
# Interfaces:
# Public functions:
# - ms_per_beat(bpm) -> number
# - time_from_beat(bpm, beat, offset_ms=0) -> number
# - beat_from_time(bpm, time_ms, offset_ms=0) -> number
# - measure_info(bpm, time_ms, offset_ms=0) -> MeasureInfo
#
# Public dataclasses:
# - MeasureInfo(measure: int, beat_in_measure: float)
# - TimingSnapshot(player_time_ms: float, av_offset_ms: float, song_time_ms: float)
#
# Public classes:
# - class TimingModel
#   - player_time_ms() -> float
#   - av_offset_ms() -> float
#   - song_time_ms() -> float
#   - set_av_offset_ms(av_offset_ms: float) -> None
#   - update_player_time_ms(player_time_ms: float) -> None
#   - snapshot() -> TimingSnapshot
#
########################

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
import math
from numbers import Real

BEATS_PER_MEASURE = 4
MS_PER_MINUTE = 60000


@dataclass(frozen=True)
class MeasureInfo:
    measure: int
    beat_in_measure: float


def ms_per_beat(bpm: Real) -> Real:
    if not bpm > 0:
        raise ValueError(f"BPM must be positive, got {bpm!r}")
    if isinstance(bpm, (int, Fraction)):
        return Fraction(MS_PER_MINUTE) / bpm
    return MS_PER_MINUTE / float(bpm)


def time_from_beat(bpm: Real, beat: Real, offset_ms: Real = 0) -> Real:
    return beat * ms_per_beat(bpm) + offset_ms


def beat_from_time(bpm: Real, time_ms: Real, offset_ms: Real = 0) -> Real:
    return (time_ms - offset_ms) / ms_per_beat(bpm)


def measure_info(bpm: Real, time_ms: Real, offset_ms: Real = 0) -> MeasureInfo:
    total_beats = beat_from_time(bpm, time_ms, offset_ms)
    measure = math.floor(total_beats / BEATS_PER_MEASURE)
    beat_in_measure = total_beats - measure * BEATS_PER_MEASURE
    return MeasureInfo(measure=int(measure), beat_in_measure=float(beat_in_measure))


@dataclass(frozen=True)
class TimingSnapshot:
    player_time_ms: float
    av_offset_ms: float
    song_time_ms: float


class TimingModel:
    def __init__(self, av_offset_ms: float = 0.0) -> None:
        self._player_time_ms = 0.0
        self._av_offset_ms = float(av_offset_ms)

    def player_time_ms(self) -> float:
        return float(self._player_time_ms)

    def av_offset_ms(self) -> float:
        return float(self._av_offset_ms)

    def song_time_ms(self) -> float:
        # AV offset may be negative, so song time may be negative near start.
        return float(self._player_time_ms) + float(self._av_offset_ms)

    def set_av_offset_ms(self, av_offset_ms: float) -> None:
        self._av_offset_ms = float(av_offset_ms)

    def update_player_time_ms(self, player_time_ms: float) -> None:
        value = float(player_time_ms)
        if value < 0.0:
            value = 0.0
        self._player_time_ms = value

    def snapshot(self) -> TimingSnapshot:
        return TimingSnapshot(
            player_time_ms=self.player_time_ms(),
            av_offset_ms=self.av_offset_ms(),
            song_time_ms=self.song_time_ms(),
        )


def _run_unit_tests() -> None:
    assert time_from_beat(Fraction(120), Fraction(2)) == 1000
    assert beat_from_time(120.0, 1000.0) == 2.0
    assert abs(beat_from_time(133.7, time_from_beat(133.7, 17.25, -42.0), -42.0) - 17.25) < 1e-9
    assert measure_info(120, 2500) == MeasureInfo(measure=1, beat_in_measure=1.0)

    model = TimingModel()
    model.set_av_offset_ms(-200.0)
    model.update_player_time_ms(-5000.0)
    assert model.player_time_ms() == 0.0
    assert model.song_time_ms() == -200.0

    model.update_player_time_ms(1500.0)
    assert model.snapshot().song_time_ms == 1300.0


if __name__ == "__main__":
    _run_unit_tests()
    print("timing_model.py: ok")
