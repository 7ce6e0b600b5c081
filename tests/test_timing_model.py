"""Tests for timing_model module."""

from __future__ import annotations

from fractions import Fraction

import pytest

from timing_model import (
    MeasureInfo,
    TimingModel,
    beat_from_time,
    measure_info,
    ms_per_beat,
    time_from_beat,
)


class TestConversions:
    """Tests for the pure beat/ms conversions."""

    def test_time_from_beat_at_120_bpm(self) -> None:
        """Two beats at 120 BPM take one second."""
        assert time_from_beat(120.0, 2.0, 0.0) == 1000.0

    def test_time_from_beat_applies_offset(self) -> None:
        """Offset is added after the beat conversion."""
        assert time_from_beat(120.0, 1.0, -250.0) == 250.0

    def test_beat_from_time_inverts_offset(self) -> None:
        """Offset is removed before the beat conversion."""
        assert beat_from_time(120.0, 250.0, -250.0) == 1.0

    @pytest.mark.parametrize("bpm", [60.0, 97.3, 120.0, 133.7, 181.0, 400.0])
    @pytest.mark.parametrize("beat", [0.0, 0.25, 1.0 / 3.0, 17.75, 511.125])
    @pytest.mark.parametrize("offset_ms", [-1234.5, 0.0, 80.0])
    def test_round_trip(self, bpm: float, beat: float, offset_ms: float) -> None:
        """beat_from_time undoes time_from_beat within floating tolerance."""
        time_ms = time_from_beat(bpm, beat, offset_ms)
        assert beat_from_time(bpm, time_ms, offset_ms) == pytest.approx(beat, abs=1e-9)

    def test_fraction_inputs_stay_exact(self) -> None:
        """Fraction arithmetic has no rounding error on awkward tempos."""
        bpm = Fraction(140)
        beat = Fraction(1000) + Fraction(2, 3)
        time_ms = time_from_beat(bpm, beat, Fraction(0))
        assert isinstance(time_ms, Fraction)
        assert beat_from_time(bpm, time_ms) == beat

    def test_integer_bpm_is_exact(self) -> None:
        """Integer BPM is promoted to Fraction arithmetic."""
        assert ms_per_beat(180) == Fraction(1000, 3)

    @pytest.mark.parametrize("bpm", [0, -10, 0.0, float("nan")])
    def test_non_positive_bpm_rejected(self, bpm: float) -> None:
        """Zero, negative and NaN BPM are rejected."""
        with pytest.raises(ValueError, match="BPM must be positive"):
            ms_per_beat(bpm)


class TestMeasureInfo:
    """Tests for measure_info."""

    def test_second_measure(self) -> None:
        """2500 ms at 120 BPM is beat 1 of measure 1."""
        assert measure_info(120, 2500) == MeasureInfo(measure=1, beat_in_measure=1.0)

    def test_before_offset_is_negative_measure(self) -> None:
        """Times before the offset fall in negative measures."""
        info = measure_info(120, 0, 500)
        assert info.measure == -1
        assert info.beat_in_measure == pytest.approx(3.0)


class TestTimingModel:
    """Tests for the TimingModel song clock."""

    def test_player_time_clamped(self) -> None:
        """Negative player time is clamped to zero."""
        model = TimingModel()
        model.update_player_time_ms(-50.0)
        assert model.player_time_ms() == 0.0

    def test_song_time_applies_offset(self) -> None:
        """Song time is player time plus AV offset."""
        model = TimingModel(av_offset_ms=-180.0)
        model.update_player_time_ms(1000.0)
        assert model.song_time_ms() == 820.0

    def test_snapshot(self) -> None:
        """Snapshot mirrors the accessors."""
        model = TimingModel()
        model.set_av_offset_ms(25.0)
        model.update_player_time_ms(100.0)
        snapshot = model.snapshot()
        assert snapshot.player_time_ms == 100.0
        assert snapshot.av_offset_ms == 25.0
        assert snapshot.song_time_ms == 125.0
