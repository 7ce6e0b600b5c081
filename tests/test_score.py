"""Tests for score module."""

from __future__ import annotations

from typing import Dict, Iterable

import pytest

from gameplay_models import (
    Chart,
    Difficulty,
    Direction,
    Judgment,
    JudgmentGrade,
    LetterGrade,
    Note,
    Song,
)
from score import (
    MAX_SCORE,
    ScoreOverflowError,
    ScoreState,
    apply,
    combo_multiplier,
    create_score_state,
    final_score,
    generate_results,
    is_full_combo,
    letter_grade,
    percentage,
)


def _judgment(grade: JudgmentGrade, note_id: int = 0, timing_diff_ms: float = 0.0,
              direction: Direction = Direction.LEFT) -> Judgment:
    return Judgment(note_id=note_id, timing_diff_ms=timing_diff_ms, grade=grade, time_ms=0.0, direction=direction)


def _apply_all(state: ScoreState, grades: Iterable[JudgmentGrade]) -> ScoreState:
    for index, grade in enumerate(grades):
        state = apply(state, _judgment(grade, note_id=index))
    return state


def _state_with_counts(counts: Dict[JudgmentGrade, int]) -> ScoreState:
    total = sum(counts.values())
    state = create_score_state(total)
    grades = [grade for grade, count in counts.items() for _ in range(count)]
    return _apply_all(state, grades)


class TestCreateScoreState:
    """Tests for create_score_state."""

    def test_initial_values(self) -> None:
        """A fresh state has zero score and combo and default health."""
        state = create_score_state(100)
        assert state.raw_score == 0
        assert state.combo == 0
        assert state.max_combo == 0
        assert state.total_notes == 100
        assert state.total_judged == 0
        assert state.health == 50.0
        assert state.failed is False
        assert all(count == 0 for count in state.judgment_counts.values())
        assert set(state.judgment_counts) == set(JudgmentGrade)

    def test_negative_total_rejected(self) -> None:
        """total_notes cannot be negative."""
        with pytest.raises(ValueError):
            create_score_state(-1)

    def test_initial_health_clamped(self) -> None:
        """Initial health is clamped into range."""
        assert create_score_state(1, initial_health=250.0).health == 100.0


class TestComboMultiplier:
    """Tests for combo_multiplier."""

    @pytest.mark.parametrize(
        ("combo", "expected"),
        [(0, 1), (5, 1), (9, 1), (10, 2), (15, 2), (19, 2), (20, 3), (25, 3), (29, 3), (30, 4), (100, 4), (1000, 4)],
    )
    def test_steps_every_ten(self, combo: int, expected: int) -> None:
        """The multiplier grows by one every ten combo and caps at four."""
        assert combo_multiplier(combo) == expected


class TestApply:
    """Tests for apply."""

    @pytest.mark.parametrize("grade", [JudgmentGrade.MARVELOUS, JudgmentGrade.PERFECT, JudgmentGrade.GREAT])
    def test_combo_grades_increment(self, grade: JudgmentGrade) -> None:
        """Marvelous, perfect and great extend the combo."""
        state = apply(create_score_state(10), _judgment(grade))
        assert state.combo == 1
        assert state.max_combo == 1
        assert state.judgment_counts[grade] == 1

    @pytest.mark.parametrize("grade", [JudgmentGrade.GOOD, JudgmentGrade.BOO, JudgmentGrade.MISS])
    def test_breaking_grades_reset_combo(self, grade: JudgmentGrade) -> None:
        """Good, boo and miss break the combo and keep max combo."""
        state = _apply_all(create_score_state(30), [JudgmentGrade.MARVELOUS] * 25)
        state = apply(state, _judgment(grade))
        assert state.combo == 0
        assert state.max_combo == 25
        assert state.judgment_counts[grade] == 1

    def test_max_combo_tracks_best_run(self) -> None:
        """max_combo is the longest run seen."""
        state = create_score_state(100)
        state = _apply_all(state, [JudgmentGrade.MARVELOUS] * 15)
        state = apply(state, _judgment(JudgmentGrade.MISS))
        assert (state.combo, state.max_combo) == (0, 15)
        state = _apply_all(state, [JudgmentGrade.PERFECT] * 10)
        assert state.max_combo == 15
        state = _apply_all(state, [JudgmentGrade.GREAT] * 10)
        assert state.max_combo == 20

    def test_raw_score_uses_multiplier(self) -> None:
        """Raw score adds base score times the multiplier of the new combo."""
        state = _apply_all(create_score_state(10), [JudgmentGrade.MARVELOUS] * 10)
        # Combos 1..9 at x1, combo 10 at x2.
        assert state.raw_score == 9 * 100 + 200

    def test_state_is_immutable(self) -> None:
        """apply returns a new state and leaves the old one alone."""
        before = create_score_state(1)
        after = apply(before, _judgment(JudgmentGrade.MARVELOUS))
        assert before.total_judged == 0
        assert before.judgment_counts[JudgmentGrade.MARVELOUS] == 0
        assert after.total_judged == 1

    def test_histogram_is_read_only(self) -> None:
        """A state's judgement counts cannot be changed in place."""
        state = apply(create_score_state(2), _judgment(JudgmentGrade.GREAT))
        with pytest.raises(TypeError):
            state.judgment_counts[JudgmentGrade.MARVELOUS] = 5  # type: ignore[index]
        assert state.judgment_counts[JudgmentGrade.MARVELOUS] == 0
        assert create_score_state(1) == create_score_state(1)

    def test_overflow_rejected(self) -> None:
        """Applying more judgements than total_notes raises."""
        state = apply(create_score_state(1), _judgment(JudgmentGrade.MARVELOUS))
        with pytest.raises(ScoreOverflowError):
            apply(state, _judgment(JudgmentGrade.MARVELOUS, note_id=1))

    def test_overflow_on_empty_chart(self) -> None:
        """An empty chart accepts no judgements."""
        with pytest.raises(ScoreOverflowError):
            apply(create_score_state(0), _judgment(JudgmentGrade.MISS))


class TestHealth:
    """Tests for the lifebar."""

    def test_health_deltas(self) -> None:
        """Each grade moves health by its fixed delta."""
        state = create_score_state(10)
        state = apply(state, _judgment(JudgmentGrade.MARVELOUS))
        assert state.health == 52.0
        state = apply(state, _judgment(JudgmentGrade.PERFECT))
        assert state.health == 53.5
        state = apply(state, _judgment(JudgmentGrade.GREAT))
        assert state.health == 54.0
        state = apply(state, _judgment(JudgmentGrade.GOOD))
        assert state.health == 51.5
        state = apply(state, _judgment(JudgmentGrade.BOO))
        assert state.health == 45.5
        state = apply(state, _judgment(JudgmentGrade.MISS))
        assert state.health == 35.5

    def test_health_capped_at_max(self) -> None:
        """Health never exceeds 100."""
        state = _apply_all(create_score_state(40), [JudgmentGrade.MARVELOUS] * 40)
        assert state.health == 100.0

    def test_failure_is_sticky(self) -> None:
        """Running out of health fails the run permanently."""
        state = _apply_all(create_score_state(20), [JudgmentGrade.MISS] * 5)
        assert state.health == 0.0
        assert state.failed is True
        state = _apply_all(state, [JudgmentGrade.MARVELOUS] * 10)
        assert state.health == 20.0
        assert state.failed is True


class TestFinalScoreAndPercentage:
    """Tests for final_score and percentage."""

    def test_all_marvelous_is_max(self) -> None:
        """Every marvelous gives exactly one million."""
        state = _state_with_counts({JudgmentGrade.MARVELOUS: 100})
        assert final_score(state) == MAX_SCORE
        assert percentage(state) == 100.0

    def test_all_misses_is_zero(self) -> None:
        """Every miss gives zero."""
        state = _state_with_counts({JudgmentGrade.MISS: 100})
        assert final_score(state) == 0
        assert percentage(state) == 0.0

    def test_mixed_judgements(self) -> None:
        """Marvelous, perfect, great and miss average to 657,500."""
        state = _apply_all(
            create_score_state(4),
            [JudgmentGrade.MARVELOUS, JudgmentGrade.PERFECT, JudgmentGrade.GREAT, JudgmentGrade.MISS],
        )
        assert final_score(state) == 657_500

    def test_combo_does_not_affect_final_score(self) -> None:
        """Final score depends only on the histogram."""
        broken = _apply_all(
            create_score_state(12), [JudgmentGrade.MARVELOUS] * 5 + [JudgmentGrade.MISS] + [JudgmentGrade.MARVELOUS] * 6
        )
        ordered = _apply_all(
            create_score_state(12), [JudgmentGrade.MARVELOUS] * 11 + [JudgmentGrade.MISS]
        )
        assert broken.raw_score != ordered.raw_score
        assert final_score(broken) == final_score(ordered)

    def test_final_score_is_floored(self) -> None:
        """Non-integral results round down."""
        state = _state_with_counts({JudgmentGrade.MARVELOUS: 2, JudgmentGrade.GREAT: 1})
        # 265 * 10000 / 3 = 883333.33...
        assert final_score(state) == 883_333

    def test_empty_state(self) -> None:
        """Nothing judged yet scores zero."""
        state = create_score_state(0)
        assert final_score(state) == 0
        assert percentage(state) == 0.0

    def test_partial_progress_normalized_by_judged(self) -> None:
        """Mid-song values are relative to what has been judged so far."""
        state = _apply_all(create_score_state(100), [JudgmentGrade.MARVELOUS] * 10)
        assert final_score(state) == MAX_SCORE

    def test_hold_chart_cannot_exceed_100_percent(self) -> None:
        """Five taps and five holds give fifteen judgements, all marvelous is 100%."""
        state = _apply_all(create_score_state(15), [JudgmentGrade.MARVELOUS] * 15)
        assert percentage(state) == 100.0
        assert final_score(state) == MAX_SCORE

    def test_hold_heads_and_tails_mixed(self) -> None:
        """Ten marvelous heads and ten perfect tails give 99%."""
        state = _apply_all(create_score_state(20), [JudgmentGrade.MARVELOUS] * 10 + [JudgmentGrade.PERFECT] * 10)
        assert percentage(state) == 99.0
        assert final_score(state) == 990_000


class TestLetterGrade:
    """Tests for letter_grade."""

    @pytest.mark.parametrize(
        ("counts", "expected"),
        [
            ({JudgmentGrade.MARVELOUS: 100}, LetterGrade.AAAA),
            ({JudgmentGrade.MARVELOUS: 50, JudgmentGrade.PERFECT: 50}, LetterGrade.AAA),
            ({JudgmentGrade.PERFECT: 100}, LetterGrade.AAA),
            ({JudgmentGrade.MARVELOUS: 93, JudgmentGrade.GREAT: 7}, LetterGrade.AA),
            ({JudgmentGrade.MARVELOUS: 70, JudgmentGrade.GREAT: 30}, LetterGrade.A),
            ({JudgmentGrade.MARVELOUS: 40, JudgmentGrade.GREAT: 60}, LetterGrade.B),
            ({JudgmentGrade.MARVELOUS: 45, JudgmentGrade.MISS: 55}, LetterGrade.C),
            ({JudgmentGrade.MARVELOUS: 40, JudgmentGrade.MISS: 60}, LetterGrade.D),
            ({JudgmentGrade.MISS: 100}, LetterGrade.D),
        ],
    )
    def test_grade_for_histogram(self, counts: Dict[JudgmentGrade, int], expected: LetterGrade) -> None:
        """Grades follow the histogram rules then the percentage cutoffs."""
        assert letter_grade(_state_with_counts(counts)) is expected

    def test_nothing_judged_is_d(self) -> None:
        """An untouched state grades D."""
        assert letter_grade(create_score_state(0)) is LetterGrade.D


class TestResults:
    """Tests for is_full_combo and generate_results."""

    def _song(self) -> Song:
        chart = Chart(
            difficulty=Difficulty.HARD,
            level=9,
            notes=(
                Note(id=0, time_ms=0.0, direction=Direction.LEFT),
                Note(id=1, time_ms=500.0, direction=Direction.RIGHT),
                Note(id=2, time_ms=1000.0, direction=Direction.RIGHT),
            ),
        )
        return Song(title="Results", artist="Unknown Artist", bpm=120.0, offset_ms=0.0, music="r.ogg", charts=(chart,))

    def test_full_combo_allows_great(self) -> None:
        """Greats keep a full combo; goods do not."""
        assert is_full_combo(_state_with_counts({JudgmentGrade.MARVELOUS: 3, JudgmentGrade.GREAT: 1}))
        assert not is_full_combo(_state_with_counts({JudgmentGrade.MARVELOUS: 3, JudgmentGrade.GOOD: 1}))
        assert not is_full_combo(create_score_state(0))

    def test_generate_results(self) -> None:
        """Results summarize score, grade and per-direction timing."""
        song = self._song()
        chart = song.charts[0]
        judgments = [
            _judgment(JudgmentGrade.MARVELOUS, note_id=0, timing_diff_ms=-10.0, direction=Direction.LEFT),
            _judgment(JudgmentGrade.PERFECT, note_id=1, timing_diff_ms=30.0, direction=Direction.RIGHT),
            _judgment(JudgmentGrade.MISS, note_id=2, timing_diff_ms=181.0, direction=Direction.RIGHT),
        ]
        state = create_score_state(chart.judgment_count())
        for judgment in judgments:
            state = apply(state, judgment)

        results = generate_results(state, song, chart, judgments)
        assert results.song_title == "Results"
        assert results.difficulty is Difficulty.HARD
        assert results.level == 9
        assert results.score == 660_000
        assert results.grade is LetterGrade.B
        assert results.max_combo == 2
        assert results.is_full_combo is False
        assert results.direction_stats[Direction.LEFT].avg_timing_ms == -10.0
        assert results.direction_stats[Direction.RIGHT].count == 1
        assert results.direction_stats[Direction.UP].count == 0

        payload = results.to_dict()
        assert payload["grade"] == "B"
        assert payload["difficulty"] == "Hard"
        assert payload["judgment_counts"]["miss"] == 1
        assert payload["direction_stats"]["right"] == {"count": 1, "avg_timing_ms": 30.0}
