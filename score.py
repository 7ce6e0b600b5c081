# -*- coding: utf-8 -*-
########################
# score.py
########################
# Purpose:
# - Scoring engine: combo, combo multiplier, raw score, judgement histogram, health,
#   normalized final score, percentage and letter grade.
# - Builds the end-of-song ResultsData summary.
#
# Design notes:
# - ScoreState is immutable, judgment_counts included (a read-only mapping). apply(state, judgment)
#   returns a new state; callers retire the old one.
# - total_notes is the number of judgements the chart will produce (holds count twice), so
#   percentage and final score are normalized by judgement count and stay within their bounds.
# - Final score uses exact integer arithmetic.
# - Letter grade uses the judgement histogram for AAAA/AAA, then percentage cutoffs.
#
########################
# Interfaces:
# Public dataclasses:
# - ScoreState(raw_score, combo, max_combo, judgment_counts, total_judged, total_notes, health, failed)
# - DirectionStats(count: int, avg_timing_ms: float, timings_ms: tuple[float, ...])
# - ResultsData(...)
#
# Public exceptions:
# - class ScoreOverflowError(Exception)
#
# Public functions:
# - create_score_state(total_notes: int, *, initial_health: float = 50.0) -> ScoreState
# - combo_multiplier(combo: int) -> int
# - apply(state: ScoreState, judgment: Judgment) -> ScoreState
# - final_score(state) -> int
# - percentage(state) -> float
# - letter_grade(state) -> LetterGrade
# - is_full_combo(state) -> bool
# - generate_results(state, song, chart, judgments) -> ResultsData
#
########################

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Tuple

import gameplay_models

Grade = gameplay_models.JudgmentGrade

MAX_SCORE = 1_000_000
MAX_COMBO_MULTIPLIER = 4
COMBO_MULTIPLIER_STEP = 10

MIN_HEALTH = 0.0
MAX_HEALTH = 100.0
DEFAULT_INITIAL_HEALTH = 50.0

# Percent of one judgement's maximum share.
JUDGMENT_SCORES: Dict[gameplay_models.JudgmentGrade, int] = {
    Grade.MARVELOUS: 100,
    Grade.PERFECT: 98,
    Grade.GREAT: 65,
    Grade.GOOD: 25,
    Grade.BOO: 0,
    Grade.MISS: 0,
}

COMBO_GRADES = frozenset({Grade.MARVELOUS, Grade.PERFECT, Grade.GREAT})

JUDGMENT_HEALTH: Dict[gameplay_models.JudgmentGrade, float] = {
    Grade.MARVELOUS: 2.0,
    Grade.PERFECT: 1.5,
    Grade.GREAT: 0.5,
    Grade.GOOD: -2.5,
    Grade.BOO: -6.0,
    Grade.MISS: -10.0,
}

# Highest first. AAAA and AAA are decided from the histogram before these apply.
GRADE_THRESHOLDS: Tuple[Tuple[gameplay_models.LetterGrade, float], ...] = (
    (gameplay_models.LetterGrade.AA, 93.0),
    (gameplay_models.LetterGrade.A, 80.0),
    (gameplay_models.LetterGrade.B, 65.0),
    (gameplay_models.LetterGrade.C, 45.0),
)


class ScoreOverflowError(Exception):
    """Raised when a judgement would push total_judged past total_notes."""


def _empty_counts() -> Mapping[gameplay_models.JudgmentGrade, int]:
    return MappingProxyType({grade: 0 for grade in Grade})


@dataclass(frozen=True)
class ScoreState:
    raw_score: int = 0
    combo: int = 0
    max_combo: int = 0
    judgment_counts: Mapping[gameplay_models.JudgmentGrade, int] = field(default_factory=_empty_counts)
    total_judged: int = 0
    total_notes: int = 0
    health: float = DEFAULT_INITIAL_HEALTH
    failed: bool = False


def create_score_state(total_notes: int, *, initial_health: float = DEFAULT_INITIAL_HEALTH) -> ScoreState:
    if int(total_notes) < 0:
        raise ValueError(f"total_notes must be non-negative, got {total_notes!r}")
    health = min(MAX_HEALTH, max(MIN_HEALTH, float(initial_health)))
    return ScoreState(total_notes=int(total_notes), health=health, failed=health <= MIN_HEALTH)


def combo_multiplier(combo: int) -> int:
    return min(int(combo) // COMBO_MULTIPLIER_STEP + 1, MAX_COMBO_MULTIPLIER)


def apply(state: ScoreState, judgment: gameplay_models.Judgment) -> ScoreState:
    if state.total_judged >= state.total_notes:
        raise ScoreOverflowError(
            f"Cannot apply judgement for note {judgment.note_id}: "
            f"{state.total_judged} of {state.total_notes} judgements already applied"
        )

    grade = judgment.grade
    if grade in COMBO_GRADES:
        combo = state.combo + 1
    else:
        combo = 0

    counts = dict(state.judgment_counts)
    counts[grade] = counts.get(grade, 0) + 1

    health = min(MAX_HEALTH, max(MIN_HEALTH, state.health + JUDGMENT_HEALTH[grade]))

    return replace(
        state,
        raw_score=state.raw_score + JUDGMENT_SCORES[grade] * combo_multiplier(combo),
        combo=combo,
        max_combo=max(state.max_combo, combo),
        judgment_counts=MappingProxyType(counts),
        total_judged=state.total_judged + 1,
        health=health,
        failed=state.failed or health <= MIN_HEALTH,
    )


def _earned_points(state: ScoreState) -> int:
    return sum(JUDGMENT_SCORES[grade] * int(count) for grade, count in state.judgment_counts.items())


def _judged_count(state: ScoreState) -> int:
    # Histogram is authoritative; it always sums to total_judged for states built by apply().
    return sum(int(count) for count in state.judgment_counts.values())


def final_score(state: ScoreState) -> int:
    judged = _judged_count(state)
    if judged <= 0:
        return 0
    return _earned_points(state) * (MAX_SCORE // 100) // judged


def percentage(state: ScoreState) -> float:
    judged = _judged_count(state)
    if judged <= 0:
        return 0.0
    return _earned_points(state) / judged


def letter_grade(state: ScoreState) -> gameplay_models.LetterGrade:
    counts = state.judgment_counts
    judged = _judged_count(state)
    below_perfect = sum(int(counts.get(grade, 0)) for grade in (Grade.GREAT, Grade.GOOD, Grade.BOO, Grade.MISS))

    if judged > 0 and below_perfect == 0:
        if int(counts.get(Grade.PERFECT, 0)) == 0:
            return gameplay_models.LetterGrade.AAAA
        return gameplay_models.LetterGrade.AAA

    value = percentage(state)
    for grade, threshold in GRADE_THRESHOLDS:
        if value >= threshold:
            return grade
    return gameplay_models.LetterGrade.D


def is_full_combo(state: ScoreState) -> bool:
    counts = state.judgment_counts
    if _judged_count(state) <= 0:
        return False
    return all(int(counts.get(grade, 0)) == 0 for grade in (Grade.GOOD, Grade.BOO, Grade.MISS))


@dataclass(frozen=True)
class DirectionStats:
    count: int
    avg_timing_ms: float
    timings_ms: Tuple[float, ...]


@dataclass(frozen=True)
class ResultsData:
    song_title: str
    difficulty: gameplay_models.Difficulty
    level: int
    score: int
    grade: gameplay_models.LetterGrade
    max_combo: int
    judgment_counts: Mapping[gameplay_models.JudgmentGrade, int]
    total_notes: int
    percentage: float
    failed: bool
    is_full_combo: bool
    direction_stats: Mapping[gameplay_models.Direction, DirectionStats]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "song_title": self.song_title,
            "difficulty": self.difficulty.value,
            "level": self.level,
            "score": self.score,
            "grade": self.grade.value,
            "max_combo": self.max_combo,
            "judgment_counts": {grade.value: int(count) for grade, count in self.judgment_counts.items()},
            "total_notes": self.total_notes,
            "percentage": round(self.percentage, 2),
            "failed": self.failed,
            "is_full_combo": self.is_full_combo,
            "direction_stats": {
                direction.value: {"count": stats.count, "avg_timing_ms": round(stats.avg_timing_ms, 3)}
                for direction, stats in self.direction_stats.items()
            },
        }


def _direction_stats(judgments: Iterable[gameplay_models.Judgment]) -> Dict[gameplay_models.Direction, DirectionStats]:
    timings: Dict[gameplay_models.Direction, List[float]] = {direction: [] for direction in gameplay_models.Direction}
    for judgment in judgments:
        # Misses carry elapsed time, not player timing.
        if judgment.grade is Grade.MISS:
            continue
        timings[judgment.direction].append(float(judgment.timing_diff_ms))

    stats: Dict[gameplay_models.Direction, DirectionStats] = {}
    for direction, values in timings.items():
        average = sum(values) / len(values) if values else 0.0
        stats[direction] = DirectionStats(count=len(values), avg_timing_ms=average, timings_ms=tuple(values))
    return stats


def generate_results(
    state: ScoreState,
    song: gameplay_models.Song,
    chart: gameplay_models.Chart,
    judgments: Iterable[gameplay_models.Judgment] = (),
) -> ResultsData:
    return ResultsData(
        song_title=song.title,
        difficulty=chart.difficulty,
        level=chart.level,
        score=final_score(state),
        grade=letter_grade(state),
        max_combo=state.max_combo,
        judgment_counts=dict(state.judgment_counts),
        total_notes=state.total_notes,
        percentage=percentage(state),
        failed=state.failed,
        is_full_combo=is_full_combo(state),
        direction_stats=_direction_stats(judgments),
    )


def _run_unit_tests() -> None:
    state = create_score_state(4)
    for note_id, grade in enumerate((Grade.MARVELOUS, Grade.PERFECT, Grade.GREAT, Grade.MISS)):
        state = apply(
            state,
            gameplay_models.Judgment(
                note_id=note_id, timing_diff_ms=0.0, grade=grade, time_ms=0.0, direction=gameplay_models.Direction.LEFT
            ),
        )
    assert final_score(state) == 657_500
    assert state.max_combo == 3
    assert state.combo == 0

    assert final_score(create_score_state(0)) == 0
    assert combo_multiplier(29) == 3
    assert combo_multiplier(1000) == 4


if __name__ == "__main__":
    _run_unit_tests()
    print("score.py: ok")
