# -*- coding: utf-8 -*-
########################
# judge.py
########################
# Purpose:
# - Hit judgement engine.
# - Matches InputEvent to the nearest unjudged ScheduledNote within timing windows.
# - Generates Judgment values for hits, hold tails and timeout misses.
#
# Design notes:
# - Pure gameplay logic. Scoring lives in score.py; this module only produces judgements.
# - Strict inputs: consume only InputEvent and the caller's current song time in ms.
# - Scheduler owns the note list; JudgeEngine marks ScheduledNote judgement fields via scheduler boundary.
# - Windows are symmetric and inclusive: |diff| <= window.
# - A note whose boo window has elapsed is only ever resolved by update_for_time, never by input.
# - A press that matches a note first times out any earlier unjudged notes in the same lane, so a
#   lane never resolves out of note order. evaluate() returns only the hit; drain_judgements() returns
#   everything emitted, misses included, in the order it must be scored.
#
########################
# Interfaces:
# Public dataclasses:
# - JudgementWindows(marvelous_ms, perfect_ms, great_ms, good_ms, boo_ms)
#   - classify(diff_ms: float) -> Optional[JudgmentGrade]
#
# Public classes:
# - class JudgeEngine
#   - __init__(note_scheduler: NoteScheduler, judgement_windows: JudgementWindows, *, hold_release_grace_ms: float)
#   - judgement_windows() -> JudgementWindows
#   - drain_judgements() -> list[Judgment]
#   - reset() -> None
#   - evaluate(current_time_ms: float, input_event: InputEvent) -> Optional[Judgment]
#   - update_for_time(current_time_ms: float) -> list[Judgment]
#
# Outputs:
# - Judgment objects in non-decreasing note time order per update call.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional, Tuple

import gameplay_models
import note_scheduler

logger = logging.getLogger(__name__)

Grade = gameplay_models.JudgmentGrade

DEFAULT_HOLD_RELEASE_GRACE_MS = 200.0


@dataclass(frozen=True)
class JudgementWindows:
    marvelous_ms: float = 22.5
    perfect_ms: float = 45.0
    great_ms: float = 90.0
    good_ms: float = 135.0
    boo_ms: float = 180.0

    def __post_init__(self) -> None:
        ordered = self.as_ordered()
        previous = 0.0
        for grade, window_ms in ordered:
            if not float(window_ms) > previous:
                raise ValueError(
                    f"Judgement windows must be positive and strictly ascending; {grade.value} window is {window_ms!r}"
                )
            previous = float(window_ms)

    def as_ordered(self) -> Tuple[Tuple[gameplay_models.JudgmentGrade, float], ...]:
        return (
            (Grade.MARVELOUS, self.marvelous_ms),
            (Grade.PERFECT, self.perfect_ms),
            (Grade.GREAT, self.great_ms),
            (Grade.GOOD, self.good_ms),
            (Grade.BOO, self.boo_ms),
        )

    def classify(self, diff_ms: float) -> Optional[gameplay_models.JudgmentGrade]:
        abs_diff = abs(float(diff_ms))
        for grade, window_ms in self.as_ordered():
            if abs_diff <= float(window_ms):
                return grade
        return None


class JudgeEngine:
    def __init__(
        self,
        note_scheduler_obj: note_scheduler.NoteScheduler,
        judgement_windows: Optional[JudgementWindows] = None,
        *,
        hold_release_grace_ms: float = DEFAULT_HOLD_RELEASE_GRACE_MS,
    ) -> None:
        self._note_scheduler = note_scheduler_obj
        self._judgement_windows = judgement_windows if judgement_windows is not None else JudgementWindows()
        self._hold_release_grace_ms = float(hold_release_grace_ms)
        self._recent_judgements: List[gameplay_models.Judgment] = []

    def judgement_windows(self) -> JudgementWindows:
        return self._judgement_windows

    def drain_judgements(self) -> List[gameplay_models.Judgment]:
        # Emission order, which is the order the scorer must apply them in.
        drained = list(self._recent_judgements)
        self._recent_judgements.clear()
        return drained

    def reset(self) -> None:
        self._note_scheduler.reset()
        self._recent_judgements.clear()

    def _record(self, judgment: gameplay_models.Judgment) -> gameplay_models.Judgment:
        self._recent_judgements.append(judgment)
        return judgment

    def _time_out(
        self,
        scheduled_note: note_scheduler.ScheduledNote,
        now: float,
    ) -> List[gameplay_models.Judgment]:
        note = scheduled_note.note
        diff_ms = now - float(note.time_ms)
        self._note_scheduler.mark_judged(scheduled_note, judgement=Grade.MISS, delta_ms=diff_ms)
        self._note_scheduler.advance_lane_index(note.direction)
        judgments = [
            gameplay_models.Judgment(
                note_id=note.id, timing_diff_ms=diff_ms, grade=Grade.MISS, time_ms=now, direction=note.direction
            )
        ]
        if note.is_hold:
            # An unstarted hold still owes its tail judgement.
            end_time_ms = float(note.end_time_ms if note.end_time_ms is not None else note.time_ms)
            self._note_scheduler.mark_hold_resolved(scheduled_note)
            judgments.append(
                gameplay_models.Judgment(
                    note_id=note.id,
                    timing_diff_ms=now - end_time_ms,
                    grade=Grade.MISS,
                    time_ms=now,
                    direction=note.direction,
                )
            )
        return judgments

    def evaluate(
        self,
        current_time_ms: float,
        input_event: gameplay_models.InputEvent,
    ) -> Optional[gameplay_models.Judgment]:
        if not input_event.pressed:
            return self._evaluate_release(input_event)

        window_ms = float(self._judgement_windows.boo_ms)
        scheduled_note = self._note_scheduler.find_nearest_unjudged_note(
            direction=input_event.direction,
            target_time_ms=float(input_event.time_ms),
            max_window_ms=window_ms,
            earliest_note_time_ms=float(current_time_ms) - window_ms,
        )
        if scheduled_note is None:
            logger.debug("Dropped %s press at %.3f ms: no note in window", input_event.direction.value, input_event.time_ms)
            return None

        note = scheduled_note.note
        diff_ms = float(input_event.time_ms) - float(note.time_ms)
        grade = self._judgement_windows.classify(diff_ms)
        if grade is None:
            return None

        # Earlier notes in this lane can no longer be hit once a later one is; they miss first.
        skipped = self._note_scheduler.unjudged_notes_before(direction=note.direction, time_ms=float(note.time_ms))
        for skipped_note in skipped:
            logger.debug("Note %d skipped by press on note %d", skipped_note.note.id, note.id)
            for judgment in self._time_out(skipped_note, float(current_time_ms)):
                self._record(judgment)

        self._note_scheduler.mark_judged(scheduled_note, judgement=grade, delta_ms=diff_ms)
        self._note_scheduler.advance_lane_index(note.direction)
        if note.is_hold:
            scheduled_note.hold_started = True

        return self._record(
            gameplay_models.Judgment(
                note_id=note.id,
                timing_diff_ms=diff_ms,
                grade=grade,
                time_ms=float(input_event.time_ms),
                direction=note.direction,
            )
        )

    def _evaluate_release(self, input_event: gameplay_models.InputEvent) -> Optional[gameplay_models.Judgment]:
        active = self._note_scheduler.active_holds(input_event.direction)
        if not active:
            return None

        scheduled_note = active[0]
        note = scheduled_note.note
        end_time_ms = float(note.end_time_ms if note.end_time_ms is not None else note.time_ms)
        time_until_end = end_time_ms - float(input_event.time_ms)
        grade = Grade.BOO if time_until_end > self._hold_release_grace_ms else Grade.PERFECT

        self._note_scheduler.mark_hold_resolved(scheduled_note)
        return self._record(
            gameplay_models.Judgment(
                note_id=note.id,
                timing_diff_ms=float(input_event.time_ms) - end_time_ms,
                grade=grade,
                time_ms=float(input_event.time_ms),
                direction=note.direction,
            )
        )

    def update_for_time(self, current_time_ms: float) -> List[gameplay_models.Judgment]:
        now = float(current_time_ms)
        emitted: List[Tuple[Tuple[float, int, int], gameplay_models.Judgment]] = []

        candidates = self._note_scheduler.unjudged_notes_past_window(
            song_time_ms=now,
            window_ms=float(self._judgement_windows.boo_ms),
        )
        for scheduled_note in candidates:
            note = scheduled_note.note
            for part, judgment in enumerate(self._time_out(scheduled_note, now)):
                emitted.append(((float(note.time_ms), note.direction.lane, part), judgment))

        for scheduled_note in self._note_scheduler.active_holds():
            note = scheduled_note.note
            end_time_ms = float(note.end_time_ms if note.end_time_ms is not None else note.time_ms)
            if now < end_time_ms:
                continue
            self._note_scheduler.mark_hold_resolved(scheduled_note)
            emitted.append(
                (
                    (float(note.time_ms), note.direction.lane, 1),
                    gameplay_models.Judgment(
                        note_id=note.id, timing_diff_ms=0.0, grade=Grade.PERFECT, time_ms=now, direction=note.direction
                    ),
                )
            )

        emitted.sort(key=lambda item: item[0])
        return [self._record(judgment) for _key, judgment in emitted]


def _run_unit_tests() -> None:
    chart = gameplay_models.Chart(
        difficulty=gameplay_models.Difficulty.EASY,
        level=1,
        notes=(gameplay_models.Note(id=0, time_ms=1000.0, direction=gameplay_models.Direction.LEFT),),
    )
    scheduler = note_scheduler.NoteScheduler(chart)
    engine = JudgeEngine(scheduler, JudgementWindows())

    hit = engine.evaluate(1000.0, gameplay_models.InputEvent(direction=gameplay_models.Direction.LEFT, time_ms=1023.0))
    assert hit is not None
    assert hit.grade is Grade.PERFECT

    stray = engine.evaluate(1000.0, gameplay_models.InputEvent(direction=gameplay_models.Direction.DOWN, time_ms=1000.0))
    assert stray is None

    engine.reset()
    misses = engine.update_for_time(2000.0)
    assert [judgment.grade for judgment in misses] == [Grade.MISS]


if __name__ == "__main__":
    _run_unit_tests()
    print("judge.py: ok")
