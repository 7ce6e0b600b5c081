# -*- coding: utf-8 -*-
########################
# note_scheduler.py
########################
# Purpose:
# - Organize chart notes into per-lane schedules for efficient judgement.
# - Tracks judgement state (per ScheduledNote) and provides nearest-note, timeout and jump queries.
#
# Design notes:
# - Schedule order is deterministic: sort by (time_ms, lane).
# - This module owns the list of notes and their judged state; other modules query it.
# - Jumps are derived on demand by grouping pending notes on time_ms. Nothing stores a jump.
# - A hold note stays unresolved after its head is judged until JudgeEngine resolves the tail.
#
########################
# Interfaces:
# Public dataclasses:
# - ScheduledNote(
#     note: Note,
#     is_judged: bool = False,
#     judgement: Optional[JudgmentGrade] = None,
#     judgement_delta_ms: Optional[float] = None,
#     hold_started: bool = False,
#     hold_resolved: bool = False,
#   )
#
# Public classes:
# - class NoteScheduler
#   - __init__(chart: gameplay_models.Chart)
#   - chart() -> gameplay_models.Chart
#   - reset() -> None
#   - mark_judged(scheduled_note, *, judgement, delta_ms) -> None
#   - mark_hold_resolved(scheduled_note) -> None
#   - find_nearest_unjudged_note(*, direction, target_time_ms, max_window_ms, earliest_note_time_ms=None)
#       -> Optional[ScheduledNote]
#   - advance_lane_index(direction) -> None
#   - unjudged_notes_past_window(*, song_time_ms, window_ms) -> list[ScheduledNote]
#   - unjudged_notes_before(*, direction, time_ms) -> list[ScheduledNote]
#   - active_holds(direction=None) -> list[ScheduledNote]
#   - pending_jump_groups() -> list[tuple[float, list[ScheduledNote]]]
#   - pending_count() -> int
#
########################

from __future__ import annotations

from dataclasses import dataclass
import itertools
from typing import Dict, List, Optional, Tuple

import gameplay_models


@dataclass
class ScheduledNote:
    note: gameplay_models.Note
    is_judged: bool = False
    judgement: Optional[gameplay_models.JudgmentGrade] = None
    judgement_delta_ms: Optional[float] = None
    hold_started: bool = False
    hold_resolved: bool = False

    def is_resolved(self) -> bool:
        if not self.is_judged:
            return False
        if self.note.is_hold:
            return self.hold_resolved
        return True


def _schedule_key(scheduled_note: ScheduledNote) -> Tuple[float, int]:
    return (float(scheduled_note.note.time_ms), scheduled_note.note.direction.lane)


class NoteScheduler:
    def __init__(self, chart: gameplay_models.Chart) -> None:
        self._chart = chart
        self._scheduled_notes = sorted(
            (ScheduledNote(note=note) for note in chart.notes),
            key=_schedule_key,
        )
        self._lanes: Dict[gameplay_models.Direction, List[ScheduledNote]] = {}
        for scheduled_note in self._scheduled_notes:
            self._lanes.setdefault(scheduled_note.note.direction, []).append(scheduled_note)
        self._lane_indices: Dict[gameplay_models.Direction, int] = {direction: 0 for direction in self._lanes}

    def chart(self) -> gameplay_models.Chart:
        return self._chart

    def reset(self) -> None:
        for scheduled_note in self._scheduled_notes:
            scheduled_note.is_judged = False
            scheduled_note.judgement = None
            scheduled_note.judgement_delta_ms = None
            scheduled_note.hold_started = False
            scheduled_note.hold_resolved = False
        for direction in self._lane_indices:
            self._lane_indices[direction] = 0

    def mark_judged(
        self,
        scheduled_note: ScheduledNote,
        *,
        judgement: gameplay_models.JudgmentGrade,
        delta_ms: float,
    ) -> None:
        if scheduled_note.is_judged:
            raise ValueError(f"Note {scheduled_note.note.id} was already judged")
        scheduled_note.is_judged = True
        scheduled_note.judgement = judgement
        scheduled_note.judgement_delta_ms = float(delta_ms)

    def mark_hold_resolved(self, scheduled_note: ScheduledNote) -> None:
        scheduled_note.hold_resolved = True

    def _lane_list(self, direction: gameplay_models.Direction) -> List[ScheduledNote]:
        return self._lanes.get(direction, [])

    def advance_lane_index(self, direction: gameplay_models.Direction) -> None:
        lane_list = self._lane_list(direction)
        index = int(self._lane_indices.get(direction, 0))
        while index < len(lane_list) and lane_list[index].is_judged:
            index += 1
        self._lane_indices[direction] = index

    def find_nearest_unjudged_note(
        self,
        *,
        direction: gameplay_models.Direction,
        target_time_ms: float,
        max_window_ms: float,
        earliest_note_time_ms: Optional[float] = None,
    ) -> Optional[ScheduledNote]:
        lane_list = self._lane_list(direction)
        if not lane_list:
            return None

        target = float(target_time_ms)
        start = target - float(max_window_ms)
        end = target + float(max_window_ms)
        if earliest_note_time_ms is not None:
            start = max(start, float(earliest_note_time_ms))

        best_note: Optional[ScheduledNote] = None
        best_abs_delta = float("inf")

        for index in range(int(self._lane_indices.get(direction, 0)), len(lane_list)):
            candidate = lane_list[index]
            if candidate.is_judged:
                continue
            note_time = float(candidate.note.time_ms)
            if note_time < start:
                continue
            if note_time > end:
                break

            abs_delta = abs(target - note_time)
            # Strict comparison keeps the earlier note when two are equidistant.
            if abs_delta < best_abs_delta:
                best_note = candidate
                best_abs_delta = abs_delta

        return best_note

    def unjudged_notes_past_window(self, *, song_time_ms: float, window_ms: float) -> List[ScheduledNote]:
        cutoff_time = float(song_time_ms) - float(window_ms)
        candidates: List[ScheduledNote] = []

        for direction, lane_list in self._lanes.items():
            for index in range(int(self._lane_indices.get(direction, 0)), len(lane_list)):
                scheduled_note = lane_list[index]
                if scheduled_note.is_judged:
                    continue
                if float(scheduled_note.note.time_ms) < cutoff_time:
                    candidates.append(scheduled_note)
                else:
                    break

        candidates.sort(key=_schedule_key)
        return candidates

    def unjudged_notes_before(
        self,
        *,
        direction: gameplay_models.Direction,
        time_ms: float,
    ) -> List[ScheduledNote]:
        lane_list = self._lane_list(direction)
        earlier: List[ScheduledNote] = []
        for index in range(int(self._lane_indices.get(direction, 0)), len(lane_list)):
            scheduled_note = lane_list[index]
            if float(scheduled_note.note.time_ms) >= float(time_ms):
                break
            if not scheduled_note.is_judged:
                earlier.append(scheduled_note)
        return earlier

    def active_holds(self, direction: Optional[gameplay_models.Direction] = None) -> List[ScheduledNote]:
        return [
            scheduled_note
            for scheduled_note in self._scheduled_notes
            if scheduled_note.hold_started
            and not scheduled_note.hold_resolved
            and (direction is None or scheduled_note.note.direction is direction)
        ]

    def pending_jump_groups(self) -> List[Tuple[float, List[ScheduledNote]]]:
        pending = [scheduled_note for scheduled_note in self._scheduled_notes if not scheduled_note.is_judged]
        return [
            (float(time_ms), list(group))
            for time_ms, group in itertools.groupby(pending, key=lambda item: float(item.note.time_ms))
        ]

    def pending_count(self) -> int:
        return sum(1 for scheduled_note in self._scheduled_notes if not scheduled_note.is_resolved())


def _run_unit_tests() -> None:
    direction = gameplay_models.Direction
    notes = (
        gameplay_models.Note(id=0, time_ms=500.0, direction=direction.UP),
        gameplay_models.Note(id=1, time_ms=1000.0, direction=direction.DOWN),
        gameplay_models.Note(id=2, time_ms=1000.0, direction=direction.LEFT),
    )
    chart = gameplay_models.Chart(difficulty=gameplay_models.Difficulty.EASY, level=1, notes=notes)
    scheduler = NoteScheduler(chart)

    groups = [(time_ms, [item.note.id for item in group]) for time_ms, group in scheduler.pending_jump_groups()]
    assert groups == [(500.0, [0]), (1000.0, [2, 1])]

    nearest = scheduler.find_nearest_unjudged_note(direction=direction.LEFT, target_time_ms=1000.0, max_window_ms=180.0)
    assert nearest is not None and nearest.note.id == 2

    missed = scheduler.unjudged_notes_past_window(song_time_ms=1000.0, window_ms=180.0)
    assert [item.note.id for item in missed] == [0]


if __name__ == "__main__":
    _run_unit_tests()
    print("note_scheduler.py: ok")
