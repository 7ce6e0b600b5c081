# -*- coding: utf-8 -*-
########################
# gameplay_models.py
########################
# Purpose:
# - Core value types for the chart -> judgement -> score pipeline.
# - Defines Song, Chart, Note and the gameplay events exchanged between modules.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - All models are frozen dataclasses. Sequences are stored as tuples.
# - A jump is several Notes sharing one time_ms. There is no jump type.
#
########################
# Interfaces:
# Public enums:
# - class Direction(enum.Enum): LEFT | DOWN | UP | RIGHT
# - class Difficulty(enum.Enum): BEGINNER | EASY | MEDIUM | HARD | CHALLENGE
# - class JudgmentGrade(enum.Enum): MARVELOUS | PERFECT | GREAT | GOOD | BOO | MISS
# - class LetterGrade(enum.Enum): AAAA | AAA | AA | A | B | C | D
# - class NoteType(enum.Enum): TAP | HOLD
#
# Public dataclasses:
# - Note(id: int, time_ms: float, direction: Direction, note_type: NoteType, end_time_ms: Optional[float])
# - Chart(difficulty: Difficulty, level: int, notes: tuple[Note, ...])
# - Song(title: str, artist: str, bpm: float, offset_ms: float, music: str, charts: tuple[Chart, ...], ...)
# - InputEvent(direction: Direction, time_ms: float, pressed: bool)
# - Judgment(note_id: int, timing_diff_ms: float, grade: JudgmentGrade, time_ms: float, direction: Direction)
#
# Inputs/Outputs:
# - These types are exchanged between chart_parser, NoteScheduler, JudgeEngine, score and PlaySession.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Optional, Tuple


class Direction(enum.Enum):
    LEFT = "left"
    DOWN = "down"
    UP = "up"
    RIGHT = "right"

    @property
    def lane(self) -> int:
        return _LANE_ORDER.index(self)

    @classmethod
    def from_lane(cls, lane: int) -> "Direction":
        return _LANE_ORDER[int(lane)]


_LANE_ORDER: Tuple[Direction, ...] = (Direction.LEFT, Direction.DOWN, Direction.UP, Direction.RIGHT)


class Difficulty(enum.Enum):
    BEGINNER = "Beginner"
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"
    CHALLENGE = "Challenge"

    @classmethod
    def normalize(cls, difficulty: object) -> "Difficulty":
        if isinstance(difficulty, Difficulty):
            return difficulty
        difficulty_text = str(difficulty or "").strip().lower()
        for member in cls:
            if member.value.lower() == difficulty_text:
                return member
        raise ValueError(
            f"Unsupported difficulty: {difficulty!r}. Allowed: {[member.value for member in cls]}"
        )


class JudgmentGrade(enum.Enum):
    """Judgement grades from best to worst."""

    MARVELOUS = "marvelous"
    PERFECT = "perfect"
    GREAT = "great"
    GOOD = "good"
    BOO = "boo"
    MISS = "miss"


class LetterGrade(enum.Enum):
    AAAA = "AAAA"
    AAA = "AAA"
    AA = "AA"
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class NoteType(enum.Enum):
    TAP = "tap"
    HOLD = "hold"


@dataclass(frozen=True)
class Note:
    id: int
    time_ms: float
    direction: Direction
    note_type: NoteType = NoteType.TAP
    end_time_ms: Optional[float] = None

    @property
    def is_hold(self) -> bool:
        return self.note_type is NoteType.HOLD

    def judgment_count(self) -> int:
        # Holds are judged on the head and again on the tail.
        return 2 if self.is_hold else 1


@dataclass(frozen=True)
class Chart:
    difficulty: Difficulty
    level: int
    notes: Tuple[Note, ...]

    def judgment_count(self) -> int:
        return sum(note.judgment_count() for note in self.notes)

    def duration_ms(self) -> float:
        if not self.notes:
            return 0.0
        return max(float(note.end_time_ms if note.end_time_ms is not None else note.time_ms) for note in self.notes)


@dataclass(frozen=True)
class Song:
    title: str
    artist: str
    bpm: float
    offset_ms: float
    music: str
    charts: Tuple[Chart, ...]
    subtitle: str = ""
    banner: Optional[str] = None
    background: Optional[str] = None
    preview_start_seconds: float = 0.0

    def chart_for(self, difficulty: object) -> Chart:
        wanted = Difficulty.normalize(difficulty)
        for chart in self.charts:
            if chart.difficulty is wanted:
                return chart
        raise KeyError(f"Song {self.title!r} has no {wanted.value} chart")


@dataclass(frozen=True)
class InputEvent:
    direction: Direction
    time_ms: float
    pressed: bool = True


@dataclass(frozen=True)
class Judgment:
    note_id: int
    timing_diff_ms: float
    grade: JudgmentGrade
    time_ms: float
    direction: Direction
