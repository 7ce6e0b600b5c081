# -*- coding: utf-8 -*-
########################
# chart_parser.py
########################
# Purpose:
# - Parse step-file text into a gameplay_models.Song with one or more timestamped charts.
#
# Design notes:
# - Line oriented, single pass over the text. Never silently accept invalid charts.
# - Rows are kept per measure while scanning; note times are computed once all headers are known,
#   so header placement in the file does not matter.
# - Note times use exact Fraction arithmetic recomputed from (measure, row) indexes, then rounded
#   half-even to microsecond precision.
# - Every failure is a ParseError carrying a ParseErrorKind and, where known, a 1-based line number.
#
########################
# Interfaces:
# Public enums:
# - class ParseErrorKind(enum.Enum)
#
# Public exceptions:
# - class ParseError(Exception)
#   - kind: ParseErrorKind
#   - message: str
#   - line_number: Optional[int]
#
# Public functions:
# - parse_song(text: str, *, strict_subdivisions: bool = False) -> gameplay_models.Song
# - load_song(path: pathlib.Path, *, strict_subdivisions: bool = False) -> gameplay_models.Song
#
# Inputs:
# - Step-file text:
#     #TITLE:Song
#     #BPM:120
#     #MUSIC:song.ogg
#     //--- CHART: Easy (Level 3) ---
#     L...
#     ....
#     ...R
#     ....
#     ,
#
# Outputs:
# - Immutable Song, or ParseError. No partial song is ever returned.
#
########################

from __future__ import annotations

from dataclasses import dataclass, field
import enum
from fractions import Fraction
import logging
from pathlib import Path
import re
from typing import Dict, List, Optional, Tuple

import gameplay_models
import timing_model

logger = logging.getLogger(__name__)


class ParseErrorKind(enum.Enum):
    UNREADABLE = "unreadable"
    INVALID_HEADER = "invalid_header"
    MISSING_HEADER = "missing_header"
    INVALID_NUMBER = "invalid_number"
    INVALID_BPM = "invalid_bpm"
    INVALID_CHART_DECLARATION = "invalid_chart_declaration"
    INVALID_DIFFICULTY = "invalid_difficulty"
    INVALID_LEVEL = "invalid_level"
    NOTES_OUTSIDE_CHART = "notes_outside_chart"
    INVALID_ROW_LENGTH = "invalid_row_length"
    INVALID_ROW_CHARACTER = "invalid_row_character"
    UNUSUAL_SUBDIVISION = "unusual_subdivision"
    NEGATIVE_NOTE_TIME = "negative_note_time"
    NO_CHARTS = "no_charts"


class ParseError(Exception):
    """Raised when step-file text cannot be turned into a valid Song."""

    def __init__(self, kind: ParseErrorKind, message: str, line_number: Optional[int] = None) -> None:
        self.kind = kind
        self.message = str(message)
        self.line_number = line_number
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.line_number is None:
            return self.message
        return f"line {self.line_number}: {self.message}"


REQUIRED_HEADERS = ("TITLE", "BPM", "MUSIC")
KNOWN_HEADERS = {"TITLE", "SUBTITLE", "ARTIST", "BPM", "OFFSET", "MUSIC", "BANNER", "BACKGROUND", "SAMPLESTART"}

ROW_WIDTH = 4
EMPTY_SYMBOL = "."
ROW_SYMBOLS = frozenset(".LDUR")
MEASURE_SEPARATOR = ","

# Documentation convention only. Other counts are accepted unless strict_subdivisions is set.
STANDARD_SUBDIVISIONS = (4, 8, 12, 16, 24, 32, 48, 64, 96, 192)

_CHART_MARKER_PATTERN = re.compile(r"^//-{3}\s*CHART\s*:", re.IGNORECASE)
_CHART_DECLARATION_PATTERN = re.compile(
    r"^//-{3}\s*CHART\s*:\s*(?P<difficulty>\S+)\s*\(\s*Level\s+(?P<level>[^)]*?)\s*\)\s*-*\s*$",
    re.IGNORECASE,
)
_HEADER_PATTERN = re.compile(r"^#(?P<key>[A-Za-z0-9_]+)\s*:(?P<value>.*)$")


@dataclass
class _Measure:
    rows: List[Tuple[int, str]] = field(default_factory=list)


@dataclass
class _ChartDraft:
    difficulty: gameplay_models.Difficulty
    level: int
    line_number: int
    measures: List[_Measure] = field(default_factory=list)


@dataclass
class _ScanState:
    headers: Dict[str, Tuple[str, int]] = field(default_factory=dict)
    charts: List[_ChartDraft] = field(default_factory=list)
    buffer: _Measure = field(default_factory=_Measure)

    def current_chart(self) -> Optional[_ChartDraft]:
        return self.charts[-1] if self.charts else None

    def flush_measure(self, *, line_number: Optional[int]) -> None:
        chart = self.current_chart()
        if chart is None:
            return
        if not self.buffer.rows:
            logger.warning("Empty measure ignored (line %s)", line_number)
            return
        chart.measures.append(self.buffer)
        self.buffer = _Measure()


def _parse_chart_declaration(line_text: str, line_number: int) -> _ChartDraft:
    match = _CHART_DECLARATION_PATTERN.match(line_text)
    if match is None:
        raise ParseError(
            ParseErrorKind.INVALID_CHART_DECLARATION,
            f"Malformed chart declaration {line_text!r}. Expected '//--- CHART: <Difficulty> (Level <N>) ---'",
            line_number,
        )

    difficulty_text = match.group("difficulty")
    try:
        difficulty = gameplay_models.Difficulty.normalize(difficulty_text)
    except ValueError:
        allowed = ", ".join(member.value for member in gameplay_models.Difficulty)
        raise ParseError(
            ParseErrorKind.INVALID_DIFFICULTY,
            f"Invalid difficulty {difficulty_text!r}. Allowed: {allowed}",
            line_number,
        ) from None

    level_text = match.group("level")
    try:
        level = int(level_text)
    except ValueError:
        raise ParseError(
            ParseErrorKind.INVALID_LEVEL,
            f"Invalid level {level_text!r} for {difficulty.value} chart. Level must be an integer",
            line_number,
        ) from None

    return _ChartDraft(difficulty=difficulty, level=level, line_number=line_number)


def _validate_row(row_text: str, line_number: int) -> None:
    if len(row_text) != ROW_WIDTH:
        raise ParseError(
            ParseErrorKind.INVALID_ROW_LENGTH,
            f"Invalid row {row_text!r}: expected {ROW_WIDTH} characters, got {len(row_text)}",
            line_number,
        )
    for column, symbol in enumerate(row_text):
        if symbol not in ROW_SYMBOLS:
            raise ParseError(
                ParseErrorKind.INVALID_ROW_CHARACTER,
                f"Invalid character {symbol!r} at column {column + 1} in row {row_text!r}. "
                f"Allowed: {''.join(sorted(ROW_SYMBOLS))}",
                line_number,
            )


def _scan_lines(text: str) -> _ScanState:
    state = _ScanState()

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line_text = raw_line.strip()
        if not line_text:
            continue

        if line_text.startswith("//"):
            if _CHART_MARKER_PATTERN.match(line_text):
                if state.buffer.rows:
                    state.flush_measure(line_number=line_number)
                state.charts.append(_parse_chart_declaration(line_text, line_number))
            continue

        if line_text.startswith("#"):
            match = _HEADER_PATTERN.match(line_text)
            if match is None:
                raise ParseError(
                    ParseErrorKind.INVALID_HEADER,
                    f"Malformed header {line_text!r}. Expected '#KEY:VALUE'",
                    line_number,
                )
            key = match.group("key").upper()
            value = match.group("value").strip()
            if value.endswith(";"):
                value = value[:-1].strip()
            if key not in KNOWN_HEADERS:
                logger.debug("Ignoring unknown header #%s (line %d)", key, line_number)
            state.headers[key] = (value, line_number)
            continue

        if state.current_chart() is None:
            raise ParseError(
                ParseErrorKind.NOTES_OUTSIDE_CHART,
                f"Note data {line_text!r} before any chart declaration",
                line_number,
            )

        if line_text == MEASURE_SEPARATOR:
            state.flush_measure(line_number=line_number)
            continue

        _validate_row(line_text, line_number)
        state.buffer.rows.append((line_number, line_text))

    # A missing trailing separator still closes the last measure.
    if state.buffer.rows:
        state.flush_measure(line_number=None)

    return state


def _parse_number(headers: Dict[str, Tuple[str, int]], key: str) -> Optional[Fraction]:
    if key not in headers:
        return None
    value_text, line_number = headers[key]
    try:
        return Fraction(value_text.strip())
    except (ValueError, ZeroDivisionError):
        raise ParseError(
            ParseErrorKind.INVALID_NUMBER,
            f"Invalid #{key} value {value_text!r}: expected a number",
            line_number,
        ) from None


def _round_ms(value: Fraction) -> float:
    # Half-even rounding to microseconds keeps times reproducible across platforms.
    return float(Fraction(round(Fraction(value) * 1000), 1000))


def _check_subdivision(rows_in_measure: int, *, line_number: int, strict_subdivisions: bool) -> None:
    if rows_in_measure in STANDARD_SUBDIVISIONS:
        return
    if strict_subdivisions:
        raise ParseError(
            ParseErrorKind.UNUSUAL_SUBDIVISION,
            f"Measure has {rows_in_measure} rows. Allowed subdivisions: {list(STANDARD_SUBDIVISIONS)}",
            line_number,
        )
    logger.warning("Measure starting at line %d has non-standard subdivision of %d rows", line_number, rows_in_measure)


def _build_notes(
    draft: _ChartDraft,
    *,
    bpm: Fraction,
    offset_ms: Fraction,
    strict_subdivisions: bool,
) -> Tuple[gameplay_models.Note, ...]:
    notes: List[gameplay_models.Note] = []

    for measure_index, measure in enumerate(draft.measures):
        rows_in_measure = len(measure.rows)
        _check_subdivision(rows_in_measure, line_number=measure.rows[0][0], strict_subdivisions=strict_subdivisions)

        for row_index, (line_number, row_text) in enumerate(measure.rows):
            if all(symbol == EMPTY_SYMBOL for symbol in row_text):
                continue

            beat = Fraction(measure_index * timing_model.BEATS_PER_MEASURE) + Fraction(
                row_index * timing_model.BEATS_PER_MEASURE, rows_in_measure
            )
            time_ms = _round_ms(timing_model.time_from_beat(bpm, beat, offset_ms))
            if time_ms < 0.0:
                raise ParseError(
                    ParseErrorKind.NEGATIVE_NOTE_TIME,
                    f"Row {row_text!r} lands at {time_ms} ms, before the song starts: "
                    f"#OFFSET is {float(offset_ms / 1000):g} s ({float(offset_ms):g} ms)",
                    line_number,
                )

            for lane, symbol in enumerate(row_text):
                if symbol == EMPTY_SYMBOL:
                    continue
                notes.append(
                    gameplay_models.Note(
                        id=len(notes),
                        time_ms=time_ms,
                        direction=gameplay_models.Direction.from_lane(lane),
                    )
                )

    return tuple(notes)


def parse_song(text: str, *, strict_subdivisions: bool = False) -> gameplay_models.Song:
    state = _scan_lines(str(text))
    headers = state.headers

    for key in REQUIRED_HEADERS:
        if key not in headers or not headers[key][0]:
            raise ParseError(ParseErrorKind.MISSING_HEADER, f"Missing required header: #{key}")

    bpm = _parse_number(headers, "BPM")
    if bpm is None or bpm <= 0:
        raise ParseError(
            ParseErrorKind.INVALID_BPM,
            f"BPM must be a positive number, got {headers['BPM'][0]!r}",
            headers["BPM"][1],
        )

    offset_seconds = _parse_number(headers, "OFFSET") or Fraction(0)
    offset_ms = offset_seconds * 1000
    sample_start = _parse_number(headers, "SAMPLESTART") or Fraction(0)

    if not state.charts:
        raise ParseError(ParseErrorKind.NO_CHARTS, "No chart declarations found. Expected '//--- CHART: <Difficulty> (Level <N>) ---'")

    charts = tuple(
        gameplay_models.Chart(
            difficulty=draft.difficulty,
            level=draft.level,
            notes=_build_notes(draft, bpm=bpm, offset_ms=offset_ms, strict_subdivisions=strict_subdivisions),
        )
        for draft in state.charts
    )

    def header_text(key: str) -> Optional[str]:
        value = headers.get(key, ("", 0))[0]
        return value or None

    song = gameplay_models.Song(
        title=headers["TITLE"][0],
        artist=header_text("ARTIST") or "Unknown Artist",
        bpm=float(bpm),
        offset_ms=float(offset_ms),
        music=headers["MUSIC"][0],
        charts=charts,
        subtitle=header_text("SUBTITLE") or "",
        banner=header_text("BANNER"),
        background=header_text("BACKGROUND"),
        preview_start_seconds=float(sample_start),
    )
    logger.debug(
        "Parsed song %r: %d chart(s), %d note(s)",
        song.title,
        len(song.charts),
        sum(len(chart.notes) for chart in song.charts),
    )
    return song


def load_song(path: Path, *, strict_subdivisions: bool = False) -> gameplay_models.Song:
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(ParseErrorKind.UNREADABLE, f"Chart file is not valid UTF-8: {file_path}") from exc
    except OSError as exc:
        raise ParseError(ParseErrorKind.UNREADABLE, f"Failed to read chart file: {file_path}: {exc}") from exc
    return parse_song(text, strict_subdivisions=strict_subdivisions)


def _run_unit_tests() -> None:
    song = parse_song(
        "#TITLE:Smoke\n#BPM:120\n#MUSIC:smoke.ogg\n//--- CHART: Easy (Level 1) ---\nL...\n....\n...R\n....\n,\n"
    )
    notes = song.charts[0].notes
    assert [(note.time_ms, note.direction.value) for note in notes] == [(0.0, "left"), (1000.0, "right")]

    try:
        parse_song("#TITLE:Zero\n#BPM:0\n#MUSIC:zero.ogg\n//--- CHART: Easy (Level 1) ---\nL...\n")
    except ParseError as exc:
        assert exc.kind is ParseErrorKind.INVALID_BPM
    else:
        raise AssertionError("Expected ParseError for #BPM:0")


if __name__ == "__main__":
    _run_unit_tests()
    print("chart_parser.py: ok")
