# demo_chart.py
from __future__ import annotations

from typing import List

import gameplay_models

_SYMBOLS = "LDUR"

# Deterministic lane pattern that covers all lanes.
_LANE_PATTERN = [
    0, 1, 2, 3,
    1, 0, 3, 2,
    0, 2, 1, 3,
    2, 3, 0, 1,
]

_DIFFICULTY_SHAPES = {
    # difficulty: (level, rows per measure, step every n rows)
    gameplay_models.Difficulty.BEGINNER: (1, 4, 2),
    gameplay_models.Difficulty.EASY: (3, 4, 1),
    gameplay_models.Difficulty.MEDIUM: (5, 8, 1),
    gameplay_models.Difficulty.HARD: (8, 16, 2),
    gameplay_models.Difficulty.CHALLENGE: (11, 16, 1),
}


def _row_for_lanes(lanes: List[int]) -> str:
    return "".join(_SYMBOLS[lane] if lane in lanes else "." for lane in range(4))


def build_demo_chart_text(*, difficulty: str = "easy", measures: int = 8, bpm: int = 120) -> str:
    normalized_difficulty = gameplay_models.Difficulty.normalize(difficulty or "easy")
    level, rows_per_measure, step_every = _DIFFICULTY_SHAPES[normalized_difficulty]
    with_jumps = normalized_difficulty in (gameplay_models.Difficulty.HARD, gameplay_models.Difficulty.CHALLENGE)

    lines = [
        "#TITLE:Demo Steps",
        "#ARTIST:stepjudge",
        f"#BPM:{bpm}",
        "#OFFSET:0",
        "#MUSIC:demo.ogg",
        f"//--- CHART: {normalized_difficulty.value} (Level {level}) ---",
    ]

    step_index = 0
    for measure_index in range(int(measures)):
        for row_index in range(rows_per_measure):
            if row_index % step_every != 0:
                lines.append("....")
                continue
            lane = _LANE_PATTERN[step_index % len(_LANE_PATTERN)]
            lanes = [lane]
            # A jump on the downbeat of every other measure.
            if with_jumps and row_index == 0 and measure_index % 2 == 1:
                lanes.append((lane + 2) % 4)
            lines.append(_row_for_lanes(lanes))
            step_index += 1
        lines.append(",")

    return "\n".join(lines) + "\n"
