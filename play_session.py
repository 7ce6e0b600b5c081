# -*- coding: utf-8 -*-
########################
# play_session.py
########################
# Purpose:
# - One play session of one chart: TimingModel + NoteScheduler + JudgeEngine + ScoreState.
# - Autoplay helpers that hit every note on time.
#
# Design notes:
# - Single writer. The caller serializes ticks and input events; nothing here is thread safe.
# - Uses TimingModel as the single source of truth for song time.
# - Every judgement goes through score.apply in the order JudgeEngine emits it.
# - tick() must run before handle_input() on each frame so timeout misses land first.
#
########################
# Interfaces:
# Public dataclasses:
# - SessionState(difficulty: str, is_finished: bool, failed: bool, judged: int, total: int)
#
# Public classes:
# - class PlaySession
#   - __init__(song, chart, *, judgement_windows=None, initial_health=50.0,
#              audio_offset_ms=0.0, hold_release_grace_ms=200.0)
#   - from_config(song, chart, app_config) -> PlaySession
#   - timing_model -> TimingModel
#   - chart() -> Chart
#   - judgement_windows() -> JudgementWindows
#   - tick(player_time_ms: float) -> list[Judgment]
#   - handle_input(input_event: InputEvent) -> Optional[Judgment]
#   - score_state() -> ScoreState
#   - judgments() -> tuple[Judgment, ...]
#   - is_finished() -> bool
#   - state() -> SessionState
#   - results() -> ResultsData
#
# Public functions:
# - autoplay_inputs(chart: Chart) -> list[InputEvent]
# - run_autoplay(song: Song, chart: Chart, **session_kwargs) -> ResultsData
# - play_autoplay(session: PlaySession) -> ResultsData
#
########################

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, List, Optional, Tuple

import gameplay_models
import judge
import note_scheduler
import score
import timing_model

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    difficulty: str
    is_finished: bool
    failed: bool
    judged: int
    total: int


class PlaySession:
    def __init__(
        self,
        song: gameplay_models.Song,
        chart: gameplay_models.Chart,
        *,
        judgement_windows: Optional[judge.JudgementWindows] = None,
        initial_health: float = score.DEFAULT_INITIAL_HEALTH,
        audio_offset_ms: float = 0.0,
        hold_release_grace_ms: float = judge.DEFAULT_HOLD_RELEASE_GRACE_MS,
    ) -> None:
        self._song = song
        self._chart = chart
        self._timing = timing_model.TimingModel(av_offset_ms=audio_offset_ms)
        self._note_scheduler = note_scheduler.NoteScheduler(chart)
        self._judge_engine = judge.JudgeEngine(
            self._note_scheduler,
            judgement_windows,
            hold_release_grace_ms=hold_release_grace_ms,
        )
        self._score_state = score.create_score_state(chart.judgment_count(), initial_health=initial_health)
        self._judgments: List[gameplay_models.Judgment] = []
        self._finish_logged = False

    @classmethod
    def from_config(cls, song: gameplay_models.Song, chart: gameplay_models.Chart, app_config: Any) -> "PlaySession":
        return cls(
            song,
            chart,
            judgement_windows=app_config.judgment.to_windows(),
            initial_health=app_config.scoring.initial_health,
            audio_offset_ms=app_config.timing.audio_offset_ms,
            hold_release_grace_ms=app_config.judgment.hold_release_grace_ms,
        )

    @property
    def timing_model(self) -> timing_model.TimingModel:
        return self._timing

    def _apply(self, judgment: gameplay_models.Judgment) -> None:
        was_failed = self._score_state.failed
        self._score_state = score.apply(self._score_state, judgment)
        self._judgments.append(judgment)

        if self._score_state.failed and not was_failed:
            logger.info("Lifebar depleted on %r (%s) after %d judgements",
                        self._song.title, self._chart.difficulty.value, self._score_state.total_judged)
        if not self._finish_logged and self.is_finished():
            self._finish_logged = True
            logger.info("Finished %r (%s): score=%d", self._song.title, self._chart.difficulty.value,
                        score.final_score(self._score_state))

    def _apply_emitted(self) -> List[gameplay_models.Judgment]:
        emitted = self._judge_engine.drain_judgements()
        for judgment in emitted:
            self._apply(judgment)
        return emitted

    def tick(self, player_time_ms: float) -> List[gameplay_models.Judgment]:
        self._timing.update_player_time_ms(player_time_ms)
        self._judge_engine.update_for_time(self._timing.song_time_ms())
        return self._apply_emitted()

    def handle_input(self, input_event: gameplay_models.InputEvent) -> Optional[gameplay_models.Judgment]:
        judgment = self._judge_engine.evaluate(self._timing.song_time_ms(), input_event)
        self._apply_emitted()
        return judgment

    def chart(self) -> gameplay_models.Chart:
        return self._chart

    def judgement_windows(self) -> judge.JudgementWindows:
        return self._judge_engine.judgement_windows()

    def score_state(self) -> score.ScoreState:
        return self._score_state

    def judgments(self) -> Tuple[gameplay_models.Judgment, ...]:
        return tuple(self._judgments)

    def is_finished(self) -> bool:
        return self._note_scheduler.pending_count() == 0

    def state(self) -> SessionState:
        return SessionState(
            difficulty=self._chart.difficulty.value,
            is_finished=self.is_finished(),
            failed=self._score_state.failed,
            judged=self._score_state.total_judged,
            total=self._score_state.total_notes,
        )

    def results(self) -> score.ResultsData:
        return score.generate_results(self._score_state, self._song, self._chart, self._judgments)


def autoplay_inputs(chart: gameplay_models.Chart) -> List[gameplay_models.InputEvent]:
    events: List[gameplay_models.InputEvent] = []
    for note in chart.notes:
        events.append(gameplay_models.InputEvent(direction=note.direction, time_ms=float(note.time_ms)))
        if note.is_hold and note.end_time_ms is not None:
            events.append(
                gameplay_models.InputEvent(direction=note.direction, time_ms=float(note.end_time_ms), pressed=False)
            )
    # Presses before releases at equal times.
    events.sort(key=lambda event: (event.time_ms, event.pressed is False, event.direction.lane))
    return events


def run_autoplay(song: gameplay_models.Song, chart: gameplay_models.Chart, **session_kwargs: Any) -> score.ResultsData:
    return play_autoplay(PlaySession(song, chart, **session_kwargs))


def play_autoplay(session: PlaySession) -> score.ResultsData:
    chart = session.chart()
    offset_ms = session.timing_model.av_offset_ms()

    for event in autoplay_inputs(chart):
        session.tick(event.time_ms - offset_ms)
        session.handle_input(event)

    end_time_ms = chart.duration_ms() + session.judgement_windows().boo_ms + 1.0
    session.tick(end_time_ms - offset_ms)
    return session.results()
