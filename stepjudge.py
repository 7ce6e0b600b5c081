"""
stepjudge.py

Command line entrypoint.

Commands
- parse FILE      Parse a step file and print a JSON summary of the song and its charts.
- autoplay FILE   Play a chart with perfectly timed input and print the results.
- demo            Autoplay the built-in demo chart.
- config          Print the effective configuration.

Exit codes: 0 on success, 2 on parse or config errors.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import chart_parser
import config as config_module
import demo_chart
import gameplay_models
import play_session

logger = logging.getLogger(__name__)


def _song_summary(song: gameplay_models.Song) -> Dict[str, Any]:
    return {
        "title": song.title,
        "subtitle": song.subtitle,
        "artist": song.artist,
        "bpm": song.bpm,
        "offset_ms": song.offset_ms,
        "music": song.music,
        "charts": [
            {
                "difficulty": chart.difficulty.value,
                "level": chart.level,
                "notes": len(chart.notes),
                "judgments": chart.judgment_count(),
                "duration_ms": chart.duration_ms(),
            }
            for chart in song.charts
        ],
    }


def _print_json(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _select_chart(song: gameplay_models.Song, difficulty: Optional[str]) -> gameplay_models.Chart:
    if difficulty:
        return song.chart_for(difficulty)
    return song.charts[0]


def _autoplay(song: gameplay_models.Song, difficulty: Optional[str], app_config: config_module.AppConfig) -> int:
    chart = _select_chart(song, difficulty)
    session = play_session.PlaySession.from_config(song, chart, app_config)
    results = play_session.play_autoplay(session)
    _print_json({"ok": True, "results": results.to_dict()})
    return 0


def _build_argument_parser() -> argparse.ArgumentParser:
    argument_parser = argparse.ArgumentParser(prog="stepjudge", description="Step chart parser and judgement engine")
    argument_parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    subparsers = argument_parser.add_subparsers(dest="command", required=True)

    parse_parser = subparsers.add_parser("parse", help="Parse a step file and print a summary.")
    parse_parser.add_argument("path", type=Path)
    parse_parser.add_argument("--strict", action="store_true", help="Reject non-standard measure subdivisions.")

    autoplay_parser = subparsers.add_parser("autoplay", help="Autoplay a chart and print results.")
    autoplay_parser.add_argument("path", type=Path)
    autoplay_parser.add_argument("--difficulty", default=None, help="Beginner, Easy, Medium, Hard or Challenge.")

    demo_parser = subparsers.add_parser("demo", help="Autoplay the built-in demo chart.")
    demo_parser.add_argument("--difficulty", default="easy")

    subparsers.add_parser("config", help="Print the effective configuration.")
    return argument_parser


def main(argv: Optional[List[str]] = None) -> int:
    parsed_args = _build_argument_parser().parse_args(argv)

    try:
        app_config, config_path = config_module.get_config()
    except config_module.ConfigError as exception:
        logging.basicConfig(level=logging.WARNING)
        _print_json({"ok": False, "error": str(exception)})
        return 2

    log_level = logging.DEBUG if parsed_args.verbose else getattr(logging, app_config.logging.level)
    logging.basicConfig(level=log_level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    strict = bool(getattr(parsed_args, "strict", False)) or app_config.parser.strict_subdivisions

    try:
        if parsed_args.command == "config":
            _print_json(
                {
                    "ok": True,
                    "config_path": str(config_path) if config_path is not None else None,
                    "config": json.loads(config_module.to_json(app_config)),
                }
            )
            return 0

        if parsed_args.command == "demo":
            song = chart_parser.parse_song(demo_chart.build_demo_chart_text(difficulty=parsed_args.difficulty))
            return _autoplay(song, None, app_config)

        song = chart_parser.load_song(parsed_args.path, strict_subdivisions=strict)
        if parsed_args.command == "parse":
            _print_json({"ok": True, "song": _song_summary(song)})
            return 0
        return _autoplay(song, parsed_args.difficulty, app_config)

    except chart_parser.ParseError as exception:
        logger.debug("Parse failed", exc_info=True)
        _print_json(
            {
                "ok": False,
                "error": exception.message,
                "kind": exception.kind.value,
                "line": exception.line_number,
            }
        )
        return 2
    except (KeyError, ValueError) as exception:
        _print_json({"ok": False, "error": str(exception)})
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
