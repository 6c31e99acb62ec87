#!/usr/bin/env python3
"""Analyse a CCTV clip against every active missing person from the shell.

Matches and alerts land in `MISSINGWATCH_DATA_ROOT` like API-driven runs.
Realtime events are in-process, so a separately running API does not stream
them.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from apps.api.services.analysis import AnalysisService
from py_missingwatch.config import load_analysis_config
from py_missingwatch.errors import MissingWatchError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
LOGGER = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compare faces in a video against registered missing persons")
    parser.add_argument("video", type=Path, help="Path to the video file")
    parser.add_argument("--location", help="Where the footage was recorded")
    parser.add_argument("--frame-count", type=int, help="Frames to sample (overrides config)")
    parser.add_argument("--config", type=Path, help="Path to a custom analysis YAML")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use the simulated face detector (no insightface models needed)",
    )
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if not args.video.is_file():
        LOGGER.error("Video not found: %s", args.video)
        return 2
    if args.simulate:
        os.environ["MISSINGWATCH_VISION_SIM"] = "1"

    service = AnalysisService(config_loader=lambda: load_analysis_config(args.config))
    try:
        result = service.analyze_video(
            args.video,
            video_filename=args.video.name,
            location=args.location,
            frame_count=args.frame_count,
            progress=lambda message: print(f"... {message}", file=sys.stderr),
        )
    except MissingWatchError as exc:
        LOGGER.error("Analysis failed: %s", exc)
        return 1

    if args.json:
        print(json.dumps(result, indent=2, default=str))
        return 0

    summary = result["summary"]
    print(result["message"])
    print(
        f"frames={summary['frames_sampled']} faces={summary['faces_detected']} "
        f"unique={summary['unique_faces']} comparisons={summary['comparisons']} "
        f"failed={summary['failed_comparisons']}"
    )
    for match in result["matches"]:
        print(f"  {match['person']['name']}: {match['confidence']:.0f}% - {match['reasoning']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
