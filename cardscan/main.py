"""Command line entry point.

Replays recognition results (text dumps) or recognizes still images through
the same extraction and consensus pipeline the live scanner uses.

    cardscan replay dump1.txt dump2.txt ...
    cardscan replay --split session.txt
    cardscan image --rotation 90 card1.jpg card2.jpg ...
"""
import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Iterator, List, Optional

import cv2

from . import __version__
from .config.settings import Config, load_config
from .core.exceptions import ApplicationError, RecognitionError
from .core.logging_config import configure_logging
from .services.recognition_service import CallableRecognitionEngine, TesseractRecognitionEngine
from .services.scan_session_service import ScanSessionService

logger = logging.getLogger(__name__)

_BLOCK_SEPARATOR = re.compile(r"^---[ \t]*$", re.MULTILINE)


def read_text_blocks(paths: List[str], split: bool = False) -> Iterator[str]:
    """Yield one recognition result per file, or per ``---`` block with ``split``."""
    for path in paths:
        text = Path(path).read_text(encoding="utf-8")
        if split:
            for block in _BLOCK_SEPARATOR.split(text):
                if block.strip():
                    yield block.strip("\n")
        else:
            yield text


def _build_session(config: Config, engine) -> ScanSessionService:
    session = ScanSessionService(
        config=config,
        engine=engine,
        on_live_text=lambda text: print(text, end="\n\n") if text else None,
        on_final_record=lambda record, report: print(report),
    )
    session.initialize()
    session.start()
    return session


def _exit_code(session: ScanSessionService) -> int:
    if session.final_record is not None:
        return 0
    progress = session.aggregator.progress()
    print(f"Scan incomplete: {progress.counts} of {progress.capacity} per group", file=sys.stderr)
    return 1


def run_replay(config: Config, paths: List[str], split: bool) -> int:
    engine = CallableRecognitionEngine(lambda image, rotation: "", name="replay")
    session = _build_session(config, engine)
    try:
        for text in read_text_blocks(paths, split):
            if session.handle_recognition_result(text) is not None:
                break
        return _exit_code(session)
    finally:
        session.shutdown()


def run_images(config: Config, paths: List[str], rotation: int) -> int:
    engine = TesseractRecognitionEngine(
        language=config.recognizer_language,
        tesseract_config=config.tesseract_config,
    )
    session = _build_session(config, engine)
    try:
        for path in paths:
            image = cv2.imread(path, cv2.IMREAD_COLOR)
            if image is None:
                logger.error(f"Could not read image '{path}'")
                continue
            try:
                text = engine.recognize(image, rotation)
            except RecognitionError as e:
                logger.error(f"Recognition failed for '{path}': {e}")
                continue
            if session.handle_recognition_result(text) is not None:
                break
        return _exit_code(session)
    finally:
        session.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cardscan",
        description="Extract identity-card fields by cross-frame consensus"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        default="cardscan.json",
        help="Path to the JSON configuration file"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    replay = subparsers.add_parser("replay", help="Feed recorded recognition text")
    replay.add_argument("files", nargs="+", help="Text files with recognition output")
    replay.add_argument(
        "--split",
        action="store_true",
        help="Treat '---' lines as separators between results"
    )

    image = subparsers.add_parser("image", help="Recognize still images with Tesseract")
    image.add_argument("files", nargs="+", help="Image files, one per frame")
    image.add_argument(
        "--rotation",
        type=int,
        default=0,
        help="Clockwise degrees that make the images upright (multiple of 90)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "image" and args.rotation % 90:
        parser.error(f"--rotation must be a multiple of 90, got {args.rotation}")

    config = load_config(args.config)
    configure_logging(
        log_level=args.log_level or config.log_level,
        log_dir=config.log_dir,
        enable_file_logging=config.enable_file_logging,
        structured_logging=config.structured_logging,
    )

    try:
        if args.command == "replay":
            return run_replay(config, args.files, args.split)
        return run_images(config, args.files, args.rotation)
    except (OSError, ApplicationError) as e:
        logger.error(f"cardscan failed: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
