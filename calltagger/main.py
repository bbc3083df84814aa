"""
Command line entry point.

    calltagger tag --text "We cut onboarding time by 40%..."
    calltagger tag-file transcripts.json
    calltagger calibrate samples.json
    calltagger show-config

Results are printed to stdout as JSON; logs go to stderr and the log file.
"""

import argparse
import asyncio
import json
import sys
from typing import Dict, List, Optional

from .__version__ import __version__
from .core.confidence import ConfidenceCalibrator
from .core.rate_limiter import RateLimiter
from .core.stores import (
    InMemoryTagStore,
    InMemoryTranscriptStore,
    TranscriptNotFoundError,
    ValidationSampleStore,
    load_transcripts_file,
    load_validation_samples_file,
)
from .core.tag_cache import TagCache
from .core.tagger import AITagger
from .providers.base import ProviderError
from .providers.factory import build_client_from_config
from .utils.config import load_config, section
from .utils.logger import logger, set_log_level


def build_tagger(
    config: Dict,
    transcript_store=None,
    tag_store=None,
    sample_store: Optional[ValidationSampleStore] = None,
    ai_client=None,
) -> AITagger:
    """Wire an AITagger and its shared components from configuration."""
    limits = section(config, "rate_limits")
    cache_config = section(config, "cache")
    calibration = section(config, "calibration")

    calibrator = None
    if calibration.get("enabled", True):
        calibrator = ConfidenceCalibrator(
            sample_store,
            {k: v for k, v in calibration.items() if k in ("curve_file", "num_buckets") and v is not None},
        )

    return AITagger(
        ai_client or build_client_from_config(config),
        transcript_store or InMemoryTranscriptStore(),
        tag_store or InMemoryTagStore(),
        rate_limiter=RateLimiter(
            requests_per_minute=limits["requests_per_minute"],
            tokens_per_minute=limits["tokens_per_minute"],
        ),
        cache=TagCache(
            max_size=cache_config["max_size"],
            ttl_seconds=cache_config["ttl_seconds"],
        ),
        calibrator=calibrator,
        config=section(config, "tagger"),
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


def _call_tags_dict(tag_store: InMemoryTagStore, call_id: str) -> List[Dict]:
    return [
        {"funnel_stage": stage.value, "topic": topic, "confidence": confidence}
        for (stage, topic), confidence in sorted(
            tag_store.tags_for_call(call_id).items(),
            key=lambda item: (-item[1], item[0][1]),
        )
    ]


def cmd_tag(args, config: Dict) -> int:
    text = args.text if args.text is not None else sys.stdin.read()
    if not text.strip():
        logger.error("No text to tag")
        return 2

    tagger = build_tagger(config)
    result = asyncio.run(tagger.tag_chunk(text))
    _print_json({
        "tags": [tag.to_dict() for tag in result.tags],
        "cached": result.cached,
    })
    return 0


def cmd_tag_file(args, config: Dict) -> int:
    transcripts = load_transcripts_file(args.path)
    tag_store = InMemoryTagStore()
    tagger = build_tagger(config, transcripts, tag_store)

    call_ids = args.call_ids or transcripts.call_ids()

    def on_progress(call_id: str, index: int, total: int) -> None:
        logger.info(f"[{index}/{total}] tagged {call_id}")

    results = asyncio.run(tagger.tag_batch(call_ids, on_progress))

    _print_json({
        "calls": {
            call_id: {
                "chunks": [r.to_dict() for r in chunk_results],
                "call_tags": _call_tags_dict(tag_store, call_id),
            }
            for call_id, chunk_results in results.items()
        },
        "cache": tagger.cache_stats,
        "parse_failures": tagger.parse_failures,
    })
    return 0


def cmd_calibrate(args, config: Dict) -> int:
    samples = load_validation_samples_file(args.path)
    if args.curve_file:
        config = dict(config)
        config["calibration"] = dict(section(config, "calibration"), curve_file=args.curve_file, enabled=True)

    tagger = build_tagger(config, sample_store=samples)
    run = asyncio.run(tagger.run_calibration())
    if run is None:
        logger.error("Calibration is disabled in the configuration")
        return 2

    _print_json({"report": run.report.to_dict(), "cache": run.cache_stats})
    return 0


def cmd_show_config(args, config: Dict) -> int:
    _print_json(config)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="calltagger",
        description="Tag sales-call transcripts against the funnel taxonomy.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to a JSON config file")
    parser.add_argument("--log-level", help="Override the configured log level")

    sub = parser.add_subparsers(dest="command", required=True)

    tag = sub.add_parser("tag", help="Tag one chunk of text (from --text or stdin)")
    tag.add_argument("--text", help="Chunk text; read from stdin when omitted")
    tag.set_defaults(func=cmd_tag)

    tag_file = sub.add_parser("tag-file", help="Tag every call in a transcripts JSON file")
    tag_file.add_argument("path")
    tag_file.add_argument("--call", dest="call_ids", action="append", help="Only tag this call (repeatable)")
    tag_file.set_defaults(func=cmd_tag_file)

    calibrate = sub.add_parser("calibrate", help="Build a calibration curve from labeled samples")
    calibrate.add_argument("path")
    calibrate.add_argument("--curve-file", help="Where to save the fitted curve")
    calibrate.set_defaults(func=cmd_calibrate)

    show = sub.add_parser("show-config", help="Print the effective configuration")
    show.set_defaults(func=cmd_show_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    level = args.log_level or config.get("log_level")
    if level:
        set_log_level(level)

    try:
        return args.func(args, config)
    except (TranscriptNotFoundError, ProviderError, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
