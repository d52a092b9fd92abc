"""
fundwire command line.

Usage:
    python -m fundwire.main parse <channel> [--grouped]
    python -m fundwire.main extract <channel> [--limit N]
    python -m fundwire.main bulk <channel> [--limit N] [--batch-size N] [--reset]
    python -m fundwire.main checkpoint <channel> [--reset]

Messages are read from <data>/<channel>/<channel>.json; fetching them from
the chat platform happens outside this tool.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .analyst.extractor import GenAIExtractor
from .analyst.parser import DeterministicEngine, parse_messages
from .analyst.tagger import KeywordTagger
from .archivist.checkpoint import CheckpointManager
from .archivist.storage import ChannelStorage, PersistenceError
from .common.genai_client import create_generation_client
from .common.rate_limiter import TokenRateLimiter
from .common.retry import RetryController
from .config.settings import settings
from .harvester.orchestrator import BatchOrchestrator, run_orchestrator_cli
from .harvester.sources import JsonFileSource

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_genai_extractor(client) -> GenAIExtractor:
    limiter = TokenRateLimiter(tokens_per_minute=settings.tokens_per_minute)
    retry = RetryController(
        max_retries=settings.retry_max_retries,
        initial_delay=settings.retry_initial_delay,
        max_delay=settings.retry_max_delay,
    )
    return GenAIExtractor(client, limiter, retry, config=settings)


def cmd_parse(args) -> int:
    storage = ChannelStorage()
    messages = storage.read_messages(args.channel)
    if messages is None:
        logger.error(f"No messages file for {args.channel} at {storage.messages_path(args.channel)}")
        return 1

    messages = KeywordTagger().tag_all(messages)
    records = parse_messages(messages)
    path = storage.save_records(args.channel, records, genai=False)
    print(f"Parsed {len(records)} records from {len(messages)} messages -> {path}")
    if args.grouped:
        print(f"Grouped records -> {storage.save_grouped(args.channel, records)}")
    return 0


async def _run_genai(args, bulk: bool) -> int:
    client = create_generation_client(settings)
    try:
        storage = ChannelStorage()
        orchestrator = BatchOrchestrator(
            source=JsonFileSource(storage),
            engine=build_genai_extractor(client),
            storage=storage,
        )
        if bulk:
            result = await run_orchestrator_cli(
                orchestrator,
                args.channel,
                total_limit=args.limit,
                batch_size=args.batch_size,
                reset=args.reset,
            )
        else:
            result = await orchestrator.run_interactive(args.channel, limit=args.limit)
            print(f"Extracted {len(result.records)} records -> {result.output_path}")
    finally:
        await client.close()
    return 1 if result.error else 0


async def _run_pattern_bulk(args) -> int:
    storage = ChannelStorage()
    orchestrator = BatchOrchestrator(
        source=JsonFileSource(storage),
        engine=DeterministicEngine(),
        storage=storage,
    )
    result = await run_orchestrator_cli(
        orchestrator,
        args.channel,
        total_limit=args.limit,
        batch_size=args.batch_size,
        reset=args.reset,
    )
    return 1 if result.error else 0


def cmd_checkpoint(args) -> int:
    checkpoint = CheckpointManager(args.channel, settings.bulk_batch_size)
    if args.reset:
        checkpoint.reset()
    state = checkpoint.state
    print(f"\n=== Checkpoint for {state.channel} ===")
    print(f"File: {checkpoint.path}")
    print(f"Batch size: {state.batch_size}")
    print(f"Last batch index: {state.last_batch_index}")
    print(f"Total processed: {state.total_processed}")
    print(f"Last processed: {state.last_processed_time}")
    print(f"Errors: {len(state.errors)}")
    for error in state.errors:
        print(f"  - batch {error.batch} at {error.time}: {error.message}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract fundraising records from channel messages")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Run the pattern parser over stored messages")
    parse_cmd.add_argument("channel", help="Channel handle or t.me URL")
    parse_cmd.add_argument("--grouped", action="store_true", help="Also write records grouped by company, investor and round")

    extract_cmd = subparsers.add_parser("extract", help="Small generation-service run with adaptive pacing")
    extract_cmd.add_argument("channel", help="Channel handle or t.me URL")
    extract_cmd.add_argument("--limit", type=int, default=100, help="Maximum messages to process")

    bulk_cmd = subparsers.add_parser("bulk", help="Checkpointed batch run")
    bulk_cmd.add_argument("channel", help="Channel handle or t.me URL")
    bulk_cmd.add_argument("--limit", type=int, default=1000, help="Maximum messages to fetch")
    bulk_cmd.add_argument("--batch-size", type=int, default=None, help="Messages per batch")
    bulk_cmd.add_argument("--reset", action="store_true", help="Discard saved progress first")
    bulk_cmd.add_argument("--pattern", action="store_true", help="Use the pattern parser instead of the generation service")

    checkpoint_cmd = subparsers.add_parser("checkpoint", help="Show or reset saved progress")
    checkpoint_cmd.add_argument("channel", help="Channel handle or t.me URL")
    checkpoint_cmd.add_argument("--reset", action="store_true", help="Reset progress to the first batch")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "parse":
            return cmd_parse(args)
        if args.command == "extract":
            return asyncio.run(_run_genai(args, bulk=False))
        if args.command == "bulk":
            if args.pattern:
                return asyncio.run(_run_pattern_bulk(args))
            return asyncio.run(_run_genai(args, bulk=True))
        if args.command == "checkpoint":
            return cmd_checkpoint(args)
    except PersistenceError as e:
        logger.error(f"Persistence failure: {e}")
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
