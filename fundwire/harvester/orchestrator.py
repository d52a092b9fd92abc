"""
Batch Orchestrator - checkpointed extraction over a whole channel.

Handles:
- Fetching messages from a source, tagging them, saving raw messages + summary
- Running an extraction engine over fixed-size batches
- Per-batch retries with progressive backoff between batches
- Resuming at the first unrecorded batch after a crash
- Merging batch result files into the channel's investments file

Error isolation:
- A failing message never aborts its batch (the engine drops it)
- A batch that fails every attempt is recorded in the checkpoint and skipped
- PersistenceError always propagates; anything else ends the run with the
  checkpoint intact and the error on BatchRunResult
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Protocol

from ..analyst.aggregator import summarize_messages
from ..analyst.schemas import InvestmentRecord, RawMessage, is_emittable
from ..analyst.tagger import KeywordTagger
from ..archivist.checkpoint import CheckpointManager
from ..archivist.storage import ChannelStorage, PersistenceError
from ..config.settings import Settings, settings as default_settings
from .sources import MessageSource

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_LIMIT = 1000


class ExtractionEngine(Protocol):
    name: str

    async def extract(self, message: RawMessage) -> Optional[InvestmentRecord]:
        ...

    async def extract_many(self, messages: List[RawMessage]) -> List[InvestmentRecord]:
        ...


CheckpointFactory = Callable[[str, int], CheckpointManager]


def partition(messages: List[RawMessage], batch_size: int) -> List[List[RawMessage]]:
    """Consecutive batches of batch_size; the last one may be shorter."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [messages[i:i + batch_size] for i in range(0, len(messages), batch_size)]


class BatchRunResult:
    """Result of one orchestrated run."""

    def __init__(self, channel: str):
        self.channel = channel
        self.messages_fetched = 0
        self.batches_total = 0
        self.batches_skipped = 0
        self.batches_succeeded = 0
        self.batches_failed = 0
        self.records: List[InvestmentRecord] = []
        self.results_dir: Optional[str] = None
        self.output_path: Optional[str] = None
        self.error: Optional[str] = None
        self.started_at = datetime.now(timezone.utc)
        self.completed_at: Optional[datetime] = None

    def complete(self):
        self.completed_at = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0

    def log_metrics(self):
        logger.info(
            f"METRICS channel={self.channel} "
            f"messages={self.messages_fetched} "
            f"batches={self.batches_total} "
            f"skipped={self.batches_skipped} "
            f"succeeded={self.batches_succeeded} "
            f"failed={self.batches_failed} "
            f"records={len(self.records)} "
            f"error={self.error is not None} "
            f"duration_sec={self.duration_seconds:.2f}"
        )


class BatchOrchestrator:
    """
    Args:
        source: Where messages come from
        engine: Pattern parser or generation-service extractor
        storage: JSON file storage (default: ChannelStorage under settings.data_dir)
        tagger: Keyword collaborator for untagged messages
        checkpoint_factory: (channel, batch_size) -> CheckpointManager
        config: Settings for batch sizes and delays
        sleep: Async sleep function (injectable for tests)
    """

    def __init__(
        self,
        source: MessageSource,
        engine: ExtractionEngine,
        storage: Optional[ChannelStorage] = None,
        tagger: Optional[KeywordTagger] = None,
        checkpoint_factory: Optional[CheckpointFactory] = None,
        config: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or default_settings
        self.source = source
        self.engine = engine
        self.storage = storage or ChannelStorage(self.config.data_dir)
        self.tagger = tagger or KeywordTagger()
        self.checkpoint_factory = checkpoint_factory or (
            lambda channel, batch_size: CheckpointManager(channel, batch_size, self.config.checkpoint_dir)
        )
        self._sleep = sleep

    @property
    def genai(self) -> bool:
        return getattr(self.engine, "name", "") == "genai"

    async def _collect(self, channel: str, limit: int) -> List[RawMessage]:
        """Fetch, tag, and persist the raw messages plus their summary."""
        logger.info(f"Fetching up to {limit} messages from {channel}...")
        messages = await self.source.fetch(channel, limit)
        messages = self.tagger.tag_all(messages)
        logger.info(f"Successfully fetched {len(messages)} messages")

        if getattr(self.source, "reads_saved_messages", False):
            logger.info(f"Messages were read from {self.storage.messages_path(channel)}, leaving it unchanged")
        else:
            self.storage.save_messages(channel, messages)
        self.storage.save_message_summary(channel, summarize_messages(messages))
        return messages

    # =========================================================================
    # Checkpointed bulk run
    # =========================================================================

    async def run(
        self,
        channel: str,
        total_limit: int = DEFAULT_TOTAL_LIMIT,
        batch_size: Optional[int] = None,
        reset: bool = False,
    ) -> BatchRunResult:
        """
        Process up to total_limit messages in checkpointed batches.

        Raises:
            PersistenceError: checkpoint or output files could not be written
        """
        batch_size = batch_size or self.config.bulk_batch_size
        result = BatchRunResult(channel)

        try:
            checkpoint = self.checkpoint_factory(channel, batch_size)
            if reset:
                checkpoint.reset()

            messages = await self._collect(channel, total_limit)
            result.messages_fetched = len(messages)

            start = checkpoint.next_batch_index()
            saved_batch_size = checkpoint.state.batch_size
            if saved_batch_size != batch_size:
                if start > 0:
                    logger.warning(
                        f"Checkpoint for {channel} was written with batch size {saved_batch_size}, "
                        f"ignoring requested size {batch_size}"
                    )
                    batch_size = saved_batch_size
                else:
                    checkpoint.set_batch_size(batch_size)

            batches = partition(messages, batch_size)
            result.batches_total = len(batches)

            result.batches_skipped = min(start, len(batches))
            if start > 0:
                logger.info(f"Resuming {channel} at batch {start + 1}/{len(batches)}")

            results_dir = None
            if start > 0:
                results_dir = self.storage.latest_results_directory(channel)
            result.results_dir = results_dir or self.storage.create_results_directory(channel)

            logger.info(f"Processing messages with {getattr(self.engine, 'name', 'engine')} in batches of {batch_size}...")
            current_delay = self.config.batch_delay

            for index in range(start, len(batches)):
                current_delay = await self._run_batch(
                    index, batches, checkpoint, result, current_delay, len(messages)
                )
                if index < len(batches) - 1:
                    logger.info(f"Waiting {current_delay:.1f}s before next batch...")
                    await self._sleep(current_delay)

            logger.info("Merging batch results...")
            result.records = self.storage.merge_batch_results(result.results_dir)
            result.output_path = self.storage.save_records(channel, result.records, genai=self.genai)
            logger.info(f"All batches merged successfully. Final results saved to: {result.output_path}")

        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Error processing bulk messages for {channel}: {type(e).__name__}: {e}")
            result.error = str(e)
        finally:
            result.complete()
            result.log_metrics()

        return result

    async def _run_batch(
        self,
        index: int,
        batches: List[List[RawMessage]],
        checkpoint: CheckpointManager,
        result: BatchRunResult,
        current_delay: float,
        total_messages: int,
    ) -> float:
        """Run one batch with retries; returns the updated inter-batch delay."""
        batch = batches[index]
        batch_number = index + 1
        max_attempts = self.config.max_retries_per_batch
        backoff = self.config.progressive_backoff
        logger.info(f"Processing batch {batch_number}/{len(batches)} ({len(batch)} messages)...")

        last_error: Optional[Exception] = None
        attempt = 0
        while attempt < max_attempts:
            try:
                records = await self.engine.extract_many(batch)
            except PersistenceError:
                raise
            except Exception as e:
                attempt += 1
                last_error = e
                logger.error(f"Error processing batch {batch_number}, retry {attempt}/{max_attempts}: {e}")
                current_delay *= backoff
                if attempt < max_attempts:
                    logger.info(f"Increasing delay to {current_delay:.1f}s for next attempt")
                    await self._sleep(current_delay)
                continue

            records = [r for r in records if is_emittable(r)]
            self.storage.write_batch_results(result.results_dir, batch_number, records)
            checkpoint.record_success(index, len(batch))
            result.batches_succeeded += 1

            current_delay = max(self.config.batch_delay, current_delay / backoff)
            processed = checkpoint.total_processed
            percent = round(processed / total_messages * 100) if total_messages else 100
            logger.info(
                f"Batch {batch_number}/{len(batches)} processed successfully. "
                f"Progress: {processed}/{total_messages} ({percent}%)"
            )
            return current_delay

        logger.error(f"Failed to process batch {batch_number} after {max_attempts} attempts, skipping...")
        checkpoint.record_error(index, last_error)
        self.storage.write_batch_results(result.results_dir, batch_number, [])
        checkpoint.record_success(index, 0)
        result.batches_failed += 1
        return current_delay

    # =========================================================================
    # Interactive run
    # =========================================================================

    async def extract_adaptive(self, messages: List[RawMessage]) -> List[InvestmentRecord]:
        """
        Extract message by message in small batches with an adaptive delay.

        The delay grows after a message error and shrinks after each batch.
        """
        config = self.config
        batch_size = config.interactive_batch_size
        current_delay = config.interactive_initial_delay
        batches = partition(messages, batch_size)
        records: List[InvestmentRecord] = []

        logger.info(f"Processing {len(messages)} messages with {getattr(self.engine, 'name', 'engine')}...")
        for number, batch in enumerate(batches, start=1):
            logger.info(f"Processing batch {number}/{len(batches)}")
            for message in batch:
                try:
                    record = await self.engine.extract(message)
                    if is_emittable(record):
                        records.append(record)
                    await self._sleep(config.message_delay)
                except PersistenceError:
                    raise
                except Exception as e:
                    logger.error(f"Error processing message {message.id}: {type(e).__name__}: {e}")
                    current_delay = min(current_delay * 1.5, config.interactive_max_delay)
                    await self._sleep(config.error_cooldown)

            if number < len(batches):
                logger.info(f"Waiting {current_delay:.1f}s before next batch...")
                await self._sleep(current_delay)
                current_delay = max(config.interactive_min_delay, current_delay * 0.9)

        return records

    async def run_interactive(self, channel: str, limit: int = 100) -> BatchRunResult:
        """Small uncheckpointed run: fetch, extract adaptively, save the investments file."""
        result = BatchRunResult(channel)
        try:
            messages = await self._collect(channel, limit)
            result.messages_fetched = len(messages)
            if not messages:
                logger.info("No messages were retrieved")
                return result

            result.records = await self.extract_adaptive(messages)
            result.output_path = self.storage.save_records(channel, result.records, genai=self.genai)
        finally:
            result.complete()
            result.log_metrics()
        return result


async def run_orchestrator_cli(orchestrator: BatchOrchestrator, channel: str, **kwargs) -> BatchRunResult:
    """Run a bulk job and print a summary."""
    result = await orchestrator.run(channel, **kwargs)
    print(f"\n=== Batch Results for {channel} ===")
    print(f"Messages fetched: {result.messages_fetched}")
    print(f"Batches: {result.batches_total} (skipped {result.batches_skipped}, "
          f"succeeded {result.batches_succeeded}, failed {result.batches_failed})")
    print(f"Records extracted: {len(result.records)}")
    if result.output_path:
        print(f"Output: {result.output_path}")
    if result.error:
        print(f"Error: {result.error}")
    print(f"Duration: {result.duration_seconds:.2f}s")
    return result
