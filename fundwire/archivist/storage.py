"""
Storage pipeline for persisting channel messages and extracted records as JSON.

Layout under the data directory:

    <data>/<channel>/<channel>.json                      raw messages
    <data>/<channel>/<channel>_summary.json              message summary
    <data>/<channel>/<channel>_investments.json          pattern parser output
    <data>/<channel>/<channel>_investments_genai.json    generation-service output
    <data>/<channel>/<channel>_investments_grouped.json  pattern output by company / investor / round
    <data>/<channel>/batch_results_<timestamp>/batch_<n>.json

Every write goes through a temp file and os.replace, so a crash never leaves a
half-written file behind. Write failures raise PersistenceError.
"""

import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import ValidationError

from ..analyst.aggregator import InvestmentSummary, MessageSummary, organize, records_to_dicts, summarize
from ..analyst.schemas import InvestmentRecord, RawMessage, records_from_json
from ..config.settings import settings

logger = logging.getLogger(__name__)

INVESTMENTS_SUFFIX = "_investments.json"
GENAI_INVESTMENTS_SUFFIX = "_investments_genai.json"
SUMMARY_SUFFIX = "_summary.json"
GROUPED_SUFFIX = "_investments_grouped.json"

BATCH_FILE_PATTERN = re.compile(r'^batch_(\d+)\.json$')


class PersistenceError(Exception):
    """Raised when a state or output file cannot be read or written."""
    pass


# =============================================================================
# Channel naming
# =============================================================================

def extract_channel_id(channel: str) -> str:
    """
    Channel handle from a t.me / telegram.me URL, @handle, or bare name.

    Examples:
        >>> extract_channel_id("https://t.me/cryptorank_fundraising")
        'cryptorank_fundraising'
        >>> extract_channel_id("@crypto_fundraising")
        'crypto_fundraising'
    """
    channel_id = channel
    if "t.me/" in channel:
        channel_id = channel.split("t.me/", 1)[1].split("/")[0]
    elif "telegram.me/" in channel:
        channel_id = channel.split("telegram.me/", 1)[1].split("/")[0]

    if channel_id.startswith("@"):
        channel_id = channel_id[1:]
    return channel_id


def sanitize_filename(filename: str) -> str:
    """Replace anything outside [A-Za-z0-9_-] with an underscore."""
    return re.sub(r'[^a-zA-Z0-9_-]', "_", filename)


def channel_slug(channel: str) -> str:
    return sanitize_filename(extract_channel_id(channel))


def get_channel_directory(channel: str, data_dir: Optional[str] = None) -> str:
    return os.path.join(data_dir or settings.data_dir, channel_slug(channel))


# =============================================================================
# JSON file helpers
# =============================================================================

def ensure_directory(path: str) -> None:
    try:
        if not os.path.isdir(path):
            os.makedirs(path, exist_ok=True)
            logger.info(f"Created directory: {path}")
    except OSError as e:
        raise PersistenceError(f"Cannot create directory {path}: {e}") from e


def write_json(path: str, data: Any) -> str:
    """Atomically write data as indented JSON."""
    directory = os.path.dirname(path) or "."
    ensure_directory(directory)
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise PersistenceError(f"Failed to write {path}: {e}") from e
    return path


def read_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise PersistenceError(f"Failed to read {path}: {e}") from e


# =============================================================================
# Channel storage
# =============================================================================

class ChannelStorage:
    """
    Reads and writes the per-channel JSON files.

    Args:
        data_dir: Root data directory (default: settings.data_dir)
    """

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir or settings.data_dir

    def channel_directory(self, channel: str) -> str:
        return get_channel_directory(channel, self.data_dir)

    def _channel_file(self, channel: str, suffix: str) -> str:
        return os.path.join(self.channel_directory(channel), channel_slug(channel) + suffix)

    def messages_path(self, channel: str) -> str:
        return self._channel_file(channel, ".json")

    def investments_path(self, channel: str, genai: bool = False) -> str:
        return self._channel_file(channel, GENAI_INVESTMENTS_SUFFIX if genai else INVESTMENTS_SUFFIX)

    def save_messages(self, channel: str, messages: List[RawMessage]) -> str:
        path = write_json(
            self.messages_path(channel),
            [m.model_dump(mode="json", by_alias=True, exclude_none=True) for m in messages],
        )
        logger.info(f"Messages saved to {path}")
        return path

    def read_messages(self, channel: str) -> Optional[List[RawMessage]]:
        """Previously saved messages, or None if the channel has no messages file."""
        path = self.messages_path(channel)
        if not os.path.exists(path):
            return None
        data = read_json(path)
        try:
            return [RawMessage.model_validate(item) for item in data]
        except (ValidationError, TypeError) as e:
            raise PersistenceError(f"Invalid messages file {path}: {e}") from e

    def save_message_summary(self, channel: str, summary: MessageSummary) -> str:
        path = write_json(self._channel_file(channel, SUMMARY_SUFFIX), summary.to_dict())
        logger.info(f"Summary saved to {path}")
        return path

    def save_investments(self, channel: str, summary: InvestmentSummary, genai: bool = False) -> str:
        path = write_json(self.investments_path(channel, genai), summary.to_dict())
        logger.info(f"Investment data saved to {path} ({summary.total_investments} records)")
        return path

    def save_records(self, channel: str, records: List[InvestmentRecord], genai: bool = False) -> str:
        """Summarize and save; the generation-service file omits investmentsByCompany."""
        return self.save_investments(channel, summarize(records, include_by_company=not genai), genai)

    def save_grouped(self, channel: str, records: List[InvestmentRecord]) -> str:
        """Records grouped by company, investor and round, with roundups kept apart."""
        path = write_json(self._channel_file(channel, GROUPED_SUFFIX), organize(records).to_dict())
        logger.info(f"Grouped investments saved to {path}")
        return path

    # -------------------------------------------------------------------------
    # Batch results
    # -------------------------------------------------------------------------

    def create_results_directory(self, channel: str, started_at: Optional[datetime] = None) -> str:
        started_at = started_at or datetime.now(timezone.utc)
        timestamp = started_at.isoformat().replace(":", "-")
        path = os.path.join(self.channel_directory(channel), f"batch_results_{timestamp}")
        ensure_directory(path)
        return path

    def latest_results_directory(self, channel: str) -> Optional[str]:
        """Most recent batch_results_* directory, used when a run resumes."""
        directory = self.channel_directory(channel)
        if not os.path.isdir(directory):
            return None
        candidates = [
            name for name in os.listdir(directory)
            if name.startswith("batch_results_") and os.path.isdir(os.path.join(directory, name))
        ]
        if not candidates:
            return None
        return os.path.join(directory, max(candidates))

    def write_batch_results(self, results_dir: str, batch_number: int, records: List[InvestmentRecord]) -> str:
        """Write batch_<n>.json; failed batches are written as an empty list."""
        return write_json(os.path.join(results_dir, f"batch_{batch_number}.json"), records_to_dicts(records))

    def merge_batch_results(self, results_dir: str) -> List[InvestmentRecord]:
        """Concatenate every batch file in batch-number order."""
        try:
            names = os.listdir(results_dir)
        except OSError as e:
            raise PersistenceError(f"Cannot list {results_dir}: {e}") from e

        numbered = []
        for name in names:
            match = BATCH_FILE_PATTERN.match(name)
            if match:
                numbered.append((int(match.group(1)), name))

        records: List[InvestmentRecord] = []
        for _, name in sorted(numbered):
            path = os.path.join(results_dir, name)
            try:
                records.extend(records_from_json(read_json(path)))
            except ValidationError as e:
                raise PersistenceError(f"Invalid batch file {path}: {e}") from e
        logger.info(f"Merged {len(numbered)} batch files from {results_dir} ({len(records)} records)")
        return records
