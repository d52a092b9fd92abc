"""
Checkpoint Manager - durable batch progress for one channel.

The checkpoint is rewritten in full (atomically) after every mutation, so a
run killed at any point resumes at the first batch that was not recorded.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .storage import PersistenceError, read_json, write_json
from ..config.settings import settings

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CheckpointError(BaseModel):
    batch: int
    message: str
    time: str = Field(default_factory=_now)


class CheckpointState(BaseModel):
    """Persisted progress; lastBatchIndex -1 means nothing processed yet."""
    model_config = ConfigDict(populate_by_name=True)

    channel: str
    total_processed: int = Field(default=0, alias="totalProcessed")
    last_batch_index: int = Field(default=-1, alias="lastBatchIndex")
    last_processed_time: str = Field(default_factory=_now, alias="lastProcessedTime")
    batch_size: int = Field(alias="batchSize")
    errors: List[CheckpointError] = Field(default_factory=list)


def safe_channel_name(channel: str) -> str:
    """
    Examples:
        >>> safe_channel_name("https://t.me/Crypto")
        'https___t_me_crypto'
    """
    return re.sub(r'[^a-z0-9]', "_", channel, flags=re.IGNORECASE).lower()


class CheckpointManager:
    """
    Args:
        channel: Source identifier the progress belongs to
        batch_size: Batch size recorded in a fresh checkpoint
        checkpoint_dir: Directory for checkpoint files (default: settings.checkpoint_dir)

    Raises:
        PersistenceError: the existing checkpoint file is unreadable or corrupt
    """

    def __init__(self, channel: str, batch_size: int, checkpoint_dir: Optional[str] = None):
        self.channel = channel
        self.checkpoint_dir = checkpoint_dir or settings.checkpoint_dir
        self.path = os.path.join(self.checkpoint_dir, f"{safe_channel_name(channel)}_checkpoint.json")

        if os.path.exists(self.path):
            self._state = self._load()
            logger.info(
                f"Loaded checkpoint {self.path}: last batch {self._state.last_batch_index}, "
                f"{self._state.total_processed} processed"
            )
        else:
            self._state = CheckpointState(channel=channel, batch_size=batch_size)
            self._save()

    def _load(self) -> CheckpointState:
        data = read_json(self.path)
        try:
            return CheckpointState.model_validate(data)
        except ValidationError as e:
            raise PersistenceError(f"Corrupt checkpoint {self.path}: {e}") from e

    def _save(self) -> None:
        write_json(self.path, self._state.model_dump(mode="json", by_alias=True))

    @property
    def state(self) -> CheckpointState:
        return self._state.model_copy(deep=True)

    @property
    def total_processed(self) -> int:
        return self._state.total_processed

    def next_batch_index(self) -> int:
        return self._state.last_batch_index + 1

    def record_success(self, batch_index: int, messages_processed: int) -> None:
        """Mark a batch done. The batch index never moves backwards."""
        self._state.last_batch_index = max(self._state.last_batch_index, batch_index)
        self._state.total_processed += max(0, messages_processed)
        self._state.last_processed_time = _now()
        self._save()

    def set_batch_size(self, batch_size: int) -> None:
        """Only valid before any batch is recorded; batch indexes depend on it."""
        if self._state.last_batch_index >= 0:
            raise ValueError(
                f"Cannot change batch size of {self.path} after batch {self._state.last_batch_index}"
            )
        self._state.batch_size = batch_size
        self._save()

    def record_error(self, batch_index: int, error) -> None:
        self._state.errors.append(CheckpointError(batch=batch_index, message=str(error)))
        self._save()

    def reset(self) -> None:
        self._state.total_processed = 0
        self._state.last_batch_index = -1
        self._state.last_processed_time = _now()
        self._state.errors = []
        self._save()
        logger.info(f"Checkpoint reset: {self.path}")
