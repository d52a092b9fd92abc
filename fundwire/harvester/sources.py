"""
Message sources - where channel messages come from.

Platform clients live outside this package; anything with an async
fetch(source_id, limit) returning RawMessages can feed the orchestrator.
The built-in JsonFileSource replays a previously exported messages file.
"""

import logging
from typing import List, Optional, Protocol

from ..analyst.schemas import RawMessage
from ..archivist.storage import ChannelStorage

logger = logging.getLogger(__name__)


class MessageSource(Protocol):
    """
    Sources that replay the saved messages file set ``reads_saved_messages``
    so the orchestrator never rewrites that file with a truncated list.
    """

    async def fetch(self, source_id: str, limit: int) -> List[RawMessage]:
        ...


class JsonFileSource:
    """Reads <data>/<channel>/<channel>.json through ChannelStorage."""

    reads_saved_messages = True

    def __init__(self, storage: Optional[ChannelStorage] = None):
        self.storage = storage or ChannelStorage()

    async def fetch(self, source_id: str, limit: int) -> List[RawMessage]:
        messages = self.storage.read_messages(source_id)
        if messages is None:
            logger.warning(f"No messages file for {source_id} at {self.storage.messages_path(source_id)}")
            return []
        if limit > 0:
            messages = messages[:limit]
        logger.info(f"Loaded {len(messages)} messages for {source_id}")
        return messages


class StaticSource:
    """In-memory source, used for replays and tests."""

    def __init__(self, messages: List[RawMessage]):
        self.messages = list(messages)

    async def fetch(self, source_id: str, limit: int) -> List[RawMessage]:
        return self.messages[:limit] if limit > 0 else list(self.messages)
