"""JSON file storage and checkpoint utilities."""

from .storage import (
    ChannelStorage,
    PersistenceError,
    extract_channel_id,
    sanitize_filename,
    get_channel_directory,
)
from .checkpoint import CheckpointManager, CheckpointState, CheckpointError

__all__ = [
    "ChannelStorage",
    "PersistenceError",
    "extract_channel_id",
    "sanitize_filename",
    "get_channel_directory",
    "CheckpointManager",
    "CheckpointState",
    "CheckpointError",
]
