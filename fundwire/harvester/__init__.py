from .sources import MessageSource, JsonFileSource, StaticSource
from .orchestrator import (
    BatchOrchestrator,
    BatchRunResult,
    ExtractionEngine,
    partition,
    run_orchestrator_cli,
)

__all__ = [
    "MessageSource",
    "JsonFileSource",
    "StaticSource",
    "BatchOrchestrator",
    "BatchRunResult",
    "ExtractionEngine",
    "partition",
    "run_orchestrator_cli",
]
