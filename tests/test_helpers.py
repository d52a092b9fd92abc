"""
Shared test helpers for test infrastructure.

This module can be explicitly imported by test files.
For pytest fixtures, see conftest.py.

Usage:
    from tests.test_helpers import FakeClock, ScriptedClient, skip_no_anthropic
"""

from typing import List, Union

import pytest


# =============================================================================
# Dependency checks
# =============================================================================
def has_anthropic():
    """Check if the anthropic SDK is installed."""
    try:
        import anthropic
        return True
    except ImportError:
        return False


skip_no_anthropic = pytest.mark.skipif(
    not has_anthropic(),
    reason="anthropic SDK not installed"
)


# =============================================================================
# Fakes
# =============================================================================
class FakeClock:
    """
    Monotonic clock plus async sleep that advances it.

    Every sleep is recorded in `sleeps` so tests can assert on delays.
    """

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedClient:
    """
    GenerationClient that replays scripted outcomes in order.

    Each outcome is either a response string or an exception to raise. When
    the script runs out, `default` is returned.
    """

    def __init__(self, outcomes: List[Union[str, BaseException]] = None, default: str = "{}"):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.prompts: List[str] = []
        self.models: List[str] = []

    def script(self, *outcomes: Union[str, BaseException]) -> "ScriptedClient":
        self.outcomes.extend(outcomes)
        return self

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def send(self, prompt: str, model: str) -> str:
        self.prompts.append(prompt)
        self.models.append(model)
        if not self.outcomes:
            return self.default
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self):
        pass
