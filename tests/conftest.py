"""
Pytest fixtures for test infrastructure.

This module is automatically loaded by pytest and provides shared fixtures.
For helper classes (fake clock, scripted generation client), see test_helpers.py.
"""

import pytest

from tests.test_helpers import FakeClock, ScriptedClient


# =============================================================================
# Shared fixtures
# =============================================================================
@pytest.fixture
def sample_announcement_text():
    """A single funding announcement in the channel's usual layout."""
    return (
        "Acme Labs $10M Seed Round\n"
        "\n"
        "Acme Labs is building DeFi rails.\n"
        "\n"
        "Investors: Paradigm (Lead), Coinbase Ventures and a16z\n"
        "\n"
        "Website: acme.io"
    )


@pytest.fixture
def sample_roundup_text():
    """A weekly roundup with an acquisition line."""
    return (
        "Best Rounds Of This Week:\n"
        "T-Rex $12M, Boop.fun $3.5M\n"
        "Alpha acquired Beta for $20M"
    )


@pytest.fixture
def make_message():
    """Factory for RawMessage objects with sequential ids."""
    from fundwire.analyst.schemas import RawMessage

    counter = {"id": 0}

    def _make(text: str, **kwargs):
        counter["id"] += 1
        data = {"id": counter["id"], "date": "2025-03-01T12:00:00+00:00", "text": text}
        data.update(kwargs)
        return RawMessage(**data)

    return _make


@pytest.fixture
def fake_clock():
    """Controllable clock whose sleep() advances time instantly."""
    return FakeClock()


@pytest.fixture
def scripted_client():
    """Generation client returning scripted responses."""
    return ScriptedClient()


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing all output at tmp_path, with no real delays."""
    from fundwire.config.settings import Settings

    return Settings(
        data_dir=str(tmp_path / "data"),
        checkpoint_dir=str(tmp_path / "checkpoints"),
        gemini_api_key="test-key",
        bulk_batch_size=2,
        interactive_batch_size=2,
    )
