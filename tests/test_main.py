"""
Tests for the command line entry point.

Output directories are redirected to tmp_path by patching the settings
singleton; only pattern-parser commands run end to end.
"""

import os

import pytest

from fundwire import main as cli
from fundwire.archivist.storage import ChannelStorage, read_json
from fundwire.config.settings import settings


CHANNEL = "crypto_fundraising"


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "data_dir", str(tmp_path / "data"))
    monkeypatch.setattr(settings, "checkpoint_dir", str(tmp_path / "checkpoints"))
    monkeypatch.setattr(settings, "bulk_batch_size", 50)
    return tmp_path


@pytest.fixture
def stored_messages(workspace, make_message, sample_announcement_text):
    storage = ChannelStorage()
    storage.save_messages(CHANNEL, [make_message(sample_announcement_text), make_message("gm")])
    return storage


class TestArgumentParsing:
    def test_bulk_defaults(self):
        args = cli.build_parser().parse_args(["bulk", CHANNEL])

        assert args.limit == 1000
        assert args.batch_size is None
        assert args.reset is False
        assert args.pattern is False

    def test_extract_limit(self):
        args = cli.build_parser().parse_args(["extract", CHANNEL, "--limit", "20"])
        assert args.limit == 20

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestCommands:
    def test_parse(self, stored_messages, capsys):
        assert cli.main(["parse", CHANNEL]) == 0

        data = read_json(stored_messages.investments_path(CHANNEL))
        assert data["totalInvestments"] == 1
        assert data["investments"][0]["company"] == "Acme Labs"
        assert "Parsed 1 records from 2 messages" in capsys.readouterr().out

    def test_parse_grouped(self, stored_messages):
        assert cli.main(["parse", CHANNEL, "--grouped"]) == 0

        path = os.path.join(stored_messages.channel_directory(CHANNEL), f"{CHANNEL}_investments_grouped.json")
        assert list(read_json(path)["byCompany"]) == ["Acme Labs"]

    def test_parse_without_messages(self, workspace):
        assert cli.main(["parse", "unknown_channel"]) == 1

    def test_pattern_bulk(self, stored_messages):
        assert cli.main(["bulk", CHANNEL, "--pattern"]) == 0

        data = read_json(stored_messages.investments_path(CHANNEL))
        assert [r["company"] for r in data["investments"]] == ["Acme Labs"]

    def test_checkpoint_reset(self, workspace, capsys):
        assert cli.main(["checkpoint", CHANNEL, "--reset"]) == 0

        out = capsys.readouterr().out
        assert "Last batch index: -1" in out
        assert os.path.exists(os.path.join(settings.checkpoint_dir, f"{CHANNEL}_checkpoint.json"))

    def test_corrupt_checkpoint_exit_code(self, workspace):
        os.makedirs(settings.checkpoint_dir)
        with open(os.path.join(settings.checkpoint_dir, f"{CHANNEL}_checkpoint.json"), "w") as f:
            f.write("{broken")

        assert cli.main(["checkpoint", CHANNEL]) == 2
