"""
Tests for the pattern parser.

Run with: pytest tests/test_parser.py -v
"""

import pytest

from fundwire.analyst.parser import (
    DeterministicEngine,
    canonical_round,
    clean_investor_name,
    extract_funding_amount,
    extract_round_type,
    first_match,
    has_funding_vocabulary,
    is_roundup,
    parse_message,
    parse_messages,
    Strategy,
)
from fundwire.analyst.schemas import ROUND_LABELS, RoundupRecord, SingleRecord, record_to_dict


class TestPreFilter:
    """Messages without funding vocabulary never produce a record."""

    def test_plain_chat_is_rejected(self):
        assert has_funding_vocabulary("gm everyone, new blog post is live") is False

    def test_currency_symbol_is_enough(self):
        assert has_funding_vocabulary("Acme closes €4M") is True

    def test_empty_text(self, make_message):
        assert parse_message(make_message("")) is None

    def test_non_funding_message_yields_nothing(self, make_message):
        assert parse_message(make_message("gm everyone, new blog post is live")) is None


class TestSingleAnnouncements:
    """Company, amount, round, investors and links from one announcement."""

    def test_title_with_amount_and_round(self, make_message, sample_announcement_text):
        record = parse_message(make_message(sample_announcement_text))

        assert isinstance(record, SingleRecord)
        assert record.type == "investment"
        assert record.company == "Acme Labs"
        assert record.amount == "10M"
        assert record.round == "Seed"
        assert record.investors == ["Paradigm", "Coinbase Ventures", "a16z"]
        assert record.links == ["https://acme.io"]
        assert record.acquirer is None
        assert record.raw_text == sample_announcement_text

    def test_emoji_headline_falls_back_to_first_word(self, make_message):
        text = (
            "🚀 Exciting News! We raised $1.5M in our funding round.\n"
            "\n"
            "Investors: Alice Johnson, Bob Smith"
        )
        record = parse_message(make_message(text))

        assert record.type == "investment"
        assert record.company == "Exciting"
        assert record.amount == "1.5M"
        assert record.round == "Funding"
        assert record.investors == ["Alice Johnson", "Bob Smith"]

    def test_single_line_announcement_with_inline_investors(self, make_message):
        text = (
            "🚀 Exciting News! We've just closed a $1.5M funding round... "
            "Investors: Alice Johnson, Bob Smith"
        )
        record = parse_message(make_message(text))

        assert record.type == "investment"
        assert record.amount == "1.5M"
        assert record.investors == ["Alice Johnson", "Bob Smith"]
        assert record.acquirer is None

    def test_thousands_convert_to_millions(self, make_message):
        record = parse_message(make_message("Acme $750K Pre-Seed Round"))

        assert record.company == "Acme"
        assert record.amount == "0.75M"
        assert record.round == "Pre-Seed"

    def test_billions_keep_unit(self, make_message):
        record = parse_message(make_message("MegaCorp $1.2B Series C Round"))

        assert record.company == "MegaCorp"
        assert record.amount == "1.2B"
        assert record.round == "Series C"

    def test_multi_word_name_with_pre_series_round(self, make_message):
        record = parse_message(make_message("Alt DRX $3M Pre-Series A Round"))

        assert record.company == "Alt DRX"
        assert record.amount == "3M"
        assert record.round == "Pre-Series A"

    def test_valuation(self, make_message):
        record = parse_message(make_message("Acme $5M Seed Round\nValuation: $50M"))

        assert record.valuation == "50M"

    def test_missing_amount_is_undisclosed(self):
        assert extract_funding_amount("Acme Strategic Round") == "Undisclosed"

    def test_amounts_never_keep_currency(self, make_message, sample_announcement_text):
        record = parse_message(make_message(sample_announcement_text))
        assert "$" not in record.amount


class TestAcquisitions:
    """Acquisition announcements carry the acquired company and the acquirer."""

    def test_has_acquired_phrase(self, make_message):
        text = "Zeta has acquired Orbit\nDeal closed for an undisclosed sum."
        record = parse_message(make_message(text))

        assert record.type == "acquisition"
        assert record.company == "Orbit"
        assert record.acquirer == "Zeta"
        assert record.amount == "Undisclosed"
        assert record.round is None


class TestRoundups:
    """Roundups become one record with parallel company/amount lists."""

    def test_detects_weekly_roundup(self):
        assert is_roundup("Top 5 Rounds of This Week: Acme - $10M") is True
        assert is_roundup("Acme $10M Seed Round") is False

    def test_detects_monthly_digest(self):
        assert is_roundup("Funding Rounds Of March: Acme $10M") is True

    def test_header_line_items(self, make_message):
        record = parse_message(make_message("Top 5 Rounds of This Week: Acme - $10M, Beta – $2.5M"))

        assert isinstance(record, RoundupRecord)
        assert record.type == "roundup"
        assert record.company == ["Acme", "Beta"]
        assert record.amount == ["10M", "2.5M"]
        assert record.is_part_of_roundup is True

    def test_hyphenated_and_dotted_names_with_acquisition(self, make_message, sample_roundup_text):
        record = parse_message(make_message(sample_roundup_text))

        assert record.company == ["T-Rex", "Boop.fun"]
        assert record.amount == ["12M", "3.5M"]
        assert len(record.acquisitions_in_roundup) == 1
        acquisition = record.acquisitions_in_roundup[0]
        assert acquisition.company == "Beta"
        assert acquisition.acquirer == "Alpha"
        assert acquisition.amount == "20M"

    def test_raw_dollar_amounts_in_millions(self, make_message):
        text = "Top 3 Rounds of This Week:\nAcme - $1,500,000\nBeta - $2M"
        record = parse_message(make_message(text))

        assert record.company == ["Acme", "Beta"]
        assert record.amount == ["1.5M", "2M"]

    def test_acquisition_raw_dollar_amount(self, make_message):
        text = "Top 2 Rounds of This Week:\nAcme - $10M\nAlpha acquired Beta for $20,000,000"
        record = parse_message(make_message(text))

        assert record.acquisitions_in_roundup[0].amount == "20M"

    def test_companies_are_deduplicated(self, make_message):
        text = "Best Rounds Of This Week:\nAcme $10M, Acme $10M, Beta $1M"
        record = parse_message(make_message(text))

        assert record.company == ["Acme", "Beta"]
        assert len(record.company) == len(record.amount)

    def test_roundup_without_items_yields_nothing(self, make_message):
        assert parse_message(make_message("Best Rounds Of This Week: coming soon")) is None


class TestRoundType:
    """Ordered round detection and canonicalization."""

    def test_pre_series_a_beats_series_a(self):
        assert extract_round_type("We closed a Pre-Series A led by Acme") == "Pre-Series A"

    def test_series_a_in_text(self):
        assert extract_round_type("Closed Series A with Acme") == "Series A"

    def test_no_round(self):
        assert extract_round_type("Acme raised money") is None

    def test_canonical_round_accepts_labels_and_phrases(self):
        assert canonical_round("seed") == "Seed"
        assert canonical_round("Series B Round") == "Series B"
        assert canonical_round("angel") == "Angel Round"
        assert canonical_round("Token Sale") == "Token Sale"

    def test_canonical_round_covers_every_label(self):
        for label in ROUND_LABELS:
            assert canonical_round(label.upper()) == label

    def test_canonical_round_rejects_unknown(self):
        assert canonical_round("Mezzanine") is None
        assert canonical_round(None) is None
        assert canonical_round(3) is None


class TestInvestorNames:
    """Investor entries split into name and description."""

    def test_dash_description(self):
        assert clean_investor_name("Paradigm - crypto fund") == ("Paradigm", "crypto fund")

    def test_earliest_separator_wins(self):
        assert clean_investor_name("Acme, a fund - based in NYC") == ("Acme", "a fund - based in NYC")

    def test_plain_name(self):
        assert clean_investor_name("Coinbase Ventures") == ("Coinbase Ventures", None)


class TestStrategies:
    """Ordered, named strategies: the first hit wins."""

    def test_first_match_reports_strategy_name(self):
        strategies = [
            Strategy("never", lambda text: None),
            Strategy("upper", lambda text: text.upper()),
            Strategy("lower", lambda text: text.lower()),
        ]
        assert first_match(strategies, "Acme") == ("upper", "ACME")

    def test_first_match_none(self):
        assert first_match([Strategy("never", lambda text: None)], "Acme") is None


class TestDeterminism:
    """Parsing the same text twice gives identical records."""

    def test_idempotent(self, make_message, sample_announcement_text):
        first = record_to_dict(parse_message(make_message(sample_announcement_text)))
        second = record_to_dict(parse_message(make_message(sample_announcement_text)))

        assert first == second

    def test_parse_messages_keeps_only_emittable(self, make_message, sample_announcement_text):
        messages = [
            make_message("gm"),
            make_message(sample_announcement_text),
            make_message("Best Rounds Of This Week: coming soon"),
        ]
        records = parse_messages(messages)

        assert [r.company for r in records] == ["Acme Labs"]

    def test_parse_messages_skips_failures(self, make_message, sample_announcement_text, monkeypatch):
        from fundwire.analyst import parser

        original = parser.parse_message
        calls = {"n": 0}

        def flaky(message):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("boom")
            return original(message)

        monkeypatch.setattr(parser, "parse_message", flaky)
        records = parser.parse_messages([make_message(sample_announcement_text)] * 2)

        assert len(records) == 1


class TestDeterministicEngine:
    """Async engine wrapper."""

    @pytest.mark.asyncio
    async def test_extract_many(self, make_message, sample_announcement_text):
        engine = DeterministicEngine()
        records = await engine.extract_many([make_message(sample_announcement_text), make_message("gm")])

        assert len(records) == 1
        assert engine.name == "pattern"

    @pytest.mark.asyncio
    async def test_extract_single(self, make_message):
        engine = DeterministicEngine()
        assert await engine.extract(make_message("gm")) is None
