"""
Tests for the generation-service extractor.

Covers:
1. JSON object extraction from raw model text
2. Normalization of model output into records
3. GenAIExtractor pre-filtering, failure handling and pacing

The generation service is replaced by ScriptedClient, and all sleeps go
through FakeClock.
"""

import json

import pytest

from fundwire.analyst.extractor import (
    ROUNDUP_PLACEHOLDER_COMPANY,
    GenAIExtractor,
    MalformedResponseError,
    extract_json_object,
    looks_like_funding,
    looks_like_roundup,
    standardize_investment_data,
)
from fundwire.analyst.schemas import RoundupRecord, SingleRecord
from fundwire.common.genai_client import GenerationServiceError
from fundwire.common.rate_limiter import TokenRateLimiter
from fundwire.common.retry import RetryController, TransientServiceError


def _overloaded():
    return GenerationServiceError("Gemini API error 503 UNAVAILABLE: The model is overloaded.")


@pytest.fixture
def extractor(scripted_client, fake_clock, test_settings):
    limiter = TokenRateLimiter(tokens_per_minute=60000, clock=fake_clock, sleep=fake_clock.sleep)
    retry = RetryController(max_retries=1, sleep=fake_clock.sleep, rng=lambda low, high: 1.0)
    return GenAIExtractor(
        scripted_client,
        limiter,
        retry=retry,
        config=test_settings,
        sleep=fake_clock.sleep,
    )


ACME_RESPONSE = (
    "```json\n"
    + json.dumps({
        "company": "Acme",
        "amount": "$10 million",
        "round": "seed",
        "investors": ["Paradigm", "", None],
        "links": ["acme.io", "10M"],
    })
    + "\n```"
)


class TestExtractJsonObject:
    """Tests for extract_json_object()."""

    def test_ignores_surrounding_prose(self):
        assert extract_json_object('Sure! Here it is: {"company": "Foo"} Thanks') == {"company": "Foo"}

    def test_unbalanced_braces(self):
        with pytest.raises(MalformedResponseError):
            extract_json_object('{"company": "Foo"')

    def test_no_object(self):
        with pytest.raises(MalformedResponseError):
            extract_json_object("[1, 2]")
        with pytest.raises(MalformedResponseError):
            extract_json_object("")

    def test_invalid_json(self):
        with pytest.raises(MalformedResponseError):
            extract_json_object("{company: Foo}")


class TestHeuristics:
    def test_investment_word_passes_prefilter(self):
        assert looks_like_funding("New investment from Acme") is True
        assert looks_like_funding("gm everyone") is False

    def test_roundup_hints(self):
        assert looks_like_roundup("Top 5 deals") is True
        assert looks_like_roundup("Notable rounds today") is True
        assert looks_like_roundup("Acme $10M Seed Round") is False


class TestStandardize:
    """Tests for standardize_investment_data()."""

    def test_investment(self):
        record = standardize_investment_data(
            {"company": "Acme", "amount": "$10M", "round": "Series A Round", "investors": ["Paradigm"]},
            raw_text="Acme raised $10M",
            date="2025-03-01",
            roundup=False,
        )

        assert isinstance(record, SingleRecord)
        assert record.type == "investment"
        assert record.amount == "10M"
        assert record.round == "Series A"
        assert record.investors == ["Paradigm"]

    def test_missing_amount_is_undisclosed(self):
        record = standardize_investment_data({"company": "Acme"}, "Acme raised", "d", roundup=False)
        assert record.amount == "Undisclosed"

    def test_unknown_round_dropped(self):
        record = standardize_investment_data({"company": "Acme", "round": "Mezzanine"}, "Acme raised", "d", False)
        assert record.round is None

    def test_missing_company_yields_nothing(self):
        assert standardize_investment_data({"amount": "10M"}, "raised $10M", "d", roundup=False) is None

    def test_structured_acquisition(self):
        data = {"company": "Orbit", "acquisitions": {"company": "Orbit", "acquirer": "Zeta", "amount": "$5M"}}
        record = standardize_investment_data(data, "Zeta has acquired Orbit", "d", roundup=False)

        assert record.type == "acquisition"
        assert record.company == "Orbit"
        assert record.acquirer == "Zeta"
        assert record.amount == "5M"

    def test_roundup_amounts_aligned_to_companies(self):
        record = standardize_investment_data(
            {"company": ["A", "B", "C"], "amount": ["$1M", "2M"]}, "t", "d", roundup=True
        )

        assert isinstance(record, RoundupRecord)
        assert record.company == ["A", "B", "C"]
        assert record.amount == ["1M", "2M", "Undisclosed"]

    def test_roundup_extra_amounts_truncated(self):
        record = standardize_investment_data(
            {"company": ["A"], "amount": ["1M", "2M"]}, "t", "d", roundup=True
        )
        assert record.amount == ["1M"]

    def test_roundup_single_company_string(self):
        record = standardize_investment_data({"company": "A", "amount": "3M"}, "t", "d", roundup=True)

        assert record.company == ["A"]
        assert record.amount == ["3M"]

    def test_roundup_without_companies_uses_placeholder(self):
        record = standardize_investment_data({"company": []}, "t", "d", roundup=True)

        assert record.company == [ROUNDUP_PLACEHOLDER_COMPANY]
        assert record.amount is None

    def test_roundup_acquisitions(self):
        data = {
            "company": ["A"],
            "amount": ["1M"],
            "acquisitions": [{"company": "B", "acquirer": "C", "amount": "$20M"}, {"acquirer": "nobody"}],
        }
        record = standardize_investment_data(data, "t", "d", roundup=True)

        assert len(record.acquisitions_in_roundup) == 1
        assert record.acquisitions_in_roundup[0].amount == "20M"


class TestGenAIExtractor:
    """Tests for GenAIExtractor.extract()."""

    @pytest.mark.asyncio
    async def test_extracts_record(self, extractor, scripted_client, make_message, sample_announcement_text):
        scripted_client.script(ACME_RESPONSE)
        message = make_message(sample_announcement_text)
        record = await extractor.extract(message)

        assert record.company == "Acme"
        assert record.amount == "10M"
        assert record.round == "Seed"
        assert record.investors == ["Paradigm"]
        assert record.links == ["https://acme.io"]
        assert record.date == message.date
        assert record.raw_text == sample_announcement_text
        assert extractor.stats["extracted"] == 1

    @pytest.mark.asyncio
    async def test_consumes_estimated_tokens(self, extractor, scripted_client, make_message, sample_announcement_text):
        scripted_client.script(ACME_RESPONSE)
        await extractor.extract(make_message(sample_announcement_text))

        assert extractor.limiter.available == 60000 - len(scripted_client.prompts[0]) // 4

    @pytest.mark.asyncio
    async def test_uses_configured_model(self, extractor, scripted_client, make_message, sample_announcement_text):
        await extractor.extract(make_message(sample_announcement_text))
        assert scripted_client.models == ["gemini-2.0-flash-lite"]

    @pytest.mark.asyncio
    async def test_roundup_prompt(self, extractor, scripted_client, make_message):
        scripted_client.script('{"company": ["Acme", "Beta"], "amount": ["10M", "2M"]}')
        record = await extractor.extract(make_message("Top 2 Rounds of This Week: Acme $10M, Beta $2M"))

        assert "weekly crypto funding roundup" in scripted_client.prompts[0]
        assert record.type == "roundup"
        assert record.company == ["Acme", "Beta"]

    @pytest.mark.asyncio
    async def test_non_funding_message_makes_no_call(self, extractor, scripted_client, make_message):
        assert await extractor.extract(make_message("gm everyone")) is None
        assert scripted_client.calls == 0
        assert extractor.stats["skipped_no_funding"] == 1

    @pytest.mark.asyncio
    async def test_malformed_response_not_retried(self, extractor, scripted_client, make_message, sample_announcement_text):
        scripted_client.script("I could not find any funding data.")

        assert await extractor.extract(make_message(sample_announcement_text)) is None
        assert scripted_client.calls == 1
        assert extractor.stats["malformed_response"] == 1

    @pytest.mark.asyncio
    async def test_invalid_record_counted_as_malformed(
        self, extractor, scripted_client, make_message, sample_announcement_text, monkeypatch
    ):
        def reject(*args, **kwargs):
            return SingleRecord.model_validate({})

        monkeypatch.setattr("fundwire.analyst.extractor.standardize_investment_data", reject)
        scripted_client.script(ACME_RESPONSE)

        assert await extractor.extract(make_message(sample_announcement_text)) is None
        assert extractor.stats["malformed_response"] == 1
        assert extractor.stats["extracted"] == 0

    @pytest.mark.asyncio
    async def test_fatal_error_drops_message(self, extractor, scripted_client, make_message, sample_announcement_text):
        scripted_client.script(GenerationServiceError("Gemini API error 400 INVALID_ARGUMENT: bad"))

        assert await extractor.extract(make_message(sample_announcement_text)) is None
        assert scripted_client.calls == 1
        assert extractor.stats["service_errors"] == 1

    @pytest.mark.asyncio
    async def test_transient_error_recovers(self, extractor, scripted_client, make_message, sample_announcement_text):
        scripted_client.script(_overloaded(), ACME_RESPONSE)

        record = await extractor.extract(make_message(sample_announcement_text))
        assert record.company == "Acme"
        assert scripted_client.calls == 2

    @pytest.mark.asyncio
    async def test_transient_error_past_budget_raises(self, extractor, scripted_client, make_message, sample_announcement_text):
        scripted_client.script(_overloaded(), _overloaded())

        with pytest.raises(TransientServiceError):
            await extractor.extract(make_message(sample_announcement_text))
        assert scripted_client.calls == 2


class TestExtractMany:
    """Tests for GenAIExtractor.extract_many()."""

    @pytest.mark.asyncio
    async def test_paces_between_messages(self, extractor, scripted_client, fake_clock, make_message, sample_announcement_text):
        scripted_client.script(ACME_RESPONSE, ACME_RESPONSE)
        records = await extractor.extract_many([
            make_message(sample_announcement_text),
            make_message("gm"),
            make_message(sample_announcement_text),
        ])

        assert len(records) == 2
        assert fake_clock.sleeps == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_propagates_transient_error(self, extractor, scripted_client, make_message, sample_announcement_text):
        scripted_client.script(ACME_RESPONSE, _overloaded(), _overloaded())

        with pytest.raises(TransientServiceError):
            await extractor.extract_many([
                make_message(sample_announcement_text),
                make_message(sample_announcement_text),
            ])
