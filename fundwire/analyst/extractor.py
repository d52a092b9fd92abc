"""
GenAI Extractor - generation-service extraction of fundraising announcements.

Builds a prompt per message (single announcement or weekly roundup), sends it
to the generation service through the shared rate limiter and the Retry
Controller, pulls the JSON object out of the raw response, and normalizes it
into the same InvestmentRecord shapes the pattern parser produces.

Failure policy:
- No funding vocabulary -> skipped, no call made
- Malformed response (no JSON object / invalid JSON) -> message dropped, not retried
- Fatal service error -> message dropped
- Transient service error past the retry budget -> TransientServiceError raised,
  so batch callers can treat it as a batch-level failure
"""

import asyncio
import json
import logging
import re
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from .amounts import UNDISCLOSED, canonical_amount, strip_currency
from .parser import canonical_round, has_funding_vocabulary
from .schemas import (
    AcquisitionMention,
    InvestmentRecord,
    RawMessage,
    RecordType,
    RoundLabel,
    RoundupRecord,
    SingleRecord,
    is_emittable,
)
from ..common.genai_client import GenerationClient
from ..common.rate_limiter import TokenRateLimiter
from ..common.retry import RetryController, TransientServiceError
from ..common.url_utils import clean_model_links
from ..config.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Company name used when the model finds no companies in a roundup
ROUNDUP_PLACEHOLDER_COMPANY = "Weekly Investment Roundup"

ROUNDUP_HINT_PATTERN = re.compile(r"Top\s+\d+|Best\s+Rounds|Notable\s+Rounds|This\s+Week", re.IGNORECASE)


def looks_like_funding(text: str) -> bool:
    """Parser pre-filter, widened to messages that only say 'investment'."""
    return has_funding_vocabulary(text) or "investment" in text


def looks_like_roundup(text: str) -> bool:
    return bool(ROUNDUP_HINT_PATTERN.search(text))


class MalformedResponseError(Exception):
    """Raised when a generation-service response holds no usable JSON object."""
    pass


# =============================================================================
# PROMPTS
# =============================================================================

ROUND_VOCABULARY = ", ".join(f'"{label.value}"' for label in RoundLabel)


def build_investment_prompt(text: str) -> str:
    """Prompt for a single funding or acquisition announcement."""
    return f"""
Extract precise structured investment data from this crypto fundraising announcement:

1. Format all monetary amounts consistently with the number followed by 'M' for millions or 'B' for billions (e.g., "10.5M" or "1.2B"). Use "Undisclosed" when no amount is specified.

2. For round types, use one of: {ROUND_VOCABULARY}.

3. Extract all investors as an array. If Lead investors are mentioned, include them.

4. For acquisitions, determine which company acquired which.

5. Extract a brief company description from the "About:" section.

6. Extract all URLs mentioned, including cryptorank.io links.

7. Include any valuation information if present.

Return ONLY a valid JSON object with these fields (skip empty ones):
- company: The name of the company raising funds or being acquired (exact spelling including .io, .fun etc.)
- amount: Funding amount (format as described)
- round: The funding round type
- investors: Array of investor names
- about: Brief company description
- valuation: Valuation if mentioned
- links: Array of URLs mentioned
- acquisitions: For acquisition announcements only, include {{company, acquirer, amount}}

Here's the announcement:
\"\"\"
{text}
\"\"\"
"""


def build_roundup_prompt(text: str) -> str:
    """Prompt for a weekly roundup listing several deals."""
    return f"""
Extract structured investment data from this weekly crypto funding roundup:

1. Identify each company mentioned along with their funding amount.

2. Format all monetary amounts consistently with the number followed by 'M' for millions or 'B' for billions (e.g., "10.5M" or "1.2B").

3. Identify any acquisitions mentioned. For each acquisition, extract the acquiring company, acquired company, and amount if mentioned.

4. Extract all URLs mentioned in the text.

For these weekly roundups, it's critical to ensure that:
- 'company' field is always an array containing all company names mentioned
- 'amount' field is a parallel array with each amount matching the corresponding company

Return ONLY a valid JSON object with these fields:
- company: Array of company names mentioned with funding
- amount: Array of corresponding funding amounts in the same order
- links: Array of all valid URLs mentioned
- acquisitions: Array of objects with {{company, acquirer, amount}}

Here's the roundup:
\"\"\"
{text}
\"\"\"
"""


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def extract_json_object(response: str) -> dict:
    """
    Parse the text between the first '{' and the last '}' as JSON.

    Models often wrap the object in prose or code fences; everything outside
    the outermost braces is ignored.

    Raises:
        MalformedResponseError: no brace pair, invalid JSON, or not an object
    """
    response = response or ""
    start = response.find("{")
    end = response.rfind("}")
    if start < 0 or end <= start:
        raise MalformedResponseError("Invalid JSON structure in response: no {...} object found")

    try:
        data = json.loads(response[start:end + 1])
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON in response: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _text_field(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, list):
        value = value[0] if value else None
        if value is None:
            return None
    text = str(value).strip()
    return text or None


def _single_amount(value) -> str:
    """Canonical amount for a single record; unreadable amounts become Undisclosed."""
    amount = canonical_amount(value)
    if amount is None:
        if value not in (None, ""):
            logger.debug(f"Unrecognized amount {value!r}, recording as {UNDISCLOSED}")
        return UNDISCLOSED
    return amount


def _roundup_amount(value) -> str:
    if value is None:
        return UNDISCLOSED
    return canonical_amount(value) or strip_currency(str(value)) or UNDISCLOSED


def _acquisition_amount(value) -> Optional[str]:
    if value in (None, ""):
        return None
    return canonical_amount(value) or strip_currency(str(value)) or None


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _acquisition_mentions(value) -> List[AcquisitionMention]:
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        return []

    mentions = []
    for item in value:
        if not isinstance(item, dict) or not _text_field(item.get("company")):
            continue
        mentions.append(
            AcquisitionMention(
                company=_text_field(item.get("company")),
                acquirer=_text_field(item.get("acquirer")),
                amount=_acquisition_amount(item.get("amount")),
            )
        )
    return mentions


def _record_type(data: dict, raw_text: str, roundup: bool) -> RecordType:
    if roundup:
        return RecordType.ROUNDUP
    lowered = raw_text.lower()
    if data.get("acquisitions") or data.get("acquirer") or "acquired" in lowered or "acquisition" in lowered:
        return RecordType.ACQUISITION
    return RecordType.INVESTMENT


def _standardize_roundup(data: dict, common: dict) -> RoundupRecord:
    companies = data.get("company")
    amounts = data.get("amount")
    if isinstance(companies, str) and companies.strip():
        companies = [companies]
        amounts = [amounts] if amounts is not None and not isinstance(amounts, list) else amounts

    if isinstance(companies, list) and companies:
        companies = [str(c).strip() for c in companies]
        amount_list = None
        if isinstance(amounts, list) and amounts:
            amount_list = [_roundup_amount(a) for a in amounts]
            if len(amount_list) != len(companies):
                logger.warning(
                    f"Roundup returned {len(companies)} companies but {len(amount_list)} amounts, aligning"
                )
                amount_list = (amount_list + [UNDISCLOSED] * len(companies))[:len(companies)]
    else:
        companies = [ROUNDUP_PLACEHOLDER_COMPANY]
        amount_list = None

    acquisitions = _acquisition_mentions(data.get("acquisitions"))
    return RoundupRecord(
        company=companies,
        amount=amount_list,
        acquisitions_in_roundup=acquisitions or None,
        is_part_of_roundup=True,
        **common,
    )


def _standardize_acquisition(data: dict, common: dict) -> SingleRecord:
    company = _text_field(data.get("company")) or ""
    acquirer = _text_field(data.get("acquirer"))
    amount = data.get("amount")

    # Structured acquisitions field wins over flat fields
    acquisitions = data.get("acquisitions")
    if isinstance(acquisitions, list):
        acquisitions = acquisitions[0] if acquisitions else None
    if isinstance(acquisitions, dict):
        acquirer = _text_field(acquisitions.get("acquirer"))
        amount = acquisitions.get("amount")
        company = company or _text_field(acquisitions.get("company")) or ""

    return SingleRecord(
        type=RecordType.ACQUISITION.value,
        company=company,
        acquirer=acquirer,
        amount=_single_amount(amount),
        round=canonical_round(data.get("round")),
        investors=_string_list(data.get("investors")),
        **common,
    )


def _standardize_investment(data: dict, common: dict) -> SingleRecord:
    return SingleRecord(
        type=RecordType.INVESTMENT.value,
        company=_text_field(data.get("company")) or "",
        amount=_single_amount(data.get("amount")),
        round=canonical_round(data.get("round")),
        investors=_string_list(data.get("investors")),
        **common,
    )


def standardize_investment_data(
    data: dict,
    raw_text: str,
    date: str,
    roundup: bool,
) -> Optional[InvestmentRecord]:
    """
    Normalize a parsed model response into the canonical record shape.

    Returns None when the result names no company.
    """
    record_type = _record_type(data, raw_text, roundup)

    links = data.get("links")
    common = {
        "date": date,
        "raw_text": raw_text,
        "about": _text_field(data.get("about")),
        "valuation": _acquisition_amount(data.get("valuation")),
        "links": clean_model_links(links) if isinstance(links, list) else None,
    }

    if record_type == RecordType.ROUNDUP:
        record = _standardize_roundup(data, common)
    elif record_type == RecordType.ACQUISITION:
        record = _standardize_acquisition(data, common)
    else:
        record = _standardize_investment(data, common)

    return record if is_emittable(record) else None


# =============================================================================
# EXTRACTOR
# =============================================================================

class GenAIExtractor:
    """
    Generation-service extraction engine.

    Args:
        client: Generation-service transport
        limiter: Shared token bucket
        retry: Retry Controller wrapping each call
        model: Model name passed to the client (default: settings.llm_model)
        message_delay: Pause between messages in extract_many (seconds)
        sleep: Async sleep function (injectable for tests)
    """

    name = "genai"

    def __init__(
        self,
        client: GenerationClient,
        limiter: TokenRateLimiter,
        retry: Optional[RetryController] = None,
        model: Optional[str] = None,
        message_delay: Optional[float] = None,
        config: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        config = config or default_settings
        self.client = client
        self.limiter = limiter
        self.retry = retry or RetryController(
            max_retries=config.retry_max_retries,
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
            sleep=sleep,
        )
        self.model = model or config.llm_model
        self.message_delay = config.message_delay if message_delay is None else message_delay
        self.chars_per_token = max(1, config.chars_per_token)
        self._sleep = sleep
        self.stats: Dict[str, int] = {
            "skipped_no_funding": 0,
            "malformed_response": 0,
            "service_errors": 0,
            "extracted": 0,
        }

    def estimate_tokens(self, prompt: str) -> int:
        return max(1, len(prompt) // self.chars_per_token)

    async def _call(self, prompt: str) -> str:
        """One rate-limited call to the generation service."""
        await self.limiter.consume(self.estimate_tokens(prompt))
        return await self.client.send(prompt, self.model)

    async def extract(self, message: RawMessage) -> Optional[InvestmentRecord]:
        """
        Extract one message.

        Returns:
            The record, or None if the message was skipped or dropped

        Raises:
            TransientServiceError: the service stayed unavailable past the retry budget
        """
        text = message.text
        if not looks_like_funding(text):
            self.stats["skipped_no_funding"] += 1
            return None

        roundup = looks_like_roundup(text)
        prompt = build_roundup_prompt(text) if roundup else build_investment_prompt(text)

        try:
            response = await self.retry.run(lambda: self._call(prompt))
        except TransientServiceError:
            self.stats["service_errors"] += 1
            raise
        except Exception as e:
            self.stats["service_errors"] += 1
            logger.error(f"Error calling generation service for message {message.id}: {type(e).__name__}: {e}")
            return None

        try:
            data = extract_json_object(response)
            record = standardize_investment_data(data, text, message.date, roundup)
        except MalformedResponseError as e:
            self.stats["malformed_response"] += 1
            logger.error(f"Error parsing generation response for message {message.id}: {e}")
            logger.debug(f"Response was: {response!r}")
            return None
        except ValidationError as e:
            self.stats["malformed_response"] += 1
            logger.error(f"Generation response for message {message.id} failed validation: {e}")
            return None

        if record is not None:
            self.stats["extracted"] += 1
        return record

    async def extract_many(self, messages: List[RawMessage]) -> List[InvestmentRecord]:
        """
        Extract messages strictly one after another with a pacing delay.

        TransientServiceError propagates so the caller can retry the batch.
        """
        records: List[InvestmentRecord] = []
        for index, message in enumerate(messages):
            record = await self.extract(message)
            if record is not None:
                records.append(record)
            if self.message_delay > 0 and index < len(messages) - 1:
                await self._sleep(self.message_delay)
        return records
