"""
Pattern Parser - deterministic extraction of fundraising announcements.

Turns one channel message into zero or one InvestmentRecord without calling
any external service. Every field is extracted by an ordered list of named
strategies; the first strategy that returns a value wins:

    value = first_match(COMPANY_STRATEGIES, text)

Two message shapes are handled:
- Single announcements ("Acme $10M Seed Round", acquisitions)
- Roundups / monthly digests ("Top 5 Rounds of This Week: ...") which become
  one record with parallel company/amount lists

All failures are swallowed into "no record" by parse_messages().
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .amounts import UNDISCLOSED, canonical_amount, format_amount, thousands_to_millions
from .schemas import (
    AcquisitionMention,
    InvestmentRecord,
    RawMessage,
    RecordType,
    ROUND_LABELS,
    RoundupRecord,
    SingleRecord,
    is_emittable,
)
from ..common.url_utils import clean_links, extract_links

logger = logging.getLogger(__name__)


# =============================================================================
# STRATEGY PLUMBING
# =============================================================================

@dataclass(frozen=True)
class Strategy:
    """A named extraction rule: text -> value or None."""
    name: str
    apply: Callable[[str], Optional[str]]


def first_match(strategies: Iterable[Strategy], text: str) -> Optional[Tuple[str, str]]:
    """Run strategies in order and return (strategy name, value) for the first hit."""
    for strategy in strategies:
        value = strategy.apply(text)
        if value:
            return strategy.name, value
    return None


def _first_line(text: str) -> str:
    return text.split("\n")[0].strip()


# Emoji, zero-width spaces and other decoration in front of a title line
LEADING_DECORATION = re.compile(r'^[^\w$]+')

NAME_TRAILING_PUNCTUATION = ".,;:!?"


# =============================================================================
# PRE-FILTER AND CLASSIFICATION
# =============================================================================

FUNDING_MARKERS = ("Round", "raised", "acquired", "Funding")
CURRENCY_PATTERN = re.compile(r'[$€£]')


def has_funding_vocabulary(text: str) -> bool:
    """Quick check that a message talks about funding at all."""
    if not text:
        return False
    return any(marker in text for marker in FUNDING_MARKERS) or bool(CURRENCY_PATTERN.search(text))


ROUNDUP_HEADLINE_PATTERNS = [
    re.compile(r'Top\s+\d+\s+.*Rounds\s+of\s+This\s+Week', re.IGNORECASE),
    re.compile(r'Best\s+Rounds\s+Of\s+This\s+Week', re.IGNORECASE),
    re.compile(r'Notable\s+Rounds\s+of\s+This\s+Week', re.IGNORECASE),
    re.compile(r'Funding\s+Rounds\s+Of\s+.*Week', re.IGNORECASE),
    re.compile(r'Rounds\s+Of\s+.*Week', re.IGNORECASE),
    re.compile(r'Best\s+Funding\s+Rounds\s+Of', re.IGNORECASE),
]

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)


def is_weekly_roundup(text: str) -> bool:
    return any(pattern.search(text) for pattern in ROUNDUP_HEADLINE_PATTERNS)


def is_monthly_digest(text: str) -> bool:
    return "Funding Rounds Of" in text and any(month in text for month in MONTH_NAMES)


def is_roundup(text: str) -> bool:
    """Weekly roundups and monthly digests share one parser."""
    return is_weekly_roundup(text) or is_monthly_digest(text)


def is_acquisition_text(text: str) -> bool:
    return "acquired" in text or "acquisition" in text


# =============================================================================
# COMPANY NAME
# =============================================================================

# "Acme $10M Seed Round", "Alt DRX $3M Pre-Series A Round"
TITLE_WITH_AMOUNT_PATTERN = re.compile(
    r'^([^$\s]+(?:\s+[^$\s]+){0,2}?)\s+\$?(\d[\d,]*(?:\.\d+)?)\s*[MBK]?\s+'
    r'([A-Za-z\-]+(?:\s+[A-Za-z]+)?)\s+Round\b',
    re.IGNORECASE,
)

# "Acme Strategic Round"
TITLE_WITH_ROUND_PATTERN = re.compile(
    r'^([^$\s]+(?:\s+[^$\s]+){0,2}?)\s+([A-Za-z\-]+(?:\s+[A-Za-z]+)?)\s+Round\b',
    re.IGNORECASE,
)

ABOUT_SECTION_PATTERN = re.compile(r'About:\s*\n([^\n]+)')
ABOUT_SUBJECT_PATTERN = re.compile(r'^([^.]+\.[^\s]+|[^\s]+)\s+is\s+', re.IGNORECASE)

HAS_ACQUIRED_PATTERN = re.compile(r'has acquired\s+([^\s]+)', re.IGNORECASE)
ACQUIRED_BY_LINE_PATTERN = re.compile(r'([^\n]+)\s+acquired by:', re.IGNORECASE)
ACQUIRER_BEFORE_PATTERN = re.compile(r'([^\s]+)\s+has acquired', re.IGNORECASE)


def _clean_name(name: str) -> str:
    return LEADING_DECORATION.sub("", name.strip()).rstrip(NAME_TRAILING_PUNCTUATION).strip()


def _title_line(text: str) -> str:
    return LEADING_DECORATION.sub("", _first_line(text))


def company_from_title_with_amount(text: str) -> Optional[str]:
    match = TITLE_WITH_AMOUNT_PATTERN.match(_title_line(text))
    return _clean_name(match.group(1)) if match else None


def company_from_title_with_round(text: str) -> Optional[str]:
    match = TITLE_WITH_ROUND_PATTERN.match(_title_line(text))
    return _clean_name(match.group(1)) if match else None


def company_from_about(text: str) -> Optional[str]:
    """First sentence subject of the "About:" section."""
    match = ABOUT_SECTION_PATTERN.search(text)
    if not match:
        return None

    about_text = match.group(1).strip()
    subject = ABOUT_SUBJECT_PATTERN.match(about_text)
    if subject:
        return _clean_name(subject.group(1))

    first_term = about_text.split()[0] if about_text.split() else ""
    first_term = _clean_name(first_term)
    return first_term if len(first_term) > 1 else None


def company_from_acquisition(text: str) -> Optional[str]:
    """The acquired company: "Acme has acquired Beta" or "Beta acquired by:"."""
    match = HAS_ACQUIRED_PATTERN.search(text)
    if match:
        return _clean_name(match.group(1)) or None

    match = ACQUIRED_BY_LINE_PATTERN.search(text)
    if match:
        return _clean_name(match.group(1)) or None
    return None


def company_from_first_line(text: str) -> Optional[str]:
    """Last resort: first word of the title line."""
    match = re.match(r'^([^$\s]+)', _title_line(text))
    if match:
        word = _clean_name(match.group(1))
        if len(word) > 1:
            return word
    return None


COMPANY_STRATEGIES = [
    Strategy("title_with_amount", company_from_title_with_amount),
    Strategy("title_with_round", company_from_title_with_round),
    Strategy("about_section", company_from_about),
]

ACQUISITION_COMPANY_STRATEGIES = [
    Strategy("acquisition_phrase", company_from_acquisition),
]

FALLBACK_COMPANY_STRATEGIES = [
    Strategy("first_line", company_from_first_line),
]


def extract_company_name(text: str, is_acquisition: bool) -> str:
    strategies = COMPANY_STRATEGIES
    if is_acquisition:
        strategies = strategies + ACQUISITION_COMPANY_STRATEGIES
    strategies = strategies + FALLBACK_COMPANY_STRATEGIES

    hit = first_match(strategies, text)
    if not hit:
        return ""

    name, company = hit
    logger.debug(f"Company '{company}' via {name}")
    return company


# =============================================================================
# AMOUNT
# =============================================================================

NUMBER = r'(\d[\d,]*(?:\.\d+)?)'

DOLLAR_MB_PATTERN = re.compile(r'\$\s*' + NUMBER + r'\s*(m|b)(?:n|illion)?\b', re.IGNORECASE)
DOLLAR_K_PATTERN = re.compile(r'\$\s*' + NUMBER + r'\s*k\b', re.IGNORECASE)


def amount_from_first_line(text: str) -> Optional[str]:
    match = DOLLAR_MB_PATTERN.search(_first_line(text))
    if match:
        return format_amount(match.group(1), match.group(2).upper())
    return None


def thousands_from_first_line(text: str) -> Optional[str]:
    match = DOLLAR_K_PATTERN.search(_first_line(text))
    if match:
        return thousands_to_millions(match.group(1))
    return None


def amount_from_text(text: str) -> Optional[str]:
    match = DOLLAR_MB_PATTERN.search(text)
    if match:
        return format_amount(match.group(1), match.group(2).upper())
    return None


def undisclosed_mention(text: str) -> Optional[str]:
    return UNDISCLOSED if "undisclosed" in text.lower() else None


AMOUNT_STRATEGIES = [
    Strategy("first_line_dollars", amount_from_first_line),
    Strategy("first_line_thousands", thousands_from_first_line),
    Strategy("text_dollars", amount_from_text),
    Strategy("undisclosed", undisclosed_mention),
]


def extract_funding_amount(text: str) -> str:
    hit = first_match(AMOUNT_STRATEGIES, text)
    return hit[1] if hit else UNDISCLOSED


# =============================================================================
# ROUND TYPE
# =============================================================================

# Exact phrases checked on the title line, in priority order
FIRST_LINE_ROUND_PHRASES = [
    ("Angel Round", "Angel Round"),
    ("Pre-Seed Round", "Pre-Seed"),
    ("Seed Round", "Seed"),
    ("Pre-Series A Round", "Pre-Series A"),
    ("Series A Round", "Series A"),
    ("Series B Round", "Series B"),
    ("Series C Round", "Series C"),
    ("Strategic Round", "Strategic"),
    ("Funding Round", "Funding"),
    ("Private Round", "Private Round"),
    ("Private Token Sale", "Token Sale"),
    ("Token Sale", "Token Sale"),
]

# Whole-text fallbacks, in priority order
TEXT_ROUND_PATTERNS = [
    (re.compile(r'Pre-Seed\s+Round', re.IGNORECASE), "Pre-Seed"),
    (re.compile(r'Seed\s+Round', re.IGNORECASE), "Seed"),
    (re.compile(r'Pre-Series\s+A', re.IGNORECASE), "Pre-Series A"),
    (re.compile(r'(?<!Pre-)Series\s+A\s+Round', re.IGNORECASE), "Series A"),
    (re.compile(r'Series\s+B\s+Round', re.IGNORECASE), "Series B"),
    (re.compile(r'Series\s+C\s+Round', re.IGNORECASE), "Series C"),
    (re.compile(r'Strategic\s+Round', re.IGNORECASE), "Strategic"),
    (re.compile(r'Funding\s+Round', re.IGNORECASE), "Funding"),
    (re.compile(r'Extended\s+Series\s+A', re.IGNORECASE), "Series A"),
    (re.compile(r'Angel\s+Round', re.IGNORECASE), "Angel Round"),
    (re.compile(r'Private\s+Round', re.IGNORECASE), "Private Round"),
    (re.compile(r'Private\s+Sale', re.IGNORECASE), "Private Sale"),
    (re.compile(r'Token\s+Sale', re.IGNORECASE), "Token Sale"),
    (re.compile(r'(?<!Pre-)Series\s+A\b', re.IGNORECASE), "Series A"),
    (re.compile(r'Series\s+B\b', re.IGNORECASE), "Series B"),
    (re.compile(r'Series\s+C\b', re.IGNORECASE), "Series C"),
]


def round_from_first_line(text: str) -> Optional[str]:
    first_line = _first_line(text)
    for phrase, label in FIRST_LINE_ROUND_PHRASES:
        if phrase in first_line:
            return label
    return None


def round_from_text(text: str) -> Optional[str]:
    for pattern, label in TEXT_ROUND_PATTERNS:
        if pattern.search(text):
            return label
    return None


ROUND_STRATEGIES = [
    Strategy("first_line_phrase", round_from_first_line),
    Strategy("text_pattern", round_from_text),
]


def extract_round_type(text: str) -> Optional[str]:
    hit = first_match(ROUND_STRATEGIES, text)
    return hit[1] if hit else None


def canonical_round(value) -> Optional[str]:
    """Map free-form round text onto the closed round vocabulary."""
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    for phrase, label in FIRST_LINE_ROUND_PHRASES:
        if value.lower() in (label.lower(), phrase.lower()):
            return label
    return round_from_text(value) or _bare_round_label(value)


def _bare_round_label(value: str) -> Optional[str]:
    lowered = value.lower()
    for label in ROUND_LABELS:
        if lowered == label.lower():
            return label
    if lowered in ("angel", "angel round"):
        return "Angel Round"
    return None


# =============================================================================
# INVESTORS
# =============================================================================

INVESTOR_SECTION_SPLIT = re.compile(r'Investors?:')
ACQUIRED_BY_SECTION_SPLIT = re.compile(r'Acquired by:', re.IGNORECASE)
SECTION_END_SPLIT = re.compile(r'\n\n|👉')
INVESTOR_ENTRY_SPLIT = re.compile(r',|\sand\s|\n')

# Phrases separating an investor's name from a trailing description
DESCRIPTION_SEPARATORS = (" - ", " is ", " a ", " forms ", " builds ")


def clean_investor_name(entry: str) -> Tuple[str, Optional[str]]:
    """
    Split "Name, description" / "Name - description" into its parts.

    The earliest separator wins.

    Examples:
        >>> clean_investor_name("Paradigm - crypto fund")
        ('Paradigm', 'crypto fund')
    """
    separator_index = entry.find(",")
    separator = ","

    for candidate in DESCRIPTION_SEPARATORS:
        index = entry.find(candidate)
        if index != -1 and (separator_index == -1 or index < separator_index):
            separator_index = index
            separator = candidate

    if separator_index == -1:
        return entry.strip(), None

    name = entry[:separator_index].strip()
    description = entry[separator_index + len(separator):].strip()
    return name, description or None


def _section_after(pattern: re.Pattern, text: str) -> Optional[str]:
    parts = pattern.split(text, maxsplit=1)
    if len(parts) < 2:
        return None
    return SECTION_END_SPLIT.split(parts[1], maxsplit=1)[0]


def extract_investors(text: str, is_acquisition: bool) -> List[Tuple[str, Optional[str]]]:
    """Investor (name, description) pairs from the "Investors:" or "Acquired by:" section."""
    if "Investor:" in text or "Investors:" in text:
        section = _section_after(INVESTOR_SECTION_SPLIT, text)
        if not section:
            return []
        entries = [
            e.replace("(Lead)", "").strip()
            for e in INVESTOR_ENTRY_SPLIT.split(section)
        ]
        return [clean_investor_name(e) for e in entries if e and len(e) > 1]

    if is_acquisition:
        section = _section_after(ACQUIRED_BY_SECTION_SPLIT, text)
        if section and section.strip():
            return [clean_investor_name(section.strip())]
    return []


def extract_acquirer(text: str, investors: List[str]) -> Optional[str]:
    """Acquirer from "Acquired by:" (already parsed as investors) or "X has acquired"."""
    if ACQUIRED_BY_SECTION_SPLIT.search(text) and investors:
        return investors[0]
    match = ACQUIRER_BEFORE_PATTERN.search(text)
    if match:
        return _clean_name(match.group(1)) or None
    return None


# =============================================================================
# VALUATION AND LINKS
# =============================================================================

VALUATION_PATTERN = re.compile(
    r'Valuation:\s*\$?\s*' + NUMBER + r'\s*(k|m|b|million|billion)?\b',
    re.IGNORECASE,
)


def extract_valuation(text: str) -> Optional[str]:
    match = VALUATION_PATTERN.search(text)
    if not match:
        return None
    return format_amount(match.group(1), match.group(2))


def extract_message_links(text: str) -> Optional[List[str]]:
    links = clean_links(extract_links(text))
    return links or None


# =============================================================================
# ROUNDUPS
# =============================================================================

# "$10M", "$2.5 billion", "$750K", or an unprefixed "10M"
ROUNDUP_AMOUNT_PATTERN = re.compile(
    r'(?:\$\s*' + NUMBER + r'\s*(k|m|mn|b|bn|million|billion)?\b)'
    r'|(?:\b' + NUMBER + r'\s*(k|m|mn|b|bn|million|billion)\b)',
    re.IGNORECASE,
)

ROUNDUP_ACQUISITION_PATTERN = re.compile(
    r'(\w+)\s+acquired\s+(\w+)(?:\s+for\s+\$?\s*' + NUMBER + r'\s*(k|m|mn|b|bn|million|billion)?)?',
    re.IGNORECASE,
)

HEADER_LINE_MARKERS = ("Week", "Total")
DIGEST_HEADER_PATTERN = re.compile(r'Funding\s+Rounds\s+Of', re.IGNORECASE)

ITEM_LEADING_JUNK = re.compile(r'^(?:[^\w$]+|\d+[.)]\s+)+')
ITEM_JOINER = re.compile(r'^[\s,;&]*(?:and\s+)?')
ITEM_TRAILING_SEPARATORS = re.compile(r'[\s\-–—:|=>]+$')


def _is_section_header(line: str) -> bool:
    if is_weekly_roundup(line) or DIGEST_HEADER_PATTERN.search(line):
        return True
    return any(marker in line for marker in HEADER_LINE_MARKERS)


def _roundup_segments(text: str) -> List[str]:
    """Lines that may hold company/amount items; headers only contribute text after ':'."""
    segments = []
    for line in text.split("\n"):
        line = line.strip()
        if len(line) < 5:
            continue
        if ROUNDUP_ACQUISITION_PATTERN.search(line):
            continue
        if _is_section_header(line):
            if ":" not in line:
                continue
            line = line.split(":", 1)[1].strip()
        if line:
            segments.append(line)
    return segments


def _resolve_single_letter(company: str, item: str) -> str:
    """A lone letter before a hyphen ("T" in "T-Rex") is part of a hyphenated name."""
    if len(company) != 1:
        return company
    match = re.search(r'\b' + re.escape(company) + r'-\w+', item)
    return match.group(0) if match else company


def _amount_with_unit(number: str, unit: Optional[str]) -> str:
    if unit:
        return format_amount(number, unit)
    # "$1,500,000" is raw dollars, "$12" is already millions
    return canonical_amount(number) or format_amount(number, None)


def _roundup_amount(match: re.Match) -> str:
    return _amount_with_unit(match.group(1) or match.group(3), match.group(2) or match.group(4))


def parse_roundup_items(text: str) -> List[Tuple[str, str]]:
    """Company/amount pairs from a roundup, de-duplicated by company."""
    items: List[Tuple[str, str]] = []
    seen = set()

    for segment in _roundup_segments(text):
        previous_end = 0
        for position, match in enumerate(ROUNDUP_AMOUNT_PATTERN.finditer(segment)):
            prefix = segment[previous_end:match.start()]
            previous_end = match.end()

            if position > 0:
                # Trailing words of the previous item sit before the comma
                prefix = re.split(r'[,;]', prefix)[-1]

            company = ITEM_JOINER.sub("", prefix)
            company = ITEM_LEADING_JUNK.sub("", company)
            company = ITEM_TRAILING_SEPARATORS.sub("", company).strip()
            company = _resolve_single_letter(company, segment)
            if len(company) < 2 or company in seen:
                continue
            seen.add(company)
            items.append((company, _roundup_amount(match)))

    return items


def parse_roundup_acquisitions(text: str) -> List[AcquisitionMention]:
    acquisitions = []
    for match in ROUNDUP_ACQUISITION_PATTERN.finditer(text):
        amount = _amount_with_unit(match.group(3), match.group(4)) if match.group(3) else None
        acquisitions.append(
            AcquisitionMention(
                company=match.group(2).strip(),
                acquirer=match.group(1).strip(),
                amount=amount,
            )
        )
    return acquisitions


def parse_roundup(message: RawMessage) -> Optional[RoundupRecord]:
    text = message.text
    items = parse_roundup_items(text)
    if not items:
        return None

    acquisitions = parse_roundup_acquisitions(text)
    return RoundupRecord(
        company=[company for company, _ in items],
        amount=[amount for _, amount in items],
        date=message.date,
        raw_text=text,
        links=extract_message_links(text),
        acquisitions_in_roundup=acquisitions or None,
        is_part_of_roundup=True,
    )


# =============================================================================
# SINGLE ANNOUNCEMENTS
# =============================================================================

def parse_announcement(message: RawMessage) -> Optional[SingleRecord]:
    text = message.text
    is_acquisition = is_acquisition_text(text)
    record_type = RecordType.ACQUISITION if is_acquisition else RecordType.INVESTMENT

    company = extract_company_name(text, is_acquisition)
    if not company:
        return None

    entries = extract_investors(text, is_acquisition)
    investors = [name for name, _ in entries]
    details: Dict[str, str] = {name: desc for name, desc in entries if desc}

    return SingleRecord(
        type=record_type.value,
        company=company,
        amount=extract_funding_amount(text),
        round=extract_round_type(text),
        investors=investors,
        investor_details=details or None,
        acquirer=extract_acquirer(text, investors) if is_acquisition else None,
        date=message.date,
        raw_text=text,
        valuation=extract_valuation(text),
        links=extract_message_links(text),
    )


def parse_message(message: RawMessage) -> Optional[InvestmentRecord]:
    """
    Parse one message into a record, or None when it is not an announcement.

    Deterministic: the same text always yields an identical record.
    """
    text = message.text
    if not has_funding_vocabulary(text):
        return None

    if is_roundup(text):
        record = parse_roundup(message)
    else:
        record = parse_announcement(message)

    return record if is_emittable(record) else None


def parse_messages(messages: Iterable[RawMessage]) -> List[InvestmentRecord]:
    """Parse many messages; a message that fails to parse is logged and skipped."""
    records: List[InvestmentRecord] = []
    for message in messages:
        try:
            record = parse_message(message)
        except Exception as e:
            logger.error(f"Error parsing message {message.id}: {type(e).__name__}: {e}")
            continue
        if record is not None:
            records.append(record)
    return records


class DeterministicEngine:
    """Pattern parser exposed through the async engine interface."""

    name = "pattern"

    async def extract_many(self, messages: List[RawMessage]) -> List[InvestmentRecord]:
        return parse_messages(messages)

    async def extract(self, message: RawMessage) -> Optional[InvestmentRecord]:
        records = parse_messages([message])
        return records[0] if records else None
