"""
Aggregator - summary statistics over extracted records and tagged messages.

Pure functions; records and messages are never mutated.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .schemas import InvestmentRecord, RawMessage, RecordType, RoundupRecord, record_to_dict

TOP_INVESTORS_LIMIT = 20
TOP_KEYWORDS_LIMIT = 30


class InvestmentsByType(BaseModel):
    acquisition: int = 0
    investment: int = 0
    roundup: int = 0


class InvestmentSummary(BaseModel):
    """Contents of an investments file."""
    model_config = ConfigDict(populate_by_name=True)

    total_investments: int = Field(alias="totalInvestments")
    investments_by_type: InvestmentsByType = Field(alias="investmentsByType")
    top_investors: Dict[str, int] = Field(alias="topInvestors")
    round_distribution: Dict[str, int] = Field(alias="roundDistribution")
    investments: List[InvestmentRecord]
    investments_by_company: Optional[Dict[str, List[InvestmentRecord]]] = Field(
        default=None, alias="investmentsByCompany"
    )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MessageSummary(BaseModel):
    """Contents of a message summary file."""
    model_config = ConfigDict(populate_by_name=True)

    total_messages: int = Field(alias="totalMessages")
    companies: List[str]
    protocols: List[str]
    themes: List[str]
    top_keywords: Dict[str, int] = Field(alias="topKeywords")

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class OrganizedInvestments(BaseModel):
    """Non-roundup records grouped three ways; roundups kept aside."""
    model_config = ConfigDict(populate_by_name=True)

    by_company: Dict[str, List[InvestmentRecord]] = Field(default_factory=dict, alias="byCompany")
    by_investor: Dict[str, List[InvestmentRecord]] = Field(default_factory=dict, alias="byInvestor")
    by_round: Dict[str, List[InvestmentRecord]] = Field(default_factory=dict, alias="byRound")
    roundups: List[InvestmentRecord] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Investment statistics
# =============================================================================

def _top(counts: Counter, limit: int) -> Dict[str, int]:
    """Highest counts first; equal counts keep first-seen order."""
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return dict(ranked[:limit])


def count_by_type(records: Iterable[InvestmentRecord]) -> InvestmentsByType:
    counts = Counter(record.type for record in records)
    return InvestmentsByType(
        acquisition=counts.get(RecordType.ACQUISITION.value, 0),
        investment=counts.get(RecordType.INVESTMENT.value, 0),
        roundup=counts.get(RecordType.ROUNDUP.value, 0),
    )


def top_investors(records: Iterable[InvestmentRecord], limit: int = TOP_INVESTORS_LIMIT) -> Dict[str, int]:
    counts: Counter = Counter()
    for record in records:
        for investor in getattr(record, "investors", None) or []:
            if investor:
                counts[investor] += 1
    return _top(counts, limit)


def round_bucket(record: InvestmentRecord) -> str:
    """Round label, or Acquisition / Roundup / Other when the record has none."""
    round_label = getattr(record, "round", None)
    if round_label:
        return round_label
    if record.type == RecordType.ACQUISITION.value:
        return "Acquisition"
    if record.type == RecordType.ROUNDUP.value:
        return "Roundup"
    return "Other"


def round_distribution(records: Iterable[InvestmentRecord]) -> Dict[str, int]:
    return dict(Counter(round_bucket(record) for record in records))


def company_names(record: InvestmentRecord) -> List[str]:
    if isinstance(record, RoundupRecord):
        return [c for c in record.company if c]
    return [record.company] if record.company else []


def index_by_company(records: Iterable[InvestmentRecord]) -> Dict[str, List[InvestmentRecord]]:
    """Every company a record names maps to that record; roundups appear once per company."""
    index: Dict[str, List[InvestmentRecord]] = {}
    for record in records:
        for company in company_names(record):
            index.setdefault(company, []).append(record)
    return index


def summarize(records: List[InvestmentRecord], include_by_company: bool = True) -> InvestmentSummary:
    """
    Build the investments file contents.

    Args:
        records: Extracted records, in extraction order
        include_by_company: Add investmentsByCompany (omitted from the
            generation-service output file)
    """
    return InvestmentSummary(
        total_investments=len(records),
        investments_by_type=count_by_type(records),
        top_investors=top_investors(records),
        round_distribution=round_distribution(records),
        investments=list(records),
        investments_by_company=index_by_company(records) if include_by_company else None,
    )


def organize(records: Iterable[InvestmentRecord]) -> OrganizedInvestments:
    organized = OrganizedInvestments()
    for record in records:
        if isinstance(record, RoundupRecord) or record.is_part_of_roundup:
            organized.roundups.append(record)
            continue

        if record.company:
            organized.by_company.setdefault(record.company, []).append(record)
        for investor in record.investors:
            organized.by_investor.setdefault(investor, []).append(record)

        round_label = record.round or ("Acquisition" if record.type == RecordType.ACQUISITION.value else "Unknown")
        organized.by_round.setdefault(round_label, []).append(record)
    return organized


# =============================================================================
# Message statistics
# =============================================================================

def _unique_entities(messages: Iterable[RawMessage], field: str) -> List[str]:
    seen: Dict[str, None] = {}
    for message in messages:
        if message.entities is None:
            continue
        for entity in getattr(message.entities, field):
            seen.setdefault(entity, None)
    return list(seen)


def top_keywords(messages: Iterable[RawMessage], limit: int = TOP_KEYWORDS_LIMIT) -> Dict[str, int]:
    counts: Counter = Counter()
    for message in messages:
        if message.entities is not None:
            counts.update(message.entities.keywords)
    return _top(counts, limit)


def summarize_messages(messages: List[RawMessage]) -> MessageSummary:
    return MessageSummary(
        total_messages=len(messages),
        companies=_unique_entities(messages, "companies"),
        protocols=_unique_entities(messages, "protocols"),
        themes=_unique_entities(messages, "themes"),
        top_keywords=top_keywords(messages),
    )


def records_to_dicts(records: Iterable[InvestmentRecord]) -> List[dict]:
    return [record_to_dict(record) for record in records]
