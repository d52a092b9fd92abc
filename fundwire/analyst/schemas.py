"""
Pydantic schemas for fundraising messages and extracted investment records.

Both extraction engines (pattern parser and generation service) converge on
these models. Records serialize with the camelCase keys used in the persisted
JSON files:

    record_to_dict(record) -> {"company": ..., "rawText": ..., ...}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union
import logging

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from .amounts import strip_currency
from ..common.url_utils import dedupe, ensure_scheme

logger = logging.getLogger(__name__)


class RoundLabel(str, Enum):
    """Closed vocabulary of round types."""
    PRE_SEED = "Pre-Seed"
    SEED = "Seed"
    ANGEL = "Angel Round"
    SERIES_A = "Series A"
    SERIES_B = "Series B"
    SERIES_C = "Series C"
    STRATEGIC = "Strategic"
    TOKEN_SALE = "Token Sale"
    PRIVATE_SALE = "Private Sale"
    FUNDING = "Funding"
    PRE_SERIES_A = "Pre-Series A"
    PRIVATE_ROUND = "Private Round"


ROUND_LABELS = {label.value for label in RoundLabel}


class RecordType(str, Enum):
    INVESTMENT = "investment"
    ACQUISITION = "acquisition"
    ROUNDUP = "roundup"


# =============================================================================
# Input messages
# =============================================================================

class MessageEntities(BaseModel):
    """Keyword/entity tags attached to a message before extraction."""
    companies: List[str] = Field(default_factory=list)
    protocols: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)


class RawMessage(BaseModel):
    """A chat message as delivered by the message source. Never mutated."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Union[int, str]
    date: str = Field(description="Timestamp copied verbatim into extracted records")
    sender_id: Optional[str] = Field(default=None, alias="senderId")
    sender_name: Optional[str] = Field(default=None, alias="senderName")
    text: str = ""
    entities: Optional[MessageEntities] = None

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, v) -> str:
        """Accept datetimes and unix timestamps as well as strings."""
        if isinstance(v, datetime):
            return v.isoformat()
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return datetime.fromtimestamp(v, tz=timezone.utc).isoformat()
        return v

    @field_validator("sender_id", mode="before")
    @classmethod
    def coerce_sender_id(cls, v):
        if v is None:
            return None
        return str(v)

    @field_validator("text", mode="before")
    @classmethod
    def coerce_text(cls, v) -> str:
        return v or ""


# =============================================================================
# Investment records
# =============================================================================

def _strip_optional_currency(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    if not isinstance(v, str):
        v = str(v)
    return strip_currency(v) or None


class AcquisitionMention(BaseModel):
    """An acquisition line item nested inside a roundup."""
    company: str
    acquirer: Optional[str] = None
    amount: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def strip_amount_currency(cls, v):
        return _strip_optional_currency(v)


class RecordBase(BaseModel):
    """Fields shared by single and roundup records."""
    model_config = ConfigDict(populate_by_name=True)

    date: str
    raw_text: str = Field(alias="rawText", description="Original message text, kept for audit")
    about: Optional[str] = None
    valuation: Optional[str] = None
    links: Optional[List[str]] = None

    @field_validator("valuation", mode="before")
    @classmethod
    def strip_valuation_currency(cls, v):
        return _strip_optional_currency(v)

    @field_validator("links")
    @classmethod
    def canonical_links(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Absolute, deduplicated links; empty lists become None."""
        if not v:
            return None
        return dedupe(ensure_scheme(link) for link in v if link)


class SingleRecord(RecordBase):
    """One investment or acquisition announced by one message."""
    type: Literal["investment", "acquisition"]
    company: str
    amount: Optional[str] = None
    round: Optional[str] = None
    investors: List[str] = Field(default_factory=list)
    investor_details: Optional[Dict[str, str]] = Field(default=None, alias="investorDetails")
    acquirer: Optional[str] = None
    is_part_of_roundup: Optional[bool] = Field(default=None, alias="isPartOfRoundup")

    @field_validator("amount", mode="before")
    @classmethod
    def strip_amount_currency(cls, v):
        return _strip_optional_currency(v)

    @model_validator(mode="after")
    def acquirer_only_on_acquisitions(self) -> "SingleRecord":
        if self.acquirer and self.type != RecordType.ACQUISITION.value:
            logger.debug(f"Dropping acquirer '{self.acquirer}' from {self.type} record '{self.company}'")
            self.acquirer = None
        return self


class RoundupRecord(RecordBase):
    """A digest message; companies and amounts are parallel lists."""
    type: Literal["roundup"] = "roundup"
    company: List[str]
    amount: Optional[List[str]] = None
    acquisitions_in_roundup: Optional[List[AcquisitionMention]] = Field(
        default=None, alias="acquisitionsInRoundup"
    )
    is_part_of_roundup: bool = Field(default=True, alias="isPartOfRoundup")

    @field_validator("amount", mode="before")
    @classmethod
    def strip_amounts_currency(cls, v):
        if v is None:
            return None
        return [strip_currency(str(a)) for a in v]

    @model_validator(mode="after")
    def parallel_lists(self) -> "RoundupRecord":
        if self.amount is not None and len(self.amount) != len(self.company):
            raise ValueError(
                f"Roundup amounts ({len(self.amount)}) must match companies ({len(self.company)})"
            )
        return self


InvestmentRecord = Annotated[Union[SingleRecord, RoundupRecord], Field(discriminator="type")]

INVESTMENT_RECORDS = TypeAdapter(List[InvestmentRecord])


def is_emittable(record: Optional[InvestmentRecord]) -> bool:
    """A record is only emitted when it names at least one company."""
    if record is None:
        return False
    if isinstance(record, RoundupRecord):
        return len(record.company) > 0
    return bool(record.company and record.company.strip())


def record_to_dict(record: InvestmentRecord) -> dict:
    """Serialize a record with the persisted camelCase keys."""
    return record.model_dump(mode="json", by_alias=True, exclude_none=True)


def records_from_json(data: list) -> List[InvestmentRecord]:
    """Load records previously written with record_to_dict."""
    return INVESTMENT_RECORDS.validate_python(data)
