from .schemas import (
    RawMessage,
    MessageEntities,
    SingleRecord,
    RoundupRecord,
    AcquisitionMention,
    InvestmentRecord,
    RoundLabel,
    RecordType,
    record_to_dict,
)
from .parser import parse_message, parse_messages, DeterministicEngine
from .extractor import GenAIExtractor, MalformedResponseError, standardize_investment_data
from .aggregator import summarize, summarize_messages, organize, InvestmentSummary
from .tagger import KeywordTagger

__all__ = [
    "RawMessage",
    "MessageEntities",
    "SingleRecord",
    "RoundupRecord",
    "AcquisitionMention",
    "InvestmentRecord",
    "RoundLabel",
    "RecordType",
    "record_to_dict",
    "parse_message",
    "parse_messages",
    "DeterministicEngine",
    "GenAIExtractor",
    "MalformedResponseError",
    "standardize_investment_data",
    "summarize",
    "summarize_messages",
    "organize",
    "InvestmentSummary",
    "KeywordTagger",
]
