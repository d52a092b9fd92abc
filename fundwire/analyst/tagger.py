"""
Keyword Tagger - term-list entity tagging for channel messages.

Attaches MessageEntities (companies, protocols, themes, keywords) to each
message before extraction. The tags only feed the message summary file;
neither extraction engine depends on them.
"""

import logging
import re
from typing import List

from .schemas import MessageEntities, RawMessage

logger = logging.getLogger(__name__)

CRYPTO_PROTOCOLS = [
    "Bitcoin", "BTC", "Ethereum", "ETH", "Solana", "SOL", "Cardano", "ADA",
    "Polkadot", "DOT", "Avalanche", "AVAX", "Chainlink", "LINK", "Polygon", "MATIC",
    "Uniswap", "UNI", "Aave", "Compound", "MakerDAO", "Curve", "DeFi", "NFT",
    "SushiSwap", "PancakeSwap", "BSC", "Binance Smart Chain", "Layer 2", "L2",
    "Rollup", "ZK-rollup", "Optimistic rollup", "Arbitrum", "Optimism",
]

CRYPTO_THEMES = [
    "DeFi", "NFT", "Metaverse", "Web3", "DAO", "GameFi", "Play-to-Earn", "P2E",
    "DEX", "AMM", "Lending", "Yield Farming", "Staking", "Layer 1", "Layer 2",
    "L1", "L2", "ZK", "Zero Knowledge", "Privacy", "Governance", "Interoperability",
    "Cross-chain", "Oracle", "Stablecoin", "CBDC", "ICO", "IDO", "IEO", "INO",
    "STO", "Tokenization", "Smart Contracts", "Fundraising", "Presale", "Seed Round",
    "Private Sale", "Public Sale", "Listing", "LaunchPad", "Whitelist",
]

STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would",
    "could", "should", "may", "might", "must", "shall", "can", "need",
    "it", "its", "this", "that", "these", "those", "there", "their",
    "our", "your", "you", "they", "them", "his", "her", "she", "him",
    "not", "all", "any", "into", "than", "then", "also", "just", "more",
    "about", "over", "out", "who", "what", "which", "when", "where", "how",
}

MAX_KEYWORDS = 10

WORD_PATTERN = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z]+)?")
KEYWORD_TOKEN = re.compile(r"^[a-zA-Z0-9]+$")

# Runs of capitalized words ("Acme Labs", "Paradigm") as organization guesses
CAPITALIZED_PHRASE = re.compile(r"\b[A-Z][\w.&-]*(?:\s+[A-Z][\w.&-]*)*")

# Capitalized words that start sentences or headings, not organizations
NON_COMPANY_WORDS = {
    "The", "A", "An", "We", "Our", "This", "That", "Investors", "Investor",
    "About", "Round", "Funding", "Seed", "Series", "Top", "Best", "Week",
    "Total", "Acquired", "Website", "Twitter", "Valuation", "Exciting", "News",
}


def find_terms(text: str, terms: List[str]) -> List[str]:
    """Case-insensitive substring match against a term list, in list order."""
    lowered = text.lower()
    return [term for term in terms if term.lower() in lowered]


def extract_keywords(text: str) -> List[str]:
    """First MAX_KEYWORDS alphanumeric, non-stopword tokens longer than 2 chars, lower-cased."""
    keywords = []
    for token in WORD_PATTERN.findall(text):
        if len(token) <= 2 or not KEYWORD_TOKEN.match(token):
            continue
        if token.lower() in STOPWORDS:
            continue
        keywords.append(token.lower())
        if len(keywords) == MAX_KEYWORDS:
            break
    return keywords


def guess_companies(text: str) -> List[str]:
    """Unique capitalized phrases that are not protocol names or heading words."""
    protocols = {p.lower() for p in CRYPTO_PROTOCOLS}
    seen = set()
    companies = []
    for match in CAPITALIZED_PHRASE.finditer(text):
        words = [w for w in match.group(0).split() if w not in NON_COMPANY_WORDS]
        phrase = " ".join(words).rstrip(".,:;!")
        if len(phrase) < 2 or phrase.lower() in protocols or phrase.isupper():
            continue
        if phrase not in seen:
            seen.add(phrase)
            companies.append(phrase)
    return companies


class KeywordTagger:
    """Default keyword collaborator: analyze(text) -> MessageEntities."""

    def analyze(self, text: str) -> MessageEntities:
        text = text or ""
        return MessageEntities(
            companies=guess_companies(text),
            protocols=find_terms(text, CRYPTO_PROTOCOLS),
            themes=find_terms(text, CRYPTO_THEMES),
            keywords=extract_keywords(text),
        )

    def tag(self, message: RawMessage) -> RawMessage:
        """Return a copy of the message with entities filled in; tagged messages pass through."""
        if message.entities is not None:
            return message
        return message.model_copy(update={"entities": self.analyze(message.text)})

    def tag_all(self, messages: List[RawMessage]) -> List[RawMessage]:
        tagged = [self.tag(m) for m in messages]
        logger.debug(f"Tagged {len(tagged)} messages")
        return tagged
