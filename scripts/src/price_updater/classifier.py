"""Partition holdings by refresh category and resolve provider identifiers."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field

from loguru import logger

from .models import AssetCategory, Holding

# ------------------------------------------------------------------
# Lookup tables
# ------------------------------------------------------------------

# Normalized display name -> CoinGecko asset id.
CRYPTO_IDS: dict[str, str] = {
    "BITCOIN": "bitcoin",
    "BTC": "bitcoin",
    "ETHEREUM": "ethereum",
    "ETH": "ethereum",
    "SOLANA": "solana",
    "SOL": "solana",
    "CARDANO": "cardano",
    "ADA": "cardano",
    "POLKADOT": "polkadot",
    "DOT": "polkadot",
    "DOGECOIN": "dogecoin",
    "DOGE": "dogecoin",
    "SHIBA INU": "shiba-inu",
    "SHIB": "shiba-inu",
    "BNB": "binancecoin",
    "AVALANCHE": "avalanche-2",
    "AVAX": "avalanche-2",
    "TRON": "tron",
    "TRX": "tron",
    "CHAINLINK": "chainlink",
    "LINK": "chainlink",
    "UNISWAP": "uniswap",
    "UNI": "uniswap",
    "LITECOIN": "litecoin",
    "LTC": "litecoin",
    "BCASH": "bitcoin-cash",
    "BITCOIN CASH": "bitcoin-cash",
    "BCH": "bitcoin-cash",
    "XRP (RIPPLE)": "ripple",
    "XRP": "ripple",
    "RIPPLE": "ripple",
}

# Every id the crypto provider is asked for, in one call.
CRYPTO_PROVIDER_IDS: tuple[str, ...] = tuple(sorted(set(CRYPTO_IDS.values())))

# Ordered (keyword phrase, pair) table. A phrase matches when its words appear
# consecutively in the normalized name; the first match wins, so specific
# phrases precede the generic ones they contain. Words of four or more letters
# also match as a prefix ("DOLARES", "EUROS"); three-letter codes match whole
# words only, so "AUD" does not hit "SAUDI".
CURRENCY_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("DOLAR CANADENSE", "CADBRL"),
    ("DOLAR AUSTRALIANO", "AUDBRL"),
    ("PESO ARGENTINO", "ARSBRL"),
    ("PESO ARG", "ARSBRL"),
    ("PESO MEXICANO", "MXNBRL"),
    ("USD", "USDBRL"),
    ("USDBRL", "USDBRL"),
    ("DOLAR", "USDBRL"),
    ("EUR", "EURBRL"),
    ("EURBRL", "EURBRL"),
    ("EURO", "EURBRL"),
    ("GBP", "GBPBRL"),
    ("LIBRA", "GBPBRL"),
    ("JPY", "JPYBRL"),
    ("IENE", "JPYBRL"),
    ("CHF", "CHFBRL"),
    ("FRANCO", "CHFBRL"),
    ("CAD", "CADBRL"),
    ("AUD", "AUDBRL"),
    ("ARS", "ARSBRL"),
    ("CNY", "CNYBRL"),
    ("YUAN", "CNYBRL"),
    ("MXN", "MXNBRL"),
)

# Every pair the currency provider is asked for, in one call.
CURRENCY_PAIRS: tuple[str, ...] = (
    "USDBRL",
    "EURBRL",
    "GBPBRL",
    "JPYBRL",
    "CHFBRL",
    "CADBRL",
    "AUDBRL",
    "ARSBRL",
    "CNYBRL",
    "MXNBRL",
)

_TOKEN_SPLIT = re.compile(r"[^A-Z0-9]+")
_MIN_PREFIX_LEN = 4


# ------------------------------------------------------------------
# Name resolution
# ------------------------------------------------------------------


def normalize_name(name: str | None) -> str:
    """Upper-case *name*, strip accents and collapse whitespace.

    ``"  Dólar   americano"`` becomes ``"DOLAR AMERICANO"``.
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.upper().split())


def _tokens(name: str) -> list[str]:
    return [tok for tok in _TOKEN_SPLIT.split(normalize_name(name)) if tok]


def resolve_crypto_id(name: str | None) -> str | None:
    """Return the provider asset id for a crypto holding name, or ``None``."""
    return CRYPTO_IDS.get(normalize_name(name))


def resolve_currency_pair(name: str | None) -> str | None:
    """Return the currency pair key (e.g. ``"USDBRL"``) for a holding name, or ``None``."""
    tokens = _tokens(name or "")
    if not tokens:
        return None
    for phrase, pair in CURRENCY_KEYWORDS:
        words = phrase.split()
        width = len(words)
        for start in range(len(tokens) - width + 1):
            if all(_word_matches(tok, word) for tok, word in zip(tokens[start:], words)):
                return pair
    return None


def _word_matches(token: str, word: str) -> bool:
    if len(word) >= _MIN_PREFIX_LEN and word.isalpha():
        return token.startswith(word)
    return token == word


# ------------------------------------------------------------------
# Partitioning
# ------------------------------------------------------------------


@dataclass
class ClassifiedHoldings:
    """Disjoint refresh buckets of one holdings snapshot.

    ``crypto`` and ``currency`` map each holding to the provider identifier it
    resolved to; ``equity`` maps it to its ticker. ``unmatched`` describes
    holdings that have a live-price category but no provider mapping.
    """

    equity: list[tuple[Holding, str]] = field(default_factory=list)
    crypto: list[tuple[Holding, str]] = field(default_factory=list)
    currency: list[tuple[Holding, str]] = field(default_factory=list)
    unclassified: list[Holding] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)

    @property
    def equity_symbols(self) -> set[str]:
        return {symbol for _, symbol in self.equity}

    @property
    def crypto_ids(self) -> set[str]:
        return {asset_id for _, asset_id in self.crypto}

    @property
    def currency_pairs(self) -> set[str]:
        return {pair for _, pair in self.currency}


def classify(holdings: list[Holding]) -> ClassifiedHoldings:
    """Partition *holdings* by their stored category.

    Equity-like holdings without a ticker, and holdings of any category
    without a live price source, land in ``unclassified``. Crypto and
    currency holdings whose name has no table entry also land there and
    are reported in ``unmatched``.
    """
    result = ClassifiedHoldings()

    for holding in holdings:
        category = holding.category

        if category is AssetCategory.EQUITY:
            symbol = (holding.ticker or "").strip().upper()
            if symbol:
                result.equity.append((holding, symbol))
            else:
                result.unclassified.append(holding)

        elif category is AssetCategory.CRYPTO:
            asset_id = resolve_crypto_id(holding.asset_name)
            if asset_id:
                result.crypto.append((holding, asset_id))
            else:
                result.unclassified.append(holding)
                result.unmatched.append(f"crypto: {holding.asset_name!r} (holding {holding.id})")

        elif category is AssetCategory.CURRENCY:
            pair = resolve_currency_pair(holding.asset_name)
            if pair:
                result.currency.append((holding, pair))
            else:
                result.unclassified.append(holding)
                result.unmatched.append(f"currency: {holding.asset_name!r} (holding {holding.id})")

        else:
            result.unclassified.append(holding)

    for entry in result.unmatched:
        logger.warning("No provider mapping for {}; holding will not be refreshed", entry)

    logger.info(
        "Classified {} holding(s): {} equity, {} crypto, {} currency, {} without live price",
        len(holdings),
        len(result.equity),
        len(result.crypto),
        len(result.currency),
        len(result.unclassified),
    )
    return result
