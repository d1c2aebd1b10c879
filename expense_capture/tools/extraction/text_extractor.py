"""
Rule-based expense extractor for transcribed text.

Deterministic and offline: amount, currency and category come from regexes
and keyword tables. Results are cached by the exact input text.
"""

import datetime as dt
import re
from collections import OrderedDict
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any

from expense_capture.config import Settings, settings
from expense_capture.logging_config import get_logger
from expense_capture.schemas.extraction import ExpenseCategory, ExtractedExpenseDraft

logger = get_logger(__name__)

# Symbol or word boundary, 1-4 digits, optional "." or "," and 1-2 decimals
AMOUNT_PATTERN = re.compile(r"(?:\b|\$|€|£|₹)(\d{1,4}(?:[.,]\d{1,2})?)")

# Evaluated in order; the first matching rule wins.
CURRENCY_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("EUR", re.compile(r"€|\beur\b|\beuros?\b")),
    ("GBP", re.compile(r"£|\bgbp\b|\bpounds?\b")),
    ("INR", re.compile(r"₹|\binr\b|\brupees?\b|\brs\b")),
    ("USD", re.compile(r"\$|\busd\b|\bdollars?\b")),
    ("CAD", re.compile(r"\bcad\b|c\$|canadian\s+dollars?")),
    ("AUD", re.compile(r"\baud\b|a\$|australian\s+dollars?")),
    ("JPY", re.compile(r"[¥￥]|\bjpy\b|\byen\b")),
    ("CNY", re.compile(r"\bcny\b|\brenminbi\b|\byuan\b")),
)
DEFAULT_CURRENCY = "USD"

CATEGORY_KEYWORDS: dict[ExpenseCategory, tuple[str, ...]] = {
    ExpenseCategory.FOOD: (
        "coffee", "lunch", "dinner", "breakfast", "meal", "restaurant",
        "pizza", "burger", "bar", "starbucks", "cafe",
    ),
    ExpenseCategory.TRANSPORT: (
        "uber", "ola", "taxi", "bus", "train", "metro", "fuel", "gas",
        "petrol", "diesel", "parking",
    ),
    ExpenseCategory.SHOPPING: (
        "shopping", "store", "bought", "purchase", "amazon", "walmart", "target",
    ),
    ExpenseCategory.ENTERTAINMENT: (
        "movie", "cinema", "concert", "game", "netflix", "spotify",
    ),
    ExpenseCategory.UTILITIES: (
        "internet", "wifi", "electric", "electricity", "water", "phone", "bill",
    ),
    ExpenseCategory.HEALTH: (
        "doctor", "pharmacy", "medicine", "hospital", "gym", "yoga",
    ),
    ExpenseCategory.RENT: ("rent", "landlord", "lease"),
    ExpenseCategory.MISC: (),
}

KEYWORD_CONFIDENCE = 0.9
NO_KEYWORD_CONFIDENCE = 0.7


def detect_amount(lowered: str) -> Decimal:
    """First amount-looking token, with a comma decimal separator normalised."""
    match = AMOUNT_PATTERN.search(lowered)
    if not match:
        return Decimal("0")
    try:
        amount = Decimal(match.group(1).replace(",", "."))
    except InvalidOperation:
        return Decimal("0")
    return amount if amount > 0 else Decimal("0")


def detect_currency(lowered: str) -> str:
    for code, pattern in CURRENCY_RULES:
        if pattern.search(lowered):
            return code
    return DEFAULT_CURRENCY


def score_categories(lowered: str) -> tuple[ExpenseCategory, int]:
    """
    Pick the category with the most keyword hits.

    Ties keep the category that reached the count first; no hits at all
    yields Misc with a score of 0.
    """
    best_category = ExpenseCategory.MISC
    best_score = 0
    for category, keywords in CATEGORY_KEYWORDS.items():
        matches = sum(1 for keyword in keywords if keyword in lowered)
        if matches > best_score:
            best_score = matches
            best_category = category
    return best_category, best_score


def infer_category(text: str | None) -> ExpenseCategory:
    """Category for a free-text label such as a vendor name."""
    if not text:
        return ExpenseCategory.MISC
    category, _ = score_categories(text.lower())
    return category


class ExpenseExtractionEngine:
    """
    Extract structured expense fields from transcribed text.

    Never raises: low-information input comes back as amount 0, category
    Misc and the lower confidence. Drafts are cached in a bounded LRU map
    keyed by the exact text, so repeated input returns the same object.

    Example:
        >>> engine = ExpenseExtractionEngine()
        >>> draft = engine.extract("Lunch at Starbucks $12.50")
        >>> (draft.amount, draft.currency, draft.category.value)
        (Decimal('12.50'), 'USD', 'Food')
    """

    def __init__(self, config: Settings | None = None, capacity: int | None = None):
        config = config or settings
        self.capacity = capacity if capacity is not None else config.extraction_cache_size
        self._cache: OrderedDict[str, ExtractedExpenseDraft] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def extract(self, text: str, **kwargs: Any) -> ExtractedExpenseDraft:
        """
        Extract an expense draft from free text.

        Args:
            text: Transcribed text
            **kwargs: Additional context for logging

        Returns:
            ExtractedExpenseDraft (cached per exact text)
        """
        cached = self._cache.get(text)
        if cached is not None:
            self._cache.move_to_end(text)
            self.hits += 1
            logger.debug("extraction_cache_hit", text_length=len(text), **kwargs)
            return cached

        self.misses += 1
        lowered = text.lower()
        category, score = score_categories(lowered)

        draft = ExtractedExpenseDraft(
            amount=detect_amount(lowered),
            currency=detect_currency(lowered),
            description=text.strip(),
            category=category,
            date=dt.date.today(),
            confidence=KEYWORD_CONFIDENCE if score > 0 else NO_KEYWORD_CONFIDENCE,
        )

        self._cache[text] = draft
        if self.capacity > 0:
            while len(self._cache) > self.capacity:
                self._cache.popitem(last=False)

        logger.info(
            "expense_extracted_from_text",
            amount=float(draft.amount),
            currency=draft.currency,
            category=draft.category.value,
            keyword_matches=score,
            confidence=draft.confidence,
            **kwargs,
        )
        return draft

    def clear_cache(self) -> int:
        """Drop all cached drafts. Returns the number removed."""
        cleared = len(self._cache)
        self._cache.clear()
        return cleared

    def cache_info(self) -> dict[str, int]:
        return {
            "size": len(self._cache),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
        }


@lru_cache(maxsize=1)
def get_extraction_engine() -> ExpenseExtractionEngine:
    """Process-wide engine used when callers do not inject their own."""
    return ExpenseExtractionEngine()


def extract_expense_from_text(
    text: str,
    engine: ExpenseExtractionEngine | None = None,
    **kwargs: Any,
) -> ExtractedExpenseDraft:
    """Extract a draft with the given engine or the process-wide one."""
    return (engine or get_extraction_engine()).extract(text, **kwargs)


# Alias for convenience
extract = extract_expense_from_text
