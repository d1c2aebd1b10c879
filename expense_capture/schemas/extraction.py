"""
Pydantic schemas for expense extraction from voice and receipt inputs.
Used by extraction tools to return structured, validated data.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExpenseCategory(str, Enum):
    """Fixed expense categories."""

    FOOD = "Food"
    TRANSPORT = "Transport"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    UTILITIES = "Utilities"
    HEALTH = "Health"
    RENT = "Rent"
    MISC = "Misc"


def coerce_category(value: Any) -> ExpenseCategory:
    """Resolve a category name case-insensitively, defaulting to Misc."""
    if isinstance(value, ExpenseCategory):
        return value
    if isinstance(value, str):
        wanted = value.strip().lower()
        for category in ExpenseCategory:
            if category.value.lower() == wanted:
                return category
    return ExpenseCategory.MISC


class TranscriptionResult(BaseModel):
    """Text produced by the speech-to-text service."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Transcribed text")
    confidence: float = Field(..., ge=0.0, le=1.0)
    language: str | None = Field(None, description="Detected language if reported")


class ExtractedExpenseDraft(BaseModel):
    """
    Structured expense data extracted from a transcription or a receipt.

    Drafts are edited by the user during review and become an expense
    record once confirmed.
    """

    model_config = ConfigDict(validate_assignment=True)

    amount: Decimal = Field(
        ...,
        description="Expense amount; 0 when no amount was detected",
        ge=0,
        examples=[12.50, 100.00],
    )
    currency: str = Field(
        ...,
        description="ISO 4217 currency code (3 letters uppercase)",
        min_length=3,
        max_length=3,
        examples=["USD", "EUR", "INR"],
    )
    description: str = Field(
        ...,
        description="Free-text description of the expense",
    )
    category: ExpenseCategory = Field(
        default=ExpenseCategory.MISC,
        description="One of the fixed expense categories",
    )
    date: dt.date = Field(
        default_factory=dt.date.today,
        description="Date of the expense (ISO 8601)",
    )
    confidence: float = Field(
        ...,
        description="Confidence score for the extraction (0.0 to 1.0)",
        ge=0.0,
        le=1.0,
    )

    @field_validator("currency")
    @classmethod
    def currency_uppercase(cls, v: str) -> str:
        """Ensure currency code is uppercase."""
        return v.upper()

    @field_validator("category", mode="before")
    @classmethod
    def validate_category(cls, v: Any) -> ExpenseCategory:
        """Unknown categories resolve to Misc."""
        return coerce_category(v)

    def to_record_fields(self) -> dict[str, Any]:
        """Fields handed to the record store on confirmation."""
        return {
            "amount": self.amount,
            "currency": self.currency,
            "description": self.description,
            "category": self.category.value,
            "date": self.date,
        }


class ReceiptFields(BaseModel):
    """
    JSON object a vision model must return for a receipt.

    ``amount`` and ``confidence`` are mandatory and must be numbers;
    everything else may be null.
    """

    model_config = ConfigDict(extra="ignore")

    vendor: str | None = None
    date_iso: str | None = Field(None, description="YYYY-MM-DD")
    currency: str | None = None
    amount: float = Field(..., ge=0, strict=True)
    confidence: float = Field(..., ge=0.0, le=1.0, strict=True)

    @field_validator("currency")
    @classmethod
    def currency_uppercase(cls, v: str | None) -> str | None:
        """Ensure currency code is uppercase."""
        return v.upper() if v else v


class ReceiptParseResult(ReceiptFields):
    """Validated receipt extraction annotated with the model tier that produced it."""

    model: str


class ReceiptParseRequest(BaseModel):
    """Receipt parsing request body."""

    image_b64: str | None = Field(None, description="Image as a base64 data URL")
    locale_hint: str | None = Field(None, examples=["en-US", "de-DE"])
    currency_hint: str | None = Field(None, examples=["USD", "EUR"])


class ReceiptParseResponse(ReceiptParseResult):
    """Receipt parsing success response."""

    version: str


class ReceiptServiceHealth(BaseModel):
    """Receipt parsing service health response."""

    status: str
    timestamp: dt.datetime
    version: str
    features: list[str]


class ErrorResponse(BaseModel):
    """Error body returned by the receipt parsing service."""

    error: str
    message: str
    timestamp: dt.datetime
