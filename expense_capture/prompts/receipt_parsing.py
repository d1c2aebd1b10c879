"""
Prompts for receipt extraction with vision models.
Both model tiers receive the same prompt contract.
"""

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

RECEIPT_PARSING_SYSTEM = """You are a receipt parser. Extract the FINAL TOTAL (not subtotal), detect currency, normalize date to YYYY-MM-DD, and return only JSON that matches the provided schema. Include a confidence 0-1.

You MUST return valid JSON with these exact fields:
- vendor (string or null)
- date_iso (string in YYYY-MM-DD format or null)
- currency (string or null)
- amount (number, required)
- confidence (number between 0-1, required)"""

RECEIPT_PARSING_USER = """Locale hint: {locale_hint}; Currency hint: {currency_hint}.
If multiple totals exist, prefer labels like TOTAL/Amount Due/Grand Total; otherwise choose the highest plausible total. If date is ambiguous (e.g., 03/04/25), use locale hint."""

DEFAULT_LOCALE_HINT = "en-US"
DEFAULT_CURRENCY_HINT = "OTHER"


def build_receipt_messages(
    image_data_url: str,
    locale_hint: str | None = None,
    currency_hint: str | None = None,
) -> list[BaseMessage]:
    """Build the system + multimodal user messages for one receipt."""
    user_text = RECEIPT_PARSING_USER.format(
        locale_hint=locale_hint or DEFAULT_LOCALE_HINT,
        currency_hint=currency_hint or DEFAULT_CURRENCY_HINT,
    )
    return [
        SystemMessage(content=RECEIPT_PARSING_SYSTEM),
        HumanMessage(
            content=[
                {"type": "text", "text": user_text},
                {"type": "image_url", "image_url": {"url": image_data_url}},
            ]
        ),
    ]
