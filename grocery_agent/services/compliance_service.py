"""Personal data removal applied before anything is written to the shared cache.

Sanitization runs in two passes: deterministic pattern rules for the
identifiers that have a recognisable shape (emails, phone and card numbers,
street addresses, self-introductions), then an optional model pass for
whatever the rules cannot see. Rule output is a fixpoint: running the rules
on already-clean text returns it unchanged.
"""

import asyncio
import logging
import re

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage

from grocery_agent.core.exceptions import SanitizationError
from grocery_agent.services.graph.prompts import SANITIZER_PROMPT

logger = logging.getLogger(__name__)

_EMAIL = re.compile(
    r"(?:(?i:\bmy\s+e-?mail(?:\s+address)?\s+is)\s+)?"
    r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"
)
_SSN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
# Any digit run long enough to be a phone, card, or account number
_LONG_NUMBER = re.compile(
    r"(?:(?i:\bmy\s+(?:phone(?:\s+number)?|mobile|number|card(?:\s+number)?|account(?:\s+number)?)"
    r"\s+is)\s+)?\+?\(?\d[\d\s().-]{8,22}\d"
)
_STREET_ADDRESS = re.compile(
    r"(?:(?i:\b(?:and\s+)?(?:i\s+live\s+at|my\s+address\s+is|deliver\s+to))\s+)?"
    r"\b\d{1,5}\s+(?:[A-Z][a-z]+\s+){1,3}"
    r"(?:Street|St|Avenue|Ave|Road|Rd|Lane|Ln|Boulevard|Blvd|Drive|Dr|Court|Ct|Way|Place|Pl)\b"
    r"(?:,\s+[A-Z][a-z]+(?:\s+[A-Z]{2})?(?:\s+\d{5}(?:-\d{4})?)?)?\.?"
)
_LIVE_AT = re.compile(r"(?i:\b(?:and\s+)?(?:i\s+live\s+at|my\s+address\s+is))\s+[^,.!?\n]*")
_POSTAL_CODE = re.compile(r"(?i:\b(?:zip|postal|pin)(?:\s*code)?(?:\s+is)?)\s*:?\s*[A-Z0-9][A-Z0-9 -]{2,8}[A-Z0-9]\b")
_SELF_INTRO = re.compile(
    r"(?:(?i:\b(?:hi|hello|hey)\b)[,!]?\s*)?"
    r"(?i:\b(?:my\s+name\s+is|i\s+am|i'm|call\s+me))\s+"
    r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?"
)

_RULES: list[re.Pattern[str]] = [
    _EMAIL,
    _SSN,
    _STREET_ADDRESS,
    _LIVE_AT,
    _POSTAL_CODE,
    _LONG_NUMBER,
    _SELF_INTRO,
]

_MIN_IDENTIFIER_DIGITS = 10


def _drop_long_numbers(match: re.Match[str]) -> str:
    digits = sum(c.isdigit() for c in match.group(0))
    return "" if digits >= _MIN_IDENTIFIER_DIGITS else match.group(0)


def _tidy(text: str) -> str:
    """Repair punctuation and spacing left behind by removed spans."""
    previous = None
    while previous != text:
        previous = text
        text = re.sub(r"[ \t]+", " ", text)
        text = re.sub(r" +([,.;:!?])", r"\1", text)
        text = re.sub(r"([,;:])(?:\s*[,;:])+", r"\1", text)
        text = re.sub(r"^[\s,;:.!-]+", "", text)
        text = re.sub(r"^(?i:and|but|so)\b[\s,]*", "", text)
        text = re.sub(r"[\s,;:-]+$", "", text)
        text = text.strip()
    if text and text[0].islower():
        text = text[0].upper() + text[1:]
    return text


def scrub_personal_data(text: str) -> str:
    """Apply the pattern rules only. Text with no matches is returned untouched."""
    original = text
    for pattern in _RULES:
        if pattern is _LONG_NUMBER:
            text = pattern.sub(_drop_long_numbers, text)
        else:
            text = pattern.sub("", text)
    if text == original:
        return original
    return _tidy(text)


class DataComplianceSanitizer:
    """Strips personally identifying content from cache-bound text."""

    def __init__(self, llm: BaseChatModel | None = None) -> None:
        self.llm = llm

    async def sanitize(self, text: str) -> str:
        """Return ``text`` with personal identifiers removed.

        Raises:
            SanitizationError: the model pass failed or returned nothing usable
        """
        if not text or not text.strip():
            return text

        cleaned = scrub_personal_data(text)
        if self.llm is None or not cleaned:
            return cleaned

        try:
            response = await self.llm.ainvoke(
                [HumanMessage(content=SANITIZER_PROMPT.format(text=cleaned))]
            )
        except Exception as e:
            raise SanitizationError("Model sanitization pass failed") from e

        content = response.content if isinstance(response.content, str) else ""
        if not content.strip():
            raise SanitizationError("Model sanitization pass returned empty text")
        # Rules run again so the model cannot reintroduce a pattern-shaped identifier
        return scrub_personal_data(content.strip())

    async def sanitize_pair(self, query: str, response: str) -> tuple[str, str]:
        """Sanitize a query and its response concurrently."""
        sanitized_query, sanitized_response = await asyncio.gather(
            self.sanitize(query), self.sanitize(response)
        )
        return sanitized_query, sanitized_response
