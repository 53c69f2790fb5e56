"""Price string normalization.

Provider pages use Danish-style prices ("kr. 1.234,56", "199,-"), so dots are
thousands separators and the comma is the decimal separator.
"""

import math
import re

from price_scraper.core.exceptions import SanitizeError


_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$", re.ASCII)
_WHITESPACE_RE = re.compile(r"\s+")


class PriceNormalizer:
    """Turns the text of a selected element into a float price."""

    @staticmethod
    def normalize(raw_text: str) -> float:
        """Parse a raw price string.

        The rewrites run in a fixed order: "kr." and ",-" are dropped, then
        every "." (thousands separator) is removed before "," becomes the
        decimal point, and finally all whitespace goes.

        Args:
            raw_text: Text content of a matched HTML element

        Returns:
            Parsed price. May be zero or negative; callers decide usability.

        Raises:
            SanitizeError: If the rewritten text is not a finite number
        """
        cleaned = raw_text.replace("kr.", "")
        cleaned = cleaned.replace(",-", "")
        cleaned = cleaned.replace(".", "")
        cleaned = cleaned.replace(",", ".")
        cleaned = _WHITESPACE_RE.sub("", cleaned)

        if not _NUMBER_RE.match(cleaned):
            raise SanitizeError(raw_text)

        value = float(cleaned)
        if not math.isfinite(value):
            raise SanitizeError(raw_text, "out of range")
        return value

    @staticmethod
    def format_price(value: float) -> str:
        """Render a price in the input convention understood by normalize().

        >>> PriceNormalizer.format_price(1234.56)
        '1234,56'
        """
        return repr(float(value)).replace(".", ",")
