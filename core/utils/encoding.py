"""
Value and metadata decoding shared by the backends

Stores hand back loosely typed values (numbers stored as strings, booleans
in numeric series, JSON blobs for series tags). Everything here is tolerant:
bad input becomes NaN / None / {} instead of an exception.
"""

import json
import logging
import math
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from bson.decimal128 import Decimal128

logger = logging.getLogger(__name__)


def normalize_keywords(keywords: str | None) -> str:
    """
    Strip JavaScript-style regex delimiters from a keyword pattern

    A leading '/', a trailing '/i' and a trailing '/' are removed, so
    '/^TEMP/i', '/^TEMP/' and '^TEMP' are all the same pattern.
    """
    keywords = keywords or ""
    if keywords.startswith("/"):
        keywords = keywords[1:]
    if keywords.endswith("/i"):
        keywords = keywords[:-2]
    elif keywords.endswith("/"):
        keywords = keywords[:-1]
    return keywords


def compile_keywords(keywords: str | None) -> re.Pattern:
    """
    Compile a keyword pattern into a case-insensitive regex

    An invalid regex is matched literally instead of failing the listing.

    Example:
        >>> bool(compile_keywords("/^TEMP/i").search("temp1"))
        True
    """
    pattern = normalize_keywords(keywords)
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.warning(f"Invalid keyword pattern '{pattern}' ({e}), matching literally")
        return re.compile(re.escape(pattern), re.IGNORECASE)


def exact_tag_pattern(tags: list[str]) -> str:
    """Regex source matching any of the tags exactly (use case-insensitively)"""
    return "^(?:" + "|".join(re.escape(t) for t in tags) + ")$"


def decode_value(value: Any, digits: int = 6) -> float:
    """
    Decode a stored value as a double

    Supports float, int (32/64 bit), Decimal/Decimal128, numeric strings and
    booleans. Floats and strings are rounded to `digits` places.
    Null or unrecognised values decode to NaN.
    """
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, float):
        return value if math.isnan(value) else round(value, digits)
    if isinstance(value, int):
        return float(value)
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, Decimal):
        return round(float(value), digits) if value.is_finite() else math.nan
    if isinstance(value, str):
        try:
            return round(float(value.strip()), digits)
        except ValueError:
            return math.nan
    return math.nan


def decode_digital(value: Any) -> int:
    """Decode a stored value as an integer state (0 when missing)"""
    v = decode_value(value, 0)
    if math.isnan(v) or math.isinf(v):
        return 0
    return int(v)


def to_float(value: Any) -> float | None:
    """Tolerant optional-number coercion for catalog fields"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, Decimal):
        try:
            return float(value) if value.is_finite() else None
        except InvalidOperation:
            return None
    if isinstance(value, str):
        try:
            v = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(v) else v
    return None


def to_text(value: Any) -> str:
    """Tolerant string coercion for catalog fields"""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    raise TypeError(f"Expected text, got {type(value).__name__}")


def to_datetime(value: Any) -> datetime | None:
    """Tolerant optional-datetime coercion for catalog fields"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def parse_json_object(text: Any) -> dict:
    """
    Decode a JSON object payload (series tags / attributes)

    Empty, 'NULL' or malformed payloads decode to {}.
    """
    if not isinstance(text, str) or not text or text.upper() == "NULL":
        return {}
    try:
        data = json.loads(text.replace("\\", "/"))
    except ValueError:
        logger.debug(f"Malformed JSON payload ignored: {text}")
        return {}
    return data if isinstance(data, dict) else {}


def strip_path_prefix(tag: str, device: str) -> str:
    """Measurement name of a header cell: 'root.dev.T1', 'dev.T1' and 'T1' all give 'T1'"""
    name = tag.strip()
    if name.startswith("root."):
        name = name[len("root."):]
    if name.startswith(f"{device}."):
        name = name[len(device) + 1:]
    return name
