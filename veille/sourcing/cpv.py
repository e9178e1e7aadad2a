"""Classification code (CPV) extraction and normalization.

CPV (Common Procurement Vocabulary) codes classify the subject of public
contracts. Dataset rows carry them in inconsistent shapes:
- a direct field holding a list, a scalar or a comma separated string
- values nested anywhere in the row, including JSON documents embedded as
  strings (BOAMP ``donnees``), either under a ``*cpv*`` key or as
  ``{"listName": "cpv", "#text": "79711000"}`` pairs
- shapes the typed walk does not know, recovered by scanning the serialized row
"""

import json
import re
from typing import Any, Iterable, List, Optional

from veille.core.logging import get_logger

logger = get_logger("sourcing.cpv")

# Direct fields checked first, in this order
DIRECT_FIELDS = (
    "code_cpv",
    "cpv",
    "cpv_code",
    "codecpv",
    "classification-cpv",
    "classification_cpv",
)

LIST_NAME_KEYS = ("@listName", "listName", "list_name", "listname")
VALUE_KEYS = ("#text", "value", "code", "$", "_", "text", "valeur")

MAX_WALK_DEPTH = 40

_CODE_RE = re.compile(r"(?<!\d)(\d{8})(?:-\d)?(?!\d)")
_SPLIT_RE = re.compile(r"[,;\s|]+")

# Serialized-row scanning; \\? tolerates quotes escaped inside embedded JSON strings
_KEYED_CODE_RE = re.compile(
    r'cpv[A-Za-z_\-]*\\?"\s*:\s*\\?"?\s*(\d{8})(?:-\d)?', re.IGNORECASE
)
_KEYED_LIST_RE = re.compile(
    r'cpv[A-Za-z_\-]*\\?"\s*:\s*\[([^\]]{0,2000})\]', re.IGNORECASE
)
_LIST_NAME_RE = re.compile(
    r'list_?name\\?"\s*:\s*\\?"cpv\\?"(?:(?!list_?name).){0,400}?(?<!\d)(\d{8})(?!\d)',
    re.IGNORECASE | re.DOTALL,
)
_LABELLED_CODE_RE = re.compile(r"\bcpv\b[^0-9\"]{0,40}(\d{8})(?:-\d)?", re.IGNORECASE)


def normalize_cpv_code(code: Any) -> Optional[str]:
    """Normalize a CPV code to its 8-digit form without check digit.

    CPV codes can be:
    - 8 digits: 79711000
    - 8 digits + check digit: 79711000-1
    - Partial codes: 7971 (padded with zeros)

    Returns:
        8-digit code, or None when the value is not a code
    """
    if code is None or isinstance(code, bool):
        return None
    text = str(code).strip().split("-")[0].strip()
    if not text.isdigit() or not 2 <= len(text) <= 8:
        return None
    return text.ljust(8, "0")


def _dedupe(codes: Iterable[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(c for c in codes if c))


def _values_from(value: Any) -> List[str]:
    """Raw code candidates from a field value of any shape."""
    if value is None:
        return []
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return [str(int(value))]
    if isinstance(value, str):
        return [part for part in _SPLIT_RE.split(value) if part]
    if isinstance(value, list):
        out: List[str] = []
        for item in value:
            out.extend(_values_from(item))
        return out
    if isinstance(value, dict):
        for key in VALUE_KEYS:
            if key in value:
                return _values_from(value[key])
    return []


def _is_code_key(key: Any) -> bool:
    return isinstance(key, str) and "cpv" in key.lower()


def _list_name(node: dict) -> str:
    for key in LIST_NAME_KEYS:
        value = node.get(key)
        if isinstance(value, str):
            return value
    return ""


def _walk(node: Any, found: List[str], depth: int = 0) -> None:
    if depth > MAX_WALK_DEPTH:
        return

    if isinstance(node, dict):
        if "cpv" in _list_name(node).lower():
            for key in VALUE_KEYS:
                if key in node:
                    found.extend(_values_from(node[key]))
                    break
        for key, value in node.items():
            if _is_code_key(key):
                found.extend(_values_from(value))
            _walk(value, found, depth + 1)

    elif isinstance(node, list):
        for item in node:
            _walk(item, found, depth + 1)

    elif isinstance(node, str):
        text = node.strip()
        if text[:1] in ("{", "["):
            try:
                embedded = json.loads(text)
            except ValueError:
                return
            _walk(embedded, found, depth + 1)


def extract_direct_codes(row: dict) -> List[str]:
    """Codes from the well-known direct fields of a row."""
    found: List[str] = []
    for field_name in DIRECT_FIELDS:
        found.extend(_values_from(row.get(field_name)))
    return _dedupe(normalize_cpv_code(c) for c in found)


def extract_nested_codes(row: Any) -> List[str]:
    """Codes found by a typed recursive walk over the parsed row."""
    found: List[str] = []
    _walk(row, found)
    return _dedupe(normalize_cpv_code(c) for c in found)


def scan_serialized_codes(row: Any) -> List[str]:
    """Codes recovered by text-pattern scanning of the serialized row."""
    try:
        text = row if isinstance(row, str) else json.dumps(row, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = str(row)

    found: List[str] = []
    found.extend(_KEYED_CODE_RE.findall(text))
    for block in _KEYED_LIST_RE.findall(text):
        found.extend(_CODE_RE.findall(block))
    found.extend(_LIST_NAME_RE.findall(text))
    found.extend(_LABELLED_CODE_RE.findall(text))
    return _dedupe(normalize_cpv_code(c) for c in found)


def extract_codes(row: Any) -> List[str]:
    """All classification codes of a dataset row, deduplicated and normalized.

    Direct fields and the typed walk are authoritative; serialized-row
    scanning only runs when they find nothing.
    """
    codes: List[str] = []
    if isinstance(row, dict):
        codes.extend(extract_direct_codes(row))
    codes.extend(extract_nested_codes(row))
    codes = _dedupe(codes)

    if not codes:
        codes = scan_serialized_codes(row)
        if codes:
            logger.debug("Codes recovered by text scan: %s", codes)
    return codes
