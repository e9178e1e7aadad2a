"""Normalize fetched records into canonical candidates.

Shared helpers used by every fetcher: text cleanup, markup stripping,
tolerant date parsing, link canonicalization (the identity key) and the
deterministic fallback link for records without a URL.
"""

import re
import time
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from html import unescape
from typing import Any, Dict, List, Optional, Union
from urllib.parse import parse_qsl, quote, urlencode, urlparse, urlunparse

from veille.core.logging import get_logger
from veille.sourcing.base import CandidateRecord

logger = get_logger("sourcing.normalize")

_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
# A tag opens with a name, "/", "!" or "?"; "montant < 40 000 €" is text
_TAG_RE = re.compile(r"</?[A-Za-z!?][^<>]*>")
_WHITESPACE_RE = re.compile(r"\s+")

# Tracking parameters dropped from links before they become identity keys
STRIP_QUERY_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    "gclid",
    "fbclid",
    "mc_cid",
    "mc_eid",
    "xtor",
}

SYNTHETIC_REF_PARAM = "ref"


def clean_text(value: Any) -> str:
    """None-safe string conversion with surrounding whitespace removed."""
    if value is None:
        return ""
    return str(value).strip()


def strip_markup(text: Any) -> str:
    """Reduce HTML/XML fragments to plain text.

    Unwraps CDATA sections, drops script/style blocks and comments, removes
    tags, unescapes entities and collapses whitespace runs.
    """
    text = clean_text(text)
    if not text:
        return ""
    text = _CDATA_RE.sub(r"\1", text)
    text = _SCRIPT_STYLE_RE.sub(" ", text)
    text = _COMMENT_RE.sub(" ", text)
    escaped_markup = "&lt;" in text.lower()
    text = _TAG_RE.sub(" ", text)
    text = unescape(text)
    # Entity-escaped markup (&lt;p&gt;) only becomes markup after unescaping
    if escaped_markup:
        text = _TAG_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def join_text(*parts: Any) -> str:
    """Concatenate non-empty, distinct text parts after markup stripping."""
    seen = set()
    kept: List[str] = []
    for part in parts:
        cleaned = strip_markup(part)
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            kept.append(cleaned)
    return " ".join(kept)


def truncate(text: Optional[str], max_chars: int) -> Optional[str]:
    if not text:
        return None
    return text[:max_chars]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_published(value: Any) -> Optional[datetime]:
    """Parse a publication date from the source's native representation.

    Accepts datetimes, dates, ``time.struct_time`` (feedparser), RFC 822
    strings (RSS ``pubDate``), ISO 8601 with or without zone, ``YYYY-MM-DD``
    and ``YYYYMMDD``. Unparsable or absent values yield None.

    Returns:
        Timezone-aware UTC datetime or None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, time.struct_time):
        try:
            return datetime(*value[:6], tzinfo=timezone.utc)
        except (TypeError, ValueError):
            return None
    if isinstance(value, list):
        return parse_published(value[0]) if value else None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if len(text) == 8 and text.isdigit():
        try:
            return datetime.strptime(text, "%Y%m%d").replace(tzinfo=timezone.utc)
        except ValueError:
            return None

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return _as_utc(datetime.fromisoformat(iso))
    except ValueError:
        pass

    try:
        return _as_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass

    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        logger.debug("Unparsable date: %r", text[:40])
        return None


def is_http_url(value: Any) -> bool:
    text = clean_text(value)
    if not text:
        return False
    parsed = urlparse(text)
    return parsed.scheme.lower() in ("http", "https") and bool(parsed.netloc)


def canonicalize_link(url: Any) -> str:
    """Canonical form of a link, used as the opportunity identity key.

    - Lowercase scheme + hostname
    - Remove fragments
    - Strip tracking query parameters
    - Order-stable remaining query params

    Returns:
        Canonical URL, or "" when the input is not an absolute http(s) URL
    """
    if not is_http_url(url):
        return ""
    p = urlparse(clean_text(url))
    path = p.path or "/"

    kept = [
        (k, v)
        for k, v in parse_qsl(p.query, keep_blank_values=True)
        if k.lower() not in STRIP_QUERY_PARAMS
    ]
    kept.sort(key=lambda kv: (kv[0].lower(), kv[1]))
    query = urlencode(kept, doseq=True)

    return urlunparse((p.scheme.lower(), p.netloc.lower(), path, "", query, ""))


def synthesize_link(source_url: str, reference: Any) -> str:
    """Deterministic fallback link for a record without its own URL.

    The same source URL and reference always give the same link, so repeated
    runs hit the same identity key.
    """
    ref = clean_text(reference)
    base = clean_text(source_url).split("#", 1)[0]
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{SYNTHETIC_REF_PARAM}={quote(ref, safe='')}"


def build_candidate(
    source_name: str,
    source_type: str,
    title: Any,
    link: Any,
    body: str = "",
    published: Any = None,
    raw: Union[Dict[str, Any], str, None] = None,
    codes: Optional[List[str]] = None,
    link_synthesized: bool = False,
) -> Optional[CandidateRecord]:
    """Build a CandidateRecord, or None when title or link is unusable."""
    title_text = strip_markup(title)
    canonical = canonicalize_link(link)
    if not title_text or not canonical:
        logger.debug("Discarding record without title/link: %r", title_text[:60])
        return None

    return CandidateRecord(
        source_name=source_name,
        source_type=source_type,
        title=title_text,
        link=canonical,
        body=body,
        published_at=parse_published(published),
        raw=raw,
        codes=list(codes or []),
        link_synthesized=link_synthesized,
    )
