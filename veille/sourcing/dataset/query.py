"""Query construction for dataset (Opendatasoft Explore) endpoints.

Two strategies:
- server_filter: bounded, recency-ordered page filtered by a ``where``
  expression (code prefixes OR keyword substrings)
- local: unfiltered bounded page, sorted and capped locally
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlparse, urlunparse

from veille.core.constants import QUERY_STRATEGY_LOCAL, QUERY_STRATEGY_SERVER_FILTER
from veille.settings import Settings
from veille.sourcing.normalize import parse_published
from veille.sourcing.rules import CPV_FIELD, CPV_RULES, KEYWORDS, TEXT_FIELDS

# Best-available date fields, in priority order
DATE_FIELDS = ("dateparution", "datepublication", "date")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _quote_literal(value: str) -> str:
    return value.replace("'", "''")


def build_where(
    prefixes: Optional[Iterable[str]] = None,
    keywords: Iterable[str] = KEYWORDS,
    fields: Iterable[str] = TEXT_FIELDS,
    code_field: str = CPV_FIELD,
) -> str:
    """Build the server-side filter expression.

    ``((cpv LIKE '79711000%' OR ...) OR ((lower(objet) like '%alarme%' OR ...) OR ...))``

    Args:
        prefixes: Code prefixes (defaults to the CPV_RULES prefixes)
        keywords: Keyword substrings, matched case-insensitively
        fields: Text columns searched for each keyword
        code_field: Column holding classification codes

    Returns:
        Filter expression string
    """
    if prefixes is None:
        prefixes = [rule.prefix for rule in CPV_RULES]
    fields = list(fields)

    code_or = " OR ".join(f"{code_field} LIKE '{_quote_literal(p)}%'" for p in prefixes)

    keyword_clauses = []
    for keyword in keywords:
        kw = _quote_literal(keyword.lower())
        per_field = " OR ".join(f"lower({f}) like '%{kw}%'" for f in fields)
        keyword_clauses.append(f"({per_field})")
    keyword_or = " OR ".join(keyword_clauses)

    if code_or and keyword_or:
        return f"(({code_or}) OR ({keyword_or}))"
    return f"({code_or or keyword_or})"


def build_query(
    source_url: str,
    config: Settings,
    strategy: Optional[str] = None,
) -> Tuple[str, Dict[str, Any]]:
    """Split the source URL and compute the request parameters.

    Parameters already present on the source URL are kept unless the
    strategy sets them.

    Returns:
        Tuple (base URL without query, query parameters)
    """
    strategy = strategy or config.api_query_strategy
    parsed = urlparse(source_url.strip())
    base_url = urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", ""))
    params: Dict[str, Any] = dict(parse_qsl(parsed.query, keep_blank_values=True))

    params["limit"] = str(config.api_page_limit)

    if strategy == QUERY_STRATEGY_SERVER_FILTER:
        params["order_by"] = config.api_order_by
        params["where"] = build_where()
    elif strategy == QUERY_STRATEGY_LOCAL:
        params.pop("where", None)
        params.pop("order_by", None)
    else:
        raise ValueError(f"Unknown query strategy: {strategy}")

    return base_url, params


def best_date(row: Dict[str, Any]) -> Optional[datetime]:
    for field_name in DATE_FIELDS:
        parsed = parse_published(row.get(field_name))
        if parsed is not None:
            return parsed
    return None


def select_recent(rows: List[Dict[str, Any]], cap: int) -> List[Dict[str, Any]]:
    """Sort rows by best-available date (newest first, undated last) and cap."""
    ordered = sorted(
        rows,
        key=lambda row: best_date(row) or _EPOCH,
        reverse=True,
    )
    return ordered[:cap]


def extract_rows(payload: Any) -> List[Dict[str, Any]]:
    """Rows of an Explore v2 (``results``) or v1 (``records``) response."""
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    if not isinstance(payload, dict):
        return []

    results = payload.get("results")
    if isinstance(results, list):
        return [row for row in results if isinstance(row, dict)]

    rows = []
    for record in payload.get("records") or []:
        if not isinstance(record, dict):
            continue
        record = record.get("record", record)
        fields = record.get("fields", record) if isinstance(record, dict) else None
        if isinstance(fields, dict):
            rows.append(fields)
    return rows
