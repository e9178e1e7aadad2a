"""Secret-gated trigger of the ingest run.

The scheduler (cron, platform job) calls :func:`trigger_ingest` with the
shared secret. Wrong or missing credentials are rejected before any run
record or fetch exists; partial source failures still answer 200.
"""

import hmac
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from veille.core.exceptions import AuthorizationError
from veille.core.logging import get_logger
from veille.ingest_orchestrator import IngestOrchestrator, IngestSummary
from veille.settings import Settings, settings as default_settings
from veille.sourcing.base import BaseFetcher

logger = get_logger("trigger")


class TriggerResponse(BaseModel):
    """Structured answer returned to the scheduler."""

    ok: bool = Field(description="False only for authorization or run-level failures")
    status_code: int = Field(description="HTTP-equivalent status (200, 401, 500)")
    run_id: Optional[int] = Field(default=None, description="Ingest run id")
    created: int = Field(default=0, ge=0, description="Opportunities created by the run")
    scanned: int = Field(default=0, ge=0, description="Raw records enumerated by the run")
    sources: List[Dict[str, Any]] = Field(
        default_factory=list, description="Per-source detail (created/scanned or error)"
    )
    error: Optional[str] = Field(default=None, description="Run-level error")

    @classmethod
    def from_summary(cls, summary: IngestSummary) -> "TriggerResponse":
        return cls(
            ok=summary.ok,
            status_code=200 if summary.ok else 500,
            run_id=summary.run_id,
            created=summary.created,
            scanned=summary.scanned,
            sources=summary.details,
            error=summary.error,
        )


def check_secret(provided: Optional[str], expected: Optional[str]) -> None:
    """Constant-time comparison of the trigger secret.

    Raises:
        AuthorizationError: Secret missing, not configured or different
    """
    if not expected:
        raise AuthorizationError("Trigger secret is not configured")
    if not provided:
        raise AuthorizationError("Missing trigger secret")
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise AuthorizationError("Invalid trigger secret")


def trigger_ingest(
    secret: Optional[str],
    config: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    fetchers: Optional[Dict[str, BaseFetcher]] = None,
    source_types: Optional[Iterable[str]] = None,
) -> TriggerResponse:
    """Authorize the caller, then run one ingest.

    Args:
        secret: Secret presented by the caller
        config: Settings (defaults to the global instance)
        session_factory: Session factory for this run
        http_client: Optional shared HTTP client
        fetchers: Optional fetcher per source type
        source_types: Restrict the run to these source types

    Returns:
        TriggerResponse; 401 without a run record on bad credentials,
        500 when the run itself failed, 200 otherwise
    """
    config = config or default_settings

    try:
        check_secret(secret, config.cron_secret)
    except AuthorizationError as e:
        logger.warning("Rejected trigger: %s", e.message)
        return TriggerResponse(ok=False, status_code=401, error="unauthorized")

    orchestrator = IngestOrchestrator(
        session_factory=session_factory,
        config=config,
        http_client=http_client,
        fetchers=fetchers,
        source_types=source_types,
    )
    try:
        summary = orchestrator.run()
    except Exception as e:
        logger.error("Ingest run failed: %s", e)
        return TriggerResponse(ok=False, status_code=500, error=str(e) or type(e).__name__)

    return TriggerResponse.from_summary(summary)
