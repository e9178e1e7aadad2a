"""Parser for structured dataset rows (BOAMP / Opendatasoft shape).

Rows are loosely typed: the same dataset exposes strings, numbers or lists
for one field depending on the notice. DatasetRow declares the known fields
as optional text; the untouched payload is kept as the raw map.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError, field_validator

from veille.core.constants import SOURCE_TYPE_STRUCTURED_API
from veille.core.logging import get_logger
from veille.sourcing.base import CandidateRecord, SourceConfig
from veille.sourcing.cpv import extract_codes
from veille.sourcing.dataset.query import DATE_FIELDS
from veille.sourcing.normalize import (
    build_candidate,
    clean_text,
    is_http_url,
    join_text,
    synthesize_link,
)

logger = get_logger("sourcing.dataset.parser")

TITLE_FIELDS = ("intitule", "objet", "titre", "libelle")
URL_FIELDS = ("url_avis", "url", "lien", "source")
REFERENCE_FIELDS = ("idweb", "id", "identifiant")
BODY_FIELDS = ("objet", "resume", "description", "descripteur_libelle")


class DatasetRow(BaseModel):
    """Known fields of a dataset row, all optional text."""

    model_config = ConfigDict(extra="ignore")

    idweb: Optional[str] = None
    id: Optional[str] = None
    identifiant: Optional[str] = None
    intitule: Optional[str] = None
    objet: Optional[str] = None
    titre: Optional[str] = None
    libelle: Optional[str] = None
    url_avis: Optional[str] = None
    url: Optional[str] = None
    lien: Optional[str] = None
    source: Optional[str] = None
    dateparution: Optional[str] = None
    datepublication: Optional[str] = None
    date: Optional[str] = None
    resume: Optional[str] = None
    description: Optional[str] = None
    descripteur_libelle: Optional[str] = None
    nomacheteur: Optional[str] = None

    _raw: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @field_validator("*", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Optional[str]:
        """Coerce scalars and lists to text; nested objects degrade to None."""
        if value is None or isinstance(value, dict):
            return None
        if isinstance(value, list):
            parts = [clean_text(v) for v in value if not isinstance(v, (dict, list))]
            return ", ".join(p for p in parts if p) or None
        return clean_text(value) or None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DatasetRow":
        row = cls.model_validate(payload)
        row._raw = payload
        return row

    @property
    def raw(self) -> Dict[str, Any]:
        return self._raw

    def first_text(self, *names: str) -> Optional[str]:
        """First non-empty declared field among ``names``."""
        for name in names:
            value = getattr(self, name, None)
            if value:
                return value
        return None

    def first_url(self) -> Optional[str]:
        """First explicit http(s) link among the URL fields."""
        for name in URL_FIELDS:
            value = getattr(self, name, None)
            if is_http_url(value):
                return value
        return None

    @property
    def title(self) -> Optional[str]:
        return self.first_text(*TITLE_FIELDS)

    @property
    def reference(self) -> Optional[str]:
        return self.first_text(*REFERENCE_FIELDS)

    @property
    def published(self) -> Optional[str]:
        return self.first_text(*DATE_FIELDS)

    @property
    def body(self) -> str:
        return join_text(*(getattr(self, name) for name in BODY_FIELDS))


def parse_dataset_row(
    payload: Dict[str, Any],
    source: SourceConfig,
) -> Optional[CandidateRecord]:
    """Parse one dataset row into a CandidateRecord.

    Link priority: explicit URL field, then a synthetic link built from the
    source URL and the external id, then from the title.

    Args:
        payload: Row as returned by the API
        source: Owning source

    Returns:
        CandidateRecord or None when the row has no title
    """
    try:
        row = DatasetRow.from_payload(payload)
    except ValidationError as e:
        logger.debug("Unusable dataset row: %s", e)
        return None

    title = row.title
    if not title:
        return None

    link = row.first_url()
    synthesized = False
    if not link:
        link = synthesize_link(source.url, row.reference or title)
        synthesized = True

    return build_candidate(
        source_name=source.name,
        source_type=SOURCE_TYPE_STRUCTURED_API,
        title=title,
        link=link,
        body=row.body,
        published=row.published,
        raw=row.raw,
        codes=extract_codes(row.raw),
        link_synthesized=synthesized,
    )
