"""Declarative rule table for opportunity classification.

Single source of truth for every pattern used by the classifier and the
structured-API query builder:
- TEXT_RULES: ordered (patterns, weight, tags) entries, each fires at most once
- NOISE_PATTERNS: adjacent procurement domains that override every positive signal
- CPV_RULES: allow-listed classification code prefixes with a fixed score
- KEYWORDS / TEXT_FIELDS: server-side filter of the dataset API

Bump RULESET_VERSION whenever an entry changes meaning; it is stored on every
opportunity created with the table.
"""

import re
from dataclasses import dataclass
from typing import Dict, Pattern, Tuple

RULESET_VERSION = "3"

_FLAGS = re.IGNORECASE | re.DOTALL


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, _FLAGS) for p in patterns)


@dataclass(frozen=True)
class TextRule:
    """One entry of the text rule table.

    The rule fires when any pattern matches and, if a guard is set, any guard
    pattern matches as well. A firing rule adds its weight once and all its tags.
    """

    code: str
    weight: int
    tags: Tuple[str, ...]
    patterns: Tuple[Pattern, ...]
    guard: Tuple[Pattern, ...] = ()


@dataclass(frozen=True)
class CpvRule:
    """Allow-listed classification code prefix."""

    prefix: str
    label: str
    score: int
    tags: Tuple[str, ...]


# ============================================================
# Tags
# ============================================================
TAG_TENDER = "APPEL_OFFRE"
TAG_FAM_TELE = "FAM_TELE"
TAG_FAM_AUDIT = "FAM_AUDIT"
TAG_FAM_FORMATION = "FAM_FORMATION"
TAG_REQUIREMENTS = "EXIGENCES"
TAG_HSE = "HSE"
TAG_CPV = "CPV"
NOISE_TAG = "BRUIT"

# Primary family of an opportunity = first family tag present, in this order
FAMILY_TAGS: Tuple[str, ...] = (TAG_FAM_TELE, TAG_FAM_AUDIT, TAG_FAM_FORMATION)


# ============================================================
# Noise (hors scope): any match forces score 0 and rejection
# ============================================================
NOISE_PATTERNS: Tuple[Pattern, ...] = _compile(
    # Eau / assainissement
    r"\beau potable\b",
    r"\bassainissement\b",
    r"\bréseaux? d['’ ]?\s?eau\b",
    r"\bstation d['’ ]?\s?épuration\b",
    # Déchets / propreté
    r"\bdéchets\b",
    r"\bcollecte\b.*\bordures\b",
    r"\bnettoyage\b",
    r"\bpropret[ée]\b",
    # Voirie / réseaux
    r"\bvoirie\b",
    r"\bchaussée\b",
    r"\benrob[ée]s?\b",
    r"\béclairage public\b",
    r"\broute\b",
    r"\bgoudron\b",
    r"\bforage\b",
    r"\bcanalisations?\b",
    # Second oeuvre / CVC
    r"\bplomberie\b",
    r"\bchauffage\b",
    r"\bventilation\b",
    r"\bclimatisation\b",
    r"\btravaux de peinture\b",
    r"\bma[çc]onnerie\b",
    r"\bcharpente\b",
    r"\bcouverture\b",
    # Restauration
    r"\brestauration\b",
    r"\bcantine\b",
    # Logistique
    r"\bd[ée]m[ée]nagement\b",
    r"\btransport\b",
    # Espaces verts
    r"\bespaces? verts?\b",
    r"\bjardinage\b",
)


# ============================================================
# Family signals
# ============================================================
TELE_PATTERNS: Tuple[Pattern, ...] = _compile(
    r"\bt[ée]l[ée]surveillance\b",
    r"\bremote monitoring\b",
    r"\bsupervision\b",
    r"\bcentre de t[ée]l[ée]surveillance\b",
    r"\bpc s[ée]curit[ée]\b",
    r"\bpcs\b",
    r"\balarmes?\b",
    r"\bintrusion\b",
    r"\btransmission\b",
    r"\bvid[ée]o(?:surveillance)?\b",
    r"\bcctv\b",
    r"\bvid[ée]oprotection\b",
)

AUDIT_PATTERNS: Tuple[Pattern, ...] = _compile(
    r"\baudit\b.*\bs[ée]curit[ée]\b",
    r"\baudit\b.*\bs[ûu]ret[ée]\b",
    r"\bdiagnostic\b.*\bs[ée]curit[ée]\b",
    r"\bconformit[ée]\b.*\bssi\b",
    r"\bsecurity audit\b",
    r"\bapsad\b",
    r"\bcnaps\b",
    r"\biso\s?27001\b",
    r"\biso\s?9001\b",
    r"\bcontr[oô]le d['’ ]?\s?acc[eè]s\b",
    r"\bintrusion\b",
    r"\balarmes?\b",
    r"\bvid[ée]oprotection\b",
    r"\bcctv\b",
    r"\bsyst[èe]mes? de s[ée]curit[ée]\b",
    r"\bs[ée]curit[ée]\s+incendie\b",
    r"\bssi\b",
)

# Training words only; the security context lives in the guard so that a
# bare training keyword never qualifies on its own.
TRAINING_PATTERNS: Tuple[Pattern, ...] = _compile(
    r"\bformations?\b",
    r"\bformateurs?\b",
    r"\bcentre de formation\b",
    r"\bstages?\b",
    r"\be[-\s]?learning\b",
    r"\bdistanciel\b",
    r"\bpr[ée]sentiel\b",
    r"\bmodalit[ée]s? p[ée]dagogiques?\b",
    r"\bquiz\b",
    r"\bcertifications?\b",
    r"\bhabilitations?\b",
    r"\bh0b0\b",
    r"\baps\b",
)

TRAINING_SECURITY_GUARD: Tuple[Pattern, ...] = _compile(
    r"\bs[ée]curit[ée]\b",
    r"\bs[ûu]ret[ée]\b",
    r"\bincendie\b",
    r"\bsst\b",
    r"\bsecourisme\b",
    r"\bcontr[oô]le d['’ ]?\s?acc[eè]s\b",
    r"\bvid[ée]oprotection\b",
    r"\bcctv\b",
)


# ============================================================
# Text rule table (order = evaluation and tag order)
# ============================================================
TEXT_RULES: Tuple[TextRule, ...] = (
    TextRule(
        code="tender",
        weight=25,
        tags=(TAG_TENDER,),
        patterns=_compile(
            r"\bappels? d['’ ]?\s?offres?\b",
            r"\bconsultations?\b",
            r"\btenders?\b",
            r"\brfp\b",
            r"\bmarch[ée]s? publics?\b",
        ),
    ),
    TextRule(
        code="fam_tele",
        weight=25,
        tags=(TAG_FAM_TELE, "TELESURVEILLANCE"),
        patterns=TELE_PATTERNS,
    ),
    TextRule(
        code="fam_audit",
        weight=20,
        tags=(TAG_FAM_AUDIT, "AUDIT_SECURITE"),
        patterns=AUDIT_PATTERNS,
    ),
    TextRule(
        code="fam_formation",
        weight=20,
        tags=(TAG_FAM_FORMATION, "FORMATION"),
        patterns=TRAINING_PATTERNS,
        guard=TRAINING_SECURITY_GUARD,
    ),
    TextRule(
        code="requirements",
        weight=8,
        tags=(TAG_REQUIREMENTS,),
        patterns=_compile(r"\b(?:cnaps|apsad|iso\s?27001|iso\s?9001|mase)\b"),
    ),
    TextRule(
        code="hse",
        weight=0,
        tags=(TAG_HSE,),
        patterns=_compile(r"\b(?:hse|qse|risques|pr[ée]vention)\b"),
    ),
)


# ============================================================
# Classification code (CPV) allow-list
# ============================================================
CPV_RULES: Tuple[CpvRule, ...] = (
    CpvRule("79711000", "Services de surveillance de systèmes d'alarme", 90,
            (TAG_FAM_TELE, "TELESURVEILLANCE")),
    CpvRule("79710000", "Services de sécurité", 70,
            (TAG_FAM_TELE, "SECURITE")),
    CpvRule("45312000", "Travaux d'installation de systèmes d'alarme", 75,
            (TAG_FAM_TELE, "INSTALLATION_ALARME")),
    CpvRule("50610000", "Réparation et entretien de matériel de sécurité", 65,
            (TAG_FAM_TELE, "MAINTENANCE_SECURITE")),
    CpvRule("35120000", "Systèmes et dispositifs de surveillance et de sécurité", 70,
            (TAG_FAM_TELE, "VIDEO")),
    CpvRule("71317100", "Services de conseil en protection et maîtrise des incendies", 70,
            (TAG_FAM_AUDIT, "AUDIT_SECURITE")),
    CpvRule("79417000", "Services de conseil en sécurité", 80,
            (TAG_FAM_AUDIT, "AUDIT_SECURITE")),
    CpvRule("71317000", "Services de conseil en protection et maîtrise des risques", 65,
            (TAG_FAM_AUDIT, "AUDIT_SECURITE")),
    CpvRule("80550000", "Services de formation en matière de sécurité", 80,
            (TAG_FAM_FORMATION, "FORMATION")),
    CpvRule("80561000", "Services de formation dans le domaine de la santé et secourisme", 70,
            (TAG_FAM_FORMATION, "FORMATION")),
)

# Longest prefix first when a shorter one would also lead the code
CPV_RULES_BY_SPECIFICITY: Tuple[CpvRule, ...] = tuple(
    sorted(CPV_RULES, key=lambda r: len(r.prefix), reverse=True)
)


# ============================================================
# Dataset API server-side filter
# ============================================================
KEYWORDS: Tuple[str, ...] = (
    "télésurveillance",
    "telesurveillance",
    "remote monitoring",
    "supervision",
    "alarme",
    "intrusion",
    "vidéoprotection",
    "videosurveillance",
    "cctv",
    "caméra",
    "contrôle d'accès",
    "controle d acces",
    "audit sécurité",
    "audit sûreté",
    "audit surete",
    "sûreté",
    "surete",
    "sécurité privée",
    "security audit",
    "formation sécurité",
    "e-learning",
    "elearning",
    "sst",
    "secourisme",
    "incendie",
)

# Text columns searched by the keyword predicates
TEXT_FIELDS: Tuple[str, ...] = ("objet", "intitule", "description")

# Code column searched by the prefix predicates
CPV_FIELD = "cpv"
