"""Rule-based classification of candidates.

Two paths share one result type:
- text rules: noise check first, then every firing TextRule adds its weight
  once and its tags (family gating through rule guards)
- code rules (structured sources): the longest allow-listed prefix leading each
  code decides a fixed score and tag set; scores are not additive

Noise rejects a candidate on either path.

Scores are clamped to [0, 100]; tag tuples never contain duplicates.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from veille.core.constants import RULESET_CPV, RULESET_TEXT, SOURCE_TYPE_STRUCTURED_API
from veille.core.logging import get_logger
from veille.sourcing.base import CandidateRecord
from veille.sourcing.cpv import normalize_cpv_code
from veille.sourcing.rules import (
    CPV_RULES_BY_SPECIFICITY,
    FAMILY_TAGS,
    NOISE_PATTERNS,
    NOISE_TAG,
    TAG_CPV,
    TEXT_RULES,
    CpvRule,
    TextRule,
)

logger = get_logger("sourcing.classifier")

SCORE_MIN = 0
SCORE_MAX = 100


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying one candidate."""

    score: int
    tags: Tuple[str, ...]
    ruleset: str = RULESET_TEXT
    noise: bool = False
    matched_rules: Tuple[str, ...] = ()

    @property
    def family(self) -> Optional[str]:
        """Primary family tag, or None when no family fired."""
        for tag in FAMILY_TAGS:
            if tag in self.tags:
                return tag
        return None

    def admitted(self, threshold: int) -> bool:
        """True when the candidate may reach the persister."""
        return not self.noise and self.score >= threshold


def clamp_score(score: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, int(score)))


def _unique(tags: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(tags))


def _any_match(patterns, text: str) -> bool:
    return any(p.search(text) for p in patterns)


def is_noise(text: str) -> bool:
    return _any_match(NOISE_PATTERNS, text)


def _candidate_text(title: str, body: str) -> str:
    return f"{title or ''} {body or ''}".casefold()


def _noise_result() -> ClassificationResult:
    return ClassificationResult(score=0, tags=(NOISE_TAG,), ruleset=RULESET_TEXT, noise=True)


def rule_fires(rule: TextRule, text: str) -> bool:
    if not _any_match(rule.patterns, text):
        return False
    return not rule.guard or _any_match(rule.guard, text)


def classify_text(
    title: str,
    body: str = "",
    rules: Sequence[TextRule] = TEXT_RULES,
) -> ClassificationResult:
    """Score and tag free text with the text rule table.

    Args:
        title: Candidate title
        body: Candidate body (plain text)
        rules: Ordered rule table (defaults to TEXT_RULES)

    Returns:
        ClassificationResult; noise forces score 0 and the single BRUIT tag
    """
    text = _candidate_text(title, body)

    if is_noise(text):
        return _noise_result()

    score = 0
    tags: List[str] = []
    matched: List[str] = []
    for rule in rules:
        if rule_fires(rule, text):
            score += rule.weight
            tags.extend(rule.tags)
            matched.append(rule.code)

    return ClassificationResult(
        score=clamp_score(score),
        tags=_unique(tags),
        ruleset=RULESET_TEXT,
        matched_rules=tuple(matched),
    )


def match_cpv_rule(code: str) -> Optional[CpvRule]:
    """Most specific allow-listed rule whose prefix leads the code."""
    normalized = normalize_cpv_code(code)
    if not normalized:
        return None
    for rule in CPV_RULES_BY_SPECIFICITY:
        if normalized.startswith(rule.prefix):
            return rule
    return None


def classify_codes(codes: Iterable[str]) -> ClassificationResult:
    """Score and tag a candidate from its classification codes.

    Qualifies when at least one code has an allow-listed prefix. The score is
    the highest fixed score among matched prefixes.
    """
    matched: List[CpvRule] = []
    for code in codes:
        rule = match_cpv_rule(code)
        if rule is not None and rule not in matched:
            matched.append(rule)

    if not matched:
        return ClassificationResult(score=0, tags=(), ruleset=RULESET_CPV)

    tags: List[str] = []
    for rule in matched:
        tags.extend(rule.tags)
    tags.append(TAG_CPV)

    return ClassificationResult(
        score=clamp_score(max(rule.score for rule in matched)),
        tags=_unique(tags),
        ruleset=RULESET_CPV,
        matched_rules=tuple(rule.prefix for rule in matched),
    )


def classify_candidate(candidate: CandidateRecord) -> ClassificationResult:
    """Classify a candidate with the path matching its source.

    Noise in title + body rejects any candidate. Otherwise structured
    candidates with a qualifying code take the code path; all other
    candidates (including structured ones without such code) are classified
    on title + body.
    """
    if is_noise(_candidate_text(candidate.title, candidate.body)):
        logger.debug("Noise: %s", candidate.title[:50])
        return _noise_result()

    if candidate.source_type == SOURCE_TYPE_STRUCTURED_API and candidate.codes:
        result = classify_codes(candidate.codes)
        if result.matched_rules:
            logger.debug(
                "Code match %s -> %d %s", result.matched_rules, result.score, candidate.title[:50]
            )
            return result

    return classify_text(candidate.title, candidate.body)
