"""
Field reconciliation: from a CompanyAnalysis to per-field EnrichmentResults.

Each ``CanonicalField`` has one registered resolver that knows where its
value lives in the analysis and which source tier answers for it.
Resolution is a pure function of (analysis, requested fields), so running it
twice yields identical results.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from fire_enrich.core.models import (
    CompanyAnalysis,
    EnrichmentField,
    EnrichmentResult,
    FieldType,
    SourceContext,
    SourceLabel,
    confidence_level,
)
from fire_enrich.intelligence.aliases import CanonicalField, resolve_canonical

logger = structlog.get_logger(__name__)

# Fixed heuristic confidence per source tier
SOURCE_CONFIDENCE: Dict[str, float] = {
    SourceLabel.APOLLO.value: 0.9,
    SourceLabel.SNOV.value: 0.9,
    SourceLabel.EXPLORIUM.value: 0.9,
    SourceLabel.MULTIPLE.value: 0.9,
    SourceLabel.WEB.value: 0.8,
    "apify": 0.75,
    SourceLabel.INPUT.value: 0.6,
    SourceLabel.UNKNOWN.value: 0.5,
}
PERSON_MATCH_CONFIDENCE = 0.85
EXECUTIVE_SEARCH_CONFIDENCE = 0.75

FIRMOGRAPHIC_FIELDS = (
    CanonicalField.COMPANY_NAME,
    CanonicalField.COMPANY_DOMAIN,
    CanonicalField.COMPANY_INDUSTRY,
    CanonicalField.COMPANY_COUNTRY,
    CanonicalField.COMPANY_COMPETITORS,
)

# Answered for the row's own address, never shared across a domain
CONTACT_FIELDS = frozenset(
    {
        CanonicalField.CONTACT_NAME,
        CanonicalField.CONTACT_TITLE,
        CanonicalField.CONTACT_LINKEDIN,
        CanonicalField.EMAIL_VERIFICATION,
    }
)

TRUE_WORDS = {"yes", "y", "true", "1", "sim", "s", "verdadeiro"}
FALSE_WORDS = {"no", "n", "false", "0", "não", "nao", "falso"}


@dataclass
class Resolution:
    """A resolved raw value before display-type coercion."""

    value: Any
    source: str
    confidence: float
    source_context: List[SourceContext] = field(default_factory=list)
    primary_source_url: Optional[str] = None
    recommended_action: Optional[str] = None
    data_freshness: Optional[str] = None


Resolver = Callable[[CompanyAnalysis], Optional[Resolution]]


def is_missing(value: Any) -> bool:
    """None, blank strings, the literal "unknown" and empty containers are not data."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip() or value.strip().lower() == "unknown"
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def _signal_context(analysis: CompanyAnalysis) -> List[SourceContext]:
    return [
        SourceContext(url=s.source_url, snippet=s.title or s.description or None)
        for s in analysis.priority_signals
    ]


def _web(analysis: CompanyAnalysis, value: Any) -> Resolution:
    top = analysis.priority_signals[0] if analysis.priority_signals else None
    return Resolution(
        value=value,
        source=SourceLabel.WEB.value,
        confidence=SOURCE_CONFIDENCE[SourceLabel.WEB.value],
        source_context=_signal_context(analysis),
        primary_source_url=top.source_url if top else None,
        recommended_action=top.recommended_action if top and top.recommended_action else None,
        data_freshness=analysis.data_freshness or None,
    )


def _firmographic(key: str) -> Resolver:
    def resolve(analysis: CompanyAnalysis) -> Optional[Resolution]:
        value = getattr(analysis, key)
        source = analysis.field_sources.get(key, analysis.source.value)
        return Resolution(
            value=value,
            source=source,
            confidence=SOURCE_CONFIDENCE.get(source, 0.5),
        )

    return resolve


def _web_attr(key: str) -> Resolver:
    def resolve(analysis: CompanyAnalysis) -> Optional[Resolution]:
        return _web(analysis, getattr(analysis, key))

    return resolve


def _signals(analysis: CompanyAnalysis) -> Optional[Resolution]:
    signals = [s.model_dump(mode="json", by_alias=True) for s in analysis.priority_signals]
    return _web(analysis, signals)


def _signal_strength(analysis: CompanyAnalysis) -> Optional[Resolution]:
    return _web(analysis, analysis.overall_signal_strength.value)


def _company_linkedin(analysis: CompanyAnalysis) -> Optional[Resolution]:
    source = analysis.field_sources.get("company_linkedin_url", SourceLabel.UNKNOWN.value)
    return Resolution(
        value=analysis.company_linkedin_url,
        source=source,
        confidence=SOURCE_CONFIDENCE.get(source, 0.5),
        primary_source_url=analysis.company_linkedin_url,
    )


def _email_verification(analysis: CompanyAnalysis) -> Optional[Resolution]:
    verification = analysis.email_verification
    if verification is None:
        return None
    return Resolution(
        value=verification.status,
        source=SourceLabel.SNOV.value,
        confidence=SOURCE_CONFIDENCE[SourceLabel.SNOV.value],
    )


def _person_attr(attr: str) -> Resolver:
    def resolve(analysis: CompanyAnalysis) -> Optional[Resolution]:
        person = analysis.person
        if person is None:
            return None
        return Resolution(
            value=getattr(person, attr),
            source=SourceLabel.APOLLO.value,
            confidence=PERSON_MATCH_CONFIDENCE,
            primary_source_url=person.linkedin_url,
        )

    return resolve


def _executives(analysis: CompanyAnalysis) -> Optional[Resolution]:
    executives = [
        f"{e.name} ({e.title})" for e in analysis.executives
    ]
    return Resolution(
        value=executives,
        source=analysis.executives_source or SourceLabel.APOLLO.value,
        confidence=EXECUTIVE_SEARCH_CONFIDENCE,
        source_context=[
            SourceContext(url=e.linkedin_url, snippet=f"{e.name} - {e.title}")
            for e in analysis.executives
            if e.linkedin_url
        ],
    )


def _prospects(analysis: CompanyAnalysis) -> Optional[Resolution]:
    prospects = []
    for p in analysis.prospects:
        name = " ".join(x for x in (p.first_name, p.last_name) if x)
        label = " - ".join(x for x in (name, p.position) if x)
        if p.email:
            label = f"{label} <{p.email}>" if label else p.email
        if label:
            prospects.append(label)
    return Resolution(
        value=prospects,
        source=analysis.prospects_source or SourceLabel.SNOV.value,
        confidence=EXECUTIVE_SEARCH_CONFIDENCE,
    )


def _technologies(analysis: CompanyAnalysis) -> Optional[Resolution]:
    source = analysis.field_sources.get("technologies", SourceLabel.APOLLO.value)
    return Resolution(
        value=list(analysis.technologies),
        source=source,
        confidence=SOURCE_CONFIDENCE.get(source, 0.5),
    )


def _recent_posts(analysis: CompanyAnalysis) -> Optional[Resolution]:
    posts = analysis.linkedin_recent_posts
    if not posts:
        return None
    summaries = []
    for post in posts:
        text = (post.text or "").strip().replace("\n", " ")
        if len(text) > 140:
            text = text[:137] + "..."
        prefix = f"{post.published_at[:10]}: " if post.published_at else ""
        summaries.append(f"{prefix}{text or post.post_url}")
    return Resolution(
        value=summaries,
        source="apify",
        confidence=SOURCE_CONFIDENCE["apify"],
        source_context=[
            SourceContext(url=p.post_url, snippet=(p.text or "")[:200] or None) for p in posts
        ],
        primary_source_url=posts[0].post_url,
    )


def _company_activity(analysis: CompanyAnalysis) -> Optional[Resolution]:
    activity = analysis.company_activity
    if activity is None:
        return None
    posts = analysis.linkedin_recent_posts
    return Resolution(
        value=activity.summary,
        source="apify",
        confidence=SOURCE_CONFIDENCE["apify"],
        source_context=[SourceContext(url=p.post_url) for p in posts],
        primary_source_url=posts[0].post_url if posts else None,
    )


RESOLVERS: Dict[CanonicalField, Resolver] = {
    **{f: _firmographic(f.value) for f in FIRMOGRAPHIC_FIELDS},
    CanonicalField.COMPANY_LINKEDIN: _company_linkedin,
    CanonicalField.COMPANY_DESCRIPTION: _web_attr("key_insights"),
    CanonicalField.KEY_INSIGHTS: _web_attr("key_insights"),
    CanonicalField.PRIORITY_SIGNALS: _signals,
    CanonicalField.PERSONALIZATION_HOOKS: _web_attr("personalization_hooks"),
    CanonicalField.SIGNAL_STRENGTH: _signal_strength,
    CanonicalField.SIGNALS_FOUND: _web_attr("total_signals_found"),
    CanonicalField.SIGNALS_BY_CATEGORY: _web_attr("signals_by_category"),
    CanonicalField.SEARCH_DATE: _web_attr("search_date"),
    CanonicalField.DATA_FRESHNESS: _web_attr("data_freshness"),
    CanonicalField.EMAIL_VERIFICATION: _email_verification,
    CanonicalField.CONTACT_NAME: _person_attr("name"),
    CanonicalField.CONTACT_TITLE: _person_attr("title"),
    CanonicalField.CONTACT_LINKEDIN: _person_attr("linkedin_url"),
    CanonicalField.EXECUTIVES: _executives,
    CanonicalField.PROSPECTS: _prospects,
    CanonicalField.TECHNOLOGIES: _technologies,
    CanonicalField.LINKEDIN_RECENT_POSTS: _recent_posts,
    CanonicalField.COMPANY_ACTIVITY: _company_activity,
}


# ---------------------------------------------------------------------------
# Type coercion
# ---------------------------------------------------------------------------


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def flatten_value(value: Any) -> Any:
    """
    Reduce structured values to display-friendly ones.

    Scalars pass through; arrays of non-scalars keep an item's ``title`` when
    it has one and JSON-encode it otherwise; objects are JSON-encoded.
    """
    if isinstance(value, (list, tuple)):
        flat = []
        for item in value:
            if _is_scalar(item):
                flat.append(item)
            elif isinstance(item, dict) and item.get("title"):
                flat.append(item["title"])
            else:
                flat.append(json.dumps(item, ensure_ascii=False, sort_keys=True, default=str))
        return flat
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)
    return value


def coerce_display_type(value: Any, field_type: FieldType) -> Any:
    """Shape a flattened value for the requested display type."""
    if field_type == FieldType.NUMBER:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            text = value.strip().replace(",", "")
            try:
                number = float(text)
            except ValueError:
                return value
            return int(number) if number.is_integer() else number
        if isinstance(value, list):
            return len(value)
        return value

    if field_type == FieldType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            word = value.strip().lower()
            if word in TRUE_WORDS or word == "valid":
                return True
            if word in FALSE_WORDS or word == "not_valid":
                return False
        if isinstance(value, (int, float)):
            return value != 0
        return value

    if field_type == FieldType.ARRAY:
        return list(value) if isinstance(value, list) else [value]

    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return value


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


def _generic(analysis: CompanyAnalysis, key: str) -> Optional[Resolution]:
    """Exact key on the analysis that has no dedicated resolver."""
    data = analysis.to_dict()
    if key not in data:
        return None
    source = analysis.source.value
    return Resolution(
        value=data[key], source=source, confidence=SOURCE_CONFIDENCE.get(source, 0.5)
    )


class FieldReconciler:
    """Resolves requested fields against a CompanyAnalysis."""

    def __init__(self, resolvers: Optional[Dict[CanonicalField, Resolver]] = None):
        self.resolvers = dict(resolvers or RESOLVERS)

    def resolve_field(self, analysis: CompanyAnalysis, requested: EnrichmentField) -> Optional[Resolution]:
        for name in (requested.name, requested.display_name):
            if not name:
                continue
            canonical = resolve_canonical(name)
            if canonical is not None and canonical in self.resolvers:
                return self.resolvers[canonical](analysis)
            if canonical is None:
                generic = _generic(analysis, name)
                if generic is not None:
                    return generic
        return None

    def is_contact_field(self, requested: EnrichmentField) -> bool:
        for name in (requested.name, requested.display_name):
            canonical = resolve_canonical(name) if name else None
            if canonical is not None and canonical in self.resolvers:
                return canonical in CONTACT_FIELDS
        return False

    def reconcile(
        self, analysis: CompanyAnalysis, fields: Sequence[EnrichmentField]
    ) -> Dict[str, EnrichmentResult]:
        """
        One EnrichmentResult per requested field that resolved to real data.

        Fields with nothing found are omitted, never set to a null placeholder.
        """
        results: Dict[str, EnrichmentResult] = {}
        for requested in fields:
            resolution = self.resolve_field(analysis, requested)
            if resolution is None or is_missing(resolution.value):
                continue
            value = coerce_display_type(flatten_value(resolution.value), requested.type)
            if is_missing(value):
                continue
            results[requested.name] = EnrichmentResult(
                field=requested.name,
                value=value,
                confidence=resolution.confidence,
                source=resolution.source,
                source_context=resolution.source_context,
                confidence_level=confidence_level(resolution.confidence),
                primary_source_url=resolution.primary_source_url,
                recommended_action=resolution.recommended_action,
                data_freshness=resolution.data_freshness,
            )

        logger.debug(
            "Fields reconciled",
            requested=len(fields),
            resolved=len(results),
            source=analysis.source.value,
        )
        return results
