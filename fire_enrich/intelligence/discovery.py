"""
Discovery coordinator.

For one row, resolves the company identity from the row's columns, fans out
to every configured provider concurrently, discards provider answers that
fail trust evaluation, and layers the survivors into one CompanyAnalysis.
Provider failures are isolated: one adapter returning ``None`` never affects
the others, and ``discover`` itself does not raise on provider trouble.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from fire_enrich.core.models import (
    CompanyActivity,
    CompanyAnalysis,
    CompanyRecord,
    DomainSearchResult,
    IdentityHints,
    LinkedinPost,
    MessageType,
    Row,
    SignalReport,
    SourceLabel,
)
from fire_enrich.data.web_research import ResearchRequest
from fire_enrich.intelligence.reconciler import is_missing
from fire_enrich.intelligence.trust import NO_DATA, evaluate_trust
from fire_enrich.utils.domains import email_domain, looks_like_domain, normalize_domain
from fire_enrich.utils.reliability import CancellationToken, track_performance

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str, MessageType], None]

NAME_COLUMNS = ("_name", "company", "company_name", "empresa")
DOMAIN_COLUMNS = ("company_domain", "domain", "website")
LINKEDIN_COLUMNS = ("linkedin_url", "company_linkedin")

PROVIDER_LABELS = {
    SourceLabel.APOLLO.value,
    SourceLabel.SNOV.value,
    SourceLabel.EXPLORIUM.value,
    SourceLabel.WEB.value,
}

# analysis key -> CompanyRecord attribute
FIRMOGRAPHIC_ATTRS = (
    ("company_name", "name"),
    ("company_domain", "domain"),
    ("company_industry", "industry"),
    ("company_country", "country"),
    ("company_competitors", "competitors"),
)


def _column(row: Row, candidates: Sequence[str]) -> Optional[str]:
    lowered = {str(k).strip().lower(): v for k, v in row.items()}
    for candidate in candidates:
        value = lowered.get(candidate)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def hints_from_row(row: Row, email_column: str) -> IdentityHints:
    """
    Company identity hints from the row's columns.

    An explicit domain column wins over the email's domain; the name comes
    only from explicit columns, never from the email.
    """
    email = str(row.get(email_column) or "").strip()
    explicit = _column(row, DOMAIN_COLUMNS)
    domain = normalize_domain(explicit) if explicit else email_domain(email)
    return IdentityHints(
        email=email,
        domain=domain or None,
        name=_column(row, NAME_COLUMNS),
        url=explicit if explicit and "/" in explicit else None,
        linkedin_url=_column(row, LINKEDIN_COLUMNS),
        explicit_domain=bool(explicit),
    )


def summarize_activity(posts: List[LinkedinPost]) -> Optional[CompanyActivity]:
    """Aggregate engagement over recent posts."""
    if not posts:
        return None
    total = sum(p.engagement_total for p in posts)
    average = round(total / len(posts), 1)
    dates = sorted(p.published_at for p in posts if p.published_at)
    last = dates[-1] if dates else None
    summary = f"{len(posts)} recent LinkedIn posts, {total} interactions (avg {average:g} per post)"
    if last:
        summary += f", last on {last[:10]}"
    return CompanyActivity(
        posts_count=len(posts),
        total_engagement=total,
        average_engagement=average,
        last_post_at=last,
        summary=summary,
    )


def _noop(message: str, message_type: MessageType) -> None:
    return None


class DiscoveryCoordinator:
    """Runs all provider lookups for one company and merges the answers."""

    def __init__(
        self,
        apollo=None,
        snov=None,
        explorium=None,
        web=None,
        apify=None,
        enable_email_verification: bool = True,
        enable_social_posts: bool = True,
        executives_limit: int = 10,
    ):
        self.apollo = apollo
        self.snov = snov
        self.explorium = explorium
        self.web = web
        self.apify = apify
        self.enable_email_verification = enable_email_verification
        self.enable_social_posts = enable_social_posts
        self.executives_limit = executives_limit

    @property
    def configured_providers(self) -> List[str]:
        names = ("apollo", "snov", "explorium", "web", "apify")
        return [name for name in names if getattr(self, name) is not None]

    async def _gather(self, calls: Dict[str, Awaitable[Any]]) -> Dict[str, Any]:
        """Await calls concurrently; a failing call yields None for its key only."""
        if not calls:
            return {}
        names = list(calls)
        outcomes = await asyncio.gather(*calls.values(), return_exceptions=True)
        results: Dict[str, Any] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.warning(
                    "Provider lookup raised", provider=name, error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                outcome = None
            results[name] = outcome
        return results

    @track_performance("discovery")
    async def discover(
        self,
        hints: IdentityHints,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CompanyAnalysis:
        notify = on_progress or _noop
        domain = hints.domain
        notify(f"Resolving company for {domain or hints.email}", MessageType.INFO)

        # Phase 1: independent lookups
        calls: Dict[str, Awaitable[Any]] = {}
        if self.apollo is not None:
            calls["apollo"] = self.apollo.enrich(hints, cancel_token)
        if self.snov is not None and domain:
            calls["snov"] = self.snov.domain_search(domain, cancel_token)
        if self.explorium is not None:
            calls["explorium"] = self.explorium.enrich(hints, cancel_token)
        if self.web is not None and (hints.name or domain):
            calls["web"] = self.web.research(
                ResearchRequest(
                    company_name=hints.name or domain or "",
                    company_domain=domain or "",
                ),
                cancel_token,
            )
        if self.snov is not None and self.enable_email_verification and hints.email:
            calls["verification"] = self.snov.verify_email(hints.email, cancel_token)

        if calls:
            notify(f"Querying {', '.join(sorted(calls))}", MessageType.AGENT)
        found = await self._gather(calls)

        snov_search: Optional[DomainSearchResult] = found.get("snov")
        records: List[Tuple[str, Optional[CompanyRecord]]] = [
            (SourceLabel.APOLLO.value, found.get("apollo")),
            (SourceLabel.SNOV.value, snov_search.company if snov_search else None),
            (SourceLabel.EXPLORIUM.value, found.get("explorium")),
        ]
        trusted = self._trusted_records(records, hints, notify)
        report: Optional[SignalReport] = found.get("web")

        analysis = self._layer(trusted, report, hints)
        if snov_search is not None:
            analysis.prospects = list(snov_search.prospects)
            analysis.prospects_source = SourceLabel.SNOV.value
            analysis.emails_count = snov_search.emails_count
        analysis.email_verification = found.get("verification")

        if report is None:
            notify("Web research unavailable, continuing without signals", MessageType.WARNING)
        else:
            notify(
                f"Found {len(report.priority_signals)} signals "
                f"(strength: {report.overall_signal_strength.value})",
                MessageType.SUCCESS,
            )

        if cancel_token is not None and cancel_token.cancelled:
            return analysis

        # Phase 2: person match and leadership, once identity is settled
        await self._people(analysis, hints, cancel_token, notify)

        if cancel_token is not None and cancel_token.cancelled:
            return analysis

        # Phase 3: social content, preferring the person's profile
        await self._social(analysis, cancel_token, notify)

        logger.info(
            "Discovery finished",
            domain=domain,
            source=analysis.source.value,
            signals=len(analysis.priority_signals),
        )
        return analysis

    async def discover_contact(
        self,
        hints: IdentityHints,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CompanyAnalysis:
        """Person match and email verification for one address, no company lookups."""
        notify = on_progress or _noop
        analysis = CompanyAnalysis(company_domain=hints.domain or "unknown")
        if not hints.email:
            return analysis

        calls: Dict[str, Awaitable[Any]] = {}
        if self.apollo is not None:
            calls["person"] = self.apollo.match(hints.email, cancel_token)
        if self.snov is not None and self.enable_email_verification:
            calls["verification"] = self.snov.verify_email(hints.email, cancel_token)
        if calls:
            notify(f"Looking up contact {hints.email}", MessageType.AGENT)
        found = await self._gather(calls)

        analysis.person = found.get("person")
        analysis.email_verification = found.get("verification")
        return analysis

    def _trusted_records(
        self,
        records: List[Tuple[str, Optional[CompanyRecord]]],
        hints: IdentityHints,
        notify: ProgressCallback,
    ) -> List[Tuple[str, CompanyRecord]]:
        trusted = []
        for label, record in records:
            verdict = evaluate_trust(record, hints.domain, hints.name)
            if verdict.trusted:
                trusted.append((label, record))
            elif verdict.reasons != [NO_DATA]:
                logger.info("Provider answer rejected", provider=label, reasons=verdict.reasons)
                notify(
                    f"{label.capitalize()} answer discarded ({', '.join(verdict.reasons)})",
                    MessageType.WARNING,
                )
        return trusted

    def _layer(
        self,
        trusted: List[Tuple[str, CompanyRecord]],
        report: Optional[SignalReport],
        hints: IdentityHints,
    ) -> CompanyAnalysis:
        """Trusted primary -> secondary -> web -> raw input -> "unknown", per field."""
        values: Dict[str, Any] = {}
        sources: Dict[str, str] = {}

        for key, attr in FIRMOGRAPHIC_ATTRS:
            for label, record in trusted:
                value = getattr(record, attr)
                if not is_missing(value):
                    values[key], sources[key] = value, label
                    break
            else:
                web_name = report.company_name if report is not None else None
                if key == "company_name" and not is_missing(web_name) and not looks_like_domain(web_name):
                    values[key], sources[key] = web_name, SourceLabel.WEB.value
                elif key == "company_name" and hints.name:
                    values[key], sources[key] = hints.name, SourceLabel.INPUT.value
                elif key == "company_domain" and hints.domain:
                    values[key], sources[key] = hints.domain, SourceLabel.INPUT.value

        contributing = {s for s in sources.values() if s in PROVIDER_LABELS}
        if len(contributing) == 1:
            source = SourceLabel(contributing.pop())
        elif contributing:
            source = SourceLabel.MULTIPLE
        else:
            source = SourceLabel.UNKNOWN

        linkedin = hints.linkedin_url
        if linkedin:
            sources["company_linkedin_url"] = SourceLabel.INPUT.value
        else:
            for label, record in trusted:
                if record.linkedin_url:
                    linkedin = record.linkedin_url
                    sources["company_linkedin_url"] = label
                    break

        technologies: List[str] = []
        for label, record in trusted:
            if record.technologies:
                technologies = list(record.technologies)
                sources["technologies"] = label
                break

        report = report or SignalReport.minimal(values.get("company_name", ""))
        return CompanyAnalysis(
            company_name=values.get("company_name", "unknown"),
            company_domain=values.get("company_domain", "unknown"),
            company_industry=values.get("company_industry", "unknown"),
            company_country=values.get("company_country", "unknown"),
            company_competitors=list(values.get("company_competitors", [])),
            source=source,
            field_sources=sources,
            company_linkedin_url=linkedin,
            technologies=technologies,
            search_date=report.search_date,
            data_freshness=report.data_freshness,
            overall_signal_strength=report.overall_signal_strength,
            priority_signals=list(report.priority_signals),
            total_signals_found=report.total_signals_found,
            signals_by_category=dict(report.signals_by_category),
            key_insights=report.key_insights,
            personalization_hooks=list(report.personalization_hooks),
        )

    async def _people(
        self,
        analysis: CompanyAnalysis,
        hints: IdentityHints,
        cancel_token: Optional[CancellationToken],
        notify: ProgressCallback,
    ) -> None:
        if self.apollo is None:
            return
        domain = analysis.company_domain if not is_missing(analysis.company_domain) else hints.domain
        name = analysis.company_name if not is_missing(analysis.company_name) else None
        calls: Dict[str, Awaitable[Any]] = {}
        if hints.email:
            calls["person"] = self.apollo.match(hints.email, cancel_token)
        if domain or name:
            calls["executives"] = self.apollo.search_executives(
                domain=domain, name=name, limit=self.executives_limit, cancel_token=cancel_token
            )
        found = await self._gather(calls)

        analysis.person = found.get("person")
        executives = found.get("executives") or []
        if executives:
            analysis.executives = list(executives)
            analysis.executives_source = SourceLabel.APOLLO.value
            notify(f"Found {len(executives)} executives", MessageType.SUCCESS)
        if analysis.person is not None and analysis.person.title:
            notify(f"Matched contact: {analysis.person.title}", MessageType.INFO)

    async def _social(
        self,
        analysis: CompanyAnalysis,
        cancel_token: Optional[CancellationToken],
        notify: ProgressCallback,
    ) -> None:
        if self.apify is None or not self.enable_social_posts:
            return
        person_url = analysis.person.linkedin_url if analysis.person else None
        url = person_url or analysis.company_linkedin_url
        if not url:
            return
        notify("Fetching recent LinkedIn posts", MessageType.AGENT)
        posts = await self.apify.recent_posts([url], cancel_token=cancel_token)
        if posts:
            analysis.linkedin_recent_posts = list(posts)
            analysis.company_activity = summarize_activity(posts)
            notify(f"Found {len(posts)} LinkedIn posts", MessageType.SUCCESS)
