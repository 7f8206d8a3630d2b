"""
Per-row enrichment pipeline.

Input check, skip-list, domain cache, discovery and reconciliation for a
single row. Only company-level fields are cached per domain; contact fields
(name, title, profile, email verification) are looked up for every row.

Everything that can go wrong with one row ends up in that row's
``RowEnrichmentResult``; only cancellation escapes, so that work abandoned by
a cancelled session is never cached or reported.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Sequence

import structlog

from fire_enrich.core.exceptions import (
    EnrichmentCancelledError,
    EnrichmentTimeoutError,
    RowInputError,
)
from fire_enrich.core.logging import bind_row
from fire_enrich.core.models import (
    EnrichmentField,
    EnrichmentResult,
    MessageType,
    Row,
    RowEnrichmentResult,
    RowStatus,
)
from fire_enrich.intelligence.cache import DomainCache
from fire_enrich.intelligence.discovery import DiscoveryCoordinator, hints_from_row
from fire_enrich.intelligence.reconciler import FieldReconciler
from fire_enrich.intelligence.skip_list import SkipList
from fire_enrich.utils.reliability import CancellationToken, with_timeout

logger = structlog.get_logger(__name__)

MISSING_EMAIL = "No email found in specified column"

ProgressCallback = Callable[[str, MessageType], None]


def _noop(message: str, message_type: MessageType) -> None:
    return None


class RowEnricher:
    """Turns one input row into its terminal RowEnrichmentResult."""

    def __init__(
        self,
        coordinator: DiscoveryCoordinator,
        reconciler: Optional[FieldReconciler] = None,
        cache: Optional[DomainCache] = None,
        skip_list: Optional[SkipList] = None,
        row_timeout_seconds: Optional[float] = 180.0,
    ):
        self.coordinator = coordinator
        self.reconciler = reconciler or FieldReconciler()
        self.cache = cache if cache is not None else DomainCache()
        self.skip_list = skip_list if skip_list is not None else SkipList()
        self.row_timeout_seconds = row_timeout_seconds

    @staticmethod
    def row_context(row: Row, name_column: Optional[str] = None) -> Row:
        """Copy of the row carrying the name column's value as the name hint."""
        context = dict(row)
        if name_column and row.get(name_column):
            context["_name"] = row[name_column]
        return context

    def _email(self, row: Row, email_column: str) -> str:
        email = str(row.get(email_column) or "").strip()
        if not email:
            raise RowInputError(MISSING_EMAIL, details={"email_column": email_column})
        return email

    async def enrich_row(
        self,
        row_index: int,
        row: Row,
        fields: Sequence[EnrichmentField],
        email_column: str,
        name_column: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RowEnrichmentResult:
        """
        Enrich one row.

        Raises:
            EnrichmentCancelledError: the session was cancelled while the row ran
        """
        bind_row(row_index)
        notify = on_progress or _noop

        def finish(status: RowStatus, enrichments=None, error=None) -> RowEnrichmentResult:
            return RowEnrichmentResult(
                row_index=row_index,
                original_data=row,
                enrichments=enrichments or {},
                status=status,
                error=error,
            )

        try:
            email = self._email(row, email_column)
        except RowInputError as e:
            logger.warning("Row rejected", reason=e.message)
            return finish(RowStatus.ERROR, error=e.message)

        reason = self.skip_list.reason(email)
        if reason:
            logger.info("Row skipped", reason=reason)
            notify(f"Skipping {email}: {reason}", MessageType.WARNING)
            return finish(RowStatus.SKIPPED, error=reason)

        hints = hints_from_row(self.row_context(row, name_column), email_column)
        contact_fields = [f for f in fields if self.reconciler.is_contact_field(f)]
        cached = self.cache.get(hints.domain)
        if cached is not None:
            notify(f"Using cached results for {hints.domain}", MessageType.INFO)
            if not contact_fields:
                return finish(RowStatus.COMPLETED, enrichments=cached)
            work = self._contact_and_reconcile(hints, contact_fields, cancel_token, notify)
        else:
            work = self._discover_and_reconcile(hints, fields, cancel_token, notify)

        try:
            enrichments = await with_timeout(
                work,
                self.row_timeout_seconds,
                operation=f"row {row_index}",
            )
        except EnrichmentCancelledError:
            raise
        except EnrichmentTimeoutError as e:
            logger.warning("Row timed out", error=e.message)
            return finish(RowStatus.ERROR, error=e.message)
        except Exception as e:
            logger.error("Row enrichment failed", error=str(e), error_type=type(e).__name__)
            return finish(RowStatus.ERROR, error=str(e) or type(e).__name__)

        contact_names = {f.name for f in contact_fields}
        if cached is None:
            self.cache.put(
                hints.domain,
                {name: result for name, result in enrichments.items() if name not in contact_names},
            )
        else:
            merged = {**cached, **enrichments}
            enrichments = {f.name: merged[f.name] for f in fields if f.name in merged}

        notify(f"Enriched {len(enrichments)} of {len(fields)} fields", MessageType.SUCCESS)
        return finish(RowStatus.COMPLETED, enrichments=enrichments)

    async def _discover_and_reconcile(
        self,
        hints,
        fields: Sequence[EnrichmentField],
        cancel_token: Optional[CancellationToken],
        notify: ProgressCallback,
    ) -> Dict[str, EnrichmentResult]:
        analysis = await self.coordinator.discover(hints, cancel_token, notify)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return self.reconciler.reconcile(analysis, fields)

    async def _contact_and_reconcile(
        self,
        hints,
        fields: Sequence[EnrichmentField],
        cancel_token: Optional[CancellationToken],
        notify: ProgressCallback,
    ) -> Dict[str, EnrichmentResult]:
        """Contact-level fields for a row whose company part came from the cache."""
        analysis = await self.coordinator.discover_contact(hints, cancel_token, notify)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return self.reconciler.reconcile(analysis, fields)
