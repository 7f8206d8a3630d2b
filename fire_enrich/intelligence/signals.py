"""
Normalization of web-research signal payloads.

Turns the loosely-typed JSON an LLM returns into a ``SignalReport``: invalid
signals are dropped, duplicates merged, and signals corroborated by more
than one entry are promoted to high confidence. The 7-signal cap and the
weight/recency ordering are enforced by ``SignalReport`` itself.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from fire_enrich.core.models import (
    ConfidenceLevel,
    Signal,
    SignalCategory,
    SignalReport,
)

logger = structlog.get_logger(__name__)

FRESHNESS_VALUES = ("last_30d", "last_60d", "last_90d", "older")


def _title_key(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", title.lower()).strip()


def parse_signals(raw_signals: Any) -> List[Signal]:
    """Validate raw signal dicts, skipping any without a usable source URL."""
    signals: List[Signal] = []
    for raw in raw_signals if isinstance(raw_signals, list) else []:
        if not isinstance(raw, dict):
            continue
        candidate = dict(raw)
        if "signal_id" not in candidate and "id" in candidate:
            candidate["signal_id"] = candidate.pop("id")
        candidate.setdefault("signal_id", candidate.get("title") or len(signals) + 1)
        try:
            signals.append(Signal.model_validate(candidate))
        except PydanticValidationError as e:
            logger.debug(
                "Dropping invalid signal",
                title=str(candidate.get("title", ""))[:80],
                errors=e.error_count(),
            )
    return signals


def merge_duplicates(signals: List[Signal]) -> List[Signal]:
    """
    Collapse signals reporting the same fact: same normalized title, or the
    same source URL when a signal has no title. Ids name catalogue types, so
    two signals of one type are distinct facts.

    The heaviest entry of each group survives; a group with more than one
    mention is promoted to high confidence.
    """
    groups: List[List[Signal]] = []
    index: Dict[str, int] = {}
    for signal in signals:
        key = f"title:{_title_key(signal.title)}" if signal.title else f"url:{signal.source_url}"
        slot = index.get(key)
        if slot is None:
            slot = len(groups)
            groups.append([])
        groups[slot].append(signal)
        index[key] = slot

    merged: List[Signal] = []
    for group in groups:
        best = max(group, key=lambda s: (s.weight, s.date or ""))
        if len(group) > 1:
            best = best.model_copy(update={"confidence": ConfidenceLevel.HIGH})
        merged.append(best)
    return merged


def count_by_category(signals: List[Signal]) -> Dict[str, int]:
    counts = {c.value: 0 for c in SignalCategory}
    for signal in signals:
        counts[signal.category.value] += 1
    return counts


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_report(
    payload: Dict[str, Any],
    company_name: str = "",
    today: Optional[date] = None,
) -> SignalReport:
    """Build a SignalReport from a raw research payload."""
    analysis = payload.get("company_analysis", payload)
    if not isinstance(analysis, dict):
        analysis = {}

    signals = merge_duplicates(parse_signals(analysis.get("priority_signals")))
    hooks = [
        str(h).strip()
        for h in analysis.get("personalization_hooks") or []
        if isinstance(h, (str, int, float)) and str(h).strip()
    ]
    freshness = str(analysis.get("data_freshness") or "").strip().lower()

    by_category = analysis.get("signals_by_category")
    if not isinstance(by_category, dict) or not by_category:
        by_category = count_by_category(signals)

    report = SignalReport(
        company_name=str(analysis.get("company_name") or company_name or ""),
        search_date=str(analysis.get("search_date") or (today or date.today()).isoformat()),
        data_freshness=freshness if freshness in FRESHNESS_VALUES else "older",
        overall_signal_strength=analysis.get("overall_signal_strength") or "low",
        priority_signals=signals,
        total_signals_found=max(_int(analysis.get("total_signals_found")), len(signals)),
        signals_by_category=by_category,
        key_insights=str(analysis.get("key_insights") or ""),
        personalization_hooks=hooks,
    )
    logger.debug(
        "Signal report normalized",
        company=report.company_name,
        signals=len(report.priority_signals),
        strength=report.overall_signal_strength.value,
    )
    return report
