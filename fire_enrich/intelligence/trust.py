"""
Trust evaluation for firmographic provider answers.

A provider answer is disqualified for a row when it is inconsistent with the
identity we asked about. Disqualification is not an error: the answer is
simply left out of reconciliation.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from fire_enrich.core.models import CompanyRecord
from fire_enrich.utils.domains import looks_like_domain, normalize_domain

DOMAIN_MISMATCH = "domain_mismatch"
NAME_MISMATCH = "name_mismatch"
NAME_IS_DOMAIN = "name_is_domain"
NO_DATA = "no_data"


@dataclass
class TrustVerdict:
    trusted: bool
    reasons: List[str] = field(default_factory=list)


def evaluate_trust(
    record: Optional[CompanyRecord],
    requested_domain: Optional[str],
    requested_name: Optional[str] = None,
) -> TrustVerdict:
    """
    Check a provider record against the requested identity.

    Flags, any of which disqualifies the record:
    - the returned domain differs from the requested one after normalization
    - the returned name does not contain the requested name
    - the returned name is itself a bare domain-looking string
    """
    if record is None or not (record.name or record.domain):
        return TrustVerdict(trusted=False, reasons=[NO_DATA])

    reasons = []
    wanted_domain = normalize_domain(requested_domain)
    got_domain = normalize_domain(record.domain)
    if wanted_domain and got_domain and got_domain != wanted_domain:
        reasons.append(DOMAIN_MISMATCH)

    wanted_name = (requested_name or "").strip().lower()
    got_name = (record.name or "").strip().lower()
    if wanted_name and got_name and wanted_name not in got_name:
        reasons.append(NAME_MISMATCH)

    # TODO: domain-named companies (e.g. "Booking.com") are rejected here too; measure
    # how often that happens before relaxing the rule.
    if record.name and looks_like_domain(record.name):
        reasons.append(NAME_IS_DOMAIN)

    return TrustVerdict(trusted=not reasons, reasons=reasons)
