"""Skip-list policy: emails that must not trigger any provider work."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Set, Union

import structlog

from fire_enrich.utils.domains import email_domain

logger = structlog.get_logger(__name__)

WEBMAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "yahoo.com",
        "yahoo.com.br",
        "hotmail.com",
        "hotmail.com.br",
        "outlook.com",
        "outlook.com.br",
        "live.com",
        "msn.com",
        "icloud.com",
        "me.com",
        "aol.com",
        "bol.com.br",
        "uol.com.br",
        "terra.com.br",
        "ig.com.br",
        "protonmail.com",
        "proton.me",
        "gmx.com",
        "mail.com",
        "yandex.com",
        "zoho.com",
    }
)


class SkipList:
    """
    Predicate over emails consulted once per row before any provider call.

    Entries are whole emails or domains; free webmail domains are always
    included unless ``include_webmail`` is off.
    """

    def __init__(
        self,
        domains: Iterable[str] = (),
        emails: Iterable[str] = (),
        include_webmail: bool = True,
    ):
        self.domains: Set[str] = {d.strip().lower() for d in domains if d.strip()}
        self.emails: Set[str] = {e.strip().lower() for e in emails if e.strip()}
        self.webmail: Set[str] = set(WEBMAIL_DOMAINS) if include_webmail else set()

    @classmethod
    def from_file(cls, path: Union[str, Path], include_webmail: bool = True) -> "SkipList":
        """Load one email or domain per line; ``#`` starts a comment."""
        domains, emails = [], []
        for line in Path(path).read_text(encoding="utf-8").splitlines():
            entry = line.split("#", 1)[0].strip().lower()
            if not entry:
                continue
            if entry.startswith("@") or "@" not in entry:
                domains.append(entry.lstrip("@"))
            else:
                emails.append(entry)
        logger.info("Skip list loaded", path=str(path), domains=len(domains), emails=len(emails))
        return cls(domains=domains, emails=emails, include_webmail=include_webmail)

    def reason(self, email: Optional[str]) -> Optional[str]:
        """Why an email is skipped, or None when it should be enriched."""
        if not email:
            return None
        address = email.strip().lower()
        domain = email_domain(address)
        if address in self.emails:
            return f"Email {address} is in the skip list"
        if domain in self.domains:
            return f"Domain {domain} is in the skip list"
        if domain in self.webmail:
            return f"Personal email provider ({domain})"
        return None

    def should_skip(self, email: Optional[str]) -> bool:
        return self.reason(email) is not None
