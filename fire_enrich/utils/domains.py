"""Helpers for normalizing domains, URLs and email addresses."""

import re
from typing import Optional

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_domain(value: Optional[str]) -> str:
    """
    Lower-case a domain or URL and strip scheme, leading ``www.``, path and port.

    >>> normalize_domain("https://www.Acme.com/about")
    'acme.com'
    """
    if not value:
        return ""
    candidate = _SCHEME_RE.sub("", str(value).strip().lower())
    candidate = candidate.split("/", 1)[0].split("?", 1)[0].split("#", 1)[0]
    candidate = candidate.split("@")[-1].split(":", 1)[0]
    if candidate.startswith("www."):
        candidate = candidate[4:]
    return candidate.strip(".")


def email_domain(email: Optional[str]) -> str:
    """Return the normalized domain part of an email, or "" when absent."""
    if not email or "@" not in str(email):
        return ""
    return normalize_domain(str(email).strip().rsplit("@", 1)[1])


def looks_like_domain(value: Optional[str]) -> bool:
    """True for bare domain-looking strings such as ``acme.com``."""
    if not value:
        return False
    text = str(value).strip()
    return "." in text and " " not in text
