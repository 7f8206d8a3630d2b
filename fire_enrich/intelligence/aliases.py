"""
Canonical enrichment fields and the bilingual alias table.

Every field the reconciler can answer is a ``CanonicalField``. A requested
field name is resolved to one by, in order: its snake_case analysis key,
its camelCase derived key, then a normalized alias lookup covering English
and Portuguese synonyms. Normalization lower-cases, strips diacritics and
drops every non-alphanumeric character, so "Força do Sinal",
"forca_do_sinal" and "FORÇA DO SINAL" are the same key.
"""

from __future__ import annotations

import re
import unicodedata
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class CanonicalField(str, Enum):
    """Field kinds the reconciler knows how to resolve."""

    COMPANY_NAME = "company_name"
    COMPANY_DOMAIN = "company_domain"
    COMPANY_INDUSTRY = "company_industry"
    COMPANY_COUNTRY = "company_country"
    COMPANY_COMPETITORS = "company_competitors"
    COMPANY_LINKEDIN = "company_linkedin_url"
    COMPANY_DESCRIPTION = "company_description"
    PRIORITY_SIGNALS = "priority_signals"
    PERSONALIZATION_HOOKS = "personalization_hooks"
    SIGNAL_STRENGTH = "overall_signal_strength"
    SIGNALS_FOUND = "total_signals_found"
    SIGNALS_BY_CATEGORY = "signals_by_category"
    KEY_INSIGHTS = "key_insights"
    SEARCH_DATE = "search_date"
    DATA_FRESHNESS = "data_freshness"
    EMAIL_VERIFICATION = "email_verification"
    CONTACT_NAME = "contact_name"
    CONTACT_TITLE = "contact_title"
    CONTACT_LINKEDIN = "contact_linkedin_url"
    EXECUTIVES = "executives"
    PROSPECTS = "prospects"
    TECHNOLOGIES = "technologies"
    LINKEDIN_RECENT_POSTS = "linkedin_recent_posts"
    COMPANY_ACTIVITY = "company_activity"


# camelCase keys of the analysis, as used by presets and the UI
DERIVED_KEYS: Dict[str, CanonicalField] = {
    "companyName": CanonicalField.COMPANY_NAME,
    "companyDomain": CanonicalField.COMPANY_DOMAIN,
    "industry": CanonicalField.COMPANY_INDUSTRY,
    "country": CanonicalField.COMPANY_COUNTRY,
    "competitors": CanonicalField.COMPANY_COMPETITORS,
    "companyLinkedin": CanonicalField.COMPANY_LINKEDIN,
    "companyDescription": CanonicalField.COMPANY_DESCRIPTION,
    "prioritySignals": CanonicalField.PRIORITY_SIGNALS,
    "personalizationHooks": CanonicalField.PERSONALIZATION_HOOKS,
    "signalStrength": CanonicalField.SIGNAL_STRENGTH,
    "signalsFound": CanonicalField.SIGNALS_FOUND,
    "signalsByCategory": CanonicalField.SIGNALS_BY_CATEGORY,
    "keyInsights": CanonicalField.KEY_INSIGHTS,
    "searchDate": CanonicalField.SEARCH_DATE,
    "dataFreshness": CanonicalField.DATA_FRESHNESS,
    "emailVerification": CanonicalField.EMAIL_VERIFICATION,
    "contactName": CanonicalField.CONTACT_NAME,
    "jobTitle": CanonicalField.CONTACT_TITLE,
    "linkedinProfile": CanonicalField.CONTACT_LINKEDIN,
    "executives": CanonicalField.EXECUTIVES,
    "prospects": CanonicalField.PROSPECTS,
    "technologies": CanonicalField.TECHNOLOGIES,
    "linkedinRecentPosts": CanonicalField.LINKEDIN_RECENT_POSTS,
    "companyActivity": CanonicalField.COMPANY_ACTIVITY,
}

# (english, portuguese) synonyms per field
SYNONYMS: Dict[CanonicalField, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    CanonicalField.COMPANY_NAME: (
        ("company", "company name", "organization", "organization name", "business name"),
        ("empresa", "nome da empresa", "organização", "razão social", "companhia"),
    ),
    CanonicalField.COMPANY_DOMAIN: (
        ("domain", "website", "web site", "site url", "company website"),
        ("domínio", "site", "site da empresa", "endereço do site"),
    ),
    CanonicalField.COMPANY_INDUSTRY: (
        ("industry", "sector", "vertical", "company industry"),
        ("indústria", "setor", "segmento", "ramo de atuação"),
    ),
    CanonicalField.COMPANY_COUNTRY: (
        ("country", "company country", "headquarters country", "hq country"),
        ("país", "país da empresa", "país sede"),
    ),
    CanonicalField.COMPANY_COMPETITORS: (
        ("competitors", "main competitors", "competition"),
        ("concorrentes", "principais concorrentes", "concorrência"),
    ),
    CanonicalField.COMPANY_LINKEDIN: (
        ("company linkedin", "linkedin company", "company linkedin url"),
        ("linkedin da empresa", "perfil linkedin da empresa"),
    ),
    CanonicalField.COMPANY_DESCRIPTION: (
        ("description", "company description", "about", "summary", "what they do"),
        ("descrição", "descrição da empresa", "sobre", "resumo", "o que a empresa faz"),
    ),
    CanonicalField.PRIORITY_SIGNALS: (
        ("signals", "priority signals", "buying signals", "top signals"),
        ("sinais", "sinais prioritários", "sinais de compra", "principais sinais"),
    ),
    CanonicalField.PERSONALIZATION_HOOKS: (
        ("hooks", "personalization hooks", "icebreakers", "talking points"),
        ("hooks de personalização", "ganchos", "ganchos de personalização", "quebra gelo"),
    ),
    CanonicalField.SIGNAL_STRENGTH: (
        ("signal strength", "overall signal strength", "intent strength"),
        ("força do sinal", "força dos sinais", "intensidade do sinal"),
    ),
    CanonicalField.SIGNALS_FOUND: (
        ("signals found", "signal count", "number of signals", "total signals"),
        ("qtd sinais", "qtd. sinais", "quantidade de sinais", "total de sinais", "sinais encontrados"),
    ),
    CanonicalField.SIGNALS_BY_CATEGORY: (
        ("signals per category", "signal categories"),
        ("sinais por categoria", "categorias de sinais"),
    ),
    CanonicalField.KEY_INSIGHTS: (
        ("insights", "key findings", "main insights"),
        ("principais insights", "insights principais", "descobertas"),
    ),
    CanonicalField.SEARCH_DATE: (
        ("research date", "scan date", "date searched"),
        ("data da pesquisa", "data da varredura", "data de pesquisa"),
    ),
    CanonicalField.DATA_FRESHNESS: (
        ("freshness", "data age", "recency"),
        ("atualidade dos dados", "recência", "frescor dos dados"),
    ),
    CanonicalField.EMAIL_VERIFICATION: (
        ("email verification", "email status", "email valid", "email validity"),
        ("verificação de email", "verificação de e-mail", "status do email", "email válido"),
    ),
    CanonicalField.CONTACT_NAME: (
        ("contact name", "full name", "person name", "lead name"),
        ("nome do contato", "nome completo", "nome do lead"),
    ),
    CanonicalField.CONTACT_TITLE: (
        ("title", "job title", "position", "role"),
        ("cargo", "função", "posição"),
    ),
    CanonicalField.CONTACT_LINKEDIN: (
        ("linkedin", "linkedin url", "linkedin profile", "person linkedin"),
        ("perfil do linkedin", "linkedin do contato", "perfil linkedin"),
    ),
    CanonicalField.EXECUTIVES: (
        ("leadership", "decision makers", "key executives", "c level"),
        ("executivos", "liderança", "tomadores de decisão", "diretoria"),
    ),
    CanonicalField.PROSPECTS: (
        ("contacts", "company contacts", "leads"),
        ("contatos", "contatos da empresa", "prospects da empresa"),
    ),
    CanonicalField.TECHNOLOGIES: (
        ("tech stack", "technology stack", "tools used"),
        ("tecnologias", "stack tecnológico", "ferramentas"),
    ),
    CanonicalField.LINKEDIN_RECENT_POSTS: (
        ("linkedin posts", "recent posts", "recent linkedin posts"),
        ("posts linkedin", "posts do linkedin", "publicações recentes", "posts recentes"),
    ),
    CanonicalField.COMPANY_ACTIVITY: (
        ("activity", "social activity", "linkedin activity"),
        ("atividade", "atividade social", "atividade no linkedin"),
    ),
}


def normalize_alias(name: str) -> str:
    """Lower-case, strip diacritics and drop non-alphanumerics."""
    decomposed = unicodedata.normalize("NFKD", name or "")
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]", "", ascii_only.lower())


def _build_alias_table() -> Dict[str, CanonicalField]:
    table: Dict[str, CanonicalField] = {}

    def add(alias: str, target: CanonicalField) -> None:
        key = normalize_alias(alias)
        existing = table.get(key)
        if existing is not None and existing is not target:
            raise ValueError(f"alias {alias!r} maps to both {existing.value} and {target.value}")
        table[key] = target

    for canonical in CanonicalField:
        add(canonical.value, canonical)
    for derived, canonical in DERIVED_KEYS.items():
        add(derived, canonical)
    for canonical, (english, portuguese) in SYNONYMS.items():
        for alias in english + portuguese:
            add(alias, canonical)
    return table


ALIAS_TABLE: Dict[str, CanonicalField] = _build_alias_table()
_BY_VALUE = {c.value: c for c in CanonicalField}


def resolve_canonical(name: Optional[str]) -> Optional[CanonicalField]:
    """Exact snake_case key, then exact camelCase key, then normalized alias."""
    if not name:
        return None
    if name in _BY_VALUE:
        return _BY_VALUE[name]
    if name in DERIVED_KEYS:
        return DERIVED_KEYS[name]
    return ALIAS_TABLE.get(normalize_alias(name))


def iter_catalogue() -> Iterable[Tuple[CanonicalField, List[str], List[str]]]:
    """(field, english aliases, portuguese aliases) for display."""
    for canonical in CanonicalField:
        english, portuguese = SYNONYMS.get(canonical, ((), ()))
        yield canonical, list(english), list(portuguese)
