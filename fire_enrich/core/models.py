"""Data models for fire-enrich rows, provider records and session events."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MAX_PRIORITY_SIGNALS = 7

Row = Dict[str, Any]


class FieldType(str, Enum):
    """Display type requested for an enrichment column."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"


class RowStatus(str, Enum):
    """Lifecycle of a single row inside a session."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


class SourceLabel(str, Enum):
    """Which provider layer produced the firmographic fields."""

    APOLLO = "apollo"
    SNOV = "snov"
    EXPLORIUM = "explorium"
    WEB = "web"
    INPUT = "input"
    MULTIPLE = "multiple"
    UNKNOWN = "unknown"


class SignalCategory(str, Enum):
    ORGANIZATIONAL = "organizational"
    MARKET = "market"
    PERFORMANCE = "performance"
    PERSONAL = "personal"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MessageType(str, Enum):
    """Kinds of agent_progress messages shown in the UI."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    AGENT = "agent"


# Portuguese category names map onto the English canonical ones
CATEGORY_ALIASES: Dict[str, SignalCategory] = {
    "organizational": SignalCategory.ORGANIZATIONAL,
    "organizacional": SignalCategory.ORGANIZATIONAL,
    "market": SignalCategory.MARKET,
    "mercado": SignalCategory.MARKET,
    "performance": SignalCategory.PERFORMANCE,
    "desempenho": SignalCategory.PERFORMANCE,
    "personal": SignalCategory.PERSONAL,
    "pessoal": SignalCategory.PERSONAL,
}


def confidence_level(score: float) -> ConfidenceLevel:
    """Bucket a numeric confidence score."""
    if score >= 0.8:
        return ConfidenceLevel.HIGH
    if score >= 0.5:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


class CamelModel(BaseModel):
    """Base for models serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Requested fields and per-field results
# ---------------------------------------------------------------------------


class EnrichmentField(CamelModel):
    """A user-requested output column."""

    name: str
    display_name: Optional[str] = None
    description: str = ""
    type: FieldType = FieldType.STRING
    required: bool = False

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("field name cannot be empty")
        return v.strip()

    @property
    def label(self) -> str:
        return self.display_name or self.name


class SourceContext(CamelModel):
    url: str
    snippet: Optional[str] = None


class EnrichmentResult(CamelModel):
    """Resolved value for one requested field of one row."""

    field: str
    value: Any
    confidence: float = Field(ge=0.0, le=1.0)
    source: str
    source_context: List[SourceContext] = Field(default_factory=list)
    confidence_level: ConfidenceLevel = ConfidenceLevel.LOW
    primary_source_url: Optional[str] = None
    recommended_action: Optional[str] = None
    data_freshness: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class RowEnrichmentResult(CamelModel):
    """Terminal outcome for one input row."""

    row_index: int
    original_data: Row
    enrichments: Dict[str, EnrichmentResult] = Field(default_factory=dict)
    status: RowStatus = RowStatus.PENDING
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Web research signals
# ---------------------------------------------------------------------------


class Signal(BaseModel):
    """A weighted, sourced fact about a company."""

    id: str = Field(alias="signal_id")
    name: str = Field(default="", alias="signal_name")
    category: SignalCategory = SignalCategory.ORGANIZATIONAL
    weight: int = 1
    date: str = ""
    title: str = ""
    description: str = ""
    source_url: str
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    recommended_action: str = ""
    copy_angle: str = ""

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v).strip()

    @field_validator("category", mode="before")
    @classmethod
    def canonical_category(cls, v):
        key = str(v or "").strip().lower()
        if key not in CATEGORY_ALIASES:
            raise ValueError(f"unknown signal category: {v!r}")
        return CATEGORY_ALIASES[key]

    @field_validator("weight", mode="before")
    @classmethod
    def coerce_weight(cls, v):
        try:
            weight = int(float(str(v).split("-")[0].strip()))
        except (TypeError, ValueError):
            weight = 1
        return max(1, min(5, weight))

    @field_validator("confidence", mode="before")
    @classmethod
    def coerce_confidence(cls, v):
        value = str(v or "").strip().lower()
        mapping = {"alta": "high", "media": "medium", "média": "medium", "baixa": "low"}
        value = mapping.get(value, value)
        return value if value in ("high", "medium", "low") else "medium"

    @field_validator("source_url")
    @classmethod
    def require_url(cls, v: str) -> str:
        v = (v or "").strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("signal requires a verifiable source_url")
        return v


def rank_signals(signals: List[Signal]) -> List[Signal]:
    """Order by descending weight, most recent first within a weight."""
    return sorted(signals, key=lambda s: (s.weight, s.date or ""), reverse=True)


class SignalReport(BaseModel):
    """Normalized web-research output for one company."""

    company_name: str = ""
    search_date: str = ""
    data_freshness: str = "older"
    overall_signal_strength: ConfidenceLevel = ConfidenceLevel.LOW
    priority_signals: List[Signal] = Field(default_factory=list)
    total_signals_found: int = 0
    signals_by_category: Dict[str, int] = Field(default_factory=dict)
    key_insights: str = ""
    personalization_hooks: List[str] = Field(default_factory=list)

    @field_validator("signals_by_category", mode="before")
    @classmethod
    def canonical_categories(cls, v):
        counts: Dict[str, int] = {}
        for key, count in (v or {}).items():
            category = CATEGORY_ALIASES.get(str(key).strip().lower())
            name = category.value if category else str(key)
            try:
                counts[name] = counts.get(name, 0) + int(count)
            except (TypeError, ValueError):
                continue
        return counts

    @field_validator("overall_signal_strength", mode="before")
    @classmethod
    def coerce_strength(cls, v):
        value = str(v or "").strip().lower()
        return value if value in ("high", "medium", "low") else "low"

    @model_validator(mode="after")
    def cap_signals(self) -> "SignalReport":
        ranked = rank_signals(self.priority_signals)[:MAX_PRIORITY_SIGNALS]
        self.priority_signals = ranked
        if self.total_signals_found < len(ranked):
            self.total_signals_found = len(ranked)
        return self

    @classmethod
    def minimal(cls, company_name: str = "") -> "SignalReport":
        """Empty report used when web research is unavailable."""
        return cls(company_name=company_name, overall_signal_strength=ConfidenceLevel.LOW)


# ---------------------------------------------------------------------------
# Provider records
# ---------------------------------------------------------------------------


@dataclass
class CompanyRecord:
    """Normalized firmographic answer from one provider."""

    provider: str
    name: Optional[str] = None
    domain: Optional[str] = None
    industry: Optional[str] = None
    country: Optional[str] = None
    competitors: List[str] = field(default_factory=list)
    linkedin_url: Optional[str] = None
    technologies: List[str] = field(default_factory=list)


@dataclass
class PersonRecord:
    """Precise person match for the row's email."""

    email: str
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    title: Optional[str] = None
    linkedin_url: Optional[str] = None
    organization_name: Optional[str] = None
    headline: Optional[str] = None
    location: Optional[str] = None


@dataclass
class Executive:
    """Executive found through people search. Never carries phone numbers."""

    name: str
    title: str
    department: Optional[str] = None
    linkedin_url: Optional[str] = None


@dataclass
class Prospect:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None
    email: Optional[str] = None
    linkedin: Optional[str] = None


@dataclass
class DomainSearchResult:
    """Snov domain search: company record plus contact data."""

    company: Optional[CompanyRecord] = None
    prospects: List[Prospect] = field(default_factory=list)
    emails_count: int = 0

    @property
    def has_data(self) -> bool:
        return bool(
            (self.company and self.company.name) or self.emails_count > 0 or self.prospects
        )


@dataclass
class EmailVerification:
    email: str
    status: str = "unknown"  # "valid", "not_valid", "unknown"
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LinkedinPost:
    post_url: str
    text: Optional[str] = None
    published_at: Optional[str] = None
    likes: Optional[int] = None
    comments: Optional[int] = None
    reshares: Optional[int] = None
    author: Optional[str] = None
    profile_url: Optional[str] = None
    engagement_total: int = 0


@dataclass
class CompanyActivity:
    """Aggregate over recent LinkedIn posts."""

    posts_count: int
    total_engagement: int
    average_engagement: float
    last_post_at: Optional[str] = None
    summary: str = ""


@dataclass
class IdentityHints:
    """Company identity gathered from the row before any provider call."""

    email: str
    domain: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None
    linkedin_url: Optional[str] = None
    explicit_domain: bool = False


@dataclass
class CompanyAnalysis:
    """Merged aggregate for one company, built once per domain per session."""

    company_name: str = "unknown"
    company_domain: str = "unknown"
    company_industry: str = "unknown"
    company_country: str = "unknown"
    company_competitors: List[str] = field(default_factory=list)
    source: SourceLabel = SourceLabel.UNKNOWN
    field_sources: Dict[str, str] = field(default_factory=dict)
    company_linkedin_url: Optional[str] = None

    # Web research
    search_date: str = ""
    data_freshness: str = "older"
    overall_signal_strength: ConfidenceLevel = ConfidenceLevel.LOW
    priority_signals: List[Signal] = field(default_factory=list)
    total_signals_found: int = 0
    signals_by_category: Dict[str, int] = field(default_factory=dict)
    key_insights: str = ""
    personalization_hooks: List[str] = field(default_factory=list)

    # Auxiliary attachments
    person: Optional[PersonRecord] = None
    prospects: List[Prospect] = field(default_factory=list)
    prospects_source: Optional[str] = None
    emails_count: int = 0
    technologies: List[str] = field(default_factory=list)
    executives: List[Executive] = field(default_factory=list)
    executives_source: Optional[str] = None
    email_verification: Optional[EmailVerification] = None
    linkedin_recent_posts: List[LinkedinPost] = field(default_factory=list)
    company_activity: Optional[CompanyActivity] = None

    def to_dict(self) -> Dict[str, Any]:
        """Flat snake_case view used for exact-key field resolution."""
        data = asdict(self)
        data["source"] = self.source.value
        data["overall_signal_strength"] = self.overall_signal_strength.value
        data["priority_signals"] = [
            s.model_dump(mode="json", by_alias=True) for s in self.priority_signals
        ]
        data.pop("field_sources", None)
        return data


# ---------------------------------------------------------------------------
# Session events
# ---------------------------------------------------------------------------


class SessionStarted(CamelModel):
    type: Literal["session"] = "session"
    session_id: str


class RowPending(CamelModel):
    type: Literal["pending"] = "pending"
    row_index: int
    total_rows: int


class RowProcessing(CamelModel):
    type: Literal["processing"] = "processing"
    row_index: int
    total_rows: int


class RowResult(CamelModel):
    type: Literal["result"] = "result"
    result: RowEnrichmentResult


class AgentProgress(CamelModel):
    type: Literal["agent_progress"] = "agent_progress"
    row_index: Optional[int] = None
    message: str
    message_type: MessageType = MessageType.INFO
    source_url: Optional[str] = None


class SessionComplete(CamelModel):
    type: Literal["complete"] = "complete"


class SessionCancelled(CamelModel):
    type: Literal["cancelled"] = "cancelled"


class SessionFailed(CamelModel):
    type: Literal["error"] = "error"
    message: str


SessionEvent = Union[
    SessionStarted,
    RowPending,
    RowProcessing,
    RowResult,
    AgentProgress,
    SessionComplete,
    SessionCancelled,
    SessionFailed,
]

TERMINAL_EVENTS = (SessionComplete, SessionCancelled, SessionFailed)
