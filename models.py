"""
Pydantic models for the Email Discovery Service
"""
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Operation(str, Enum):
    """User-facing pipeline operations"""
    FIND_BY_CRITERIA = "find_by_criteria"
    EXTRACT_FROM_TEXT = "extract_from_text"
    GENERATE_FROM_NAMES = "generate_from_names"
    GENERATE_FROM_DOMAINS = "generate_from_domains"
    EXTRACT_FROM_COMPANY = "extract_from_company"


class ValidationMode(str, Enum):
    FULL = "full"
    BASIC = "basic"
    NONE = "none"


class FanoutSource(str, Enum):
    CONTACTS = "contacts"
    SCRAPER = "scraper"


# Requests

class CriteriaSearchRequest(BaseModel):
    """Free-text description of a profession, industry or role"""
    model_config = ConfigDict(frozen=True)

    criteria: str

    @property
    def source_text(self) -> str:
        return self.criteria


class TextExtractionRequest(BaseModel):
    """Arbitrary text that may contain email addresses"""
    model_config = ConfigDict(frozen=True)

    text: str

    @property
    def source_text(self) -> str:
        return self.text


class NameGuessRequest(BaseModel):
    """Text containing person names"""
    model_config = ConfigDict(frozen=True)

    names_text: str

    @property
    def source_text(self) -> str:
        return self.names_text


class DomainLookupRequest(BaseModel):
    """Text containing company websites or domains"""
    model_config = ConfigDict(frozen=True)

    domains_text: str

    @property
    def source_text(self) -> str:
        return self.domains_text


class CompanyLookupRequest(BaseModel):
    """A company name or website URL"""
    model_config = ConfigDict(frozen=True)

    company_info: str

    @property
    def source_text(self) -> str:
        return self.company_info


SearchRequest = Union[
    CriteriaSearchRequest,
    TextExtractionRequest,
    NameGuessRequest,
    DomainLookupRequest,
    CompanyLookupRequest,
]


# Language model output schemas. Every field has a default because the model
# is not trusted to populate all of them, and malformed entries are dropped
# instead of failing the whole answer.

def _strings_only(value) -> list:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


def _text_or_none(value) -> Optional[str]:
    return value if isinstance(value, str) else None


class CompanyLead(BaseModel):
    """Company identified by the language model for a criteria search"""
    name: str = ""
    domain: str = ""
    suggested_emails: List[str] = Field(default_factory=list)

    @field_validator("name", "domain", mode="before")
    @classmethod
    def blank_if_missing(cls, v):
        return v.strip() if isinstance(v, str) else ""

    @field_validator("suggested_emails", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return _strings_only(v)


class CompanyIdentification(BaseModel):
    companies: List[CompanyLead] = Field(default_factory=list)
    initial_reasoning: Optional[str] = None

    @field_validator("companies", mode="before")
    @classmethod
    def drop_malformed_companies(cls, v):
        if not isinstance(v, (list, tuple)):
            return []
        return [company for company in v if isinstance(company, (dict, CompanyLead))]

    @field_validator("companies")
    @classmethod
    def require_domain(cls, v):
        """A company without a domain cannot be looked up"""
        return [company for company in v if company.domain]

    @field_validator("initial_reasoning", mode="before")
    @classmethod
    def text_or_none(cls, v):
        return _text_or_none(v)


class DomainExtraction(BaseModel):
    domains: List[str] = Field(default_factory=list)

    @field_validator("domains", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return _strings_only(v)


class RawAddressExtraction(BaseModel):
    extracted_emails: List[str] = Field(default_factory=list)
    original_text_character_count: Optional[int] = None
    extraction_summary: Optional[str] = None

    @field_validator("extracted_emails", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return _strings_only(v)

    @field_validator("original_text_character_count", mode="before")
    @classmethod
    def count_or_none(cls, v):
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return int(v)
        if isinstance(v, str) and v.strip().isdigit():
            return int(v.strip())
        return None

    @field_validator("extraction_summary", mode="before")
    @classmethod
    def text_or_none(cls, v):
        return _text_or_none(v)


class NameGuesses(BaseModel):
    guessed_emails: List[str] = Field(default_factory=list)
    generation_summary: Optional[str] = None

    @field_validator("guessed_emails", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return _strings_only(v)

    @field_validator("generation_summary", mode="before")
    @classmethod
    def text_or_none(cls, v):
        return _text_or_none(v)


class CompanyAddressExtraction(BaseModel):
    email_addresses: List[str] = Field(default_factory=list)
    reasoning: Optional[str] = None

    @field_validator("email_addresses", mode="before")
    @classmethod
    def drop_non_strings(cls, v):
        return _strings_only(v)

    @field_validator("reasoning", mode="before")
    @classmethod
    def text_or_none(cls, v):
        return _text_or_none(v)


# Validation

class ValidationStatus(str, Enum):
    """Normalised deliverability outcome across vendors"""
    VALID = "valid"
    INVALID = "invalid"
    CATCHALL = "catchall"
    DISPOSABLE = "disposable"
    UNKNOWN = "unknown"
    ERROR_CONFIG = "error_config"
    ERROR_SERVICE = "error_service"
    ERROR_INVOCATION = "error_invocation"


class ValidationOutcome(BaseModel):
    """Result of validating one candidate address"""
    address: str
    status: ValidationStatus
    detail: Optional[str] = None
    domain: Optional[str] = None


# Contact discovery and scraping

class LookupErrorKind(str, Enum):
    CONFIG = "config"  # credential missing or rejected
    SERVICE = "service"  # vendor answered with a non-success status
    PARSE = "parse"  # response did not match the expected shape
    INVOCATION = "invocation"  # network / transport failure


class ContactLookupResult(BaseModel):
    """Contact Finder result for one domain"""
    domain: str = ""
    emails: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[LookupErrorKind] = None


class ScrapeResult(BaseModel):
    """Website scraper result for a batch of websites"""
    emails: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[LookupErrorKind] = None


# Vendor response shapes

class ApolloPerson(BaseModel):
    email: Optional[str] = None


class ApolloSearchResponse(BaseModel):
    """Response from Apollo.io people search"""
    people: List[ApolloPerson] = Field(default_factory=list)


class HunterEmail(BaseModel):
    """One email entry of a Hunter.io domain search"""
    value: Optional[str] = None
    confidence: int = 0
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None


class HunterDomainData(BaseModel):
    domain: Optional[str] = None
    emails: List[HunterEmail] = Field(default_factory=list)


class HunterDomainSearchResponse(BaseModel):
    """Response from Hunter.io Domain Search API"""
    data: HunterDomainData = Field(default_factory=HunterDomainData)


class NeverBounceAddressInfo(BaseModel):
    original_email: Optional[str] = None
    normalized_email: Optional[str] = None
    addr: Optional[str] = None
    host: Optional[str] = None
    domain: Optional[str] = None


class NeverBounceResponse(BaseModel):
    """Response from NeverBounce single check"""
    status: str
    result: Optional[str] = None
    flags: List[str] = Field(default_factory=list)
    suggested_correction: Optional[str] = None
    message: Optional[str] = None
    address_info: Optional[NeverBounceAddressInfo] = None
    execution_time: Optional[float] = None


class ZeroBounceResponse(BaseModel):
    """Response from ZeroBounce validate"""
    address: Optional[str] = None
    status: Optional[str] = None
    sub_status: Optional[str] = None
    domain: Optional[str] = None
    error: Optional[str] = None


class ScrapedWebsite(BaseModel):
    website: Optional[str] = None
    emails: List[str] = Field(default_factory=list)


class FlatScrapeResponse(BaseModel):
    emails: List[str] = Field(default_factory=list)


class PerplexityResponse(BaseModel):
    """Response from Perplexity AI API"""
    content: str
    usage: Optional[dict] = None
    request_id: Optional[str] = None


# Stage events rendered into the narrative

class ExtractionEvent(BaseModel):
    kind: Literal["extraction"] = "extraction"
    operation: Operation
    target: str  # companies | domains | addresses | guesses
    found: int = 0
    suggested_addresses: int = 0
    reasoning: Optional[str] = None
    summary: Optional[str] = None
    character_count: Optional[int] = None
    failed: bool = False


class SynthesisEvent(BaseModel):
    kind: Literal["synthesis"] = "synthesis"
    domains: int
    generated: int


class FanoutEvent(BaseModel):
    kind: Literal["fanout"] = "fanout"
    source: FanoutSource
    domains: int
    addresses_found: int = 0
    failed_lookups: int = 0
    config_problem: bool = False


class PoolingEvent(BaseModel):
    kind: Literal["pooling"] = "pooling"
    gathered: int
    unique: int


class ValidationEvent(BaseModel):
    kind: Literal["validation"] = "validation"
    mode: ValidationMode
    checked: int = 0
    valid: int = 0
    rejected: int = 0
    config_errors: int = 0
    service_errors: int = 0
    invocation_errors: int = 0


class CapEvent(BaseModel):
    kind: Literal["cap"] = "cap"
    cap: int
    available: int
    returned: int
    truncated: bool


class HaltReason(str, Enum):
    EMPTY_INPUT = "empty_input"
    EXTRACTOR_FAILED = "extractor_failed"
    NOTHING_EXTRACTED = "nothing_extracted"
    NO_CANDIDATES = "no_candidates"


class HaltEvent(BaseModel):
    kind: Literal["halt"] = "halt"
    reason: HaltReason
    target: Optional[str] = None


class CriticalErrorEvent(BaseModel):
    kind: Literal["critical"] = "critical"
    message: str


StageEvent = Annotated[
    Union[
        ExtractionEvent,
        SynthesisEvent,
        FanoutEvent,
        PoolingEvent,
        ValidationEvent,
        CapEvent,
        HaltEvent,
        CriticalErrorEvent,
    ],
    Field(discriminator="kind"),
]


class PipelineResult(BaseModel):
    """Final payload of one pipeline run"""
    addresses: List[str] = Field(default_factory=list)
    narrative: str
    events: List[StageEvent] = Field(default_factory=list, exclude=True)
