"""
Discovery pipeline: one parameterised run shared by every operation

Each run extracts companies, domains or addresses with the language model,
optionally fans out to contact discovery (or the website scraper) per domain,
pools and deduplicates the candidates, validates them in fixed-size chunks,
applies the operation's cap and renders the stage events into a narrative.
"""
import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from apollo_client import ApolloContactFinder
from config import Settings, get_settings
from contact_finder import ContactFinder
from email_generator import EmailGenerator
from extractor import GenerativeExtractor
from hunter_client import HunterContactFinder
from models import (
    CapEvent,
    CompanyLookupRequest,
    CriteriaSearchRequest,
    CriticalErrorEvent,
    DomainLookupRequest,
    ExtractionEvent,
    FanoutEvent,
    FanoutSource,
    HaltEvent,
    HaltReason,
    LookupErrorKind,
    NameGuessRequest,
    Operation,
    PipelineResult,
    PoolingEvent,
    SearchRequest,
    SynthesisEvent,
    TextExtractionRequest,
    ValidationEvent,
    ValidationMode,
    ValidationStatus,
)
from narrative import render_narrative
from neverbounce_client import NeverBounceValidator
from perplexity_client import PerplexityClient
from scraper_client import FlatEmailScraper, PerWebsiteEmailScraper, WebsiteScraper
from validator import BasicFormatValidator, CandidateValidator
from zerobounce_client import ZeroBounceValidator


class OperationConfig(BaseModel):
    """What a run does after extraction"""
    model_config = ConfigDict(frozen=True)

    uses_domain_fanout: bool = False
    validation_mode: ValidationMode = ValidationMode.NONE
    cap: int = Field(0, ge=0)  # 0 = uncapped
    fanout_source: FanoutSource = FanoutSource.CONTACTS
    generic_prefixes: Tuple[str, ...] = ()


def default_operations(settings: Settings) -> Dict[Operation, OperationConfig]:
    """Per-operation wiring derived from settings"""
    return {
        Operation.FIND_BY_CRITERIA: OperationConfig(
            uses_domain_fanout=True,
            validation_mode=ValidationMode(settings.criteria_validation_mode),
            cap=settings.result_cap,
        ),
        Operation.EXTRACT_FROM_TEXT: OperationConfig(
            validation_mode=ValidationMode(settings.text_validation_mode),
        ),
        Operation.GENERATE_FROM_NAMES: OperationConfig(),
        Operation.GENERATE_FROM_DOMAINS: OperationConfig(
            uses_domain_fanout=True,
            fanout_source=FanoutSource(settings.domains_fanout_source),
            generic_prefixes=tuple(settings.generic_prefixes),
        ),
        Operation.EXTRACT_FROM_COMPANY: OperationConfig(),
    }


class Harvest(BaseModel):
    """Output of the extraction stage"""
    event: ExtractionEvent
    addresses: List[str] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)


class DiscoveryPipeline:
    """Runs the discovery operations against injected collaborators"""

    def __init__(
        self,
        extractor: GenerativeExtractor,
        contact_finder: ContactFinder,
        validators: Dict[ValidationMode, CandidateValidator],
        scraper: Optional[WebsiteScraper] = None,
        email_generator: Optional[EmailGenerator] = None,
        settings: Optional[Settings] = None,
        operations: Optional[Dict[Operation, OperationConfig]] = None,
    ):
        self.settings = settings or get_settings()
        self.extractor = extractor
        self.contact_finder = contact_finder
        self.validators = validators
        self.scraper = scraper
        self.email_generator = email_generator or EmailGenerator(self.settings.generic_prefixes)
        self.operations = operations or default_operations(self.settings)

    # Public operations

    async def find_by_criteria(self, request: CriteriaSearchRequest) -> PipelineResult:
        return await self.run(Operation.FIND_BY_CRITERIA, request)

    async def extract_from_text(self, request: TextExtractionRequest) -> PipelineResult:
        return await self.run(Operation.EXTRACT_FROM_TEXT, request)

    async def generate_from_names(self, request: NameGuessRequest) -> PipelineResult:
        return await self.run(Operation.GENERATE_FROM_NAMES, request)

    async def generate_from_domains(self, request: DomainLookupRequest) -> PipelineResult:
        return await self.run(Operation.GENERATE_FROM_DOMAINS, request)

    async def extract_from_company(self, request: CompanyLookupRequest) -> PipelineResult:
        return await self.run(Operation.EXTRACT_FROM_COMPANY, request)

    async def run(self, operation: Operation, request: SearchRequest) -> PipelineResult:
        """
        Execute one operation end to end

        Never raises: collaborator failures are tallied into stage events and
        anything unexpected becomes an empty result with a critical-error
        narrative.

        Args:
            operation: Which operation to run
            request: The matching request model

        Returns:
            PipelineResult with the kept addresses and the rendered narrative
        """
        events: list = []
        try:
            addresses = await self._execute(operation, request, events)
        except Exception as e:
            logger.exception(f"Pipeline run for {operation.value} failed: {e}")
            events.append(CriticalErrorEvent(message=str(e) or type(e).__name__))
            addresses = []

        narrative = render_narrative(events)
        logger.info(f"{operation.value} returned {len(addresses)} addresses")
        return PipelineResult(addresses=addresses, narrative=narrative, events=events)

    async def _execute(self, operation: Operation, request: SearchRequest, events: list) -> List[str]:
        config = self.operations[operation]
        text = request.source_text

        if not text or not text.strip():
            events.append(HaltEvent(reason=HaltReason.EMPTY_INPUT))
            return []

        logger.info(f"Starting {operation.value} ({len(text)} characters of input)")
        harvest = await self._harvest(operation, text)
        events.append(harvest.event)

        if harvest.event.failed:
            events.append(HaltEvent(reason=HaltReason.EXTRACTOR_FAILED, target=harvest.event.target))
            return []
        if harvest.event.found == 0:
            events.append(HaltEvent(reason=HaltReason.NOTHING_EXTRACTED, target=harvest.event.target))
            return []

        gathered: List[object] = list(harvest.addresses)

        if config.generic_prefixes and harvest.domains:
            generic = self.email_generator.generate_generic_addresses(harvest.domains, config.generic_prefixes)
            events.append(SynthesisEvent(domains=len(harvest.domains), generated=len(generic)))
            gathered.extend(generic)

        if config.uses_domain_fanout and harvest.domains:
            gathered.extend(await self._fan_out(config.fanout_source, harvest.domains, events))

        candidates = self.email_generator.pool_candidates(gathered)
        events.append(PoolingEvent(gathered=len(gathered), unique=len(candidates)))
        if not candidates:
            events.append(HaltEvent(reason=HaltReason.NO_CANDIDATES))
            return []

        kept = await self._validate(candidates, config.validation_mode, events)

        if config.cap:
            truncated = len(kept) > config.cap
            events.append(CapEvent(
                cap=config.cap,
                available=len(kept),
                returned=min(len(kept), config.cap),
                truncated=truncated,
            ))
            if truncated:
                logger.info(f"Truncating {len(kept)} addresses to the first {config.cap}")
                kept = kept[:config.cap]

        return kept

    # Extraction

    async def _harvest(self, operation: Operation, text: str) -> Harvest:
        if operation == Operation.FIND_BY_CRITERIA:
            return await self._harvest_companies(text)
        elif operation == Operation.EXTRACT_FROM_TEXT:
            return await self._harvest_text(text)
        elif operation == Operation.GENERATE_FROM_NAMES:
            return await self._harvest_names(text)
        elif operation == Operation.GENERATE_FROM_DOMAINS:
            return await self._harvest_domains(text)
        elif operation == Operation.EXTRACT_FROM_COMPANY:
            return await self._harvest_company(text)
        raise ValueError(f"Unsupported operation: {operation}")

    async def _harvest_companies(self, criteria: str) -> Harvest:
        result = await self.extractor.identify_companies(criteria, self.settings.criteria_suggest_emails)
        if result is None:
            return self._failed(Operation.FIND_BY_CRITERIA, "companies")

        suggested = [email for company in result.companies for email in company.suggested_emails]
        return Harvest(
            event=ExtractionEvent(
                operation=Operation.FIND_BY_CRITERIA,
                target="companies",
                found=len(result.companies),
                suggested_addresses=len(suggested),
                reasoning=result.initial_reasoning,
            ),
            addresses=suggested,
            domains=self.email_generator.unique_domains(company.domain for company in result.companies),
        )

    async def _harvest_text(self, text: str) -> Harvest:
        result = await self.extractor.extract_addresses(text)
        if result is None:
            return self._failed(Operation.EXTRACT_FROM_TEXT, "addresses")

        return Harvest(
            event=ExtractionEvent(
                operation=Operation.EXTRACT_FROM_TEXT,
                target="addresses",
                found=len(result.extracted_emails),
                summary=result.extraction_summary,
                character_count=result.original_text_character_count or len(text),
            ),
            addresses=result.extracted_emails,
        )

    async def _harvest_names(self, text: str) -> Harvest:
        result = await self.extractor.guess_addresses_from_names(text)
        if result is None:
            return self._failed(Operation.GENERATE_FROM_NAMES, "guesses")

        return Harvest(
            event=ExtractionEvent(
                operation=Operation.GENERATE_FROM_NAMES,
                target="guesses",
                found=len(result.guessed_emails),
                summary=result.generation_summary,
            ),
            addresses=result.guessed_emails,
        )

    async def _harvest_domains(self, text: str) -> Harvest:
        result = await self.extractor.extract_domains(text)
        if result is None:
            return self._failed(Operation.GENERATE_FROM_DOMAINS, "domains")

        domains = self.email_generator.unique_domains(result.domains)
        return Harvest(
            event=ExtractionEvent(
                operation=Operation.GENERATE_FROM_DOMAINS,
                target="domains",
                found=len(domains),
            ),
            domains=domains,
        )

    async def _harvest_company(self, company_info: str) -> Harvest:
        result = await self.extractor.extract_company_addresses(company_info)
        if result is None:
            return self._failed(Operation.EXTRACT_FROM_COMPANY, "addresses")

        return Harvest(
            event=ExtractionEvent(
                operation=Operation.EXTRACT_FROM_COMPANY,
                target="addresses",
                found=len(result.email_addresses),
                reasoning=result.reasoning,
            ),
            addresses=result.email_addresses,
        )

    @staticmethod
    def _failed(operation: Operation, target: str) -> Harvest:
        logger.warning(f"Language model step failed for {operation.value}")
        return Harvest(event=ExtractionEvent(operation=operation, target=target, failed=True))

    # Fan-out

    async def _fan_out(self, source: FanoutSource, domains: Sequence[str], events: list) -> List[str]:
        if source == FanoutSource.SCRAPER:
            return await self._scrape(domains, events)
        return await self._find_contacts(domains, events)

    async def _find_contacts(self, domains: Sequence[str], events: list) -> List[str]:
        """Look up every domain concurrently; results are merged in domain order"""
        max_results = self.settings.max_emails_per_domain
        logger.info(f"Looking up contacts for {len(domains)} domains")

        results = await asyncio.gather(
            *(self.contact_finder.find_contacts(domain, max_results) for domain in domains),
            return_exceptions=True,
        )

        found: List[str] = []
        failed = 0
        config_problem = False
        for domain, result in zip(domains, results):
            if isinstance(result, Exception):
                logger.error(f"Contact lookup for {domain} raised: {result!r}")
                failed += 1
            elif result.error:
                failed += 1
                config_problem = config_problem or result.error_kind == LookupErrorKind.CONFIG
            else:
                found.extend(result.emails)

        events.append(FanoutEvent(
            source=FanoutSource.CONTACTS,
            domains=len(domains),
            addresses_found=len(found),
            failed_lookups=failed,
            config_problem=config_problem,
        ))
        return found

    async def _scrape(self, domains: Sequence[str], events: list) -> List[str]:
        if self.scraper is None:
            raise RuntimeError("Website scraper fan-out selected but no scraper is configured")

        result = await self.scraper.scrape(domains)
        failed = 1 if result.error else 0
        events.append(FanoutEvent(
            source=FanoutSource.SCRAPER,
            domains=len(domains),
            addresses_found=len(result.emails),
            failed_lookups=failed,
            config_problem=result.error_kind == LookupErrorKind.CONFIG,
        ))
        return list(result.emails)

    # Validation

    async def _validate(self, candidates: List[str], mode: ValidationMode, events: list) -> List[str]:
        """
        Validate candidates in sequential chunks of concurrent calls

        Only addresses whose outcome is ``valid`` are kept, in pooled order
        and casing.
        """
        if mode == ValidationMode.NONE:
            events.append(ValidationEvent(mode=mode, checked=len(candidates), valid=len(candidates)))
            return list(candidates)

        validator = self.validators[mode]
        chunk_size = self.settings.validation_chunk_size
        event = ValidationEvent(mode=mode, checked=len(candidates))
        kept: List[str] = []

        for start in range(0, len(candidates), chunk_size):
            chunk = candidates[start:start + chunk_size]
            logger.debug(f"Validating chunk {start // chunk_size + 1} ({len(chunk)} addresses) with {validator.name}")

            outcomes = await asyncio.gather(
                *(validator.validate(address) for address in chunk),
                return_exceptions=True,
            )

            for address, outcome in zip(chunk, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Validation of {address} raised: {outcome!r}")
                    event.invocation_errors += 1
                elif outcome.status == ValidationStatus.VALID:
                    kept.append(address)
                elif outcome.status == ValidationStatus.ERROR_CONFIG:
                    event.config_errors += 1
                elif outcome.status == ValidationStatus.ERROR_SERVICE:
                    event.service_errors += 1
                elif outcome.status == ValidationStatus.ERROR_INVOCATION:
                    event.invocation_errors += 1
                else:
                    event.rejected += 1

        event.valid = len(kept)
        events.append(event)
        logger.info(f"{validator.name} kept {len(kept)} of {len(candidates)} addresses")
        return kept

    async def close(self):
        """Close every collaborator's HTTP client"""
        closables = [self.extractor, self.contact_finder, *self.validators.values()]
        if self.scraper is not None:
            closables.append(self.scraper)

        results = await asyncio.gather(*(c.close() for c in closables), return_exceptions=True)
        for closable, result in zip(closables, results):
            if isinstance(result, Exception):
                logger.error(f"Error closing {type(closable).__name__}: {result}")


# Factories: the only place adapters are wired from Settings

def build_contact_finder(settings: Settings) -> ContactFinder:
    if settings.contact_finder_provider == "hunter":
        return HunterContactFinder(
            api_key=settings.hunter_api_key,
            timeout=settings.request_timeout,
            confidence_threshold=settings.hunter_confidence_threshold,
        )
    return ApolloContactFinder(api_key=settings.apollo_api_key, timeout=settings.request_timeout)


def build_validators(settings: Settings) -> Dict[ValidationMode, CandidateValidator]:
    if settings.verification_provider == "zerobounce":
        full = ZeroBounceValidator(api_key=settings.zerobounce_api_key, timeout=settings.request_timeout)
    else:
        full = NeverBounceValidator(api_key=settings.neverbounce_api_key, timeout=settings.request_timeout)
    return {
        ValidationMode.FULL: full,
        ValidationMode.BASIC: BasicFormatValidator(),
    }


def build_scraper(settings: Settings) -> WebsiteScraper:
    scraper_class = PerWebsiteEmailScraper if settings.scraper_response_shape == "per_website" else FlatEmailScraper
    return scraper_class(url=settings.scraper_url, api_key=settings.scraper_api_key, timeout=settings.request_timeout)


def build_pipeline(settings: Optional[Settings] = None) -> DiscoveryPipeline:
    """Wire a pipeline with the vendors selected in settings"""
    settings = settings or get_settings()
    llm = PerplexityClient(
        api_key=settings.perplexity_api_key,
        model=settings.perplexity_model,
        timeout=settings.request_timeout,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    return DiscoveryPipeline(
        extractor=GenerativeExtractor(llm),
        contact_finder=build_contact_finder(settings),
        validators=build_validators(settings),
        scraper=build_scraper(settings),
        email_generator=EmailGenerator(settings.generic_prefixes),
        settings=settings,
    )


# Global pipeline instance - lazy loaded
_pipeline: Optional[DiscoveryPipeline] = None


def get_pipeline() -> DiscoveryPipeline:
    """Get the global pipeline instance"""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline()
    return _pipeline


async def close_pipeline():
    """Close and forget the global pipeline instance"""
    global _pipeline
    if _pipeline is not None:
        await _pipeline.close()
        _pipeline = None
