"""In-memory collaborators for pipeline tests"""
import asyncio
from typing import Dict, Iterable, List, Optional, Tuple

from contact_finder import ContactFinder
from models import ContactLookupResult, LookupErrorKind, ScrapeResult, ValidationOutcome, ValidationStatus
from scraper_client import WebsiteScraper
from validator import CandidateValidator


class FakeExtractor:
    """Returns canned language-model results keyed by method name"""

    def __init__(self, **results):
        self.results = results
        self.calls: List[Tuple] = []
        self.closed = False

    async def _answer(self, method: str, *args):
        self.calls.append((method, *args))
        result = self.results.get(method)
        if isinstance(result, Exception):
            raise result
        return result

    async def identify_companies(self, criteria, suggest_emails=True):
        return await self._answer("identify_companies", criteria, suggest_emails)

    async def extract_domains(self, text):
        return await self._answer("extract_domains", text)

    async def extract_addresses(self, text):
        return await self._answer("extract_addresses", text)

    async def guess_addresses_from_names(self, text):
        return await self._answer("guess_addresses_from_names", text)

    async def extract_company_addresses(self, company_info):
        return await self._answer("extract_company_addresses", company_info)

    async def close(self):
        self.closed = True


class FakeContactFinder(ContactFinder):
    name = "fake contacts"

    def __init__(
        self,
        emails_by_domain: Optional[Dict[str, List[str]]] = None,
        errors: Optional[Dict[str, LookupErrorKind]] = None,
    ):
        super().__init__(api_key="test-key")
        self.emails_by_domain = emails_by_domain or {}
        self.errors = errors or {}
        self.calls: List[Tuple[str, int]] = []

    async def _lookup(self, domain, max_results):
        raise NotImplementedError

    async def find_contacts(self, domain, max_results=5):
        self.calls.append((domain, max_results))
        if domain in self.errors:
            return ContactLookupResult(domain=domain, error=f"lookup failed for {domain}", error_kind=self.errors[domain])
        return ContactLookupResult(domain=domain, emails=self.emails_by_domain.get(domain, [])[:max_results])


class FakeValidator(CandidateValidator):
    """Answers from a status table and records how many calls overlap"""

    name = "fake validator"

    def __init__(
        self,
        statuses: Optional[Dict[str, ValidationStatus]] = None,
        default: ValidationStatus = ValidationStatus.VALID,
        raise_for: Iterable[str] = (),
    ):
        self.statuses = statuses or {}
        self.default = default
        self.raise_for = set(raise_for)
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def validate(self, address):
        self.calls.append(address)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if address in self.raise_for:
                raise RuntimeError(f"validator blew up on {address}")
            return ValidationOutcome(address=address, status=self.statuses.get(address, self.default))
        finally:
            self.in_flight -= 1

    async def close(self):
        self.closed = True


class FakeScraper(WebsiteScraper):
    name = "fake scraper"

    def __init__(self, result: ScrapeResult):
        super().__init__(url="http://scraper.test")
        self.result = result
        self.calls: List[List[str]] = []

    def _parse_emails(self, data):
        raise NotImplementedError

    async def scrape(self, websites):
        self.calls.append(list(websites))
        return self.result
