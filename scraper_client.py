"""
Website scraping service clients

The scraping service has been deployed with two incompatible response shapes:
a flat ``{"emails": [...]}`` object and a ``[{"website": ..., "emails": [...]}]``
list. Each shape gets its own adapter behind the same ``scrape`` call.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import httpx
from loguru import logger
from pydantic import TypeAdapter, ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from models import FlatScrapeResponse, LookupErrorKind, ScrapedWebsite, ScrapeResult


class ScraperAPIError(Exception):
    """Custom exception for scraping service errors"""
    def __init__(self, message: str, kind: LookupErrorKind = LookupErrorKind.SERVICE):
        super().__init__(message)
        self.kind = kind


class ScraperRateLimitError(ScraperAPIError):
    """Exception for rate limit errors"""
    pass


class WebsiteScraper(ABC):
    """Posts a batch of websites to the scraping service and collects emails"""

    name = "website scraper"

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

        # HTTP client
        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": "Email-Discovery-Service/1.0"
                }
            )
            self._owns_client = True
        return self._client

    def _handle_api_error(self, response: httpx.Response) -> None:
        """Handle API errors and raise appropriate exceptions"""
        if response.status_code in (401, 403):
            raise ScraperAPIError(
                f"Scraping service rejected the credentials ({response.status_code})",
                LookupErrorKind.CONFIG,
            )
        elif response.status_code == 429:
            raise ScraperRateLimitError("Scraping service rate limit exceeded")
        elif not response.is_success:
            raise ScraperAPIError(f"Scraping service error {response.status_code}: {response.text}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError, ScraperRateLimitError)),
        reraise=True
    )
    async def _post(self, websites: List[str]) -> httpx.Response:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        logger.debug(f"Posting {len(websites)} websites to the scraping service")
        response = await client.post(self.url, headers=headers, json={"websites": websites})
        self._handle_api_error(response)
        return response

    @abstractmethod
    def _parse_emails(self, data: object) -> List[str]:
        """Extract emails from the decoded body; raises ValidationError on shape mismatch"""
        raise NotImplementedError

    async def scrape(self, websites: Sequence[str]) -> ScrapeResult:
        """
        Scrape emails from a batch of websites

        Never raises; failures are reported through ``error`` and ``error_kind``.
        """
        if isinstance(websites, str):
            websites = [websites]
        websites = [w for w in websites or [] if isinstance(w, str) and w.strip()]
        if not websites:
            return ScrapeResult()

        if not self.url:
            logger.warning("Scraping service URL is not configured")
            return ScrapeResult(error="Scraping service URL is not configured.", error_kind=LookupErrorKind.CONFIG)

        try:
            response = await self._post(websites)
            emails = self._parse_emails(response.json())
        except ScraperAPIError as e:
            logger.warning(f"Scraping service failed: {e}")
            return ScrapeResult(error=str(e), error_kind=e.kind)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Failed to parse scraping service response: {e}")
            return ScrapeResult(error=f"Failed to parse scraping service response: {e}", error_kind=LookupErrorKind.PARSE)
        except Exception as e:
            logger.error(f"Scraping service request failed: {e!r}")
            return ScrapeResult(
                error=f"Scraping service request failed: {str(e) or type(e).__name__}",
                error_kind=LookupErrorKind.INVOCATION,
            )

        emails = [e.strip() for e in emails if isinstance(e, str) and e.strip()]
        logger.info(f"Scraping service returned {len(emails)} emails for {len(websites)} websites")
        return ScrapeResult(emails=emails)

    async def close(self):
        """Close HTTP client connections"""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("Scraping service client closed")


class FlatEmailScraper(WebsiteScraper):
    """Service answering ``{"emails": [...]}``"""

    name = "website scraper (flat)"

    def _parse_emails(self, data: object) -> List[str]:
        return FlatScrapeResponse.model_validate(data).emails


class PerWebsiteEmailScraper(WebsiteScraper):
    """Service answering ``[{"website": ..., "emails": [...]}, ...]``"""

    name = "website scraper (per website)"

    _adapter = TypeAdapter(List[ScrapedWebsite])

    def _parse_emails(self, data: object) -> List[str]:
        sites = self._adapter.validate_python(data)
        return [email for site in sites for email in site.emails]
