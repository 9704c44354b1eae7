"""
Contact discovery capability shared by the vendor adapters
"""
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from loguru import logger

from models import ContactLookupResult, LookupErrorKind


class ContactLookupError(Exception):
    """Raised inside an adapter; converted to a ContactLookupResult before returning"""
    def __init__(self, message: str, kind: LookupErrorKind = LookupErrorKind.SERVICE):
        super().__init__(message)
        self.kind = kind


class ContactRateLimitError(ContactLookupError):
    """Vendor rate limit; retried in-request"""
    pass


class ContactFinder(ABC):
    """Looks up known contact addresses for one company domain"""

    name = "contact discovery"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 30, http_client: Optional[httpx.AsyncClient] = None):
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
                    "User-Agent": "Email-Discovery-Service/1.0"
                }
            )
            self._owns_client = True
        return self._client

    @abstractmethod
    async def _lookup(self, domain: str, max_results: int) -> list:
        """Return raw email strings for the domain, raising on any failure"""
        raise NotImplementedError

    async def find_contacts(self, domain: str, max_results: int = 5) -> ContactLookupResult:
        """
        Find contact addresses for a domain

        Never raises: every failure is reported through ``error`` and
        ``error_kind`` with an empty email list.

        Args:
            domain: Company domain (e.g. "example.com")
            max_results: Maximum number of addresses to return

        Returns:
            ContactLookupResult
        """
        domain = domain.strip() if isinstance(domain, str) else ""

        if not self.api_key:
            logger.warning(f"{self.name} API key is not configured; skipping lookup for {domain}")
            return ContactLookupResult(
                domain=domain,
                error=f"{self.name} API key is not configured.",
                error_kind=LookupErrorKind.CONFIG,
            )

        if not domain:
            logger.warning(f"{self.name} lookup skipped: no domain given")
            return ContactLookupResult(
                domain=domain,
                error=f"{self.name} lookup needs a domain.",
                error_kind=LookupErrorKind.INVOCATION,
            )

        try:
            raw_emails = await self._lookup(domain, max_results)
        except ContactLookupError as e:
            logger.warning(f"{self.name} lookup failed for {domain}: {e}")
            return ContactLookupResult(domain=domain, error=str(e), error_kind=e.kind)
        except httpx.HTTPError as e:
            logger.error(f"{self.name} request failed for {domain}: {e!r}")
            return ContactLookupResult(
                domain=domain,
                error=f"{self.name} request failed: {str(e) or type(e).__name__}",
                error_kind=LookupErrorKind.INVOCATION,
            )
        except Exception as e:
            logger.error(f"Unexpected {self.name} error for {domain}: {e!r}")
            return ContactLookupResult(
                domain=domain,
                error=f"{self.name} lookup failed: {str(e) or type(e).__name__}",
                error_kind=LookupErrorKind.INVOCATION,
            )

        emails = [
            email.strip() for email in raw_emails
            if isinstance(email, str) and email.strip()
        ][:max_results]
        logger.info(f"{self.name} found {len(emails)} emails for {domain}")
        return ContactLookupResult(domain=domain, emails=emails)

    async def close(self):
        """Close HTTP client connections"""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info(f"{self.name} client closed")
