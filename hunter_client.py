"""
Hunter.io API client for domain search
"""
from typing import List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from contact_finder import ContactFinder, ContactLookupError, ContactRateLimitError
from models import HunterDomainSearchResponse, LookupErrorKind


class HunterContactFinder(ContactFinder):
    """Hunter.io Domain Search filtered by a confidence threshold"""

    name = "Hunter.io"
    BASE_URL = "https://api.hunter.io/v2"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 30,
        http_client: Optional[httpx.AsyncClient] = None,
        confidence_threshold: int = 70,
    ):
        super().__init__(api_key=api_key, timeout=timeout, http_client=http_client)
        self.confidence_threshold = confidence_threshold

    def _handle_api_error(self, response: httpx.Response) -> None:
        """Handle API errors and raise appropriate exceptions"""
        if response.is_success:
            return

        status = response.status_code
        detail = f"({status}): {response.text}"
        if status == 401:
            raise ContactLookupError(f"Hunter.io rejected the API key {detail}", LookupErrorKind.CONFIG)
        elif status == 403:
            raise ContactLookupError(f"Hunter.io API access forbidden, check your plan {detail}", LookupErrorKind.CONFIG)
        elif status == 429:
            raise ContactRateLimitError(f"Hunter.io rate limit exceeded {detail}")
        raise ContactLookupError(f"Hunter.io API error {detail}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError, ContactRateLimitError)),
        reraise=True
    )
    async def _domain_search(self, domain: str, max_results: int) -> httpx.Response:
        client = await self._get_client()
        params = {
            "domain": domain,
            "api_key": self.api_key,
            # Request extra rows so the confidence filter still leaves enough
            "limit": min(100, max_results * 2),
        }

        logger.debug(f"Making domain search request for {domain}")
        response = await client.get(f"{self.BASE_URL}/domain-search", params=params)
        self._handle_api_error(response)
        return response

    async def _lookup(self, domain: str, max_results: int) -> List[str]:
        response = await self._domain_search(domain, max_results)

        try:
            parsed = HunterDomainSearchResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise ContactLookupError(f"Failed to parse Hunter.io response: {e}", LookupErrorKind.PARSE)

        emails = [
            entry for entry in parsed.data.emails
            if entry.value and entry.confidence >= self.confidence_threshold
        ]
        # Highest confidence first
        emails.sort(key=lambda entry: entry.confidence, reverse=True)

        logger.debug(
            f"Hunter.io returned {len(parsed.data.emails)} emails for {domain}, "
            f"{len(emails)} above confidence {self.confidence_threshold}"
        )
        return [entry.value for entry in emails]
