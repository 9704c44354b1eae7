"""
Apollo.io API client for people search by company domain
"""
from typing import List

import httpx
from loguru import logger
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from contact_finder import ContactFinder, ContactLookupError, ContactRateLimitError
from models import ApolloSearchResponse, LookupErrorKind


class ApolloContactFinder(ContactFinder):
    """Apollo.io people search restricted to one organization domain"""

    name = "Apollo.io"
    API_URL = "https://api.apollo.io/v1/mixed_people/search"

    def _handle_api_error(self, response: httpx.Response) -> None:
        """Handle API errors and raise appropriate exceptions"""
        if response.status_code in (401, 403):
            raise ContactLookupError(
                f"Apollo.io rejected the API key ({response.status_code}): {response.text}",
                LookupErrorKind.CONFIG,
            )
        elif response.status_code == 429:
            raise ContactRateLimitError(f"Apollo.io rate limit exceeded ({response.status_code}): {response.text}")
        elif not response.is_success:
            raise ContactLookupError(f"Apollo.io API error {response.status_code}: {response.text}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError, ContactRateLimitError)),
        reraise=True
    )
    async def _search(self, domain: str, max_results: int) -> httpx.Response:
        client = await self._get_client()
        headers = {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "Api-Key": self.api_key,
        }
        body = {
            "q_organization_domains": domain,
            "page_size": max_results,
        }

        logger.debug(f"Making Apollo.io people search request for {domain}")
        response = await client.post(self.API_URL, headers=headers, json=body)
        self._handle_api_error(response)
        return response

    async def _lookup(self, domain: str, max_results: int) -> List[str]:
        response = await self._search(domain, max_results)

        try:
            parsed = ApolloSearchResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise ContactLookupError(f"Failed to parse Apollo.io response: {e}", LookupErrorKind.PARSE)

        return [person.email for person in parsed.people if person.email]
