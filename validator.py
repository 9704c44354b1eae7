"""
Candidate validation capability: basic format check and the base class for
deliverability vendors
"""
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from loguru import logger

from models import ValidationOutcome, ValidationStatus


def domain_of(address: str) -> Optional[str]:
    """Part after the last "@", or None"""
    if not address or "@" not in address:
        return None
    return address[address.rfind("@") + 1:] or None


class CandidateValidator(ABC):
    """Validates one candidate address; never raises"""

    name = "validator"

    @abstractmethod
    async def validate(self, address: str) -> ValidationOutcome:
        raise NotImplementedError

    async def close(self):
        pass


class BasicFormatValidator(CandidateValidator):
    """Syntactic check only: contains "@" and is longer than three characters"""

    name = "basic format check"

    async def validate(self, address: str) -> ValidationOutcome:
        email = (address or "").strip() if isinstance(address, str) else ""

        if email and "@" in email and len(email) > 3:
            return ValidationOutcome(
                address=email,
                status=ValidationStatus.VALID,
                detail="basic_format_ok",
                domain=domain_of(email),
            )

        logger.debug(f"Basic format check rejected {address!r}")
        return ValidationOutcome(
            address=email,
            status=ValidationStatus.INVALID,
            detail="basic_format_failed",
            domain=domain_of(email),
        )


class DeliverabilityValidator(CandidateValidator):
    """Base for vendors that verify deliverability over HTTP"""

    name = "deliverability service"

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
    async def _verify(self, address: str) -> ValidationOutcome:
        """Call the vendor and map its answer; may raise on transport errors"""
        raise NotImplementedError

    async def validate(self, address: str) -> ValidationOutcome:
        """
        Verify deliverability of one address

        Args:
            address: Candidate email address

        Returns:
            ValidationOutcome whose status carries every failure mode
        """
        email = address.strip() if isinstance(address, str) else ""

        if not self.api_key:
            return ValidationOutcome(
                address=email,
                status=ValidationStatus.ERROR_CONFIG,
                detail=f"{self.name} API key is not configured.",
                domain=domain_of(email),
            )

        if not email:
            return ValidationOutcome(address=email, status=ValidationStatus.INVALID, detail="empty address")

        try:
            outcome = await self._verify(email)
            logger.debug(f"{self.name} result for {email}: {outcome.status.value}")
            return outcome
        except Exception as e:
            logger.error(f"{self.name} call failed for {email}: {e!r}")
            return ValidationOutcome(
                address=email,
                status=ValidationStatus.ERROR_INVOCATION,
                detail=str(e) or type(e).__name__,
                domain=domain_of(email),
            )

    async def close(self):
        """Close HTTP client connections"""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info(f"{self.name} client closed")
