"""
ZeroBounce API client for single-address verification
"""
import httpx
from loguru import logger
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from models import ValidationOutcome, ValidationStatus, ZeroBounceResponse
from validator import DeliverabilityValidator, domain_of

RESULT_STATUSES = {
    "valid": ValidationStatus.VALID,
    "invalid": ValidationStatus.INVALID,
    "catch-all": ValidationStatus.CATCHALL,
    "unknown": ValidationStatus.UNKNOWN,
}


class ZeroBounceValidator(DeliverabilityValidator):
    """ZeroBounce validate mapped onto ValidationStatus"""

    name = "ZeroBounce"
    API_URL = "https://api.zerobounce.net/v2/validate"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        reraise=True
    )
    async def _check(self, address: str) -> httpx.Response:
        client = await self._get_client()
        logger.debug(f"Verifying email with ZeroBounce: {address}")
        return await client.get(self.API_URL, params={"api_key": self.api_key, "email": address, "ip_address": ""})

    async def _verify(self, address: str) -> ValidationOutcome:
        response = await self._check(address)

        try:
            payload = ZeroBounceResponse.model_validate(response.json())
        except (ValidationError, ValueError):
            return ValidationOutcome(
                address=address,
                status=ValidationStatus.ERROR_INVOCATION,
                detail=f"ZeroBounce HTTP {response.status_code} with unparseable body",
                domain=domain_of(address),
            )

        # Invalid keys and exhausted credits come back as {"error": "..."}
        if payload.error or not response.is_success:
            detail = payload.error or f"ZeroBounce HTTP {response.status_code}"
            logger.warning(f"ZeroBounce rejected verification of {address}: {detail}")
            return ValidationOutcome(
                address=address,
                status=ValidationStatus.ERROR_SERVICE,
                detail=detail,
                domain=domain_of(address),
            )

        result = (payload.status or "").strip().lower()
        sub_status = (payload.sub_status or "").strip().lower()
        if sub_status == "disposable":
            status = ValidationStatus.DISPOSABLE
        else:
            status = RESULT_STATUSES.get(result, ValidationStatus.UNKNOWN)

        return ValidationOutcome(
            address=address,
            status=status,
            detail=sub_status or None,
            domain=payload.domain or domain_of(address),
        )
