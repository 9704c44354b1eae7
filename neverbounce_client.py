"""
NeverBounce API client for single-address verification
"""
import httpx
from loguru import logger
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from models import NeverBounceResponse, ValidationOutcome, ValidationStatus
from validator import DeliverabilityValidator, domain_of

RESULT_STATUSES = {
    "valid": ValidationStatus.VALID,
    "deliverable": ValidationStatus.VALID,
    "invalid": ValidationStatus.INVALID,
    "undeliverable": ValidationStatus.INVALID,
    "catchall": ValidationStatus.CATCHALL,
    "catch-all": ValidationStatus.CATCHALL,
    "accept_all": ValidationStatus.CATCHALL,
    "disposable": ValidationStatus.DISPOSABLE,
    "unknown": ValidationStatus.UNKNOWN,
}


class NeverBounceValidator(DeliverabilityValidator):
    """NeverBounce single check mapped onto ValidationStatus"""

    name = "NeverBounce"
    API_URL = "https://api.neverbounce.com/v4/single/check"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        reraise=True
    )
    async def _check(self, address: str) -> httpx.Response:
        client = await self._get_client()
        logger.debug(f"Verifying email with NeverBounce: {address}")
        return await client.get(self.API_URL, params={"key": self.api_key, "email": address})

    async def _verify(self, address: str) -> ValidationOutcome:
        response = await self._check(address)

        try:
            payload = NeverBounceResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            if response.is_success:
                detail = f"Failed to parse NeverBounce response: {e}"
            else:
                detail = f"NeverBounce HTTP {response.status_code} with unparseable body"
            logger.warning(f"NeverBounce response for {address} unusable: {detail}")
            return ValidationOutcome(
                address=address,
                status=ValidationStatus.ERROR_INVOCATION,
                detail=detail,
                domain=domain_of(address),
            )

        # Anything but "success" is an account-level failure (auth_failure, throttle_triggered, ...)
        if payload.status != "success":
            logger.warning(f"NeverBounce returned status '{payload.status}' for {address}: {payload.message}")
            return ValidationOutcome(
                address=address,
                status=ValidationStatus.ERROR_SERVICE,
                detail=payload.message or payload.status,
                domain=domain_of(address),
            )

        result = (payload.result or "").strip().lower()
        status = RESULT_STATUSES.get(result, ValidationStatus.UNKNOWN)
        if not result:
            logger.warning(f"NeverBounce returned 'success' for {address} without a result")

        info = payload.address_info
        domain = (info.domain or info.host) if info else None

        return ValidationOutcome(
            address=address,
            status=status,
            detail=",".join(payload.flags) or None,
            domain=domain or domain_of(address),
        )
