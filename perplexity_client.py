"""
Perplexity AI API client for structured (JSON schema) completions
"""
import re
from typing import Optional, Type, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from models import PerplexityResponse

OutputModel = TypeVar("OutputModel", bound=BaseModel)

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert research assistant for business contact discovery. "
    "Always answer with a single JSON object that matches the requested schema and nothing else."
)

# Reasoning models may prepend <think> blocks; some models wrap JSON in code fences
_THINK_BLOCK = re.compile(r"<\s*think\s*>.*?<\s*/\s*think\s*>", re.IGNORECASE | re.DOTALL)
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class PerplexityAPIError(Exception):
    """Non-success answer from the Perplexity API"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PerplexityRateLimitError(PerplexityAPIError):
    pass


class PerplexityClient:
    """Perplexity AI API client returning schema-validated output"""

    BASE_URL = "https://api.perplexity.ai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "sonar",
        timeout: float = 30,
        temperature: float = 0.2,
        max_tokens: int = 2000,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens

        # HTTP client
        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

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
        """Raise for any non-success status; only 429 is retried"""
        if response.is_success:
            return

        status = response.status_code
        error_class = PerplexityRateLimitError if status == 429 else PerplexityAPIError
        raise error_class(f"Perplexity API error ({status}): {response.text}", status)

    def _build_payload(self, prompt: str, output_model: Type[BaseModel], system_prompt: str) -> dict:
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "system",
                    "content": system_prompt
                },
                {
                    "role": "user",
                    "content": prompt
                }
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"schema": output_model.model_json_schema()}
            }
        }

    @staticmethod
    def _clean_content(content: str) -> str:
        content = _THINK_BLOCK.sub("", content or "").strip()
        return _CODE_FENCE.sub("", content).strip()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError, PerplexityRateLimitError))
    )
    async def _complete(self, payload: dict) -> Optional[PerplexityResponse]:
        client = await self._get_client()
        url = f"{self.BASE_URL}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}"}

        response = await client.post(url, headers=headers, json=payload)
        self._handle_api_error(response)

        data = response.json()

        # Extract the response content according to documented structure
        if not data.get("choices"):
            logger.warning("No choices in Perplexity response")
            return None

        message = data["choices"][0].get("message") or {}
        if "content" not in message:
            logger.warning("Invalid Perplexity response structure: no message content")
            return None

        return PerplexityResponse(
            content=message["content"] or "",
            usage=data.get("usage"),
            request_id=data.get("id")
        )

    async def generate(
        self,
        prompt: str,
        output_model: Type[OutputModel],
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> Optional[OutputModel]:
        """
        Run one prompt and validate the answer against an output model

        Args:
            prompt: Fully interpolated instruction
            output_model: Pydantic model the answer must conform to

        Returns:
            An instance of output_model, or None when the call fails or the
            answer does not match the schema
        """
        if not self.is_configured:
            logger.warning("Perplexity API key is not configured; skipping language model call")
            return None

        schema_name = output_model.__name__
        try:
            logger.debug(f"Making Perplexity request for {schema_name}")
            completion = await self._complete(self._build_payload(prompt, output_model, system_prompt))
            if completion is None:
                return None

            logger.debug(f"Perplexity response (ID: {completion.request_id}): {completion.content[:200]}...")
            return output_model.model_validate_json(self._clean_content(completion.content))

        except ValidationError as e:
            logger.warning(f"Perplexity output did not match {schema_name}: {e.error_count()} validation error(s)")
            return None
        except Exception as e:
            logger.error(f"Perplexity request failed for {schema_name}: {e}")
            return None

    async def close(self):
        """Close HTTP client connections"""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("Perplexity client closed")
