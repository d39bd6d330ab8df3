"""Provider capability contract and the shared vendor-call mechanics."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import httpx

from ai_gateway.utils.errors import (
    ProviderHTTPError,
    ProviderNetworkError,
    ProviderTimeoutError,
    RateLimitedError,
)

from ..config import DEFAULT_CATALOG, ModelInfo, ProviderType
from ..retry import (
    RateLimitInfo,
    RateLimitRetry,
    RetryConfig,
    SleepFunc,
    get_rate_limit_message,
    parse_retry_after,
)
from ..types import (
    CompletionOptions,
    CompletionResult,
    Message,
    MessageLike,
    TokenUsage,
    split_system_message,
)

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """Adapter between canonical messages and one vendor's wire format.

    Subclasses declare the vendor tag, the cataloged models, the naming
    prefix that makes future models routable, the default model, and the
    endpoint path. They translate requests in ``build_request_body`` and
    usage fields in ``parse_usage``; everything else (HTTP, retry, error
    typing, result normalization) lives here.
    """

    provider_type: ProviderType
    model_prefix: str
    default_model: str
    endpoint_path: str

    def __init__(
        self,
        base_url: str,
        api_key: str,
        models: Sequence[ModelInfo] = DEFAULT_CATALOG.models,
        retry_config: Optional[RetryConfig] = None,
        timeout_seconds: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """Initialize the adapter.

        Args:
            base_url: Proxy base URL
            api_key: Key sent in the ``x-api-key`` header
            models: Catalog entries to pick this vendor's exact ids from
            retry_config: Rate-limit retry configuration
            timeout_seconds: Transport timeout per request
            http_client: Shared client; one is created lazily when omitted
            sleep: Injectable sleep used between retries
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.supported_models: tuple[str, ...] = tuple(
            m.id for m in models if m.provider == self.provider_type
        )
        self.retry_config = retry_config or RetryConfig()
        self.timeout_seconds = timeout_seconds
        self._client = http_client
        self._owns_client = False
        self._retry = RateLimitRetry(self.retry_config, sleep=sleep)

    @property
    def name(self) -> str:
        return self.provider_type.value

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{self.endpoint_path}"

    def is_model_supported(self, model_id: str) -> bool:
        """Exact catalog match, or any id in the vendor's naming family."""
        return model_id in self.supported_models or model_id.startswith(self.model_prefix)

    def get_default_model(self) -> str:
        return self.default_model

    @abstractmethod
    def build_request_body(
        self,
        system: Optional[str],
        turns: list[Message],
        model: str,
        options: CompletionOptions,
    ) -> dict[str, Any]:
        """Translate canonical input into the vendor request body."""

    @abstractmethod
    def parse_usage(self, usage: dict[str, Any]) -> TokenUsage:
        """Translate the vendor usage block into canonical token counts."""

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        """Issue one POST, converting transport and status failures to typed errors."""
        try:
            response = await self._get_client().post(
                self.endpoint, json=body, headers=self._headers()
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Request to {self.name} timed out: {e}", provider=self.name
            ) from e
        except httpx.TransportError as e:
            raise ProviderNetworkError(
                f"Network connection error calling {self.name}: {e}", provider=self.name
            ) from e

        if response.is_error:
            raise ProviderHTTPError(
                status_code=response.status_code,
                response_text=response.text or "Unknown error",
                provider=self.name,
                retry_after_ms=parse_retry_after(response.headers.get("retry-after")),
            )

        return response.json()

    async def create_completion(
        self,
        messages: Sequence[MessageLike],
        model: Optional[str] = None,
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """Request a completion from this vendor.

        Args:
            messages: Canonical message list
            model: Model id (defaults to ``get_default_model()``)
            options: Generation parameters and retry observer

        Returns:
            CompletionResult tagged with this adapter's vendor

        Raises:
            RateLimitedError: Throttled past the retry budget
            ProviderHTTPError: Any other non-success status
            ProviderTimeoutError: Transport timeout
            ProviderNetworkError: Transport failure
        """
        options = options or CompletionOptions()
        selected_model = model or self.get_default_model()
        system, turns = split_system_message(messages)
        body = self.build_request_body(system, turns, selected_model, options)

        def on_retry(attempt: int, delay_ms: int, info: RateLimitInfo) -> None:
            if options.on_rate_limit_retry:
                options.on_rate_limit_retry(attempt, delay_ms, info)

        outcome = await self._retry.execute(lambda: self._post(body), on_retry=on_retry)

        if outcome.error is not None:
            info = outcome.error
            if info.is_rate_limited:
                user_message = get_rate_limit_message(info)
                logger.error(
                    f"{self.name} proxy error: {user_message} "
                    f"(attempts={outcome.attempts}, total_delay_ms={outcome.total_delay_ms})"
                )
                raise RateLimitedError(
                    user_message,
                    rate_limit=info,
                    attempts=outcome.attempts,
                    total_delay_ms=outcome.total_delay_ms,
                    provider=self.name,
                ) from info.error
            # Not throttling: surface the typed transport/status error as-is
            raise info.error

        data = outcome.data or {}
        usage = data.get("usage")

        return CompletionResult(
            text=data.get("data") or "",
            model=data.get("model") or selected_model,
            provider=self.provider_type,
            usage=self.parse_usage(usage) if usage else None,
        )
