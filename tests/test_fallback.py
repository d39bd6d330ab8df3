"""Tests for error classification and the cross-vendor fallback chain.

Run with: pytest tests/test_fallback.py -v
"""

import pytest

from ai_gateway.llm import (
    DEFAULT_CATALOG,
    CompletionResult,
    FallbackConfig,
    FallbackErrorType,
    FallbackOrchestrator,
    ModelRouter,
    ProviderType,
    classify_error,
    get_fallback_info,
    get_fallback_models,
    should_fallback,
)
from ai_gateway.utils.errors import (
    NoProviderError,
    ProviderHTTPError,
    ProviderNetworkError,
    ProviderTimeoutError,
)

MESSAGES = [{"role": "user", "content": "Hello"}]


class FakeProvider:
    """Adapter stand-in that fails or answers per model id."""

    def __init__(self, provider_type, prefix, failures=None):
        self.provider_type = provider_type
        self.prefix = prefix
        self.failures = dict(failures or {})
        self.calls = []

    @property
    def name(self):
        return self.provider_type.value

    def is_model_supported(self, model_id):
        return model_id.startswith(self.prefix)

    async def create_completion(self, messages, model=None, options=None):
        self.calls.append(model)
        if model in self.failures:
            raise self.failures[model]
        return CompletionResult(text=f"from {model}", model=model, provider=self.provider_type)


def build_router(failures=None, include=("gpt-", "claude-", "gemini-")):
    failures = failures or {}
    specs = {
        "gpt-": ProviderType.OPENAI,
        "claude-": ProviderType.ANTHROPIC,
        "gemini-": ProviderType.GEMINI,
    }
    providers = [FakeProvider(specs[prefix], prefix, failures) for prefix in include]
    return ModelRouter(providers), {p.prefix: p for p in providers}


# ============================================
# Fallback chains
# ============================================


class TestGetFallbackModels:
    """Test fallback chain selection."""

    def test_equivalence_table(self):
        """Models with an equivalence entry use it in order."""
        assert get_fallback_models("gpt-4-turbo") == [
            "claude-3-opus-20240229",
            "gemini-1.5-pro",
        ]

    def test_heuristic_for_model_without_entry(self):
        """Other-vendor models with a large context fill in, biggest first."""
        chain = get_fallback_models("gpt-4o")

        assert chain
        for model_id in chain:
            info = DEFAULT_CATALOG.get_model_info(model_id)
            assert info.provider != ProviderType.OPENAI
            assert info.context_window >= 64000
        windows = [DEFAULT_CATALOG.get_model_info(m).context_window for m in chain]
        assert windows == sorted(windows, reverse=True)
        assert "gemini-pro" not in chain

    def test_unknown_model_has_no_fallbacks(self):
        """Uncataloged models get no fallback chain."""
        assert get_fallback_models("custom-model") == []

    def test_fallback_info(self):
        """Fallback info pairs each substitute with its priority."""
        info = get_fallback_info("gemini-pro")
        assert info.model.id == "gemini-pro"
        assert [f.model.id for f in info.fallback_models] == [
            "gpt-3.5-turbo",
            "claude-3-haiku-20240307",
        ]
        assert [f.priority for f in info.fallback_models] == [1, 2]

    def test_fallback_info_unknown_model(self):
        """Unknown models report no info and no substitutes."""
        info = get_fallback_info("custom-model")
        assert info.model is None
        assert info.fallback_models == []


# ============================================
# Classification
# ============================================


class TestShouldFallback:
    """Test error classification."""

    @pytest.mark.parametrize(
        "error,expected",
        [
            (Exception("429 Too Many Requests"), FallbackErrorType.RATE_LIMIT),
            (Exception("Rate limit exceeded"), FallbackErrorType.RATE_LIMIT),
            (ProviderHTTPError(429, "slow down"), FallbackErrorType.RATE_LIMIT),
            (ProviderHTTPError(503, "busy"), FallbackErrorType.SERVER_ERROR),
            (Exception("Internal Server Error"), FallbackErrorType.SERVER_ERROR),
            (Exception("upstream returned 502"), FallbackErrorType.SERVER_ERROR),
            (Exception("request timed out"), FallbackErrorType.TIMEOUT),
            (ProviderTimeoutError("slow"), FallbackErrorType.TIMEOUT),
            (Exception("The model gpt-9 does not exist"), FallbackErrorType.MODEL_UNAVAILABLE),
            (Exception("model not found"), FallbackErrorType.MODEL_UNAVAILABLE),
            (Exception("You exceeded your current quota"), FallbackErrorType.QUOTA_EXCEEDED),
            (Exception("insufficient credits"), FallbackErrorType.QUOTA_EXCEEDED),
            (Exception("Failed to fetch"), FallbackErrorType.NETWORK),
            (ProviderNetworkError("refused"), FallbackErrorType.NETWORK),
        ],
    )
    def test_eligible_errors(self, error, expected):
        """Each transient failure maps to its category."""
        decision = should_fallback(error)
        assert decision.should_fallback is True
        assert decision.error_type == expected

    def test_malformed_request_is_not_eligible(self):
        """Request-format errors never trigger fallback."""
        decision = should_fallback(Exception("invalid request format"))
        assert decision.should_fallback is False
        assert decision.error_type is None

    def test_client_error_is_not_eligible(self):
        """A 400 status is not classified."""
        assert classify_error(ProviderHTTPError(400, "bad request")) is None

    def test_status_digits_inside_numbers_do_not_match(self):
        """Status codes only match as whole numbers."""
        assert classify_error(Exception("request id 15000 rejected")) is None

    def test_category_outside_allow_list(self):
        """Categories missing from the allow list are reported but not eligible."""
        config = FallbackConfig(fallback_on_errors=frozenset({FallbackErrorType.SERVER_ERROR}))
        decision = should_fallback(Exception("rate limit"), config)
        assert decision.should_fallback is False
        assert decision.error_type == FallbackErrorType.RATE_LIMIT


# ============================================
# Orchestrator
# ============================================


class TestFallbackOrchestrator:
    """Test FallbackOrchestrator.create_completion_with_fallback."""

    @pytest.mark.asyncio
    async def test_primary_success(self):
        """A working primary model answers without fallback."""
        router, providers = build_router()
        orchestrator = FallbackOrchestrator(router)

        result = await orchestrator.create_completion_with_fallback(MESSAGES, "gpt-4-turbo")

        assert result.text == "from gpt-4-turbo"
        assert result.used_fallback is False
        assert result.fallback_attempts == 0
        assert result.original_model == "gpt-4-turbo"
        assert result.errors == []
        assert providers["claude-"].calls == []

    @pytest.mark.asyncio
    async def test_falls_back_on_rate_limit(self):
        """A throttled primary hands off to the next vendor and fires on_fallback."""
        error = ProviderHTTPError(429, "Too Many Requests")
        router, providers = build_router({"gpt-4-turbo": error})
        events = []
        config = FallbackConfig(on_fallback=lambda *args: events.append(args))

        result = await FallbackOrchestrator(router).create_completion_with_fallback(
            MESSAGES, "gpt-4-turbo", fallback_config=config
        )

        assert result.used_fallback is True
        assert result.fallback_attempts == 1
        assert result.provider == ProviderType.ANTHROPIC
        assert result.model == "claude-3-opus-20240229"
        assert len(result.errors) == 1
        assert result.errors[0].model == "gpt-4-turbo"
        assert result.errors[0].error is error
        assert events == [("gpt-4-turbo", "claude-3-opus-20240229", error, 1)]

    @pytest.mark.asyncio
    async def test_disabled_fallback_rethrows_original(self):
        """Disabled fallback re-raises the primary error untouched."""
        error = Exception("503 Service Unavailable")
        router, providers = build_router({"gpt-4-turbo": error})
        config = FallbackConfig(enable_fallback=False)

        with pytest.raises(Exception) as exc_info:
            await FallbackOrchestrator(router).create_completion_with_fallback(
                MESSAGES, "gpt-4-turbo", fallback_config=config
            )

        assert exc_info.value is error
        assert providers["gpt-"].calls == ["gpt-4-turbo"]
        assert providers["claude-"].calls == []

    @pytest.mark.asyncio
    async def test_unclassified_error_rethrown_immediately(self):
        """Ineligible errors stop the chain at once."""
        error = ValueError("invalid request format")
        router, providers = build_router({"gpt-4-turbo": error})

        with pytest.raises(ValueError) as exc_info:
            await FallbackOrchestrator(router).create_completion_with_fallback(
                MESSAGES, "gpt-4-turbo"
            )

        assert exc_info.value is error
        assert providers["claude-"].calls == []

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self):
        """When every candidate fails the last error is raised."""
        last = Exception("504 Gateway Timeout")
        router, providers = build_router(
            {
                "gpt-4-turbo": Exception("429"),
                "claude-3-opus-20240229": Exception("500"),
                "gemini-1.5-pro": last,
            }
        )

        with pytest.raises(Exception) as exc_info:
            await FallbackOrchestrator(router).create_completion_with_fallback(
                MESSAGES, "gpt-4-turbo"
            )

        assert exc_info.value is last
        assert providers["gemini-"].calls == ["gemini-1.5-pro"]

    @pytest.mark.asyncio
    async def test_attempts_capped(self):
        """max_fallback_attempts bounds the chain length."""
        router, providers = build_router(
            {
                "gpt-4-turbo": Exception("429"),
                "claude-3-opus-20240229": Exception("429"),
            }
        )
        config = FallbackConfig(max_fallback_attempts=1)

        with pytest.raises(Exception, match="429"):
            await FallbackOrchestrator(router).create_completion_with_fallback(
                MESSAGES, "gpt-4-turbo", fallback_config=config
            )

        assert providers["gemini-"].calls == []

    @pytest.mark.asyncio
    async def test_unroutable_candidate_is_skipped(self):
        """Candidates without an adapter are skipped."""
        router, providers = build_router(
            {"gpt-4-turbo": Exception("rate limit")}, include=("gpt-", "gemini-")
        )

        result = await FallbackOrchestrator(router).create_completion_with_fallback(
            MESSAGES, "gpt-4-turbo"
        )

        assert result.model == "gemini-1.5-pro"
        assert result.provider == ProviderType.GEMINI
        assert result.fallback_attempts == 2
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_no_provider_for_any_candidate(self):
        """A model no adapter serves raises NoProviderError."""
        router, _ = build_router(include=("gpt-",))

        with pytest.raises(NoProviderError):
            await FallbackOrchestrator(router).create_completion_with_fallback(
                MESSAGES, "llama-3-70b"
            )

    @pytest.mark.asyncio
    async def test_unknown_model_has_single_candidate(self):
        """Uncataloged models are tried alone."""
        error = Exception("503")
        router, providers = build_router({"gpt-custom": error})

        with pytest.raises(Exception) as exc_info:
            await FallbackOrchestrator(router).create_completion_with_fallback(
                MESSAGES, "gpt-custom"
            )

        assert exc_info.value is error
        assert providers["claude-"].calls == []
        assert providers["gemini-"].calls == []

    def test_build_candidates(self):
        """Candidate list honors the enable flag and attempt cap."""
        router, _ = build_router()
        orchestrator = FallbackOrchestrator(router)

        assert orchestrator.build_candidates("gpt-4-turbo", FallbackConfig()) == [
            "gpt-4-turbo",
            "claude-3-opus-20240229",
            "gemini-1.5-pro",
        ]
        assert orchestrator.build_candidates(
            "gpt-4-turbo", FallbackConfig(enable_fallback=False)
        ) == ["gpt-4-turbo"]
        assert orchestrator.build_candidates(
            "gpt-4-turbo", FallbackConfig(max_fallback_attempts=0)
        ) == ["gpt-4-turbo"]
