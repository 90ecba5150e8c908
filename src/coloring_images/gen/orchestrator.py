from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional

from .config import MultiProviderStrategy, ProviderPriorityConfig, default_strategy
from .provider import ImageProvider
from .types import GenerationResult, ImageOptions, ProviderError

logger = logging.getLogger(__name__)


class OrchestratorExhaustedError(Exception):
    """No provider produced an image.

    Raised when no provider is enabled, every attempt failed, fallback is
    disabled, or the global time budget ran out. ``failures`` lists every
    attempted provider in attempt order.
    """

    def __init__(
        self,
        message: str,
        failures: Iterable[ProviderError] = (),
        timed_out: bool = False,
    ):
        self.failures = list(failures)
        self.timed_out = timed_out
        super().__init__(message)


class _AttemptTimeout(Exception):
    pass


class _AttemptFailed(Exception):
    pass


def _describe(failures: list[ProviderError]) -> str:
    return "; ".join(f"{f.provider_name} ({f.error})" for f in failures) or "none"


class ProviderOrchestrator:
    """Runs the provider fallback chain under a priority/timeout strategy.

    The strategy is replaced wholesale on every change and each ``generate``
    call works from the snapshot it took when it started, so operator changes
    only affect calls that begin afterwards.
    """

    def __init__(self, strategy: Optional[MultiProviderStrategy] = None):
        self._providers: dict[str, ImageProvider] = {}
        self._strategy = strategy if strategy is not None else default_strategy()

    def register_provider(self, provider: ImageProvider) -> None:
        self._providers[provider.provider_id] = provider

    def register_providers(self, providers: Iterable[ImageProvider]) -> None:
        for provider in providers:
            self.register_provider(provider)

    def get_provider(self, provider_id: str) -> Optional[ImageProvider]:
        return self._providers.get(provider_id)

    @property
    def strategy(self) -> MultiProviderStrategy:
        return self._strategy.model_copy(deep=True)

    def update_strategy(self, **changes: Any) -> None:
        merged = {**self._strategy.model_dump(), **changes}
        self._strategy = MultiProviderStrategy.model_validate(merged)

    def registered_provider_ids(self) -> list[str]:
        return list(self._providers)

    def enabled_provider_ids(self) -> list[str]:
        return [c.id for c in self._sorted_enabled(self._strategy)]

    def is_provider_available(self, provider_id: str) -> bool:
        return provider_id in self._providers and any(
            c.id == provider_id and c.enabled for c in self._strategy.priorities
        )

    def set_provider_enabled(self, provider_id: str, enabled: bool) -> None:
        priorities = [
            c.model_copy(update={"enabled": enabled}) if c.id == provider_id else c
            for c in self._strategy.priorities
        ]
        self._strategy = self._strategy.model_copy(update={"priorities": priorities})

    @staticmethod
    def _sorted_enabled(strategy: MultiProviderStrategy) -> list[ProviderPriorityConfig]:
        return sorted((c for c in strategy.priorities if c.enabled), key=lambda c: c.priority)

    async def generate(self, prompt: str, options: ImageOptions) -> GenerationResult:
        strategy = self._strategy
        configs = self._sorted_enabled(strategy)
        if not configs:
            raise OrchestratorExhaustedError("No enabled providers available")

        chain: list[tuple[ProviderPriorityConfig, ImageProvider]] = []
        for config in configs:
            provider = self._providers.get(config.id)
            if provider is None:
                logger.warning("Provider '%s' not registered, skipping", config.id)
                continue
            chain.append((config, provider))
        if not chain:
            raise OrchestratorExhaustedError(
                f"No registered providers among enabled: {[c.id for c in configs]}"
            )

        failures: list[ProviderError] = []
        started = asyncio.get_running_loop().time()

        for index, (config, provider) in enumerate(chain):
            logger.info(
                "Attempting provider: %s (priority: %d)", provider.name, config.priority
            )
            try:
                image_url = await self._attempt(
                    provider, config, prompt, options, strategy, started, failures
                )
            except _AttemptFailed as e:
                message = str(e)
                logger.warning("Provider '%s' failed: %s", provider.name, message)
                failures.append(ProviderError(provider.provider_id, provider.name, message))

                if not strategy.auto_fallback or index == len(chain) - 1:
                    raise OrchestratorExhaustedError(
                        f"All providers failed. Last error: {message}. "
                        f"Failed providers: {_describe(failures)}",
                        failures,
                    ) from None
                logger.info("Falling back to next provider")
                continue

            logger.info("Generated image with provider: %s", provider.name)
            return GenerationResult(
                image_url=image_url,
                provider=provider.provider_id,
                failed_providers=failures,
            )

        raise OrchestratorExhaustedError("No providers available to try", failures)

    async def _attempt(
        self,
        provider: ImageProvider,
        config: ProviderPriorityConfig,
        prompt: str,
        options: ImageOptions,
        strategy: MultiProviderStrategy,
        started: float,
        failures: list[ProviderError],
    ) -> str:
        attempts = 1 + (config.max_retries or 0)
        last_error = "unknown error"
        for n in range(attempts):
            remaining = None
            if strategy.global_timeout is not None:
                elapsed = asyncio.get_running_loop().time() - started
                remaining = strategy.global_timeout - elapsed
                if remaining <= 0:
                    raise self._global_timeout(strategy, failures)

            timeout = config.timeout
            budget_bound = False
            if remaining is not None and (timeout is None or remaining < timeout):
                timeout = remaining
                budget_bound = True

            try:
                return await self._execute(provider, prompt, options, timeout)
            except _AttemptTimeout as e:
                if budget_bound:
                    failures.append(
                        ProviderError(
                            provider.provider_id,
                            provider.name,
                            f"abandoned: global timeout of {strategy.global_timeout}s exceeded",
                        )
                    )
                    raise self._global_timeout(strategy, failures) from None
                last_error = str(e)
            except Exception as e:
                last_error = str(e) or type(e).__name__

            if n < attempts - 1:
                logger.info(
                    "Retrying provider '%s' (%d/%d): %s", provider.name, n + 1, attempts - 1, last_error
                )
        raise _AttemptFailed(last_error)

    @staticmethod
    def _global_timeout(
        strategy: MultiProviderStrategy, failures: list[ProviderError]
    ) -> OrchestratorExhaustedError:
        return OrchestratorExhaustedError(
            f"Global timeout exceeded ({strategy.global_timeout}s). "
            f"Failed providers: {_describe(failures)}",
            failures,
            timed_out=True,
        )

    @staticmethod
    async def _execute(
        provider: ImageProvider,
        prompt: str,
        options: ImageOptions,
        timeout: Optional[float],
    ) -> str:
        if timeout is None:
            return await provider.generate_image(prompt, options)
        try:
            # wait_for cancels the provider task, which aborts its HTTP request
            return await asyncio.wait_for(provider.generate_image(prompt, options), timeout)
        except asyncio.TimeoutError:
            raise _AttemptTimeout(
                f"Provider '{provider.name}' timeout after {timeout:g}s"
            ) from None

    async def generate_with_provider(
        self,
        provider_id: str,
        prompt: str,
        options: ImageOptions,
        timeout: Optional[float] = None,
    ) -> GenerationResult:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise OrchestratorExhaustedError(f"Provider '{provider_id}' not registered")

        config = next((c for c in self._strategy.priorities if c.id == provider_id), None)
        effective_timeout = timeout if timeout is not None else (config.timeout if config else None)

        logger.info("Using specific provider: %s", provider.name)
        try:
            image_url = await self._execute(provider, prompt, options, effective_timeout)
        except Exception as e:
            message = str(e) or type(e).__name__
            failure = ProviderError(provider.provider_id, provider.name, message)
            raise OrchestratorExhaustedError(
                f"Provider '{provider.name}' failed: {message}", [failure]
            ) from e

        return GenerationResult(image_url=image_url, provider=provider.provider_id)
