"""Unified execution engine: routing, retry, fallback and streaming."""

import asyncio
import logging
import time
from typing import AsyncIterator, Optional

from .errors import (
    AllProvidersExhausted,
    NoConfiguredProvider,
    ProviderError,
    ProviderRateLimited,
)
from .provider_health import ProviderHealthTracker
from .registry import ProviderRegistry
from .routing import ModelRoute, ProviderRouter
from ..models.execution import ExecutionRequest, ExecutionResponse, StreamChunk

logger = logging.getLogger(__name__)


class ExecutionEngine:
    """
    Executes one logical request against the candidates the router returns.

    Each candidate gets up to ``retry_count + 1`` attempts, but only rate
    limiting is retried in place (after ``retry_delay * attempt`` seconds).
    Any other failure moves straight on to the next candidate.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        router: Optional[ProviderRouter] = None,
        retry_count: int = 2,
        retry_delay: float = 1.0,
        health: Optional[ProviderHealthTracker] = None,
        stream_buffer_size: int = 64,
    ):
        self.registry = registry
        self.router = router or ProviderRouter(registry)
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self.health = health or ProviderHealthTracker()
        self.stream_buffer_size = stream_buffer_size

    def _record_failure(self, route: ModelRoute, error: Exception) -> None:
        self.health.record_failure(
            route.provider,
            str(error),
            rate_limited=isinstance(error, ProviderRateLimited),
        )

    async def _backoff(self, route: ModelRoute, attempt: int, error: Exception) -> None:
        delay = self.retry_delay * attempt
        logger.warning(
            f"{route.provider.value}/{route.model}: rate limited "
            f"(attempt {attempt}/{self.retry_count + 1}), retrying in {delay}s: {error}"
        )
        await asyncio.sleep(delay)

    def _candidates(self, request: ExecutionRequest) -> list[ModelRoute]:
        candidates = self.router.resolve_candidates(request.task)
        if not candidates:
            logger.error(f"No configured provider for task {request.task.value}")
        return candidates

    async def execute(self, request: ExecutionRequest) -> ExecutionResponse:
        """
        Run a request to completion.

        Raises:
            AllProvidersExhausted: every candidate failed
        """
        start = time.perf_counter()
        last_error: Optional[Exception] = None

        for route in self._candidates(request):
            adapter = self.registry.adapter(route.provider)

            for attempt in range(1, self.retry_count + 2):
                try:
                    response = await adapter.generate(
                        system_prompt=request.system_prompt,
                        user_prompt=request.user_prompt,
                        model=route.model,
                        temperature=request.temperature,
                        max_tokens=request.max_tokens,
                        json_mode=request.json_mode,
                        images=request.images or None,
                    )
                except ProviderRateLimited as e:
                    last_error = e
                    self._record_failure(route, e)
                    if attempt <= self.retry_count:
                        await self._backoff(route, attempt, e)
                        continue
                    logger.warning(f"{route.provider.value}/{route.model}: still rate limited, falling back")
                    break
                except ProviderError as e:
                    last_error = e
                    self._record_failure(route, e)
                    logger.warning(f"{route.provider.value}/{route.model} failed, falling back: {e}")
                    break
                except Exception as e:
                    last_error = e
                    self._record_failure(route, e)
                    logger.exception(f"{route.provider.value}/{route.model}: unexpected adapter error")
                    break

                self.health.record_success(route.provider)
                descriptor = self.registry.descriptor(route.provider)
                latency_ms = (time.perf_counter() - start) * 1000

                logger.debug(
                    f"{request.task.value} served by {route.provider.value}/{route.model} "
                    f"in {latency_ms:.0f}ms ({response.input_tokens}+{response.output_tokens} tokens)"
                )

                return ExecutionResponse(
                    content=response.content,
                    provider=route.provider,
                    model=response.model or route.model,
                    input_tokens=response.input_tokens,
                    output_tokens=response.output_tokens,
                    total_tokens=response.input_tokens + response.output_tokens,
                    cost=descriptor.cost(response.input_tokens, response.output_tokens),
                    latency_ms=latency_ms,
                )

        task = request.task.value
        raise AllProvidersExhausted(task, last_error or NoConfiguredProvider(task))

    async def stream(self, request: ExecutionRequest) -> AsyncIterator[StreamChunk]:
        """
        Stream a request as chunks, always ending with one ``done`` chunk.

        Fallback and rate-limit retries only happen before the first content
        chunk. Failures never raise into the caller; they are reported on the
        terminal chunk.
        """
        queue: asyncio.Queue[StreamChunk] = asyncio.Queue(maxsize=self.stream_buffer_size)
        producer = asyncio.create_task(self._produce(request, queue))

        try:
            while True:
                chunk = await queue.get()
                yield chunk
                if chunk.done:
                    break
        finally:
            if not producer.done():
                producer.cancel()
                try:
                    await producer
                except asyncio.CancelledError:
                    pass

    async def _produce(self, request: ExecutionRequest, queue: asyncio.Queue) -> None:
        try:
            await self._stream_candidates(request, queue)
        except Exception as e:
            logger.exception("Stream producer failed")
            await queue.put(StreamChunk(done=True, error=str(e)))

    async def _stream_candidates(self, request: ExecutionRequest, queue: asyncio.Queue) -> None:
        last_error: Optional[Exception] = None

        for route in self._candidates(request):
            adapter = self.registry.adapter(route.provider)

            for attempt in range(1, self.retry_count + 2):
                emitted = False
                try:
                    async for text in adapter.generate_stream(
                        system_prompt=request.system_prompt,
                        user_prompt=request.user_prompt,
                        model=route.model,
                        temperature=request.temperature,
                        max_tokens=request.max_tokens,
                    ):
                        if not text:
                            continue
                        emitted = True
                        await queue.put(StreamChunk(
                            content=text,
                            provider=route.provider,
                            model=route.model,
                        ))
                except Exception as e:
                    last_error = e
                    self._record_failure(route, e)

                    # Partial output was already delivered, so it cannot be replayed
                    if emitted:
                        logger.warning(f"{route.provider.value}/{route.model}: stream broke mid-response: {e}")
                        await queue.put(StreamChunk(
                            done=True,
                            error=str(e),
                            provider=route.provider,
                            model=route.model,
                        ))
                        return

                    if isinstance(e, ProviderRateLimited) and attempt <= self.retry_count:
                        await self._backoff(route, attempt, e)
                        continue
                    logger.warning(f"{route.provider.value}/{route.model} stream failed, falling back: {e}")
                    break

                self.health.record_success(route.provider)
                await queue.put(StreamChunk(done=True, provider=route.provider, model=route.model))
                return

        task = request.task.value
        exhausted = AllProvidersExhausted(task, last_error or NoConfiguredProvider(task))
        logger.error(str(exhausted))
        await queue.put(StreamChunk(done=True, error=str(exhausted)))
