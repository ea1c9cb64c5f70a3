"""Analysis orchestration.

Per request: validate, pick the highest-priority analyzer that supports it,
serve from cache when possible, pick a model, pass the rate limiter, then
run up to ``max_attempts`` attempts, stepping down the model fallback chain
after each failure. Confident results are cached.
"""

from __future__ import annotations

import hashlib
import time
import tracemalloc
from dataclasses import dataclass
from typing import Iterable, Sequence

from .analyzer import Analyzer
from .cache import ResultCache
from .config import AnalysisConfig
from .domain import AnalysisRequest, AnalysisResult
from .errors import AnalysisFailure, RateLimitExceeded, ValidationError
from .limits import RateLimiter, UnlimitedRateLimiter
from .logging_config import get_logger
from .selector import ModelSelector

logger = get_logger(__name__)

CACHE_PREFIX = "devassist.analysis."


@dataclass
class BatchItem:
    """Outcome of one request in a batch: exactly one of result/error is set."""

    index: int
    request_id: str
    result: AnalysisResult | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AnalysisOrchestrator:
    """Coordinates analyzers, model selection, caching and retries."""

    def __init__(
        self,
        analyzers: Iterable[Analyzer],
        model_selector: ModelSelector | None = None,
        cache: ResultCache | None = None,
        rate_limiter: RateLimiter | None = None,
        config: AnalysisConfig | None = None,
    ):
        self.analyzers = list(analyzers)
        self.model_selector = model_selector or ModelSelector()
        self.cache = cache
        self.rate_limiter = rate_limiter or UnlimitedRateLimiter()
        self.config = config or AnalysisConfig()

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Run one analysis.

        Raises:
            ValidationError: the request is empty or too large
            RateLimitExceeded: the rate limiter rejected the request
            AnalysisFailure: no analyzer supports the request, or every attempt failed
        """
        start = time.perf_counter()
        try:
            self.validate(request)

            analyzer = self.select_analyzer(request)
            if analyzer is None:
                raise AnalysisFailure(
                    f"No suitable analyzer found for request type: {request.type.value}"
                )
            logger.info(
                "Analyzer selected: request_id=%s analyzer=%s priority=%d estimated_duration_s=%d",
                request.request_id,
                analyzer.name,
                analyzer.priority,
                analyzer.estimated_duration(request),
            )

            key = self.cache_key(request, analyzer)
            cached = self._get_cached(key)
            if cached is not None:
                logger.info("Cache hit: request_id=%s key=%s", request.request_id, key)
                return cached
            logger.debug("Cache miss: request_id=%s key=%s", request.request_id, key)

            model = self.model_selector.select_model(request)
            logger.info(
                "Model selected: request_id=%s model=%s code_length=%d depth=%s estimated_cost=$%.5f",
                request.request_id,
                model,
                request.code_length,
                request.depth.value,
                self.model_selector.estimate_cost(request, model),
            )

            if not self.rate_limiter.consume(1):
                raise RateLimitExceeded(f"Rate limit exceeded for {request.type.value} analysis")

            result = self._execute_with_retry(analyzer, request, model)

            if result.confidence > self.config.cache_min_confidence:
                self._store(key, result)

            logger.info(
                "Analysis metrics: request_id=%s analyzer=%s type=%s confidence=%.2f issues=%d suggestions=%d",
                request.request_id,
                analyzer.name,
                request.type.value,
                result.confidence,
                len(result.issues),
                len(result.suggestions),
            )
            return result
        finally:
            memory = ""
            if tracemalloc.is_tracing():
                current, peak = tracemalloc.get_traced_memory()
                memory = f" memory_mb={peak / 1024 / 1024:.2f}"
            logger.info(
                "Analysis orchestration completed: request_id=%s duration_ms=%.1f%s",
                request.request_id,
                (time.perf_counter() - start) * 1000,
                memory,
            )

    def analyze_batch(self, requests: Sequence[AnalysisRequest]) -> dict[int, BatchItem]:
        """Analyze requests one after another; a failure never stops the rest."""
        logger.info("Starting batch analysis: requests=%d", len(requests))
        outcomes: dict[int, BatchItem] = {}
        for index, request in enumerate(requests):
            item = BatchItem(index=index, request_id=request.request_id)
            try:
                item.result = self.analyze(request)
            except Exception as e:
                item.error = e
                logger.error(
                    "Batch item failed: index=%d request_id=%s error=%s", index, request.request_id, e
                )
            outcomes[index] = item

        failed = sum(1 for item in outcomes.values() if not item.ok)
        logger.info("Batch analysis completed: successful=%d failed=%d", len(outcomes) - failed, failed)
        return outcomes

    def validate(self, request: AnalysisRequest) -> None:
        if not request.files:
            raise ValidationError("No files provided for analysis")
        if not any(content.strip() for content in request.files.values()):
            raise ValidationError("Code content cannot be empty")
        if request.code_length > self.config.max_request_size:
            raise ValidationError(
                f"Code length ({request.code_length}) exceeds maximum allowed ({self.config.max_request_size})"
            )

    def select_analyzer(self, request: AnalysisRequest) -> Analyzer | None:
        """Highest priority supporting analyzer; registration order breaks ties."""
        candidates = [a for a in self.analyzers if a.supports(request)]
        if not candidates:
            return None
        return sorted(candidates, key=lambda a: a.priority, reverse=True)[0]

    def cache_key(self, request: AnalysisRequest, analyzer: Analyzer) -> str:
        material = f"{request.unique_key()}|{analyzer.name}|{request.type.value}"
        return CACHE_PREFIX + hashlib.sha256(material.encode("utf-8")).hexdigest()

    def _execute_with_retry(self, analyzer: Analyzer, request: AnalysisRequest, model: str) -> AnalysisResult:
        max_attempts = self.config.max_attempts
        current_model = model
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            attempt_start = time.perf_counter()
            try:
                result = analyzer.analyze(request, current_model)
            except (ValidationError, RateLimitExceeded):
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    "Analysis attempt failed: request_id=%s attempt=%d/%d model=%s error=%s",
                    request.request_id,
                    attempt,
                    max_attempts,
                    current_model,
                    e,
                )
                if attempt < max_attempts:
                    fallback = self.model_selector.get_fallback_model(current_model)
                    if fallback:
                        logger.info("Switching to fallback model: %s -> %s", current_model, fallback)
                        current_model = fallback
                continue

            logger.info(
                "Analysis successful: request_id=%s attempt=%d model=%s duration_ms=%.1f",
                request.request_id,
                attempt,
                current_model,
                (time.perf_counter() - attempt_start) * 1000,
            )
            return result

        raise AnalysisFailure(
            f"Analysis failed after {max_attempts} attempts. Last error: {last_error}"
        ) from last_error

    def _get_cached(self, key: str) -> AnalysisResult | None:
        if self.cache is None or not self.config.cache_enabled:
            return None
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning("Cache retrieval failed: %s", e)
            return None

    def _store(self, key: str, result: AnalysisResult) -> None:
        if self.cache is None or not self.config.cache_enabled:
            return
        try:
            self.cache.set(key, result, self.config.cache_ttl)
            logger.debug("Analysis result cached: key=%s ttl=%d", key, self.config.cache_ttl)
        except Exception as e:
            logger.warning("Cache storage failed: %s", e)
