#!/usr/bin/env python3
"""
EmbeddingBenchmark - per-model latency, token and accuracy bookkeeping.

When enabled, the orchestrator bypasses its cache so every call hits the
backend and is measured.
"""

import logging
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from .adapters.base import TokenUsage
from .storage import Storage

logger = logging.getLogger(__name__)

ENABLED_KEY = "embedding_benchmark_enabled"
DATA_KEY = "embedding_benchmark_data"

MAX_MEASUREMENTS_PER_MODEL = 100


@dataclass
class BenchmarkMeasurement:
    timestamp: int
    duration_ms: float
    text_length: int
    provider: str
    model: str
    text_type: Optional[str] = None
    image_size: Optional[int] = None
    image_detail: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    cost: Optional[float] = None
    ground_truth: Optional[str] = None
    llm_result: Optional[bool] = None
    is_correct: Optional[bool] = None
    had_json_error: bool = False
    explanation: Optional[str] = None


@dataclass
class ModelStatistics:
    provider: str
    model: str
    measurement_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: Optional[float] = None
    total_tokens: int = 0
    total_cost: float = 0.0
    json_error_count: int = 0
    true_positives: int = 0
    true_negatives: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    measurements: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def average_duration_ms(self) -> float:
        return self.total_duration_ms / self.measurement_count if self.measurement_count else 0.0

    @property
    def accuracy(self) -> Optional[float]:
        labelled = self.true_positives + self.true_negatives + self.false_positives + self.false_negatives
        if not labelled:
            return None
        return (self.true_positives + self.true_negatives) / labelled

    def add(self, m: BenchmarkMeasurement) -> None:
        self.measurement_count += 1
        self.total_duration_ms += m.duration_ms
        self.min_duration_ms = m.duration_ms if self.min_duration_ms is None else min(self.min_duration_ms, m.duration_ms)
        self.max_duration_ms = m.duration_ms if self.max_duration_ms is None else max(self.max_duration_ms, m.duration_ms)
        self.total_tokens += m.total_tokens or 0
        self.total_cost += m.cost or 0.0
        if m.had_json_error:
            self.json_error_count += 1
        if m.ground_truth is not None and m.llm_result is not None:
            is_ad = m.ground_truth == "ad"
            if m.llm_result and is_ad:
                self.true_positives += 1
            elif m.llm_result:
                self.false_positives += 1
            elif is_ad:
                self.false_negatives += 1
            else:
                self.true_negatives += 1
        self.measurements.append(asdict(m))
        del self.measurements[:-MAX_MEASUREMENTS_PER_MODEL]


class EmbeddingBenchmark:

    def __init__(self, storage: Optional[Storage] = None, enabled: bool = False):
        self.storage = storage
        self.enabled = enabled
        self.model_stats: Dict[str, ModelStatistics] = {}

    async def init(self) -> None:
        if self.storage is None:
            return
        try:
            stored_enabled = await self.storage.get(ENABLED_KEY)
            stored_data = await self.storage.get(DATA_KEY) or {}
            if stored_enabled is not None:
                self.enabled = bool(stored_enabled)
            self.model_stats = {
                model_id: ModelStatistics(**stats)
                for model_id, stats in stored_data.get("model_stats", {}).items()
            }
        except Exception as e:
            logger.error(f"Failed to initialize benchmark: {e}")
        status = "enabled" if self.enabled else "disabled"
        logger.info(f"Benchmark {status} with {len(self.model_stats)} model(s) tracked")

    def is_enabled(self) -> bool:
        return self.enabled

    async def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if self.storage is not None:
            await self.storage.set({ENABLED_KEY: enabled})
        logger.info(f"Benchmark {'enabled' if enabled else 'disabled'}")

    async def record_measurement(
        self,
        model_id: str,
        duration_ms: float,
        text_length: int,
        text_type: Optional[str] = None,
        image_size: Optional[int] = None,
        image_detail: Optional[str] = None,
        usage: Optional[TokenUsage] = None,
        ground_truth: Optional[str] = None,
        llm_result: Optional[bool] = None,
        had_json_error: bool = False,
        explanation: Optional[str] = None,
    ) -> None:
        if not self.enabled:
            return

        provider, _, model = model_id.partition(":")
        measurement = BenchmarkMeasurement(
            timestamp=int(time.time() * 1000),
            duration_ms=duration_ms,
            text_length=text_length,
            provider=provider,
            model=model,
            text_type=text_type,
            image_size=image_size,
            image_detail=image_detail,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            total_tokens=usage.total_tokens if usage else None,
            cost=usage.cost if usage else None,
            ground_truth=ground_truth,
            llm_result=llm_result,
            is_correct=(llm_result == (ground_truth == "ad")) if ground_truth and llm_result is not None else None,
            had_json_error=had_json_error,
            explanation=explanation,
        )

        stats = self.model_stats.get(model_id)
        if stats is None:
            stats = self.model_stats[model_id] = ModelStatistics(provider=provider, model=model)
        stats.add(measurement)
        logger.debug(f"📊 {model_id}: {duration_ms:.0f}ms (n={stats.measurement_count})")
        await self._save()

    def get_data(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "model_stats": {k: asdict(v) for k, v in self.model_stats.items()},
        }

    async def clear(self) -> None:
        self.model_stats = {}
        await self._save()
        logger.info("Benchmark data cleared")

    async def _save(self) -> None:
        if self.storage is not None:
            await self.storage.set({DATA_KEY: {"model_stats": {k: asdict(v) for k, v in self.model_stats.items()}}})
