#!/usr/bin/env python3
"""
LLMService - orchestrates adapters, settings, thresholds and the cache.

Each analysis slot (embedding, prompt, vision) is bound to a
``provider:model`` id from settings. Adapters are created lazily and
pooled per provider; when a slot moves to another provider the old
adapter is evicted. Backend judgments are combined with the slot's
threshold: a result matches only when the backend says so AND its
confidence reaches the threshold.

Usage:
    context = ServiceContext.create(storage)
    service = LLMService(context)
    await service.init()
    result = await service.analyze_by_prompt(text, "is this an advertisement?")
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional

from .adapters import (
    BaseLLMAdapter,
    ImageAnalysisOptions,
    LMStudioAdapter,
    OnDeviceAdapter,
    OnDeviceRuntime,
    OpenAIAdapter,
    OpenRouterAdapter,
)
from .benchmark import EmbeddingBenchmark
from .cache_manager import CacheManager
from .config import Config, config as default_config
from .exceptions import ProviderUnavailableError, UnknownProviderError
from .models import LLMProvider, ModelSlot, PROVIDER_KEY_FIELDS, get_model_info, parse_provider
from .rules.models import RuleType
from .settings import Settings, SettingsManager
from .storage import Storage
from .vector_math import cosine_similarity

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    matches: bool
    confidence: float
    explanation: str
    provider: str
    cached: bool = False
    backend_matches: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        return cls(
            matches=bool(data.get("matches", False)),
            confidence=float(data.get("confidence", 0.0)),
            explanation=data.get("explanation") or "",
            provider=data.get("provider", ""),
            cached=bool(data.get("cached", False)),
            backend_matches=data.get("backend_matches"),
        )

    @property
    def is_near_miss(self) -> bool:
        """Backend said yes but confidence fell short of the threshold"""
        return bool(self.backend_matches) and not self.matches


@dataclass
class CacheInfo:
    inner_text: str = ""
    ground_truth: Optional[str] = None


@dataclass
class AvailabilityEntry:
    available: bool
    checked_at: float


@dataclass
class ServiceContext:
    """Collaborators the service depends on"""
    storage: Storage
    settings_manager: SettingsManager
    benchmark: EmbeddingBenchmark
    ondevice_runtime: Optional[OnDeviceRuntime] = None
    config: Config = field(default_factory=lambda: default_config)
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def create(
        cls,
        storage: Storage,
        ondevice_runtime: Optional[OnDeviceRuntime] = None,
        app_config: Optional[Config] = None,
    ) -> "ServiceContext":
        app_config = app_config or default_config
        return cls(
            storage=storage,
            settings_manager=SettingsManager(storage, app_config),
            benchmark=EmbeddingBenchmark(storage),
            ondevice_runtime=ondevice_runtime,
            config=app_config,
        )


def format_similarity_explanation(similarity: float, threshold: float) -> str:
    return f"Cosine similarity {similarity * 100:.1f}% (threshold: {threshold * 100:.1f}%)"


_SLOT_FIELDS = {
    ModelSlot.EMBEDDING: ("embedding_model", "embedding_threshold"),
    ModelSlot.PROMPT: ("prompt_model", "prompt_threshold"),
    ModelSlot.VISION: ("vision_model", "vision_threshold"),
}


class LLMService:

    def __init__(self, context: ServiceContext):
        self.context = context
        self.config = context.config
        self.settings_manager = context.settings_manager
        self.benchmark = context.benchmark
        self.cache_manager = CacheManager(context.storage, save_delay=self.config.cache_save_delay)

        self.providers: Dict[LLMProvider, BaseLLMAdapter] = {}
        self.provider_availability: Dict[str, AvailabilityEntry] = {}

        self.current_settings = Settings()
        self.embedding_model = self.current_settings.embedding_model
        self.prompt_model = self.current_settings.prompt_model
        self.vision_model = self.current_settings.vision_model
        self.embedding_threshold = self.current_settings.embedding_threshold
        self.prompt_threshold = self.current_settings.prompt_threshold
        self.vision_threshold = self.current_settings.vision_threshold

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        settings = await self.settings_manager.get_settings()
        self._apply_settings(settings)
        self._log_bindings("Models")
        await self.cache_manager.load()
        await self.benchmark.init()

    def _apply_settings(self, settings: Settings) -> None:
        self.current_settings = settings
        self.embedding_model = settings.embedding_model
        self.prompt_model = settings.prompt_model
        self.vision_model = settings.vision_model
        self.embedding_threshold = settings.embedding_threshold
        self.prompt_threshold = settings.prompt_threshold
        self.vision_threshold = settings.vision_threshold

    def _log_bindings(self, prefix: str) -> None:
        logger.info(
            f"{prefix}: embedding={self.embedding_model}, "
            f"prompt={self.prompt_model}, vision={self.vision_model}"
        )
        logger.info(
            f"Thresholds: embedding={self.embedding_threshold}, "
            f"prompt={self.prompt_threshold}, vision={self.vision_threshold}"
        )

    # ------------------------------------------------------------------
    # Provider pool
    # ------------------------------------------------------------------

    def get_or_create_provider(self, provider) -> BaseLLMAdapter:
        if not isinstance(provider, LLMProvider):
            provider = parse_provider(provider)

        existing = self.providers.get(provider)
        if existing is not None:
            return existing

        settings = self.current_settings
        if provider == LLMProvider.ONDEVICE:
            adapter = OnDeviceAdapter(self.context.ondevice_runtime, self.config)
        elif provider == LLMProvider.LMSTUDIO:
            adapter = LMStudioAdapter(self.config)
        elif provider == LLMProvider.OPENAI:
            adapter = OpenAIAdapter(settings.openai_api_key, self.config)
        elif provider == LLMProvider.OPENROUTER:
            adapter = OpenRouterAdapter(settings.openrouter_api_key, self.config)
        else:
            raise UnknownProviderError(str(provider))

        logger.info(f"{adapter.display_name} adapter created")
        self.providers[provider] = adapter
        return adapter

    def _evict(self, provider: LLMProvider) -> None:
        if self.providers.pop(provider, None) is not None:
            logger.info(f"Cleared {provider.value} from provider pool")

    def _evict_stale_credentials(self, old: Settings, new: Settings) -> None:
        for provider, key_field in PROVIDER_KEY_FIELDS.items():
            if getattr(old, key_field) != getattr(new, key_field):
                self._evict(provider)
                self.provider_availability.pop(f"{provider.value}:availability", None)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def is_provider_available(self, provider: LLMProvider, settings: Optional[Settings] = None) -> bool:
        settings = settings or self.current_settings
        cache_key = f"{provider.value}:availability"
        now = self.context.clock()

        cached = self.provider_availability.get(cache_key)
        if cached is not None and now - cached.checked_at < self.config.availability_ttl:
            return cached.available

        if provider == LLMProvider.ONDEVICE:
            available = True
        elif provider in PROVIDER_KEY_FIELDS:
            available = bool(getattr(settings, PROVIDER_KEY_FIELDS[provider]))
        elif provider == LLMProvider.LMSTUDIO:
            adapter = self.get_or_create_provider(provider)
            available = await adapter.check_health()
        else:
            available = False

        self.provider_availability[cache_key] = AvailabilityEntry(available, now)
        return available

    def _unavailable_error(self, slot: ModelSlot, provider: LLMProvider) -> ProviderUnavailableError:
        if provider == LLMProvider.OPENAI:
            message = f"OpenAI API key required for {slot.value} analysis"
        elif provider == LLMProvider.OPENROUTER:
            message = f"OpenRouter API key required for {slot.value} analysis"
        elif provider == LLMProvider.LMSTUDIO:
            message = f"LM Studio server not available at {self.config.lmstudio_url}"
        else:
            message = f"{provider.value} provider not available for {slot.value} analysis"
        return ProviderUnavailableError(slot.value, provider.value, message)

    # ------------------------------------------------------------------
    # Slot reconciliation
    # ------------------------------------------------------------------

    async def _ensure_adapter(self, slot: ModelSlot) -> BaseLLMAdapter:
        model_field, _ = _SLOT_FIELDS[slot]
        settings = await self.settings_manager.get_settings()

        current_model = getattr(settings, model_field)
        previous_model = getattr(self, model_field) or current_model
        current_provider = get_model_info(current_model).provider
        previous_provider = get_model_info(previous_model).provider

        provider_changed = current_provider != previous_provider
        if provider_changed or current_model != previous_model or settings != self.current_settings:
            self._evict_stale_credentials(self.current_settings, settings)
            self.current_settings = settings
            setattr(self, model_field, current_model)
            if provider_changed:
                self._evict(previous_provider)

        # Thresholds of every slot follow storage, not only this slot's
        for _, slot_threshold in _SLOT_FIELDS.values():
            setattr(self, slot_threshold, getattr(settings, slot_threshold))

        if not await self.is_provider_available(current_provider, settings):
            raise self._unavailable_error(slot, current_provider)
        return self.get_or_create_provider(current_provider)

    async def ensure_embedding_adapter(self) -> BaseLLMAdapter:
        return await self._ensure_adapter(ModelSlot.EMBEDDING)

    async def ensure_prompt_adapter(self) -> BaseLLMAdapter:
        return await self._ensure_adapter(ModelSlot.PROMPT)

    async def ensure_vision_adapter(self) -> BaseLLMAdapter:
        return await self._ensure_adapter(ModelSlot.VISION)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def get_embedding(self, text: str, text_type: Optional[str] = None) -> List[float]:
        adapter = await self.ensure_embedding_adapter()
        model = get_model_info(self.embedding_model)
        cache_key = f"embedding:{self.embedding_model}:{text}"
        benchmarking = self.benchmark.is_enabled()

        if not benchmarking:
            cached = self.cache_manager.get(cache_key)
            if isinstance(cached, list):
                return cached

        start = time.perf_counter()
        embedding = await adapter.get_embedding(text, model.name)

        if benchmarking:
            await self.benchmark.record_measurement(
                self.embedding_model,
                (time.perf_counter() - start) * 1000,
                len(text),
                text_type=text_type,
            )
        else:
            self.cache_manager.set(cache_key, embedding)
        return embedding

    async def analyze_by_embedding(
        self,
        text: str,
        criteria: str,
        ground_truth: Optional[str] = None,
    ) -> AnalysisResult:
        await self.ensure_embedding_adapter()
        cache_key = f"embedding:{self.embedding_model}:similarity:{text}:{criteria}"
        benchmarking = self.benchmark.is_enabled()

        if not benchmarking:
            cached = self.cache_manager.get(cache_key)
            if isinstance(cached, dict):
                logger.debug("Cache hit for embedding similarity check")
                result = AnalysisResult.from_dict(cached)
                if not result.explanation:
                    result.explanation = format_similarity_explanation(result.confidence, self.embedding_threshold)
                result.cached = True
                return result
        else:
            logger.debug("📊 Benchmark mode: skipping cache")

        start = time.perf_counter()
        text_embedding, criteria_embedding = await asyncio.gather(
            self.get_embedding(text, "content"),
            self.get_embedding(criteria, "query"),
        )

        similarity = cosine_similarity(text_embedding, criteria_embedding)
        matches = similarity >= self.embedding_threshold
        explanation = format_similarity_explanation(similarity, self.embedding_threshold)

        if benchmarking:
            await self.benchmark.record_measurement(
                self.embedding_model,
                (time.perf_counter() - start) * 1000,
                len(f"{criteria}\n{text}"),
                text_type="content",
                ground_truth=ground_truth,
                llm_result=matches,
                explanation=explanation,
            )

        result = AnalysisResult(
            matches=matches,
            confidence=similarity,
            explanation=explanation,
            provider=get_model_info(self.embedding_model).provider.value,
            backend_matches=matches,
        )
        if not benchmarking:
            self.cache_manager.set(cache_key, result.to_dict())
        return result

    async def analyze_by_prompt(
        self,
        text: str,
        criteria: str,
        ground_truth: Optional[str] = None,
    ) -> AnalysisResult:
        adapter = await self.ensure_prompt_adapter()
        model = get_model_info(self.prompt_model)
        cache_key = f"prompt:{self.prompt_model}:{text}:{criteria}"
        benchmarking = self.benchmark.is_enabled()

        if not benchmarking:
            cached = self.cache_manager.get(cache_key)
            if isinstance(cached, dict):
                result = AnalysisResult.from_dict(cached)
                result.cached = True
                return result
        else:
            logger.debug("📊 Benchmark mode: skipping cache")

        logger.debug(f"Analyzing text with prompt: {text[:50]!r}")
        start = time.perf_counter()
        llm_result = await adapter.analyze_with_prompt(text, criteria, model.name)
        matches = llm_result.matches and llm_result.confidence >= self.prompt_threshold

        if benchmarking:
            await self.benchmark.record_measurement(
                self.prompt_model,
                (time.perf_counter() - start) * 1000,
                len(f"{criteria}\n{text}"),
                text_type="content",
                usage=llm_result.usage,
                ground_truth=ground_truth,
                llm_result=matches,
                had_json_error=llm_result.had_json_error,
            )

        result = AnalysisResult(
            matches=matches,
            confidence=llm_result.confidence,
            explanation=llm_result.explanation,
            provider=model.provider.value,
            backend_matches=llm_result.matches,
        )
        if not benchmarking:
            self.cache_manager.set(cache_key, result.to_dict())
        return result

    async def analyze_by_image(
        self,
        image_base64: str,
        criteria: str,
        cache_info: Optional[CacheInfo] = None,
        options: Optional[ImageAnalysisOptions] = None,
    ) -> AnalysisResult:
        """Vision analysis; never cached since screenshots change between visits"""
        adapter = await self.ensure_vision_adapter()
        model = get_model_info(self.vision_model)
        cache_info = cache_info or CacheInfo()
        options = options or ImageAnalysisOptions()

        label = cache_info.inner_text[:50] + ("..." if len(cache_info.inner_text) > 50 else "")
        logger.info(
            f"🧠 Vision analysis for {label!r}: criteria={criteria!r}, "
            f"image={len(image_base64) / 1024:.2f} KB, model={self.vision_model}"
        )

        start = time.perf_counter()
        llm_result = await adapter.analyze_image(image_base64, criteria, model.name, options)

        if self.benchmark.is_enabled():
            await self.benchmark.record_measurement(
                self.vision_model,
                (time.perf_counter() - start) * 1000,
                len(f"{criteria}\n{cache_info.inner_text}"),
                text_type="content",
                image_size=len(image_base64),
                image_detail=options.detail,
                usage=llm_result.usage,
                ground_truth=cache_info.ground_truth,
                llm_result=llm_result.matches,
                had_json_error=llm_result.had_json_error,
            )

        return AnalysisResult(
            matches=llm_result.matches and llm_result.confidence >= self.vision_threshold,
            confidence=llm_result.confidence,
            explanation=llm_result.explanation,
            provider=model.provider.value,
            backend_matches=llm_result.matches,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def threshold_for(self, rule_type: RuleType) -> float:
        if rule_type == RuleType.EMBEDDING:
            return self.embedding_threshold
        if rule_type == RuleType.VISION:
            return self.vision_threshold
        return self.prompt_threshold

    def can_execute_rule_type(self, rule_type: RuleType) -> bool:
        """False only when the slot's provider needs a key that is missing"""
        if rule_type == RuleType.EMBEDDING:
            model_id = self.embedding_model
        elif rule_type == RuleType.VISION:
            model_id = self.vision_model
        else:
            model_id = self.prompt_model

        provider = get_model_info(model_id).provider
        key_field = PROVIDER_KEY_FIELDS.get(provider)
        if key_field is None:
            return True
        return bool(getattr(self.current_settings, key_field))

    async def reload_settings(self) -> None:
        settings = await self.settings_manager.get_settings()
        old_settings = self.current_settings
        old_providers = {
            slot: get_model_info(getattr(self, model_field)).provider
            for slot, (model_field, _) in _SLOT_FIELDS.items()
        }

        self._apply_settings(settings)
        self._evict_stale_credentials(old_settings, settings)

        for slot, (model_field, _) in _SLOT_FIELDS.items():
            new_provider = get_model_info(getattr(self, model_field)).provider
            if old_providers[slot] != new_provider:
                self._evict(old_providers[slot])

        self._log_bindings("Settings reloaded - Models")

    async def set_threshold(self, rule_type: RuleType, value: float) -> None:
        field_name = _SLOT_FIELDS[ModelSlot(rule_type.value)][1]
        settings = await self.settings_manager.save_settings({field_name: value})
        setattr(self, field_name, getattr(settings, field_name))
        self.current_settings = settings
        logger.info(f"{field_name} set to {value}")

    async def clear_cache(self) -> None:
        await self.cache_manager.clear()

    async def force_save(self) -> None:
        await self.cache_manager.force_save()
