#!/usr/bin/env python3
"""
Streaming batch analysis.

Elements are evaluated against the enabled rules one at a time and each
verdict is pushed to the requesting channel as soon as it is known:

    {"type": "result", "data": {"elementId", "matches", "rule", "confidence", "threshold"}}
    ...
    {"type": "complete"}

or a single ``{"type": "error", "error": "..."}`` on failure. Closing
the channel, or a send that fails because the receiver went away,
cancels the run: no further results and no ``complete``.

Incoming elements use ``{"id", "text", "selector", "groundTruth"?}``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .exceptions import ChannelClosedError
from .rules.models import EmbeddingRule, PromptRule, Rule, RuleType

logger = logging.getLogger(__name__)

ANALYZE_ELEMENTS = "analyzeElements"


@dataclass
class AnalyzableElement:
    id: str
    text: str
    selector: str
    ground_truth: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalyzableElement":
        return cls(
            id=str(data["id"]),
            text=data.get("text", ""),
            selector=data.get("selector", ""),
            ground_truth=data.get("groundTruth", data.get("ground_truth")),
        )


@dataclass
class RuleEvaluation:
    matches: bool
    confidence: float
    threshold: Optional[float] = None


@dataclass
class ElementMatch:
    matched: bool = False
    matched_rule: Optional[Rule] = None
    max_confidence: float = 0.0
    threshold: float = 0.0


@dataclass
class ElementRuleMatch:
    element_id: str
    rule_id: str
    confidence: float
    rule: Rule
    element: AnalyzableElement


class CancellationToken:

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class Channel(Protocol):
    """Receiving side of a streaming run"""

    @property
    def is_open(self) -> bool: ...

    async def send(self, message: Dict[str, Any]) -> None: ...


class QueueChannel:
    """Channel backed by an asyncio.Queue; closing it cancels the run"""

    def __init__(self, token: Optional[CancellationToken] = None):
        self.queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self.token = token or CancellationToken()

    @property
    def is_open(self) -> bool:
        return not self.token.cancelled

    def close(self) -> None:
        self.token.cancel()

    async def send(self, message: Dict[str, Any]) -> None:
        if self.token.cancelled:
            raise ChannelClosedError("Channel is closed")
        await self.queue.put(message)

    def drain(self) -> List[Dict[str, Any]]:
        messages = []
        while not self.queue.empty():
            messages.append(self.queue.get_nowait())
        return messages


class RuleProvider(Protocol):
    def get_rules(self) -> List[Rule]: ...


class StreamingAnalyzer:

    def __init__(self, llm_service, rule_provider: RuleProvider):
        self.llm_service = llm_service
        self.rule_provider = rule_provider

    async def handle_message(self, message: Dict[str, Any], channel: Channel) -> None:
        if message.get("action") != ANALYZE_ELEMENTS:
            return

        try:
            elements = [AnalyzableElement.from_dict(e) for e in message.get("elements", [])]
            await self.process_streaming_analysis(elements, channel)
        except Exception as e:
            logger.error(f"Streaming analysis error: {e}")
            if channel.is_open:
                try:
                    await channel.send({"type": "error", "error": str(e)})
                except ChannelClosedError:
                    logger.debug("Channel closed while sending error message")

    async def _complete(self, channel: Channel) -> None:
        if not channel.is_open:
            logger.debug("Channel closed, skipping complete message")
            return
        try:
            await channel.send({"type": "complete"})
        except ChannelClosedError:
            logger.debug("Channel closed while sending complete message")

    async def process_streaming_analysis(self, elements: Sequence[AnalyzableElement], channel: Channel) -> None:
        logger.info(f"Starting streaming analysis for {len(elements)} elements")

        settings = await self.llm_service.settings_manager.get_settings()
        if not settings.blocking_enabled:
            logger.info("⚠️ Blocking is disabled, skipping")
            await self._complete(channel)
            return

        enabled_rules = self.get_enabled_rules()
        if not enabled_rules:
            logger.info("No executable rules (rules may require an API key that is not configured)")
            await self._complete(channel)
            return

        for element in elements:
            if not channel.is_open:
                logger.debug("Channel closed during streaming analysis, stopping")
                return
            if not await self.analyze_and_send_result(element, enabled_rules, channel):
                logger.debug("Channel closed while sending, stopping")
                return

        await self._complete(channel)
        logger.info("Streaming analysis complete")

    def get_enabled_rules(self) -> List[Rule]:
        rules = []
        for rule in self.rule_provider.get_rules():
            if not rule.enabled:
                continue
            if not self.llm_service.can_execute_rule_type(rule.type):
                logger.info(f"Skipping rule {rule.rule_string!r} (type: {rule.type.value}) - requires API key")
                continue
            rules.append(rule)
        return rules

    async def analyze_and_send_result(self, element: AnalyzableElement, rules: List[Rule], channel: Channel) -> bool:
        """Analyze one element and send its verdict; False once the channel is gone"""
        match = await self.find_best_rule_match(element, rules)
        if not await self.send_element_result(channel, element.id, match):
            return False
        logger.info(f"Sent result for element {element.id}: {'blocked' if match.matched else 'allowed'}")
        return True

    async def find_best_rule_match(self, element: AnalyzableElement, rules: List[Rule]) -> ElementMatch:
        """Highest-confidence matching rule; on equal confidence the earlier rule wins"""
        applicable = [r for r in rules if r.selector == element.selector]
        best = ElementMatch()
        if not applicable:
            logger.debug(f"No applicable rules for element with selector: {element.selector}")
            return best

        best_confidence: Optional[float] = None
        for rule in applicable:
            evaluation = await self.analyze_element_with_rule(element, rule)
            if not evaluation.matches:
                continue
            if best_confidence is None or evaluation.confidence > best_confidence:
                best_confidence = evaluation.confidence
                best = ElementMatch(
                    matched=True,
                    matched_rule=rule,
                    max_confidence=evaluation.confidence,
                    threshold=evaluation.threshold or 0.0,
                )
        return best

    async def analyze_element_with_rule(self, element: AnalyzableElement, rule: Rule) -> RuleEvaluation:
        """Evaluate one element against one text rule; failures count as no match"""
        try:
            if isinstance(rule, EmbeddingRule):
                result = await self.llm_service.analyze_by_embedding(
                    element.text, rule.contains_text, element.ground_truth
                )
            elif isinstance(rule, PromptRule):
                result = await self.llm_service.analyze_by_prompt(
                    element.text, rule.prompt, element.ground_truth
                )
            else:
                # Vision rules need a screenshot and go through analyze_by_image
                return RuleEvaluation(matches=False, confidence=0.0)
        except Exception as e:
            logger.error(f"Error analyzing element {element.id} with rule {rule.rule_string!r}: {e}")
            return RuleEvaluation(matches=False, confidence=0.0)

        threshold = self.llm_service.threshold_for(rule.type)
        if result.is_near_miss:
            logger.info(
                f"Near miss for element {element.id}: rule {rule.rule_string!r} "
                f"confidence {result.confidence:.2f} < threshold {threshold:.2f}"
            )
        return RuleEvaluation(matches=result.matches, confidence=result.confidence, threshold=threshold)

    async def send_element_result(self, channel: Channel, element_id: str, match: ElementMatch) -> bool:
        if not channel.is_open:
            logger.debug(f"Channel closed, skipping result for element {element_id}")
            return False

        message = {
            "type": "result",
            "data": {
                "elementId": element_id,
                "matches": match.matched,
                "rule": match.matched_rule.to_dict() if match.matched_rule else None,
                "confidence": match.max_confidence,
                "threshold": match.threshold,
            },
        }
        try:
            await channel.send(message)
        except ChannelClosedError:
            logger.debug(f"Channel closed while sending result for element {element_id}")
            return False
        return True

    async def analyze_elements_batch(
        self,
        elements: Sequence[AnalyzableElement],
        rules: Sequence[Rule],
    ) -> List[ElementRuleMatch]:
        """Every matching (element, rule) pair, without streaming"""
        results = []
        for rule in rules:
            if not rule.enabled:
                logger.info(f"Skipping disabled rule: {rule.rule_string}")
                continue
            if rule.type == RuleType.VISION:
                continue
            for element in elements:
                evaluation = await self.analyze_element_with_rule(element, rule)
                if evaluation.matches:
                    results.append(ElementRuleMatch(
                        element_id=element.id,
                        rule_id=rule.id,
                        confidence=evaluation.confidence,
                        rule=rule,
                        element=element,
                    ))
                    logger.info(
                        f"Element {element.text[:50]!r} matches rule {rule.rule_string!r} "
                        f"(confidence: {evaluation.confidence})"
                    )
        return results
