"""Tests for the streaming element analyzer."""

import pytest

from semblock_core.exceptions import ChannelClosedError
from semblock_core.llm_service import AnalysisResult
from semblock_core.rules import RuleType, parse_rule
from semblock_core.settings import Settings
from semblock_core.streaming import (
    ANALYZE_ELEMENTS,
    AnalyzableElement,
    QueueChannel,
    StreamingAnalyzer,
)

pytestmark = pytest.mark.asyncio


class FakeSettingsManager:

    def __init__(self, settings=None, error=None):
        self.settings = settings or Settings()
        self.error = error

    async def get_settings(self):
        if self.error is not None:
            raise self.error
        return self.settings


class FakeLLMService:
    """Returns canned results keyed by rule criteria"""

    def __init__(self, results=None, settings=None, executable=None):
        self.results = results or {}
        self.settings_manager = FakeSettingsManager(settings)
        self.executable = executable or {RuleType.EMBEDDING, RuleType.PROMPT, RuleType.VISION}
        self.calls = []
        self.ground_truths = []

    def can_execute_rule_type(self, rule_type):
        return rule_type in self.executable

    def threshold_for(self, rule_type):
        return 0.32 if rule_type == RuleType.EMBEDDING else 0.7

    async def _result(self, text, criteria, ground_truth=None):
        self.calls.append((text, criteria))
        self.ground_truths.append(ground_truth)
        outcome = self.results.get(criteria, AnalysisResult(False, 0.1, "", "fake"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def analyze_by_prompt(self, text, criteria, ground_truth=None):
        return await self._result(text, criteria, ground_truth)

    async def analyze_by_embedding(self, text, criteria, ground_truth=None):
        return await self._result(text, criteria, ground_truth)


class FakeRuleProvider:

    def __init__(self, *rule_strings):
        self.rules = [parse_rule(s) for s in rule_strings]

    def get_rules(self):
        return list(self.rules)


class ClosingChannel(QueueChannel):
    """Closes itself after a number of result messages"""

    def __init__(self, close_after):
        super().__init__()
        self.close_after = close_after
        self.results_sent = 0

    async def send(self, message):
        await super().send(message)
        if message["type"] == "result":
            self.results_sent += 1
            if self.results_sent >= self.close_after:
                self.close()


class DroppedChannel(QueueChannel):
    """Stays open but fails every send after a number of successful ones"""

    def __init__(self, fail_after=0):
        super().__init__()
        self.fail_after = fail_after
        self.attempts = 0

    async def send(self, message):
        self.attempts += 1
        if self.attempts > self.fail_after:
            raise ChannelClosedError("receiver went away")
        await super().send(message)


def hit(confidence):
    return AnalysisResult(True, confidence, "match", "fake", backend_matches=True)


def elements(count, selector="div.ad"):
    return [AnalyzableElement(id=f"el-{i}", text=f"text {i}", selector=selector) for i in range(count)]


class TestBestRuleMatch:

    async def test_highest_confidence_wins(self):
        provider = FakeRuleProvider(
            "div.ad:contains-meaning-prompt('r1')",
            "div.ad:contains-meaning-prompt('r2')",
        )
        analyzer = StreamingAnalyzer(FakeLLMService({"r1": hit(0.6), "r2": hit(0.8)}), provider)

        match = await analyzer.find_best_rule_match(elements(1)[0], provider.get_rules())

        assert match.matched is True
        assert match.matched_rule.prompt == "r2"
        assert match.max_confidence == 0.8
        assert match.threshold == 0.7

    async def test_tie_keeps_first_rule(self):
        provider = FakeRuleProvider(
            "div.ad:contains-meaning-prompt('r1')",
            "div.ad:contains-meaning-prompt('r2')",
        )
        analyzer = StreamingAnalyzer(FakeLLMService({"r1": hit(0.6), "r2": hit(0.6)}), provider)

        match = await analyzer.find_best_rule_match(elements(1)[0], provider.get_rules())
        assert match.matched_rule.prompt == "r1"

    async def test_zero_confidence_match_counts(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-embedding('r1')")
        analyzer = StreamingAnalyzer(FakeLLMService({"r1": hit(0.0)}), provider)

        match = await analyzer.find_best_rule_match(elements(1)[0], provider.get_rules())
        assert match.matched is True
        assert match.threshold == 0.32

    async def test_selector_must_match_exactly(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('r1')")
        service = FakeLLMService({"r1": hit(0.9)})
        analyzer = StreamingAnalyzer(service, provider)

        match = await analyzer.find_best_rule_match(elements(1, selector="div.ads")[0], provider.get_rules())
        assert match.matched is False
        assert service.calls == []

    async def test_analyzer_error_is_no_match(self):
        provider = FakeRuleProvider(
            "div.ad:contains-meaning-prompt('broken')",
            "div.ad:contains-meaning-prompt('ok')",
        )
        analyzer = StreamingAnalyzer(
            FakeLLMService({"broken": RuntimeError("backend down"), "ok": hit(0.75)}), provider
        )

        match = await analyzer.find_best_rule_match(elements(1)[0], provider.get_rules())
        assert match.matched_rule.prompt == "ok"

    async def test_vision_rules_skipped(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-vision('casino')")
        service = FakeLLMService({"casino": hit(0.99)})
        analyzer = StreamingAnalyzer(service, provider)

        match = await analyzer.find_best_rule_match(elements(1)[0], provider.get_rules())
        assert match.matched is False
        assert service.calls == []


class TestStreamingAnalysis:

    async def test_results_then_complete(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('ad')")
        analyzer = StreamingAnalyzer(FakeLLMService({"ad": hit(0.9)}), provider)
        channel = QueueChannel()

        await analyzer.process_streaming_analysis(elements(3), channel)
        messages = channel.drain()

        assert [m["type"] for m in messages] == ["result", "result", "result", "complete"]
        data = messages[0]["data"]
        assert data["elementId"] == "el-0"
        assert data["matches"] is True
        assert data["confidence"] == 0.9
        assert data["threshold"] == 0.7
        assert data["rule"]["rule_string"] == "div.ad:contains-meaning-prompt('ad')"
        assert data["rule"]["type"] == "prompt"

    async def test_unmatched_element_reports_no_rule(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('ad')")
        analyzer = StreamingAnalyzer(FakeLLMService(), provider)
        channel = QueueChannel()

        await analyzer.process_streaming_analysis(elements(1), channel)
        data = channel.drain()[0]["data"]

        assert data["matches"] is False
        assert data["rule"] is None
        assert data["confidence"] == 0.0

    async def test_disconnect_stops_run(self):
        """Closing after two results stops the run without a complete message."""
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('ad')")
        service = FakeLLMService({"ad": hit(0.9)})
        analyzer = StreamingAnalyzer(service, provider)
        channel = ClosingChannel(close_after=2)

        await analyzer.process_streaming_analysis(elements(5), channel)
        messages = channel.drain()

        assert len(messages) == 2
        assert all(m["type"] == "result" for m in messages)
        assert len(service.calls) == 2

    async def test_failed_result_send_stops_run(self):
        """A send that fails while the channel still looks open ends the run quietly."""
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('ad')")
        service = FakeLLMService({"ad": hit(0.9)})
        analyzer = StreamingAnalyzer(service, provider)
        channel = DroppedChannel(fail_after=1)

        await analyzer.process_streaming_analysis(elements(4), channel)
        messages = channel.drain()

        assert channel.is_open is True
        assert [m["data"]["elementId"] for m in messages] == ["el-0"]
        assert channel.attempts == 2
        assert len(service.calls) == 2

    async def test_failed_complete_send_is_silent(self):
        analyzer = StreamingAnalyzer(FakeLLMService(), FakeRuleProvider())
        channel = DroppedChannel()

        await analyzer.process_streaming_analysis(elements(2), channel)

        assert channel.attempts == 1
        assert channel.drain() == []

    async def test_blocking_disabled(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('ad')")
        service = FakeLLMService({"ad": hit(0.9)}, settings=Settings(blocking_enabled=False))
        analyzer = StreamingAnalyzer(service, provider)
        channel = QueueChannel()

        await analyzer.process_streaming_analysis(elements(3), channel)

        assert channel.drain() == [{"type": "complete"}]
        assert service.calls == []

    async def test_no_rules(self):
        analyzer = StreamingAnalyzer(FakeLLMService(), FakeRuleProvider())
        channel = QueueChannel()
        await analyzer.process_streaming_analysis(elements(2), channel)
        assert channel.drain() == [{"type": "complete"}]

    async def test_rules_needing_missing_key_skipped(self):
        provider = FakeRuleProvider(
            "div.ad:contains-meaning-prompt('ad')",
            "div.ad:contains-meaning-embedding('promo')",
        )
        service = FakeLLMService({"ad": hit(0.9)}, executable={RuleType.EMBEDDING})
        analyzer = StreamingAnalyzer(service, provider)

        assert [r.type for r in analyzer.get_enabled_rules()] == [RuleType.EMBEDDING]

    async def test_disabled_rules_ignored(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('ad')")
        provider.rules[0].enabled = False
        analyzer = StreamingAnalyzer(FakeLLMService({"ad": hit(0.9)}), provider)
        channel = QueueChannel()

        await analyzer.process_streaming_analysis(elements(1), channel)
        assert channel.drain() == [{"type": "complete"}]


class TestHandleMessage:

    async def test_analyze_elements_message(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('ad')")
        analyzer = StreamingAnalyzer(FakeLLMService({"ad": hit(0.9)}), provider)
        channel = QueueChannel()

        await analyzer.handle_message({
            "action": ANALYZE_ELEMENTS,
            "elements": [{"id": "x", "text": "Buy now", "selector": "div.ad"}],
        }, channel)

        messages = channel.drain()
        assert messages[0]["data"]["elementId"] == "x"
        assert messages[-1] == {"type": "complete"}

    async def test_ground_truth_reaches_analysis(self):
        provider = FakeRuleProvider("div.ad:contains-meaning-prompt('ad')")
        service = FakeLLMService({"ad": hit(0.9)})
        analyzer = StreamingAnalyzer(service, provider)
        channel = QueueChannel()

        await analyzer.handle_message({
            "action": ANALYZE_ELEMENTS,
            "elements": [
                {"id": "a", "text": "Buy now", "selector": "div.ad", "groundTruth": "ad"},
                {"id": "b", "text": "News", "selector": "div.ad", "ground_truth": "non-ad"},
            ],
        }, channel)

        assert service.ground_truths == ["ad", "non-ad"]
        assert [m["data"]["elementId"] for m in channel.drain()[:-1]] == ["a", "b"]

    async def test_failure_sends_error(self):
        service = FakeLLMService()
        service.settings_manager = FakeSettingsManager(error=RuntimeError("storage unavailable"))
        analyzer = StreamingAnalyzer(service, FakeRuleProvider())
        channel = QueueChannel()

        await analyzer.handle_message({"action": ANALYZE_ELEMENTS, "elements": []}, channel)

        assert channel.drain() == [{"type": "error", "error": "storage unavailable"}]

    async def test_failure_on_closed_channel_is_silent(self):
        service = FakeLLMService()
        service.settings_manager = FakeSettingsManager(error=RuntimeError("boom"))
        analyzer = StreamingAnalyzer(service, FakeRuleProvider())
        channel = QueueChannel()
        channel.close()

        await analyzer.handle_message({"action": ANALYZE_ELEMENTS, "elements": []}, channel)
        assert channel.drain() == []

    async def test_other_actions_ignored(self):
        analyzer = StreamingAnalyzer(FakeLLMService(), FakeRuleProvider())
        channel = QueueChannel()
        await analyzer.handle_message({"action": "getRules"}, channel)
        assert channel.drain() == []


class TestQueueChannel:

    async def test_send_after_close(self):
        channel = QueueChannel()
        channel.close()
        assert channel.is_open is False
        with pytest.raises(ChannelClosedError):
            await channel.send({"type": "complete"})


class TestBatch:

    async def test_all_matching_pairs(self):
        provider = FakeRuleProvider(
            "div.ad:contains-meaning-prompt('ad')",
            "div.ad:contains-meaning-vision('casino')",
        )
        analyzer = StreamingAnalyzer(FakeLLMService({"ad": hit(0.9)}), provider)

        matches = await analyzer.analyze_elements_batch(elements(2), provider.get_rules())

        assert [m.element_id for m in matches] == ["el-0", "el-1"]
        assert all(m.rule.prompt == "ad" for m in matches)
