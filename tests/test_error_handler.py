"""
测试错误分类、提示抑制和恢复策略
"""

import pytest

from exceptions import APIError, ModelUnavailableError, RequestTimeoutError, ResponseParseError
from services.error_handler import (
    LLM_UNAVAILABLE,
    NETWORK,
    PROCESSING_ADVICE,
    PROCESSING_ERROR,
    SUPPRESSION_WINDOW,
    TIMEOUT,
    TIMEOUT_ADVICE,
    UNKNOWN,
    ErrorClassifier,
    RecoveryManager,
    generate_error_id,
    get_display_duration,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def classifier(notifications, clock):
    return ErrorClassifier(notifier=lambda *args: notifications.append(args), clock=clock)


class TestCategorize:
    @pytest.mark.parametrize(
        "error,context,expected",
        [
            (ConnectionError("Failed to fetch"), "general", NETWORK),
            ("Ollama is not available", "general", LLM_UNAVAILABLE),
            (ModelUnavailableError("down"), "general", LLM_UNAVAILABLE),
            (RequestTimeoutError("Request timed out after 60 seconds"), "general", TIMEOUT),
            ("Site not whitelisted", "general", "PERMISSION_DENIED"),
            ("No text found on page", "general", "INVALID_CONTENT"),
            (ValueError("boom"), "enhancement", PROCESSING_ERROR),
            (ValueError("boom"), "general", UNKNOWN),
        ],
    )
    def test_categories(self, error, context, expected):
        assert ErrorClassifier.categorize(error, context) == expected

    def test_first_match_wins(self):
        assert ErrorClassifier.categorize("network timeout") == NETWORK

    @pytest.mark.parametrize(
        "error,expected",
        [
            (ResponseParseError(), PROCESSING_ERROR),
            (APIError("Ollama HTTP error: 500", error_code="HTTP_ERROR"), NETWORK),
            (APIError("Ollama connection error: refused", error_code="NETWORK"), NETWORK),
            (APIError("Ollama said no"), LLM_UNAVAILABLE),
        ],
    )
    def test_error_code_before_keywords(self, error, expected):
        assert ErrorClassifier.categorize(error, "enhancement") == expected


class TestHandleError:
    def test_record_fields(self, classifier, notifications):
        record = classifier.handle_error(ConnectionError("connection reset"), "enhancement")
        assert record.category == NETWORK
        assert record.severity == "high"
        assert record.shown
        assert record.id.startswith("err_1000000_")
        assert notifications == [("Network connection issue", "high", 8000)]

    def test_explicit_duration(self, classifier, notifications):
        classifier.handle_error("Ollama is not available", duration_ms=1234)
        assert notifications[-1][2] == 1234

    def test_suppression_window(self, classifier, clock, notifications):
        shown = [classifier.handle_error("connection lost", "batch").shown for _ in range(5)]
        assert shown == [True, True, True, False, False]
        assert len(notifications) == 3
        assert classifier.suppressed_keys == ["NETWORK_batch"]

        # 其他来源不受影响
        assert classifier.handle_error("connection lost", "availability").shown

        clock.now += SUPPRESSION_WINDOW
        assert classifier.handle_error("connection lost", "batch").shown
        assert classifier.suppressed_keys == []

    def test_history_bounded(self, classifier):
        for i in range(15):
            classifier.handle_error(f"error {i}")
        assert len(classifier.history) == 10
        assert classifier.history[0].message == "error 14"

    def test_stats(self, classifier):
        classifier.handle_error("connection lost")
        classifier.handle_error("Request timed out")
        stats = classifier.get_error_stats()
        assert stats["total_errors"] == 2
        assert stats["category_counts"] == {NETWORK: 1, TIMEOUT: 1}
        assert stats["severity_counts"] == {"high": 1, "medium": 1}
        assert stats["recent_errors"][0]["category"] == TIMEOUT

        classifier.clear_error_history()
        assert classifier.get_error_stats()["total_errors"] == 0

    def test_broken_notifier_is_ignored(self, clock):
        def broken(*_args):
            raise RuntimeError("ui gone")

        record = ErrorClassifier(notifier=broken, clock=clock).handle_error("connection lost")
        assert record.shown


def test_display_durations():
    assert get_display_duration("critical") == 0
    assert get_display_duration("low") == 3000
    assert get_display_duration("other") == 4000


def test_error_id_format():
    error_id = generate_error_id(1.5)
    prefix, millis, suffix = error_id.split("_")
    assert prefix == "err"
    assert millis == "1500"
    assert len(suffix) == 9


class TestRecovery:
    @pytest.fixture
    def sleeps(self):
        return []

    @pytest.fixture
    def manager(self, classifier, sleeps):
        async def fake_sleep(seconds):
            sleeps.append(seconds)

        return RecoveryManager(classifier, sleep=fake_sleep)

    @pytest.mark.asyncio
    async def test_unavailable_halts(self, classifier, manager, notifications):
        record = classifier.classify("Ollama is not available")
        result = await manager.attempt_recovery(record)
        assert result.should_halt
        assert notifications[-1][0].startswith("Suggestions: Make sure Ollama is running")

    @pytest.mark.asyncio
    async def test_non_recoverable(self, classifier, manager):
        record = classifier.classify("No text found")
        result = await manager.attempt_recovery(record)
        assert result.action == "none"

    @pytest.mark.asyncio
    async def test_network_retry_succeeds(self, classifier, manager, sleeps):
        attempts = []

        async def retry():
            attempts.append(1)
            if len(attempts) < 2:
                raise ConnectionError("still down")

        record = classifier.classify("connection refused")
        result = await manager.attempt_recovery(record, retry_fn=retry, retry_delay=2.0)
        assert result.action == "retried"
        assert result.success
        assert sleeps == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_network_retry_exhausted(self, classifier, manager):
        async def retry():
            raise ConnectionError("still down")

        record = classifier.classify("connection refused")
        result = await manager.attempt_recovery(record, retry_fn=retry, max_retries=2)
        assert not result.success
        assert result.message == "still down"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message,context,advice",
        [("timed out", "general", TIMEOUT_ADVICE), ("boom", "enhancement", PROCESSING_ADVICE)],
    )
    async def test_suggestions(self, classifier, manager, message, context, advice):
        result = await manager.attempt_recovery(classifier.classify(message, context))
        assert result.action == "suggested"
        assert result.message == advice

    @pytest.mark.asyncio
    async def test_custom_recovery(self, classifier, manager):
        seen = []

        async def recover(record):
            seen.append(record.category)

        record = classifier.classify("Site not whitelisted")
        result = await manager.attempt_recovery(record, recovery_fn=recover)
        assert result.action == "custom"
        assert result.success
        assert seen == ["PERMISSION_DENIED"]
