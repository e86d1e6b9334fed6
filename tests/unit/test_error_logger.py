"""
Unit tests for the error logger.
"""

import asyncio

import pytest

from sync_health.error_logger import ErrorContext, ErrorLogger
from sync_health.exceptions import ErrorCategory, ErrorSeverity


def raised(error: Exception) -> Exception:
    """Return the exception with a real traceback attached."""
    try:
        raise error
    except Exception as e:
        return e


class TestClassification:
    """Test error classification."""

    @pytest.mark.parametrize("message,category,severity", [
        ("Request timed out after 30s", ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM),
        ("Network connection refused", ErrorCategory.NETWORK, ErrorSeverity.MEDIUM),
        ("database is locked", ErrorCategory.DATABASE, ErrorSeverity.HIGH),
        ("permission denied for table orders", ErrorCategory.PERMISSION, ErrorSeverity.HIGH),
        ("JWT token expired", ErrorCategory.AUTHENTICATION, ErrorSeverity.HIGH),
        ("invalid value for field price", ErrorCategory.VALIDATION, ErrorSeverity.LOW),
        ("could not parse payload", ErrorCategory.TRANSFORMATION, ErrorSeverity.MEDIUM),
        ("out of memory", ErrorCategory.SYSTEM, ErrorSeverity.CRITICAL),
        ("something odd happened", ErrorCategory.UNKNOWN, ErrorSeverity.MEDIUM),
    ])
    def test_classify_message(self, error_logger, message, category, severity):
        """Test default rules."""
        assert error_logger.classify(message) == (category, severity)

    def test_message_wins_over_stack(self, error_logger):
        """Test the message is classified before the stack trace."""
        category, _ = error_logger.classify("database is locked", "File network_client.py line 3")
        assert category == ErrorCategory.DATABASE

    def test_log_error_classifies_and_stores(self, error_logger):
        """Test a logged exception becomes an entry."""
        entry = error_logger.log_error(raised(ConnectionError("connection reset by peer")),
                                       ErrorContext(component="sync_engine", operation="upload"))

        assert entry.category == ErrorCategory.NETWORK
        assert entry.component == "sync_engine"
        assert entry.technical.error_type == "ConnectionError"
        assert entry.technical.function == "raised"
        assert entry.recovery.is_recoverable is True
        assert error_logger.get_error(entry.error_id) is entry
        assert error_logger.error_stats['total_errors'] == 1
        assert error_logger.error_stats['errors_by_category']['network'] == 1

    def test_log_error_publishes_events(self, error_logger):
        """Test error_logged and critical_error events."""
        seen = []
        error_logger.events.subscribe("error_logged", lambda e: seen.append("logged"))
        error_logger.events.subscribe("critical_error", lambda e: seen.append("critical"))

        error_logger.log_error(ValueError("invalid input"))
        error_logger.log_error(MemoryError("out of memory"))

        assert seen == ["logged", "logged", "critical"]


class TestPatterns:
    """Test pattern detection."""

    def test_frequency_and_trend(self, error_logger, clock):
        """Test three occurrences over two hours."""
        for _ in range(3):
            error_logger.log_error(ConnectionError("connection refused by remote"))
            clock.advance(hours=1)

        patterns = error_logger.get_error_patterns()
        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.count == 3
        assert pattern.frequency == pytest.approx(1.5)
        assert pattern.trend == "increasing"

    def test_min_count_filter(self, error_logger):
        error_logger.log_error(ConnectionError("connection refused"))
        error_logger.log_error(ValueError("invalid field"))
        error_logger.log_error(ValueError("invalid field"))

        assert [p.count for p in error_logger.get_error_patterns(min_count=2)] == [2]

    def test_pattern_detection_disabled(self, clock):
        logger = ErrorLogger(enable_pattern_detection=False, clock=clock)
        logger.log_error(ValueError("invalid field"))
        assert logger.patterns == {}


class TestQueries:
    """Test filtering, acknowledgement and resolution."""

    def test_get_errors_filters(self, error_logger, clock):
        first = error_logger.log_error(ConnectionError("network down"), ErrorContext(component="a"))
        clock.advance(minutes=10)
        second = error_logger.log_error(ValueError("invalid"), ErrorContext(component="b"))

        assert error_logger.get_errors() == [second, first]
        assert error_logger.get_errors(category=ErrorCategory.NETWORK) == [first]
        assert error_logger.get_errors(component="b") == [second]
        assert error_logger.get_errors(since=clock.now) == [second]
        assert error_logger.get_errors(limit=1) == [second]

    def test_acknowledge_and_resolve_are_set_once(self, error_logger):
        entry = error_logger.log_error(ValueError("invalid"))

        assert error_logger.acknowledge_error(entry.error_id, "ops") is True
        assert error_logger.acknowledge_error(entry.error_id, "other") is False
        assert entry.acknowledged_by == "ops"

        assert error_logger.resolve_error(entry.error_id, "fixed") is True
        assert error_logger.resolve_error(entry.error_id, "again") is False
        assert entry.resolution == "fixed"
        assert error_logger.get_errors(resolved=True) == [entry]

        assert error_logger.acknowledge_error("missing") is False


class TestAnalysis:
    """Test summaries, trends and retention."""

    def test_error_summary(self, error_logger, clock):
        """Test counts, MTBF and MTTR."""
        first = error_logger.log_error(ConnectionError("network down"))
        clock.advance(minutes=30)
        error_logger.log_error(ConnectionError("network down"))
        clock.advance(minutes=30)
        error_logger.log_error(ValueError("invalid record"))
        error_logger.resolve_error(first.error_id)

        summary = error_logger.get_error_summary(hours=24)

        assert summary['total_errors'] == 3
        assert summary['by_category'] == {'network': 2, 'validation': 1}
        assert summary['top_errors'][0] == {'message': 'network down', 'count': 2}
        assert summary['mtbf_seconds'] == pytest.approx(1800)
        assert summary['mttr_seconds'] == pytest.approx(3600)
        assert summary['error_rate'] == pytest.approx(3 / 24)

    def test_trend_from_zero_is_worsening(self, error_logger):
        error_logger.log_error(ConnectionError("network down"))

        trends = {t.period: t for t in error_logger.analyze_error_trends()}

        assert trends['1h'].current_count == 1
        assert trends['1h'].previous_count == 0
        assert trends['1h'].direction == "worsening"
        assert trends['1h'].change_percent == 100.0
        assert trends['1h'].primary_factors == ['network']

    def test_trend_improving(self, error_logger, clock):
        for _ in range(4):
            error_logger.log_error(ConnectionError("network down"))
        clock.advance(minutes=90)
        error_logger.log_error(ConnectionError("network down"))

        trends = {t.period: t for t in error_logger.analyze_error_trends()}
        assert trends['1h'].previous_count == 4
        assert trends['1h'].current_count == 1
        assert trends['1h'].direction == "improving"

    def test_cleanup_old_errors(self, error_logger, clock):
        error_logger.log_error(ValueError("invalid old"))
        clock.advance(days=2)
        recent = error_logger.log_error(ValueError("invalid new"))

        assert error_logger.cleanup_old_errors() == 1
        assert list(error_logger.errors) == [recent]
        assert all(p.last_seen >= clock.now for p in error_logger.patterns.values())

    def test_export_import(self, error_logger, clock):
        entry = error_logger.log_error(ConnectionError("network down"), ErrorContext(component="sync_engine"))
        data = error_logger.export_error_data()

        restored = ErrorLogger(clock=clock)
        assert restored.import_error_data(data) == 1
        assert restored.import_error_data(data) == 0

        copy = restored.get_error(entry.error_id)
        assert copy.category == ErrorCategory.NETWORK
        assert copy.component == "sync_engine"
        assert len(restored.patterns) == 1


class TestAutoRecovery:
    """Test auto-recovery probes."""

    @pytest.mark.asyncio
    async def test_registered_strategy_runs(self, clock):
        logger = ErrorLogger(enable_auto_recovery=True, clock=clock)
        calls = []

        async def probe(entry):
            calls.append(entry.error_id)
            return True

        logger.register_recovery_strategy(ErrorCategory.NETWORK, probe)
        outcomes = []
        logger.events.subscribe("auto_recovery_success", lambda e: outcomes.append(e.payload))

        entry = logger.log_error(ConnectionError("network down"))
        await logger.wait_for_recoveries()

        assert calls == [entry.error_id]
        assert entry.recovery.successful is True
        assert entry.recovery.attempts == 1
        assert outcomes == [entry]

    @pytest.mark.asyncio
    async def test_failing_strategy_is_recorded(self, clock):
        logger = ErrorLogger(enable_auto_recovery=True, recovery_timeout_seconds=0.05, clock=clock)

        async def slow(_entry):
            await asyncio.sleep(1)
            return True

        logger.register_recovery_strategy(ErrorCategory.TIMEOUT, slow)
        entry = logger.log_error(TimeoutError("request timed out"))
        await logger.wait_for_recoveries()

        assert entry.recovery.successful is False
        assert logger.error_stats['auto_recovery_attempts'] == 1
        assert logger.error_stats['auto_recovery_successes'] == 0

    def test_no_loop_skips_recovery(self, clock):
        logger = ErrorLogger(enable_auto_recovery=True, clock=clock)

        async def probe(_entry):
            return True

        logger.register_recovery_strategy(ErrorCategory.NETWORK, probe)
        entry = logger.log_error(ConnectionError("network down"))

        assert entry.recovery.attempts == 0
