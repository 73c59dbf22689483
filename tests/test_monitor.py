"""
Unit tests for instruction_context.monitor
"""

import logging
import time

import pytest

from instruction_context.monitor import DEFAULT_THRESHOLDS, PerformanceMonitor, RequestTimer


class TestRequestTimer:

    def test_stage_records_timing(self):
        timer = RequestTimer({})
        with timer.stage("retrieval"):
            time.sleep(0.01)
        assert timer.timings["retrieval"] >= 0.01

    def test_stage_records_timing_on_exception(self):
        timer = RequestTimer({})
        with pytest.raises(ValueError):
            with timer.stage("composition"):
                raise ValueError("boom")
        assert "composition" in timer.timings

    def test_fast_request_has_no_flags(self, caplog):
        timer = RequestTimer(DEFAULT_THRESHOLDS)
        with timer.stage("retrieval"):
            pass
        with caplog.at_level(logging.WARNING, logger="instruction_context.monitor"):
            assert timer.finish("hello", ["core/identity"]) == []
        assert "[PERF]" not in caplog.text
        assert "total" in timer.timings

    def test_slow_stage_is_flagged_and_logged(self, caplog):
        timer = RequestTimer({"retrieval": 0.0, "composition": 10.0})
        with timer.stage("retrieval"):
            time.sleep(0.005)
        with timer.stage("composition"):
            pass

        long_utterance = "x" * 80
        with caplog.at_level(logging.WARNING, logger="instruction_context.monitor"):
            flags = timer.finish(long_utterance, ["core/identity", "services/packages"])

        assert len(flags) == 1
        assert flags[0].startswith("Slow knowledge retrieval (")
        record = next(r for r in caplog.records if "[PERF]" in r.getMessage())
        assert record.levelno == logging.WARNING
        assert record.perf["utterance"] == "x" * 50
        assert record.perf["modules"] == ["core/identity", "services/packages"]
        assert "identity" in record.getMessage()

    def test_finish_twice_keeps_first_total(self):
        timer = RequestTimer({})
        timer.finish(None, [])
        total = timer.timings["total"]
        time.sleep(0.005)
        timer.finish(None, [])
        assert timer.timings["total"] == total


class TestPerformanceMonitor:

    def test_default_thresholds(self):
        assert PerformanceMonitor().thresholds == DEFAULT_THRESHOLDS

    def test_thresholds_are_copied(self):
        custom = {"total": 1.0}
        monitor = PerformanceMonitor(custom)
        custom["total"] = 99.0
        assert monitor.thresholds == {"total": 1.0}

    def test_start_returns_fresh_timer(self):
        monitor = PerformanceMonitor()
        assert monitor.start() is not monitor.start()
