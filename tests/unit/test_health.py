"""Unit tests for CommunicationHealthTracker."""

from __future__ import annotations

import pytest

from linkhub.health import CommunicationHealthTracker
from linkhub.sink import ConnectivityDetail, ConnectivityStatus


class TestOfflineDebounce:
    """Tests for the offline transition."""

    def test_single_failure_does_not_go_offline(self, health, sink):
        """Test that one failure below the threshold reports nothing."""
        health.record_failure("timeout")
        assert health.consecutive_failures == 1
        assert sink.connectivity == []

    @pytest.mark.parametrize("failures", [3, 4, 10])
    def test_offline_reported_exactly_once(self, health, sink, failures):
        """Test that N >= threshold failures produce one OFFLINE notification."""
        for _ in range(failures):
            health.record_failure("timeout")

        offline = [c for c in sink.connectivity if c[0] == ConnectivityStatus.OFFLINE]
        assert offline == [(ConnectivityStatus.OFFLINE, ConnectivityDetail.COMMUNICATION_ERROR, "timeout")]
        assert health.consecutive_failures == failures
        assert not health.is_online

    def test_last_failure_reason_is_kept(self, health):
        """Test that the most recent failure reason is remembered."""
        health.record_failure("dns")
        health.record_failure("tls")
        assert health.last_failure_reason == "tls"


class TestOnlineRecovery:
    """Tests for the online transition."""

    def test_first_success_reports_online(self, health, sink):
        """Test that the first success leaves the unknown state."""
        health.record_success()
        assert sink.connectivity == [(ConnectivityStatus.ONLINE, ConnectivityDetail.NONE, "")]
        assert health.is_online

    def test_success_after_offline_reports_online_once(self, health, sink):
        """Test recovery after an offline period."""
        for _ in range(3):
            health.record_failure("timeout")
        health.record_success()
        health.record_success()

        assert [c[0] for c in sink.connectivity] == [ConnectivityStatus.OFFLINE, ConnectivityStatus.ONLINE]
        assert health.consecutive_failures == 0

    def test_success_resets_counter_below_threshold(self, health, sink):
        """Test that a success between failures restarts the count."""
        health.record_success()
        health.record_failure("a")
        health.record_failure("b")
        health.record_success()
        health.record_failure("c")
        health.record_failure("d")

        assert health.consecutive_failures == 2
        assert [c[0] for c in sink.connectivity] == [ConnectivityStatus.ONLINE]


class TestConfiguration:
    """Tests for construction and reset."""

    def test_threshold_must_be_positive(self, sink):
        """Test that a zero threshold is rejected."""
        with pytest.raises(ValueError, match="threshold"):
            CommunicationHealthTracker(sink, "dev", threshold=0)

    def test_reset_returns_to_unknown(self, health):
        """Test that reset forgets counters and status."""
        health.record_success()
        health.record_failure("x")
        health.reset()
        assert health.status == ConnectivityStatus.UNKNOWN
        assert health.consecutive_failures == 0
        assert health.last_failure_reason == ""
