"""Debounced online/offline verdict from a stream of operation outcomes."""

from __future__ import annotations

from linkhub.const import FAILURE_THRESHOLD
from linkhub.logging_abstraction import get_logger
from linkhub.metrics import registry
from linkhub.sink import ConnectivityDetail, ConnectivityStatus, StateSink

logger = get_logger(__name__)


class CommunicationHealthTracker:
    """Counts consecutive failures and reports connectivity transitions to the sink.

    Offline is reported once, when the counter reaches ``threshold``; online is
    reported once, on the first success after offline (or the first success
    ever, while the status is still unknown).
    """

    lp: str = "Health"

    def __init__(self, sink: StateSink, device_id: str, threshold: int = FAILURE_THRESHOLD) -> None:
        if threshold < 1:
            msg = f"threshold must be >= 1, got {threshold}"
            raise ValueError(msg)
        self.sink: StateSink = sink
        self.device_id: str = device_id
        self.threshold: int = threshold
        self.lp = f"{self.lp}[{device_id}]"
        self._consecutive_failures: int = 0
        self._status: ConnectivityStatus = ConnectivityStatus.UNKNOWN
        self.last_failure_reason: str = ""

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def status(self) -> ConnectivityStatus:
        return self._status

    @property
    def is_online(self) -> bool:
        return self._status == ConnectivityStatus.ONLINE

    def record_success(self) -> None:
        lp = f"{self.lp}:record_success:"
        if self._consecutive_failures:
            logger.debug("%s resetting %d consecutive failures", lp, self._consecutive_failures)
        self._consecutive_failures = 0
        if self._status != ConnectivityStatus.ONLINE:
            self._status = ConnectivityStatus.ONLINE
            registry.record_connectivity(self.device_id, online=True)
            logger.info("%s device is online", lp, extra={"device_id": self.device_id})
            self.sink.update_connectivity(ConnectivityStatus.ONLINE, ConnectivityDetail.NONE, "")

    def record_failure(self, reason: str) -> None:
        lp = f"{self.lp}:record_failure:"
        self._consecutive_failures += 1
        self.last_failure_reason = reason
        logger.debug(
            "%s failure %d/%d: %s",
            lp,
            self._consecutive_failures,
            self.threshold,
            reason,
        )
        if self._consecutive_failures >= self.threshold and self._status != ConnectivityStatus.OFFLINE:
            self._status = ConnectivityStatus.OFFLINE
            registry.record_connectivity(self.device_id, online=False)
            logger.warning(
                "%s device is offline after %d consecutive failures",
                lp,
                self._consecutive_failures,
                extra={"device_id": self.device_id, "reason": reason},
            )
            self.sink.update_connectivity(
                ConnectivityStatus.OFFLINE,
                ConnectivityDetail.COMMUNICATION_ERROR,
                reason,
            )

    def reset(self) -> None:
        """Forget history; the next outcome is treated as the first."""
        self._consecutive_failures = 0
        self._status = ConnectivityStatus.UNKNOWN
        self.last_failure_reason = ""
