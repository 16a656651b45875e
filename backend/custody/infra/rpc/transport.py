"""JSON-over-HTTP transport with bounded, throttle-aware retries.

Used for every call to the EVM node. A single attempt is bounded by a fixed
timeout; throttled or gateway-class failures are retried with slot-based
exponential backoff (``slot_interval * randint(0, 2**n)`` before retry ``n``).
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504, 522, 524, 598, 599})


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for :class:`ResilientTransport`."""

    timeout: float = 10.0  # seconds per attempt
    max_attempts: int = 4
    slot_interval: float = 0.25  # seconds
    retryable_status_codes: frozenset[int] = field(default=RETRYABLE_STATUS_CODES)

    def should_retry(self, status_code: int) -> bool:
        if 500 <= status_code < 600:
            return True
        return status_code in self.retryable_status_codes

    def backoff(self, retry_index: int) -> float:
        return self.slot_interval * random.randint(0, 2**retry_index)

    def worst_case_seconds(self) -> float:
        """Upper bound for one request; every attempt times out at its top backoff slot."""
        attempts = max(1, self.max_attempts)
        waits = sum(self.slot_interval * 2**n for n in range(attempts - 1))
        return attempts * self.timeout + waits

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> RetryPolicy:
        return cls(
            timeout=float(config.get("RPC_REQUEST_TIMEOUT", 10.0)),
            max_attempts=int(config.get("RPC_MAX_ATTEMPTS", 4)),
            slot_interval=float(config.get("RPC_SLOT_INTERVAL", 0.25)),
        )


class TransportError(Exception):
    """
    Raised when the upstream node cannot be reached or answers with an error.

    :param status: Last HTTP status seen, ``None`` for network-level failures.
    :param retryable: ``True`` when the failure class is transient.
    :param exhausted: ``True`` when all attempts were spent.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        retryable: bool = False,
        exhausted: bool = False,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable
        self.exhausted = exhausted


class ResilientTransport:
    """
    POST JSON payloads to a single endpoint with retries.

    Parameters
    ----------
    url:
        Endpoint receiving every request.
    policy:
        Timeout and retry settings; defaults to :class:`RetryPolicy`.
    session:
        ``requests.Session`` to reuse connections (injectable for tests).
    sleep:
        Sleep function used between attempts (injectable for tests).
    """

    def __init__(
        self,
        url: str,
        policy: RetryPolicy | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.url = url
        self.policy = policy or RetryPolicy()
        self.session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ResilientTransport:
        return cls(config["RPC_URL"], RetryPolicy.from_config(config))

    def post_json(self, payload: Mapping[str, Any]) -> Any:
        """
        Send ``payload`` and return the decoded JSON body.

        :raises TransportError: On a non-retryable status (immediately) or
            once the retry budget is exhausted.
        """
        attempts = max(1, self.policy.max_attempts)
        last_status: int | None = None
        last_cause = "unknown"

        for attempt in range(attempts):
            if attempt:
                self._sleep(self.policy.backoff(attempt - 1))
            try:
                response = self.session.post(
                    self.url, json=dict(payload), timeout=self.policy.timeout
                )
            except requests.Timeout:
                last_status, last_cause = None, "timeout"
            except requests.ConnectionError:
                last_status, last_cause = None, "network error"
            else:
                if response.ok:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise TransportError(
                            "RPC response is not valid JSON", status=response.status_code
                        ) from exc
                if not self.policy.should_retry(response.status_code):
                    raise TransportError(
                        f"RPC request failed with status {response.status_code}",
                        status=response.status_code,
                    )
                last_status, last_cause = response.status_code, response.reason or "error"

            if attempt + 1 < attempts:
                logger.warning(
                    "rpc.retry attempt=%s status=%s cause=%s", attempt + 1, last_status, last_cause
                )

        logger.error("rpc.retry_limit_reached status=%s cause=%s", last_status, last_cause)
        detail = f"status {last_status}" if last_status is not None else last_cause
        raise TransportError(
            f"RPC retry limit reached ({detail})",
            status=last_status,
            retryable=True,
            exhausted=True,
        )
