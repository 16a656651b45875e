# tests/unit/infra/test_transport.py
from __future__ import annotations

import pytest
import requests
import responses

from custody.infra.rpc.erc20_client import broadcast_budget_seconds
from custody.infra.rpc.transport import ResilientTransport, RetryPolicy, TransportError

URL = "http://node.test/rpc"


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def transport(sleeps) -> ResilientTransport:
    return ResilientTransport(URL, RetryPolicy(slot_interval=0.25), sleep=sleeps.append)


@responses.activate
def test_returns_json_on_success(transport, sleeps):
    responses.add(responses.POST, URL, json={"jsonrpc": "2.0", "id": 1, "result": "0x1"})

    assert transport.post_json({"method": "eth_chainId"}) == {"jsonrpc": "2.0", "id": 1, "result": "0x1"}
    assert len(responses.calls) == 1
    assert sleeps == []


@responses.activate
def test_retries_throttled_then_succeeds(transport, sleeps):
    responses.add(responses.POST, URL, status=429)
    responses.add(responses.POST, URL, status=503)
    responses.add(responses.POST, URL, json={"result": "0x2"})

    assert transport.post_json({})["result"] == "0x2"
    assert len(responses.calls) == 3
    assert len(sleeps) == 2
    # slot-based backoff: retry n waits slot * randint(0, 2**n)
    assert 0.0 <= sleeps[0] <= 0.25
    assert 0.0 <= sleeps[1] <= 0.5


@responses.activate
def test_exhaustion_raises_retryable_error(transport):
    for _ in range(4):
        responses.add(responses.POST, URL, status=502)

    with pytest.raises(TransportError) as excinfo:
        transport.post_json({})

    assert excinfo.value.retryable is True
    assert excinfo.value.exhausted is True
    assert excinfo.value.status == 502
    assert len(responses.calls) == 4


@responses.activate
def test_non_retryable_status_fails_immediately(transport):
    responses.add(responses.POST, URL, status=400, json={"error": "bad"})

    with pytest.raises(TransportError) as excinfo:
        transport.post_json({})

    assert excinfo.value.retryable is False
    assert excinfo.value.status == 400
    assert len(responses.calls) == 1


@pytest.mark.parametrize("status", [408, 425, 429, 500, 501, 502, 503, 504, 522, 524, 598, 599])
def test_retry_predicate_covers_allowlist_and_5xx(status):
    assert RetryPolicy().should_retry(status)


@pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422])
def test_retry_predicate_rejects_client_errors(status):
    assert not RetryPolicy().should_retry(status)


@responses.activate
def test_timeouts_are_retried(transport, caplog):
    responses.add(responses.POST, URL, body=requests.Timeout("read timed out"))
    responses.add(responses.POST, URL, body=requests.ConnectionError("reset"))
    responses.add(responses.POST, URL, json={"result": "0x3"})

    with caplog.at_level("WARNING", logger="custody.infra.rpc.transport"):
        assert transport.post_json({})["result"] == "0x3"

    assert [r.levelname for r in caplog.records] == ["WARNING", "WARNING"]


@responses.activate
def test_network_exhaustion_is_retryable_and_logged(caplog):
    transport = ResilientTransport(URL, RetryPolicy(max_attempts=2), sleep=lambda _: None)
    responses.add(responses.POST, URL, body=requests.Timeout("slow"))
    responses.add(responses.POST, URL, body=requests.Timeout("slow"))

    with caplog.at_level("WARNING", logger="custody.infra.rpc.transport"):
        with pytest.raises(TransportError) as excinfo:
            transport.post_json({})

    assert excinfo.value.retryable is True
    assert excinfo.value.status is None
    assert "timeout" in str(excinfo.value)
    assert caplog.records[-1].levelname == "ERROR"


@responses.activate
def test_uses_configured_timeout(sleeps):
    transport = ResilientTransport(URL, RetryPolicy(timeout=3.5), sleep=sleeps.append)
    responses.add(responses.POST, URL, json={"result": "0x0"})

    transport.post_json({})

    assert responses.calls[0].request.req_kwargs["timeout"] == 3.5


def test_policy_from_config():
    policy = RetryPolicy.from_config(
        {"RPC_REQUEST_TIMEOUT": 2, "RPC_MAX_ATTEMPTS": 6, "RPC_SLOT_INTERVAL": 0.1}
    )
    assert (policy.timeout, policy.max_attempts, policy.slot_interval) == (2.0, 6, 0.1)


def test_worst_case_covers_every_timeout_and_top_backoff_slot():
    policy = RetryPolicy(timeout=10.0, max_attempts=4, slot_interval=0.25)
    # 4 timeouts plus waits of 0.25, 0.5 and 1.0 before the three retries.
    assert policy.worst_case_seconds() == pytest.approx(41.75)
    assert broadcast_budget_seconds(policy) == pytest.approx(5 * 41.75)
