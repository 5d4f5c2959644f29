"""Unit tests for the supervised pending transaction subscription."""
import json
from unittest.mock import Mock, patch

import pytest

from flash_arbitrage.blockchain_connector.pending_stream import (
    SUBSCRIBE_REQUEST,
    PendingTransactionStream,
    SubscriptionError
)

ACK = {"jsonrpc": "2.0", "id": 1, "result": "0xsub"}


def notification(result):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": "0xsub", "result": result}
    })


class FakeWebSocket:
    """Minimal async websocket connection replaying scripted messages."""

    def __init__(self, messages, ack=None):
        self.messages = list(messages)
        self.ack = ack or ACK
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def recv(self):
        return json.dumps(self.ack)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message


def scripted_connect(*attempts):
    """connect() double: each call raises or returns the next scripted attempt."""
    calls = []
    remaining = list(attempts)

    def connect(url):
        calls.append(url)
        attempt = remaining.pop(0)
        if isinstance(attempt, Exception):
            raise attempt
        return attempt

    connect.calls = calls
    return connect


@pytest.mark.asyncio
async def test_yields_hashes_from_subscription():
    ws = FakeWebSocket([
        notification("0xaaa"),
        json.dumps({"jsonrpc": "2.0", "id": 9, "result": True}),
        notification({"hash": "0xbbb", "from": "0xccc"})
    ])
    stream = PendingTransactionStream("wss://node.example", initial_backoff=0, connect=scripted_connect(ws))

    received = []
    async for tx_hash in stream.hashes():
        received.append(tx_hash)
        if len(received) == 2:
            stream.close()

    assert received == ["0xaaa", "0xbbb"]
    assert ws.sent == [SUBSCRIBE_REQUEST]
    assert stream.subscription_id == "0xsub"
    assert stream.stats["hashes_received"] == 2


@pytest.mark.asyncio
async def test_reconnects_after_transport_error():
    on_error = Mock()
    connect = scripted_connect(
        OSError("connection refused"),
        FakeWebSocket([notification("0xaaa")])
    )
    stream = PendingTransactionStream(
        "wss://node.example",
        on_error=on_error,
        initial_backoff=0,
        connect=connect
    )

    received = []
    async for tx_hash in stream.hashes():
        received.append(tx_hash)
        stream.close()

    assert received == ["0xaaa"]
    assert len(connect.calls) == 2
    on_error.assert_called_once()
    assert isinstance(on_error.call_args.args[0], OSError)
    assert stream.stats["errors"] == 1
    assert stream.stats["connections"] == 1


@pytest.mark.asyncio
async def test_refused_subscription_is_reported():
    errors = []
    stream = None

    def on_error(error):
        errors.append(error)
        stream.close()

    stream = PendingTransactionStream(
        "wss://node.example",
        on_error=on_error,
        initial_backoff=0,
        connect=scripted_connect(FakeWebSocket([], ack={"jsonrpc": "2.0", "id": 1, "error": {"code": -32601}}))
    )

    received = [tx_hash async for tx_hash in stream.hashes()]

    assert received == []
    assert len(errors) == 1
    assert isinstance(errors[0], SubscriptionError)


@pytest.mark.asyncio
async def test_backoff_doubles_up_to_max():
    delays = []
    errors = []
    stream = None

    async def fake_sleep(delay):
        delays.append(delay)

    def on_error(error):
        errors.append(error)
        if len(errors) == 5:
            stream.close()

    stream = PendingTransactionStream(
        "wss://node.example",
        on_error=on_error,
        initial_backoff=8.0,
        max_backoff=20.0,
        connect=scripted_connect(*[OSError("refused")] * 5)
    )

    with patch("flash_arbitrage.blockchain_connector.pending_stream.asyncio.sleep", new=fake_sleep):
        received = [tx_hash async for tx_hash in stream.hashes()]

    assert received == []
    assert delays == [8.0, 16.0, 20.0, 20.0]


@pytest.mark.parametrize("message", [
    "[]",
    "42",
    "null",
    json.dumps({"jsonrpc": "2.0", "method": "eth_subscription", "params": None}),
    json.dumps({"jsonrpc": "2.0", "method": "eth_subscription", "params": ["0xaaa"]}),
    json.dumps({"jsonrpc": "2.0", "method": "eth_subscription", "params": {"result": 17}}),
])
def test_malformed_notifications_are_ignored(message):
    stream = PendingTransactionStream("wss://node.example")

    assert stream._parse_notification(message) is None


@pytest.mark.asyncio
async def test_malformed_messages_do_not_end_stream():
    ws = FakeWebSocket(["[1, 2]", notification(None), "null", notification("0xaaa")])
    stream = PendingTransactionStream("wss://node.example", initial_backoff=0, connect=scripted_connect(ws))

    received = []
    async for tx_hash in stream.hashes():
        received.append(tx_hash)
        stream.close()

    assert received == ["0xaaa"]
    assert stream.stats["errors"] == 0


@pytest.mark.asyncio
async def test_non_object_ack_is_reported():
    errors = []
    stream = None

    def on_error(error):
        errors.append(error)
        stream.close()

    stream = PendingTransactionStream(
        "wss://node.example",
        on_error=on_error,
        initial_backoff=0,
        connect=scripted_connect(FakeWebSocket([], ack=["unexpected"]))
    )

    assert [tx_hash async for tx_hash in stream.hashes()] == []
    assert isinstance(errors[0], SubscriptionError)
