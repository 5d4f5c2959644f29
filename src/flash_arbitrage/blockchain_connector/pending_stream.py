"""
Pending transaction stream over a WebSocket subscription.

Subscribes to ``newPendingTransactions`` and yields transaction hashes. The
subscription is supervised: a dropped or failed connection is reported to the
error callback and re-established with exponential backoff.
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional

import websockets
from websockets.exceptions import WebSocketException

logger = logging.getLogger(__name__)

SUBSCRIBE_REQUEST: Dict[str, Any] = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "eth_subscribe",
    "params": ["newPendingTransactions"]
}

STREAM_ERRORS = (WebSocketException, OSError, asyncio.TimeoutError, json.JSONDecodeError)


class SubscriptionError(Exception):
    """The node refused the pending transaction subscription."""
    pass


class PendingTransactionStream:
    """Supervised ``eth_subscribe`` stream of pending transaction hashes."""

    def __init__(
        self,
        ws_url: str,
        on_error: Optional[Callable[[Exception], None]] = None,
        initial_backoff: float = 1.0,
        max_backoff: float = 30.0,
        connect: Callable[..., Any] = websockets.connect
    ):
        """
        Initialize the stream.

        Args:
            ws_url: WebSocket RPC endpoint
            on_error: Called with every transport or subscription error
            initial_backoff: First reconnect delay in seconds
            max_backoff: Upper bound for the reconnect delay
            connect: WebSocket connect factory
        """
        self.ws_url = ws_url
        self.on_error = on_error
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self._connect = connect
        self._closed = False
        self.subscription_id: Optional[str] = None

        self.stats = {
            "connections": 0,
            "errors": 0,
            "hashes_received": 0
        }

    async def hashes(self) -> AsyncIterator[str]:
        """Yield pending transaction hashes until ``close()`` is called."""
        backoff = self.initial_backoff

        while not self._closed:
            try:
                async with self._connect(self.ws_url) as ws:
                    await self._subscribe(ws)
                    backoff = self.initial_backoff

                    async for message in ws:
                        tx_hash = self._parse_notification(message)
                        if tx_hash:
                            self.stats["hashes_received"] += 1
                            yield tx_hash

                        if self._closed:
                            return

                logger.warning("Pending transaction subscription closed by the node")

            except (SubscriptionError, *STREAM_ERRORS) as e:
                self._report_error(e)

            if self._closed:
                break

            logger.info(f"Reconnecting pending transaction stream in {backoff:.1f}s")
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.max_backoff)

    def close(self) -> None:
        """Stop the stream after the current message."""
        self._closed = True

    async def _subscribe(self, ws) -> None:
        await ws.send(json.dumps(SUBSCRIBE_REQUEST))
        ack = json.loads(await ws.recv())

        if not isinstance(ack, dict):
            raise SubscriptionError(f"Unexpected subscription response: {ack!r}")

        if "error" in ack:
            raise SubscriptionError(f"Subscription refused: {ack['error']}")

        self.subscription_id = ack.get("result")
        self.stats["connections"] += 1
        logger.info(f"✅ Subscribed to pending transactions ({self.subscription_id})")

    def _parse_notification(self, message: Any) -> Optional[str]:
        """Extract the transaction hash from an ``eth_subscription`` message."""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.debug("Ignoring non-JSON subscription message")
            return None

        if not isinstance(data, dict) or data.get("method") != "eth_subscription":
            return None

        params = data.get("params")
        if not isinstance(params, dict):
            return None

        result = params.get("result")
        # Some nodes push full transaction objects instead of hashes
        if isinstance(result, dict):
            result = result.get("hash")

        return result if isinstance(result, str) else None

    def _report_error(self, error: Exception) -> None:
        self.stats["errors"] += 1
        if self.on_error is not None:
            self.on_error(error)
        else:
            logger.error(f"Pending transaction stream error: {error}")
