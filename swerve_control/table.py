"""Publish/subscribe tables and the WebSocket bridge that feeds them.

A ``PubSubTable`` holds the latest value published under each key. Producers
(coprocessors, the dashboard, the core's own telemetry) overwrite values; the
control core only ever polls the latest value and never blocks waiting for a
new one.

``TableBridge`` connects to a WebSocket endpoint that streams JSON updates
and writes them into a ``TableRegistry``. It runs in its own asyncio task, so
vision appliances and tuning dashboards can publish without touching the
control loop timing.

Message format (one update, or a batch under ``updates``)::

    {"table": "limelight", "key": "tl", "value": 11.0}
    {"updates": [{"table": "tunables", "key": "align_ff", "value": 0.08}, ...]}
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Sequence, Union

import websockets

from .config import (
    BRIDGE_MAX_RETRY_DELAY_SECONDS,
    BRIDGE_RETRY_DELAY_SECONDS,
    BRIDGE_TIMEOUT_SECONDS,
    TERM_BLUE,
    TERM_RESET,
)


class PubSubTable:
    """Named key → latest-value table."""

    def __init__(self, name: str):
        self.name = name
        self._values: Dict[str, Any] = {}

    def put(self, key: str, value: Any) -> None:
        self._values[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def get_number(self, key: str, default: float) -> float:
        value = self._values.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        return float(value)

    def get_array(self, key: str, default: Sequence[float] = ()) -> List[float]:
        value = self._values.get(key)
        if not isinstance(value, (list, tuple)):
            return list(default)
        try:
            return [float(v) for v in value]
        except (TypeError, ValueError):
            return list(default)

    def contains(self, key: str) -> bool:
        return key in self._values

    def keys(self) -> List[str]:
        return list(self._values)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)


class TableRegistry:
    """Owns every table by name; tables are created on first access."""

    def __init__(self) -> None:
        self._tables: Dict[str, PubSubTable] = {}

    def get_table(self, name: str) -> PubSubTable:
        table = self._tables.get(name)
        if table is None:
            table = PubSubTable(name)
            self._tables[name] = table
        return table

    def names(self) -> List[str]:
        return list(self._tables)


class TableBridge:
    """WebSocket client that mirrors remote table updates into a registry.

    Attributes:
        uri: WebSocket URI to connect to.
        registry: Registry receiving the updates.
        updates_applied: Count of key updates written.
        messages_rejected: Count of malformed messages skipped.
        should_stop: Flag indicating whether to stop the receive loop.
    """

    def __init__(self, uri: str, registry: TableRegistry) -> None:
        """Initialize the bridge.

        Args:
            uri: WebSocket URI (must start with ws:// or wss://).
            registry: Table registry to write updates into.

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri: str = uri
        self.registry = registry
        self.updates_applied: int = 0
        self.messages_rejected: int = 0
        self.should_stop: bool = False

    def apply_message(self, message: Union[str, bytes]) -> int:
        """Parse one bridge message and apply its updates.

        Args:
            message: Raw JSON message.

        Returns:
            Number of key updates applied (0 if the message was rejected).
        """
        try:
            data = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.messages_rejected += 1
            logging.warning(f"Bridge: error parsing JSON: {e}")
            return 0

        if isinstance(data, dict) and "updates" in data:
            updates = data["updates"]
        else:
            updates = [data]

        if not isinstance(updates, list):
            self.messages_rejected += 1
            logging.warning(f"Bridge: invalid updates type: expected list, got {type(updates)}")
            return 0

        applied = 0
        for update in updates:
            if self._apply_update(update):
                applied += 1
        self.updates_applied += applied
        return applied

    def _apply_update(self, update: Any) -> bool:
        if not isinstance(update, dict):
            self.messages_rejected += 1
            logging.debug(f"Bridge: skipping non-object update {update!r}")
            return False
        table = update.get("table")
        key = update.get("key")
        if not isinstance(table, str) or not isinstance(key, str) or "value" not in update:
            self.messages_rejected += 1
            logging.debug(f"Bridge: skipping incomplete update {update!r}")
            return False
        self.registry.get_table(table).put(key, update["value"])
        return True

    async def run(self) -> None:
        """Receive updates until ``stop`` is called, reconnecting with backoff."""
        retry_delay = BRIDGE_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Table bridge connected to {self.uri}{TERM_RESET}")
                    retry_delay = BRIDGE_RETRY_DELAY_SECONDS

                    while not self.should_stop:
                        try:
                            message = await asyncio.wait_for(
                                websocket.recv(), timeout=BRIDGE_TIMEOUT_SECONDS
                            )
                        except asyncio.TimeoutError:
                            continue
                        self.apply_message(message)

            except websockets.exceptions.ConnectionClosed:
                if self.should_stop:
                    break
                logging.warning("Table bridge connection closed by server")
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logging.error(f"Table bridge connection error: {e}")

            if self.should_stop:
                break
            logging.info(f"Retrying table bridge in {retry_delay} seconds...")
            await asyncio.sleep(retry_delay)
            retry_delay = min(retry_delay * 2, BRIDGE_MAX_RETRY_DELAY_SECONDS)

    def stop(self) -> None:
        self.should_stop = True
