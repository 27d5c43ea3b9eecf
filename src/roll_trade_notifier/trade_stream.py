from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import websockets

from .types import SessionState, Sticker, TradedItem, TradeEvent, TradeParty

logger = logging.getLogger(__name__)

GRAPHQL_WS_PROTOCOL = "graphql-transport-ws"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/114.0.0.0 Safari/537.36"
)

_TRADE_FIELDS = """
      trade {
        id
        status
        depositor { id steamId displayName }
        withdrawer { id steamId displayName }
        tradeItems {
          marketName
          value
          markupPercent
          stickers { wear value name color }
        }
      }
"""

SUBSCRIPTIONS = {
    "createTrade": f"subscription OnCreateTrade {{\n  createTrade {{{_TRADE_FIELDS}  }}\n}}",
    "updateTrade": f"subscription OnUpdateTrade {{\n  updateTrade {{{_TRADE_FIELDS}  }}\n}}",
}

TradeHandler = Callable[[TradeEvent], Awaitable[None]]


class Session:
    """One websocket connection and its heartbeat bookkeeping."""

    def __init__(self) -> None:
        self.state = SessionState.CONNECTING
        self.pong_pending = False
        self._ws: Any = None

    def attach(self, ws: Any) -> None:
        self._ws = ws
        self.pong_pending = False
        self.state = SessionState.OPEN

    async def send_json(self, message: dict[str, Any]) -> None:
        await self._ws.send(json.dumps(message))

    async def ping(self) -> None:
        waiter = await self._ws.ping()
        self.pong_pending = True
        waiter.add_done_callback(self._on_pong)

    def _on_pong(self, waiter: asyncio.Future[Any]) -> None:
        if waiter.cancelled() or waiter.exception() is not None:
            return
        self.pong_pending = False

    def terminate(self) -> None:
        # Half-open sockets never finish a closing handshake, so drop the
        # transport instead of calling close().
        self._ws.transport.abort()


class SubscriptionClient:
    def __init__(
        self,
        ws_url: str,
        cookie: str,
        on_trade: TradeHandler,
        heartbeat_interval: float = 30.0,
        reconnect_delay: float = 1.0,
        max_reconnect_attempts: int = 5,
        connector: Callable[..., Any] = websockets.connect,
    ) -> None:
        self.ws_url = ws_url
        self.cookie = cookie
        self.on_trade = on_trade
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self._connector = connector

        self.session: Session | None = None
        self.failures = 0
        self.connect_attempts = 0
        self.reconnects = 0
        self.heartbeat_timeouts = 0
        self.frames = 0
        self.feed_down = False

    async def run(self) -> None:
        """Keep a subscribed session alive until the reconnect bound is hit."""
        while True:
            session = Session()
            self.session = session
            try:
                await self._run_session(session)
                logger.warning("Websocket closed. Attempting to reconnect...")
            except asyncio.CancelledError:
                session.state = SessionState.CLOSED
                raise
            except Exception as exc:
                logger.warning("Websocket error: %s", exc)

            self.failures += 1
            if self.failures >= self.max_reconnect_attempts:
                session.state = SessionState.CLOSED
                self.feed_down = True
                logger.error(
                    "Trade feed permanently down after %d consecutive failed connections",
                    self.failures,
                )
                return

            session.state = SessionState.RECONNECTING
            self.reconnects += 1
            logger.info(
                "Reconnecting in %.1fs (failure %d/%d)",
                self.reconnect_delay,
                self.failures,
                self.max_reconnect_attempts,
            )
            await asyncio.sleep(self.reconnect_delay)

    async def _run_session(self, session: Session) -> None:
        self.connect_attempts += 1
        async with self._connector(
            self.ws_url,
            subprotocols=[GRAPHQL_WS_PROTOCOL],
            additional_headers={"Cookie": self.cookie},
            user_agent_header=USER_AGENT,
            ping_interval=None,
        ) as ws:
            session.attach(ws)
            self.failures = 0
            logger.info("Websocket opened %s", self.ws_url)
            await self._subscribe(session)

            heartbeat = asyncio.create_task(self._heartbeat(session))
            try:
                async for raw in ws:
                    self.frames += 1
                    trade = await self.handle_frame(session, raw)
                    if trade is None:
                        continue
                    try:
                        await self.on_trade(trade)
                    except Exception:
                        logger.exception("Failed to handle trade %s", trade.id)
            finally:
                heartbeat.cancel()
                await asyncio.gather(heartbeat, return_exceptions=True)

    async def _subscribe(self, session: Session) -> None:
        await session.send_json({"type": "connection_init"})
        for query in SUBSCRIPTIONS.values():
            await session.send_json(
                {"id": str(uuid.uuid4()), "type": "subscribe", "payload": {"query": query}}
            )

    async def _heartbeat(self, session: Session) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if session.pong_pending:
                self.heartbeat_timeouts += 1
                logger.warning(
                    "No pong within %.1fs, terminating websocket", self.heartbeat_interval
                )
                session.terminate()
                return
            if session.state is SessionState.OPEN:
                try:
                    await session.ping()
                except Exception as exc:
                    logger.warning("Ping failed: %s", exc)
                    return

    async def handle_frame(self, session: Session, raw: str | bytes) -> TradeEvent | None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping unparsable frame: %.200r", raw)
            return None
        if not isinstance(message, dict):
            logger.warning("Dropping non-object frame: %.200r", raw)
            return None

        kind = message.get("type")
        if kind == "connection_ack":
            logger.debug("Subscription connection acknowledged")
            return None
        if kind == "ping":
            await session.send_json({"type": "pong"})
            return None
        if kind == "pong":
            return None
        if kind in ("error", "complete"):
            logger.warning("Subscription %s frame: %.500s", kind, message)
            return None

        record = extract_trade_record(message)
        if record is None:
            logger.warning("Frame without trade data: %.200r", raw)
            return None

        trade = parse_trade_record(record)
        if trade is None:
            logger.warning("Malformed trade record: %.500s", record)
        return trade


def extract_trade_record(message: dict[str, Any]) -> dict[str, Any] | None:
    payload = message.get("payload")
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None

    for name in SUBSCRIPTIONS:
        node = data.get(name)
        if isinstance(node, dict) and isinstance(node.get("trade"), dict):
            return node["trade"]
    return None


def parse_trade_record(record: dict[str, Any]) -> TradeEvent | None:
    trade_id = _string_or_none(record.get("id"))
    status = _string_or_none(record.get("status"))
    if trade_id is None or status is None:
        return None

    raw_items = record.get("tradeItems") or []
    if not isinstance(raw_items, list):
        return None

    items: list[TradedItem] = []
    for raw_item in raw_items:
        if not isinstance(raw_item, dict):
            continue
        raw_stickers = raw_item.get("stickers") or []
        stickers = tuple(
            Sticker(
                wear=_float_or_none(s.get("wear")),
                value=_float_or_none(s.get("value")),
                name=str(s.get("name") or "Unknown"),
                color=_string_or_none(s.get("color")),
            )
            for s in (raw_stickers if isinstance(raw_stickers, list) else [])
            if isinstance(s, dict)
        )
        items.append(
            TradedItem(
                market_name=str(raw_item.get("marketName") or "Unknown"),
                value=_float_or_none(raw_item.get("value")),
                markup_percent=_float_or_none(raw_item.get("markupPercent")),
                stickers=stickers,
            )
        )

    return TradeEvent(
        id=trade_id,
        status=status,
        depositor=_parse_party(record.get("depositor")),
        withdrawer=_parse_party(record.get("withdrawer")),
        items=tuple(items),
    )


def _parse_party(raw: Any) -> TradeParty | None:
    if not isinstance(raw, dict):
        return None
    return TradeParty(
        id=_string_or_none(raw.get("id")),
        steam_id=_string_or_none(raw.get("steamId")),
        display_name=_string_or_none(raw.get("displayName")),
    )


def _float_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _string_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
