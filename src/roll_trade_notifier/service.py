from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .classifier import classify_trade
from .config import Settings
from .dedupe import TradeDeduper, dedupe_key
from .dispatcher import NotificationDispatcher
from .enrichment import BalanceEnricher
from .trade_stream import SubscriptionClient
from .types import Classification, Direction, NotificationJob, TrackedAccount, TradeEvent

logger = logging.getLogger(__name__)


@dataclass
class Metrics:
    trades_seen: int = 0
    trades_discarded: int = 0
    trades_duplicated: int = 0
    jobs_enqueued: int = 0


def build_job(
    classification: Classification, balance: float | None, destination: str
) -> NotificationJob:
    return NotificationJob(
        direction=classification.direction,
        status=classification.status,
        item=classification.item,
        total_sticker_value=classification.total_sticker_value,
        sticker_lines=classification.sticker_lines,
        balance=balance,
        destination=destination,
    )


class RelayService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.metrics = Metrics()
        self.account: TrackedAccount | None = None
        self.deduper = TradeDeduper(settings.dedup_ttl_seconds)
        self.enricher = BalanceEnricher(settings.roll_api_url, settings.cookie)
        self.dispatcher = NotificationDispatcher(
            inter_message_delay=settings.inter_message_delay_seconds,
            throttle_fallback=settings.throttle_fallback_seconds,
            tz=settings.timezone,
        )
        self.client = SubscriptionClient(
            ws_url=settings.roll_ws_url,
            cookie=settings.cookie,
            on_trade=self._handle_trade,
            heartbeat_interval=settings.heartbeat_interval_seconds,
            reconnect_delay=settings.reconnect_delay_seconds,
            max_reconnect_attempts=settings.max_reconnect_attempts,
        )

    async def run(self) -> None:
        health_task = asyncio.create_task(self._health_loop())
        try:
            while await self.resolve_account() is None:
                logger.error(
                    "Failed to fetch tracked account id; check COOKIE. Retrying in %ss",
                    self.settings.health_log_interval_seconds,
                )
                await asyncio.sleep(self.settings.health_log_interval_seconds)
            await self.client.run()
            # Feed is gone for good, but the process stays up.
            logger.error("Trade feed is down; no further notifications will be relayed")
            await health_task
        finally:
            health_task.cancel()
            await asyncio.gather(health_task, return_exceptions=True)
            await self.dispatcher.close()
            await self.enricher.close()

    async def resolve_account(self) -> TrackedAccount | None:
        result = await self.enricher.fetch_balance()
        if not result.account_id:
            return None
        self.account = TrackedAccount(account_id=result.account_id, balance=result.balance)
        logger.info("Tracking account %s (balance=%s)", result.account_id, result.balance)
        return self.account

    def destination_for(self, direction: Direction) -> str:
        if direction is Direction.DEPOSIT:
            return self.settings.deposit_webhook_url
        return self.settings.withdraw_webhook_url

    async def _handle_trade(self, trade: TradeEvent) -> None:
        self.metrics.trades_seen += 1
        if self.account is None:
            return

        classification = classify_trade(
            trade, self.account.account_id, self.settings.listed_status
        )
        if classification is None:
            self.metrics.trades_discarded += 1
            return

        if not self.deduper.is_new(dedupe_key(trade)):
            self.metrics.trades_duplicated += 1
            return

        snapshot = await self.enricher.fetch_balance()
        self.account.balance = snapshot.balance

        job = build_job(
            classification, snapshot.balance, self.destination_for(classification.direction)
        )
        logger.info(
            "[%s] Status: %s, Item: %s, Value: %s, Markup: %s%%, Total Sticker Value: %.2f, Balance: %s",
            classification.direction.value,
            classification.status,
            classification.item.market_name,
            classification.item.value,
            classification.item.markup_percent,
            classification.total_sticker_value,
            snapshot.balance,
        )
        self.dispatcher.enqueue(job)
        self.metrics.jobs_enqueued += 1

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.health_log_interval_seconds)
            stats = self.dispatcher.stats
            logger.info(
                (
                    "health feed_down=%s frames=%d reconnects=%d heartbeat_timeouts=%d "
                    "trades_seen=%d discarded=%d duplicated=%d enqueued=%d queued=%d "
                    "sent=%d dropped=%d throttled=%d"
                ),
                self.client.feed_down,
                self.client.frames,
                self.client.reconnects,
                self.client.heartbeat_timeouts,
                self.metrics.trades_seen,
                self.metrics.trades_discarded,
                self.metrics.trades_duplicated,
                self.metrics.jobs_enqueued,
                len(self.dispatcher.queue),
                stats.sent,
                stats.dropped,
                stats.throttled,
            )
