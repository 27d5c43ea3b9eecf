import asyncio
from dataclasses import replace
from datetime import timezone

import pytest

from roll_trade_notifier.config import Settings
from roll_trade_notifier.dispatcher import DispatchStats
from roll_trade_notifier.formatting import render_payload
from roll_trade_notifier.service import RelayService
from roll_trade_notifier.types import (
    AccountBalance,
    Direction,
    Sticker,
    TrackedAccount,
    TradedItem,
    TradeEvent,
    TradeParty,
)


class DummyDispatcher:
    def __init__(self) -> None:
        self.jobs = []
        self.queue = []
        self.stats = DispatchStats()

    def enqueue(self, job) -> None:
        self.jobs.append(job)

    async def close(self) -> None:
        return None


class DummyEnricher:
    def __init__(self, balance: float | None = 1234.5, account_id: str | None = "U1") -> None:
        self.balance = balance
        self.account_id = account_id
        self.calls = 0

    async def fetch_balance(self) -> AccountBalance:
        self.calls += 1
        return AccountBalance(account_id=self.account_id, balance=self.balance)

    async def close(self) -> None:
        return None


def _settings() -> Settings:
    return Settings(
        cookie="session=abc",
        deposit_webhook_url="https://discord.example/deposit",
        withdraw_webhook_url="https://discord.example/withdraw",
        roll_ws_url="wss://example.com/graphql",
        roll_api_url="https://example.com/graphql",
        heartbeat_interval_seconds=30,
        reconnect_delay_seconds=1,
        max_reconnect_attempts=5,
        inter_message_delay_seconds=1,
        throttle_fallback_seconds=5,
        listed_status="LISTED",
        timezone=timezone.utc,
        dedup_ttl_seconds=3600,
        health_log_interval_seconds=1000,
        log_level="INFO",
    )


def _service(tracked_id: str = "U1", balance: float | None = 1234.5) -> RelayService:
    service = RelayService(_settings())
    service.dispatcher = DummyDispatcher()
    service.enricher = DummyEnricher(balance=balance)
    service.account = TrackedAccount(account_id=tracked_id)
    return service


def _trade(status: str = "COMPLETED", trade_id: str = "t1") -> TradeEvent:
    return TradeEvent(
        id=trade_id,
        status=status,
        depositor=TradeParty(id="U1"),
        withdrawer=TradeParty(id="U2"),
        items=(
            TradedItem(
                market_name="AK-47",
                value=100.0,
                markup_percent=5.0,
                stickers=(Sticker(wear=0, value=10.0, name="S1"),),
            ),
        ),
    )


def _fields(job) -> dict[str, str]:
    payload = render_payload(job, timezone.utc)
    return {f["name"]: f["value"] for f in payload["embeds"][0]["fields"]}


def test_deposit_trade_produces_one_job() -> None:
    service = _service("U1")
    asyncio.run(service._handle_trade(_trade()))

    jobs = service.dispatcher.jobs
    assert len(jobs) == 1
    job = jobs[0]
    assert job.direction is Direction.DEPOSIT
    assert job.destination == "https://discord.example/deposit"
    assert job.balance == 1234.5

    fields = _fields(job)
    assert fields["Item"] == "AK-47"
    assert fields["Value"] == "$100.00"
    assert fields["Markup"] == "5%"
    assert fields["Total Sticker Value"] == "$10.00"
    assert service.account.balance == 1234.5


def test_withdraw_trade_goes_to_withdraw_destination() -> None:
    service = _service("U2")
    asyncio.run(service._handle_trade(_trade()))
    assert service.dispatcher.jobs[0].destination == "https://discord.example/withdraw"


def test_unrelated_trade_produces_no_job() -> None:
    service = _service("U3")
    asyncio.run(service._handle_trade(_trade()))
    assert service.dispatcher.jobs == []
    assert service.enricher.calls == 0
    assert service.metrics.trades_discarded == 1


def test_listed_trade_produces_no_job() -> None:
    service = _service("U1")
    asyncio.run(service._handle_trade(_trade(status="LISTED")))
    assert service.dispatcher.jobs == []


def test_null_balance_still_enqueues_job() -> None:
    service = _service("U1", balance=None)
    asyncio.run(service._handle_trade(_trade()))
    assert len(service.dispatcher.jobs) == 1
    assert service.dispatcher.jobs[0].balance is None
    assert service.account.balance is None


def test_repeated_status_is_notified_once() -> None:
    service = _service("U1")

    async def scenario() -> None:
        await service._handle_trade(_trade(status="PROCESSING"))
        await service._handle_trade(_trade(status="PROCESSING"))
        await service._handle_trade(_trade(status="COMPLETED"))

    asyncio.run(scenario())
    assert [job.status for job in service.dispatcher.jobs] == ["PROCESSING", "COMPLETED"]
    assert service.metrics.trades_duplicated == 1


def test_resolve_account_requires_account_id() -> None:
    service = RelayService(_settings())
    service.enricher = DummyEnricher(account_id=None, balance=None)
    assert asyncio.run(service.resolve_account()) is None

    service.enricher = DummyEnricher(account_id="U9", balance=3.0)
    account = asyncio.run(service.resolve_account())
    assert account is not None
    assert account.account_id == "U9"
    assert account.balance == 3.0


def test_run_keeps_retrying_when_account_cannot_be_resolved() -> None:
    service = RelayService(replace(_settings(), health_log_interval_seconds=0.05))
    service.enricher = DummyEnricher(account_id=None, balance=None)
    service.dispatcher = DummyDispatcher()

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(asyncio.wait_for(service.run(), 0.3))
    assert service.enricher.calls > 1
    assert service.client.connect_attempts == 0


class DummyClient:
    def __init__(self) -> None:
        self.feed_down = False
        self.frames = 0
        self.reconnects = 0
        self.heartbeat_timeouts = 0
        self.runs = 0

    async def run(self) -> None:
        self.runs += 1
        self.feed_down = True


def test_run_stays_alive_after_feed_goes_down() -> None:
    service = RelayService(_settings())
    service.enricher = DummyEnricher()
    service.dispatcher = DummyDispatcher()
    service.client = DummyClient()

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(asyncio.wait_for(service.run(), 0.2))
    assert service.client.runs == 1
    assert service.client.feed_down is True
    assert service.account is not None
