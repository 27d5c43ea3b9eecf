from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class SessionState(str, Enum):
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    RECONNECTING = "RECONNECTING"
    CLOSED = "CLOSED"


class TradeStatus(str, Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    LISTED = "LISTED"
    PROCESSING = "PROCESSING"
    JOINED = "JOINED"
    OTHER = "OTHER"

    @classmethod
    def from_raw(cls, raw: str | None) -> TradeStatus:
        text = (raw or "").strip().upper()
        try:
            status = cls(text)
        except ValueError:
            return cls.OTHER
        return status


class Direction(str, Enum):
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"


@dataclass
class TrackedAccount:
    account_id: str
    balance: float | None = None


@dataclass(frozen=True)
class TradeParty:
    id: str | None
    steam_id: str | None = None
    display_name: str | None = None


@dataclass(frozen=True)
class Sticker:
    wear: float | None
    value: float | None
    name: str
    color: str | None = None


@dataclass(frozen=True)
class TradedItem:
    market_name: str
    value: float | None
    markup_percent: float | None
    stickers: tuple[Sticker, ...] = ()


@dataclass(frozen=True)
class TradeEvent:
    id: str
    status: str
    depositor: TradeParty | None
    withdrawer: TradeParty | None
    items: tuple[TradedItem, ...] = ()


@dataclass(frozen=True)
class ItemSummary:
    market_name: str
    value: float | str | None
    markup_percent: float | str | None


@dataclass(frozen=True)
class Classification:
    direction: Direction
    status: str
    item: ItemSummary
    total_sticker_value: float
    sticker_lines: tuple[str, ...]


@dataclass(frozen=True)
class AccountBalance:
    account_id: str | None
    balance: float | None


@dataclass(frozen=True)
class NotificationJob:
    direction: Direction
    status: str
    item: ItemSummary
    total_sticker_value: float
    sticker_lines: tuple[str, ...]
    balance: float | None
    destination: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
