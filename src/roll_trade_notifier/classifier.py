from __future__ import annotations

from collections.abc import Iterable

from .types import Classification, Direction, ItemSummary, Sticker, TradeEvent

PLACEHOLDER = "-"


def total_sticker_value(stickers: Iterable[Sticker]) -> float:
    # Only unworn stickers carry value.
    return float(sum((s.value or 0) for s in stickers if s.wear == 0))


def plain_number(value: float | str | None) -> str:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_stickers(stickers: Iterable[Sticker]) -> list[str]:
    lines: list[str] = []
    for sticker in stickers:
        label = f"{sticker.color} {sticker.name}" if sticker.color else sticker.name
        if sticker.wear != 0:
            label = f"{label} (scraped)"
        lines.append(f"{label} Value: {plain_number(sticker.value)}")
    return lines


def is_listed(status: str, listed_status: str = "LISTED") -> bool:
    return (status or "").strip().upper() == listed_status.strip().upper()


def direction_for(trade: TradeEvent, tracked_id: str) -> Direction | None:
    if trade.depositor is not None and trade.depositor.id == tracked_id:
        return Direction.DEPOSIT
    if trade.withdrawer is not None and trade.withdrawer.id == tracked_id:
        return Direction.WITHDRAW
    return None


def classify_trade(
    trade: TradeEvent,
    tracked_id: str,
    listed_status: str = "LISTED",
) -> Classification | None:
    """Classify a trade relative to the tracked account.

    Returns ``None`` for listed trades and for trades where the tracked
    account is neither the depositor nor the withdrawer.
    """
    if is_listed(trade.status, listed_status):
        return None

    direction = direction_for(trade, tracked_id)
    if direction is None:
        return None

    if trade.items:
        first = trade.items[0]
        item = ItemSummary(
            market_name=first.market_name,
            value=first.value,
            markup_percent=first.markup_percent,
        )
        stickers = first.stickers
    else:
        item = ItemSummary(market_name=PLACEHOLDER, value=PLACEHOLDER, markup_percent=PLACEHOLDER)
        stickers = ()

    return Classification(
        direction=direction,
        status=trade.status,
        item=item,
        total_sticker_value=total_sticker_value(stickers),
        sticker_lines=tuple(format_stickers(stickers)),
    )
