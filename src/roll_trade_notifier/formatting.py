from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any

from .classifier import PLACEHOLDER, plain_number
from .types import Direction, NotificationJob, TradeStatus

AUTHOR_ICON_URL = "https://cdn-icons-png.flaticon.com/128/9260/9260717.png"
FOOTER_BRAND = "Powered by RollMaster"

DEPOSIT_COLOR = 0xF04747
WITHDRAW_COLOR = 0x43B581
EXPIRED_COLOR = 0xFF0000

_STATUS_ICONS = {
    TradeStatus.COMPLETED: "✅",
    TradeStatus.CANCELLED: "❌",
    TradeStatus.LISTED: "📰",
    TradeStatus.PROCESSING: "⏳",
    TradeStatus.JOINED: "🤝",
}


def status_icon(status: str) -> str:
    return _STATUS_ICONS.get(TradeStatus.from_raw(status), "❓")


def direction_icon(direction: Direction) -> str:
    return "🔴" if direction is Direction.DEPOSIT else "🟢"


def direction_color(direction: Direction) -> int:
    return DEPOSIT_COLOR if direction is Direction.DEPOSIT else WITHDRAW_COLOR


def format_money(value: float | str | None) -> str:
    if value is None:
        return "$N/A"
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    return f"${value:.2f}"


def format_markup(markup: float | str | None) -> str:
    if markup is None:
        return "0%"
    if markup == PLACEHOLDER:
        return PLACEHOLDER
    return f"{plain_number(markup)}%"


def format_timestamp(moment: datetime, tz: tzinfo) -> str:
    return moment.astimezone(tz).strftime("%d-%m-%Y %H:%M:%S")


def _footer(timestamp: str) -> dict[str, str]:
    return {"text": f"📅 Timestamp: {timestamp} | {FOOTER_BRAND}"}


def render_trade_card(job: NotificationJob, tz: tzinfo) -> dict[str, Any]:
    timestamp = format_timestamp(job.created_at, tz)
    stickers = "\n".join(job.sticker_lines)
    return {
        "embeds": [
            {
                "author": {
                    "name": f"{direction_icon(job.direction)} {job.direction.value} Trade Notification",
                    "icon_url": AUTHOR_ICON_URL,
                },
                "title": f"{status_icon(job.status)} Trade Status: {job.status}",
                "color": direction_color(job.direction),
                "fields": [
                    {"name": "Item", "value": job.item.market_name or "Unknown", "inline": True},
                    {"name": "Value", "value": format_money(job.item.value), "inline": False},
                    {"name": "Markup", "value": format_markup(job.item.markup_percent), "inline": False},
                    {
                        "name": "Total Sticker Value",
                        "value": format_money(job.total_sticker_value),
                        "inline": False,
                    },
                    {"name": "Balance", "value": format_money(job.balance), "inline": False},
                    {"name": "Applied Stickers", "value": stickers or "None"},
                ],
                "footer": _footer(timestamp),
            }
        ]
    }


def render_expired_alert(job: NotificationJob, tz: tzinfo) -> dict[str, Any]:
    timestamp = format_timestamp(job.created_at, tz)
    return {
        "embeds": [
            {
                "author": {
                    "name": f"{direction_icon(job.direction)} Cookie Expired!",
                    "icon_url": AUTHOR_ICON_URL,
                },
                "description": (
                    "The authentication cookie has expired and the balance "
                    "could not be retrieved."
                ),
                "color": EXPIRED_COLOR,
                "fields": [
                    {"name": "Item", "value": job.item.market_name or "Unknown", "inline": True},
                    {"name": "Trade Type", "value": job.direction.value, "inline": True},
                    {"name": "Status", "value": job.status, "inline": True},
                    {"name": "Timestamp", "value": timestamp, "inline": False},
                ],
                "footer": _footer(timestamp),
            }
        ]
    }


def render_payload(job: NotificationJob, tz: tzinfo) -> dict[str, Any]:
    if job.balance is None:
        return render_expired_alert(job, tz)
    return render_trade_card(job, tz)
