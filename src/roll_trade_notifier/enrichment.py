from __future__ import annotations

import logging
from typing import Any

import httpx

from .types import AccountBalance

logger = logging.getLogger(__name__)

CURRENT_USER_QUERY = """
query CurrentUser {
  currentUser {
    id
    wallets {
      name
      amount
    }
  }
}
"""

MAIN_WALLET = "MAIN"


class BalanceEnricher:
    def __init__(
        self,
        api_url: str,
        cookie: str,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = api_url
        self.cookie = cookie
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_balance(self) -> AccountBalance:
        # Never raises: an expired cookie looks the same as a network failure.
        try:
            resp = await self._client.post(
                self.api_url,
                headers={
                    "Accept": "application/json",
                    "Cookie": self.cookie,
                    "User-Agent": "Mozilla/5.0",
                },
                json={"query": CURRENT_USER_QUERY, "variables": {}},
            )
            resp.raise_for_status()
            data = resp.json()
        except Exception as exc:
            logger.warning("Current user request failed: %s", exc)
            return AccountBalance(account_id=None, balance=None)

        user = _extract_current_user(data)
        if user is None:
            logger.warning("Unexpected current user response: %s", data)
            return AccountBalance(account_id=None, balance=None)

        raw_id = user.get("id")
        account_id = str(raw_id) if raw_id else None
        return AccountBalance(account_id=account_id, balance=self._main_wallet_balance(user))

    @staticmethod
    def _main_wallet_balance(user: dict[str, Any]) -> float | None:
        wallets = user.get("wallets")
        if not isinstance(wallets, list):
            return None
        wallets = [w for w in wallets if isinstance(w, dict)]
        if not wallets:
            return None

        wallet = next((w for w in wallets if w.get("name") == MAIN_WALLET), wallets[0])
        amount = wallet.get("amount")
        if isinstance(amount, bool):
            return None
        try:
            return float(amount)
        except (TypeError, ValueError):
            return None


def _extract_current_user(data: Any) -> dict[str, Any] | None:
    if not isinstance(data, dict):
        return None
    inner = data.get("data")
    if not isinstance(inner, dict):
        return None
    user = inner.get("currentUser")
    if not isinstance(user, dict):
        return None
    return user
