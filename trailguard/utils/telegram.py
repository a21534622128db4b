"""Telegram notifications for paper trading. Never log token or chat_id."""

from __future__ import annotations
import logging

import requests

from trailguard.core.types import Position, Trade

logger = logging.getLogger("trailguard.utils.telegram")

API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def send_telegram(text: str, bot_token: str = "", chat_id: str = "") -> bool:
    """Send message to Telegram. Returns True on success; False when unconfigured or failed."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    try:
        r = requests.post(API_URL.format(token=bot_token), json={"chat_id": chat_id, "text": text}, timeout=10)
    except requests.exceptions.RequestException as e:
        logger.warning("Telegram error: %s", type(e).__name__)
        return False
    if r.status_code != 200:
        logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
        return False
    return True


class TelegramNotifier:
    """Formats paper-trading events. A notifier without credentials is a no-op."""

    def __init__(self, bot_token: str = "", chat_id: str = "", symbol: str = ""):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.symbol = symbol

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send(self, text: str) -> bool:
        return send_telegram(text, self.bot_token, self.chat_id)

    def entry(self, position: Position) -> bool:
        return self.send(
            f"ENTRY {position.direction.value.upper()} {self.symbol} @ {position.entry_price:.4f} "
            f"| stop {position.stop_price:.4f} | liq {position.liquidation_price:.4f} "
            f"| {position.regime_at_entry.value}"
        )

    def exit(self, trade: Trade) -> bool:
        return self.send(
            f"EXIT {trade.direction.value.upper()} {self.symbol} @ {trade.exit_price:.4f} "
            f"| {trade.exit_reason.value} | PnL {trade.pnl:+.2f} ({trade.return_pct:+.2%}) "
            f"| max {trade.max_profit_atr:.2f} ATR"
        )
