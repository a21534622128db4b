"""Utils: Telegram, timeframe tables."""

from trailguard.utils.telegram import TelegramNotifier, send_telegram
from trailguard.utils.timeframes import TimeframeParams, timeframe_minutes, timeframe_params

__all__ = ["TelegramNotifier", "send_telegram", "TimeframeParams", "timeframe_minutes", "timeframe_params"]
