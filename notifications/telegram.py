"""
Telegram Notifier — sends one message per execution outcome.
"""

from __future__ import annotations
import aiohttp
from typing import Optional, TYPE_CHECKING
from exchange.models import Treatment
import logging

if TYPE_CHECKING:
    from trading.execution_supervisor import ExecutionResult

logger = logging.getLogger(__name__)


def format_execution_result(result: "ExecutionResult") -> str:
    intent = result.intent
    symbol = result.asset.symbol if result.asset else intent.asset_symbol
    direction = intent.direction.value.upper()
    header = {
        Treatment.SUCCESS: f"🟢 <b>ORDER PLACED — {direction}</b>",
        Treatment.REJECTED: f"🔴 <b>ORDER FAILED — {direction}</b>",
        Treatment.AMBIGUOUS: f"⚠️ <b>OUTCOME UNKNOWN — {direction}</b>",
    }[result.treatment]

    lines = [
        header,
        "",
        f"Symbol: <code>{symbol}</code>",
        f"Size: <code>{intent.size}</code> @ {intent.leverage}x",
        f"Status: {result.outcome.status if result.outcome else 'error'}",
        f"{result.user_message}",
    ]
    if result.price_stale:
        lines.append("Note: priced from a stale mark price")
    if result.asset is not None and result.asset.ambiguous:
        lines.append("Note: asset resolution was ambiguous")
    if result.direct:
        lines.append("Mode: direct execution")
    return "\n".join(lines)


class TelegramNotifier:
    """Sends messages via Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, enabled: bool = True):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.enabled = enabled and bool(bot_token) and bool(chat_id)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def send(self, message: str, parse_mode: str = "HTML"):
        """Send a message to the configured chat. Failures are logged, never raised."""
        if not self.enabled:
            logger.debug(f"[TG] (disabled) Would send: {message[:100]}...")
            return

        try:
            session = await self._get_session()
            url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
            payload = {
                "chat_id": self.chat_id,
                "text": message,
                "parse_mode": parse_mode,
                "disable_web_page_preview": True,
            }

            async with session.post(url, json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.warning(f"[TG] Send failed ({resp.status}): {body[:200]}")
                else:
                    logger.debug(f"[TG] Sent: {message[:80]}...")

        except Exception as e:
            logger.warning(f"[TG] Error sending message: {e}")

    async def send_execution_result(self, result: "ExecutionResult"):
        await self.send(format_execution_result(result))

    async def send_status(self, status: str):
        await self.send(f"🤖 <b>EXECUTOR</b>: {status}")
