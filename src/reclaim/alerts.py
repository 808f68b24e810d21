"""Reclaimable-rent alerts.

Sends a Telegram message when the reclaimable amount crosses the configured
threshold. A cooldown prevents repeating the same alert every cycle.
"""

from __future__ import annotations

import asyncio
import time

import httpx
from loguru import logger

from src.reclaim.models import MetricsSnapshot


class ReclaimAlerter:
    """Threshold alert over the metrics snapshot, delivered via Telegram Bot API."""

    def __init__(
        self,
        *,
        threshold_sol: float = 10.0,
        cooldown_sec: int = 3600,
        telegram_bot_token: str = "",
        telegram_admin_id: int = 0,
        enabled: bool = True,
    ) -> None:
        self._threshold_sol = threshold_sol
        self._cooldown_sec = cooldown_sec
        self._telegram_token = telegram_bot_token
        self._telegram_chat_id = telegram_admin_id
        self._enabled = enabled
        self._last_alert: float | None = None
        self._http: httpx.AsyncClient | None = None
        self._total_sent: int = 0

    @property
    def total_sent(self) -> int:
        return self._total_sent

    @property
    def configured(self) -> bool:
        return bool(self._enabled and self._telegram_token and self._telegram_chat_id)

    async def check_and_alert(self, metrics: MetricsSnapshot) -> bool:
        """Send an alert if due. Returns True when a message went out."""
        if not self.configured:
            return False

        now = time.monotonic()
        if self._last_alert is not None and now - self._last_alert < self._cooldown_sec:
            remaining = int(self._cooldown_sec - (now - self._last_alert))
            logger.debug(f"[ALERT] Cooldown active ({remaining}s remaining)")
            return False

        if metrics.reclaimable_sol < self._threshold_sol:
            return False

        logger.info(
            f"[ALERT] {metrics.reclaimable_sol:.6f} SOL reclaimable "
            f"(threshold: {self._threshold_sol})"
        )
        if not await self._send_telegram(_format_message(metrics, self._threshold_sol)):
            return False

        self._last_alert = now
        self._total_sent += 1
        return True

    async def _send_telegram(self, text: str) -> bool:
        """POST sendMessage with 1 retry."""
        last_err: Exception | None = None
        for attempt in range(2):
            try:
                if not self._http:
                    self._http = httpx.AsyncClient(timeout=10)

                resp = await self._http.post(
                    f"https://api.telegram.org/bot{self._telegram_token}/sendMessage",
                    json={
                        "chat_id": self._telegram_chat_id,
                        "text": text,
                        "parse_mode": "HTML",
                        "disable_web_page_preview": True,
                    },
                )
                if resp.status_code == 200:
                    return True
                last_err = Exception(f"HTTP {resp.status_code}: {resp.text[:200]}")
            except httpx.HTTPError as e:
                last_err = e
            if attempt == 0:
                await asyncio.sleep(2)

        logger.warning(f"[ALERT] Telegram send failed after 2 attempts: {last_err}")
        return False

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None


def _format_message(metrics: MetricsSnapshot, threshold_sol: float) -> str:
    return (
        "🚨 <b>Rent reclaim alert</b>\n\n"
        f"<b>{metrics.reclaimable_sol:.6f} SOL</b> is available to reclaim "
        f"(threshold: {threshold_sol} SOL)\n\n"
        f"Accounts monitored: {metrics.accounts_monitored}\n"
        f"Total locked: {metrics.total_rent_locked_sol:.6f} SOL\n"
        f"Reclaimed so far: {metrics.total_reclaimed_sol:.6f} SOL"
    )
