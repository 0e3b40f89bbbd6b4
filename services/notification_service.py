"""Service for sending notifications to contestants."""

from __future__ import annotations

from typing import Iterable, Optional, TYPE_CHECKING

from core import get_logger
from core.constants import TelegramLimits
from database.models import Contestant, Event

if TYPE_CHECKING:
    from aiogram import Bot

logger = get_logger(__name__)


class NotificationService:
    """Telegram messages about raffle results and winners."""

    def __init__(self, bot: Bot):
        """Initialize notification service.

        Args:
            bot: Telegram bot instance
        """
        self.bot = bot

    async def _send(self, chat_id: int, message: str) -> bool:
        if len(message) > TelegramLimits.MESSAGE_MAX_LENGTH:
            message = message[:TelegramLimits.MESSAGE_MAX_LENGTH - 3] + "..."
        try:
            await self.bot.send_message(chat_id, message, parse_mode="HTML")
            return True
        except Exception as e:
            logger.error(f"Failed to send notification to {chat_id}: {e}", exc_info=True)
            return False

    async def notify_raffle_selected(self, event: Event, contestants: Iterable[Contestant]) -> int:
        """Tell selected contestants they are performing.

        Args:
            event: Event the raffle ran for
            contestants: Selected contestants

        Returns:
            Number of messages delivered
        """
        delivered = 0
        for contestant in contestants:
            if not contestant.telegram_id:
                continue
            message = (
                f"🎉 <b>You're in!</b>\n\n"
                f"{contestant.display_name}, you were selected to perform at "
                f"<b>{event.title}</b> on {event.event_date:%d.%m.%Y %H:%M} UTC.\n"
                f"Your raffle position: #{contestant.raffle_position}"
            )
            if await self._send(contestant.telegram_id, message):
                delivered += 1
        logger.info(f"Raffle notifications delivered: {delivered} (event {event.id})")
        return delivered

    async def notify_winner(self, event: Event, contestant: Contestant, prize: Optional[str] = None) -> bool:
        if not contestant.telegram_id:
            return False
        message = (
            f"🏆 <b>Congratulations, {contestant.display_name}!</b>\n\n"
            f"You won <b>{event.title}</b> with {contestant.vote_count} votes."
        )
        if prize:
            message += f"\n🎁 Prize: {prize}"
        return await self._send(contestant.telegram_id, message)


_notification_service: Optional[NotificationService] = None


def init_notification_service(bot: Bot) -> NotificationService:
    global _notification_service
    _notification_service = NotificationService(bot)
    return _notification_service
