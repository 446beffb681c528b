"""
Сервис уведомлений — сохраняет уведомления в БД, публикует их в realtime-фид
пользователя (Redis pub/sub) и шлёт алерты оператору в Telegram.
"""
from __future__ import annotations

import asyncio
import inspect
import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.core.config import settings
from nova_funded.models.notification import Notification, NotificationType

if TYPE_CHECKING:
    from nova_funded.models.challenge import UserChallenge
    from nova_funded.models.payment import Payment

EventHandler = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]


# ─── Realtime фид ─────────────────────────────────────────────────────────────

class Subscription:
    """Активная подписка на фид пользователя."""

    def __init__(self, pubsub, task: asyncio.Task):
        self._pubsub = pubsub
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    async def unsubscribe(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        await self._pubsub.unsubscribe()
        await self._pubsub.aclose()


class NotificationFeed:
    """
    Контракт потребления изменений: subscribe(user_id, on_event) / unsubscribe().
    Транспорт — Redis pub/sub, канал notifications:{user_id}.
    """

    def __init__(self, redis):
        self.redis = redis

    @staticmethod
    def channel(user_id: uuid.UUID) -> str:
        return f"notifications:{user_id}"

    async def publish(self, user_id: uuid.UUID, event: dict[str, Any]) -> None:
        await self.redis.publish(self.channel(user_id), json.dumps(event, default=str))

    async def subscribe(self, user_id: uuid.UUID, on_event: EventHandler) -> Subscription:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(self.channel(user_id))
        task = asyncio.create_task(self._listen(pubsub, on_event))
        return Subscription(pubsub, task)

    async def _listen(self, pubsub, on_event: EventHandler) -> None:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                event = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning(f"Skipping malformed feed message: {message!r}")
                continue
            result = on_event(event)
            if inspect.isawaitable(result):
                await result


# ─── Сервис ───────────────────────────────────────────────────────────────────

class NotificationService:
    def __init__(self, session: AsyncSession, feed: Optional[NotificationFeed] = None):
        self.session = session
        self.feed = feed
        self._bot = None
        self._outbox: list[Notification] = []

    def _get_bot(self):
        if self._bot is None:
            from aiogram import Bot
            self._bot = Bot(token=settings.telegram_bot_token)
        return self._bot

    async def _send_telegram(self, telegram_id: int, text: str, parse_mode: str = "HTML") -> None:
        """Отправляет сообщение в Telegram."""
        if not settings.telegram_bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set, skipping operator alert")
            return
        try:
            bot = self._get_bot()
            await bot.send_message(chat_id=telegram_id, text=text, parse_mode=parse_mode)
        except Exception as e:
            logger.error(f"Failed to send Telegram alert to {telegram_id}: {e}")

    def _save_notification(
        self,
        user_id: uuid.UUID,
        notification_type: str,
        title: str,
        body: str,
    ) -> Notification:
        """
        Добавляет уведомление в текущую транзакцию.
        Коммитит вызывающий код, публикация — через flush() после коммита.
        """
        notif = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            body=body,
            is_read=False,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(notif)
        self._outbox.append(notif)
        return notif

    async def flush(self) -> None:
        """Публикует накопленные уведомления в фид. Ошибки фида не критичны."""
        outbox, self._outbox = self._outbox, []
        if self.feed is None:
            return
        for notif in outbox:
            event = {
                "id": notif.id,
                "type": notif.type,
                "title": notif.title,
                "body": notif.body,
                "created_at": notif.created_at.isoformat(),
            }
            try:
                await self.feed.publish(notif.user_id, event)
            except Exception as e:
                logger.error(f"Failed to publish notification {notif.id} for {notif.user_id}: {e}")

    def discard(self) -> None:
        self._outbox.clear()

    # ─── Конкретные уведомления ───────────────────────────────────────────────

    def payment_created(self, payment: "Payment", plan_name: str) -> Notification:
        return self._save_notification(
            payment.user_id,
            NotificationType.payment_created,
            "Payment Request Created",
            f"Send {_fmt(payment.amount)} {payment.currency} to {payment.wallet_address} "
            f"to activate {plan_name}.",
        )

    def payment_confirmed(self, payment: "Payment", amount_paid: Decimal) -> Notification:
        return self._save_notification(
            payment.user_id,
            NotificationType.payment_confirmed,
            "Payment Update",
            f"Your payment of {_fmt(amount_paid)} {payment.currency} has been confirmed! "
            f"Your challenge is now active.",
        )

    def payment_status_changed(self, payment: "Payment") -> Notification:
        return self._save_notification(
            payment.user_id,
            NotificationType.payment_status,
            "Payment Update",
            f"Payment status updated to {_status(payment.status)}",
        )

    def challenge_activated(self, challenge: "UserChallenge") -> Notification:
        return self._save_notification(
            challenge.user_id,
            NotificationType.challenge_activated,
            "Challenge Activated",
            "Your trading challenge is now active. Good luck!",
        )

    def challenge_status_changed(self, challenge: "UserChallenge") -> Notification:
        return self._save_notification(
            challenge.user_id,
            NotificationType.challenge_status,
            "Challenge Update",
            f"Your challenge status has been updated to {_status(challenge.status)}",
        )

    async def send_to_super_admin(self, message: str) -> None:
        """Отправляет алерт super_admin."""
        if not settings.super_admin_tg_id:
            return
        await self._send_telegram(settings.super_admin_tg_id, message)


def _fmt(amount: Decimal) -> str:
    return f"{Decimal(amount).normalize():f}"


def _status(value) -> str:
    return getattr(value, "value", value)
