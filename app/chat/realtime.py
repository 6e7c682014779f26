import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from supabase import AsyncClient


logger = logging.getLogger(__name__)

ChangeCallback = Callable[[dict], None]


class LiveUpdateBridge:
    """
    Realtime subscriptions for mounted views.

    A conversation view listens for new messages in that one conversation; a
    conversation-list view listens for every change on `messages` and
    `conversations`. Each subscription is removed when its view goes away.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    async def subscribe_conversation(self, conversation_id: str, on_change: ChangeCallback):
        channel = self.client.channel(f"messages:{conversation_id}")
        channel.on_postgres_changes(
            event="INSERT",
            callback=on_change,
            table="messages",
            schema="public",
            filter=f"conversation_id=eq.{conversation_id}",
        )
        await channel.subscribe()

        logger.info(f"realtime_subscribed channel=messages:{conversation_id}")
        return channel

    async def subscribe_conversation_list(self, user_id: str, on_change: ChangeCallback):
        channel = self.client.channel(f"user-messages:{user_id}")
        channel.on_postgres_changes(
            event="*", callback=on_change, table="messages", schema="public"
        )
        channel.on_postgres_changes(
            event="*", callback=on_change, table="conversations", schema="public"
        )
        await channel.subscribe()

        logger.info(f"realtime_subscribed channel=user-messages:{user_id}")
        return channel

    async def unsubscribe(self, channel) -> None:
        await self.client.remove_channel(channel)
        logger.info(f"realtime_unsubscribed channel={getattr(channel, 'topic', channel)}")


class LiveView:
    """
    Re-runs `refresh` whenever it is notified of a change or every
    `refetch_interval` seconds, whichever comes first.

    The timer covers notifications the push channel silently drops.
    `refresh` receives the reason it ran: "initial", "change" or "poll".
    """

    def __init__(
        self,
        name: str,
        refresh: Callable[[str], Awaitable[Any]],
        refetch_interval: float,
    ):
        self.name = name
        self.refresh = refresh
        self.refetch_interval = refetch_interval
        self._changed = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def notify(self, payload: Optional[dict] = None) -> None:
        """Change callback; safe to call from any thread."""
        if self._loop is None:
            return
        logger.debug(f"live_view_notified view={self.name} payload={payload}")
        self._loop.call_soon_threadsafe(self._changed.set)

    def bind(self) -> None:
        self._loop = asyncio.get_running_loop()

    async def wait_for_trigger(self) -> str:
        try:
            await asyncio.wait_for(self._changed.wait(), timeout=self.refetch_interval)
        except asyncio.TimeoutError:
            return "poll"
        finally:
            self._changed.clear()
        return "change"

    async def run(self) -> None:
        self.bind()
        reason = "initial"

        while True:
            await self.refresh(reason)
            reason = await self.wait_for_trigger()
