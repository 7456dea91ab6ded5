"""Ephemeral delivery of catalog records.

Everything sent to a user is recorded on a ``DeliveryTicket``. When the
ticket's delay elapses every message on it is deleted, a short "deleted"
notice is posted, and that notice is removed a few seconds later.
"""

import itertools
import logging
from typing import Protocol

from autofilter.clock import Clock
from autofilter.config import EngineConfig
from autofilter.errors import DeliveryError
from autofilter.models import BatchRange, ContentRecord, DeliveryReport, DeliveryTicket, MessageHandle
from autofilter.scheduler import DelayedTaskScheduler
from autofilter.storage import format_size

logger = logging.getLogger(__name__)

EXPIRED_NOTICE = "Files deleted. Search again if you missed them."


class Transport(Protocol):
    """Chat transport boundary. Implementations raise DeliveryError on failure."""

    async def send_media(self, chat_id: int, record: ContentRecord, caption: str) -> MessageHandle: ...

    async def send_text(self, chat_id: int, text: str) -> MessageHandle: ...

    async def delete_message(self, handle: MessageHandle) -> None: ...

    async def copy_message(self, chat_id: int, source: int | str, message_id: int) -> MessageHandle: ...

    async def forward_message(self, chat_id: int, source: int | str, message_id: int) -> MessageHandle: ...


def caption_for(record: ContentRecord, expires_in: float | None = None) -> str:
    lines = [record.name, f"Size: {format_size(record.size)}"]
    if expires_in:
        lines.append(f"Auto-deletes in {int(expires_in // 60)} minutes")
    return "\n".join(lines)


class DeliveryService:
    """Sends records to chats and schedules their removal.

    Deletions only happen while the scheduler is driven: the host process must
    keep ``await scheduler.run(stop)`` running alongside the transport, or call
    ``run_pending()`` itself.
    """

    def __init__(
        self,
        transport: Transport,
        scheduler: DelayedTaskScheduler,
        config: EngineConfig | None = None,
    ) -> None:
        self.transport = transport
        self.scheduler = scheduler
        self.config = config or EngineConfig()
        self.tickets: dict[int, DeliveryTicket] = {}
        self._ids = itertools.count(1)

    @property
    def clock(self) -> Clock:
        return self.scheduler.clock

    async def deliver(self, chat_id: int, records: list[ContentRecord]) -> DeliveryReport:
        """Send one or more records; failed items are skipped and counted.

        Whatever was sent before an interruption is still put on a ticket.
        """
        expires_in = self.config.auto_delete_seconds
        report = DeliveryReport()
        handles: list[MessageHandle] = []

        try:
            for record in records:
                try:
                    handle = await self.transport.send_media(chat_id, record, caption_for(record, expires_in))
                except Exception:
                    logger.warning("Could not deliver %s to chat %s", record.id, chat_id, exc_info=True)
                    report.failed += 1
                    continue
                handles.append(handle)
                report.delivered += 1
        finally:
            report.ticket = self.open_ticket(chat_id, handles, expires_in)
        return report

    async def deliver_range(self, chat_id: int, batch: BatchRange) -> DeliveryReport:
        """Copy a contiguous run of archived messages into a chat."""
        report = DeliveryReport()
        handles: list[MessageHandle] = []

        try:
            for message_id in batch.ids():
                try:
                    handle = await self.transport.copy_message(chat_id, batch.source, message_id)
                except DeliveryError:
                    logger.debug("Skipping %s/%s for chat %s", batch.source, message_id, chat_id)
                    report.failed += 1
                    continue
                except Exception:
                    logger.warning("Could not copy %s/%s to chat %s", batch.source, message_id, chat_id, exc_info=True)
                    report.failed += 1
                    continue
                handles.append(handle)
                report.delivered += 1
        finally:
            report.ticket = self.open_ticket(chat_id, handles, self.config.auto_delete_seconds)
        return report

    async def forward_promo(self, chat_id: int, source: int | str, message_id: int) -> DeliveryTicket | None:
        """Forward a single-use promotional post that expires without a notice."""
        try:
            handle = await self.transport.forward_message(chat_id, source, message_id)
        except Exception:
            logger.warning("Could not forward promo %s/%s to %s", source, message_id, chat_id, exc_info=True)
            return None
        return self.open_ticket(chat_id, [handle], self.config.promo_delete_seconds, notify=False)

    def open_ticket(
        self,
        chat_id: int,
        handles: list[MessageHandle],
        delay: float,
        notify: bool = True,
    ) -> DeliveryTicket | None:
        """Record delivered handles and arm their deletion timer."""
        if not handles:
            return None
        ticket = DeliveryTicket(
            chat_id=chat_id,
            handles=list(handles),
            created_at=self.clock.now(),
            delay=delay,
            notify=notify,
        )
        ticket_id = next(self._ids)
        self.tickets[ticket_id] = ticket

        async def expire() -> None:
            await self._expire(ticket_id)

        self.scheduler.schedule(delay, expire, name=f"ticket-{ticket_id}")
        return ticket

    async def _expire(self, ticket_id: int) -> None:
        ticket = self.tickets.pop(ticket_id, None)
        if ticket is None:
            return

        for handle in ticket.handles:
            await self._delete_quietly(handle)

        if not ticket.notify:
            return

        try:
            notice = await self.transport.send_text(ticket.chat_id, EXPIRED_NOTICE)
        except DeliveryError:
            logger.debug("Could not post expiry notice in chat %s", ticket.chat_id)
            return

        async def remove_notice() -> None:
            await self._delete_quietly(notice)

        self.scheduler.schedule(self.config.notice_delete_seconds, remove_notice, name=f"notice-{ticket_id}")

    async def _delete_quietly(self, handle: MessageHandle) -> None:
        try:
            await self.transport.delete_message(handle)
        except DeliveryError:
            # Already gone or permission revoked
            logger.debug("Could not delete message %s in chat %s", handle.message_id, handle.chat_id)
        except Exception:
            logger.warning("Delete of message %s in chat %s failed", handle.message_id, handle.chat_id, exc_info=True)
