"""Ticket message storage with image proxy rewriting."""

import logging
from typing import cast

from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from imageproxy.models.db import TicketMessage
from imageproxy.models.rewrite import RewriteStats
from imageproxy.services.url_rewriter import AllowListLike, ReferenceRewriter

logger = logging.getLogger(__name__)


class MessagesService:
    """Service for storing ticket messages and migrating their image URLs."""

    def __init__(self, session: AsyncSession, rewriter: ReferenceRewriter) -> None:
        self.session = session
        self.rewriter = rewriter

    async def create(
        self,
        ticket_id: int,
        author: str,
        content: str,
        allow_list: AllowListLike = None,
        proxify: bool = False,
    ) -> TicketMessage:
        """
        Store a new message on a ticket.

        Args:
            ticket_id: Ticket the message belongs to
            author: Who wrote the message
            content: Markdown/HTML body
            allow_list: Hosts exempt from proxying
            proxify: Rewrite image URLs through the proxy before storing
        """
        if proxify:
            result = self.rewriter.proxify(content, allow_list)
            if result.changed:
                logger.debug("Proxified %d images in new message on ticket %s", result.images_rewritten, ticket_id)
            content = result.text

        message = TicketMessage(ticket_id=ticket_id, author=author, content=content)
        self.session.add(message)
        await self.session.flush()
        await self.session.refresh(message)
        return message

    async def get_by_id(self, message_id: int) -> TicketMessage | None:
        """Get a message by ID."""
        result = await self.session.execute(select(TicketMessage).where(TicketMessage.id == message_id))
        return result.scalar_one_or_none()

    async def get_for_ticket(self, ticket_id: int) -> list[TicketMessage]:
        """Get all messages on a ticket, oldest first."""
        result = await self.session.execute(
            select(TicketMessage).where(TicketMessage.ticket_id == ticket_id).order_by(TicketMessage.id)
        )
        return list(result.scalars().all())

    async def get_all(self, limit: int = 100) -> list[TicketMessage]:
        """Get all messages, most recent first."""
        result = await self.session.execute(select(TicketMessage).order_by(TicketMessage.id.desc()).limit(limit))
        return list(result.scalars().all())

    async def update_content(self, message_id: int, content: str) -> TicketMessage | None:
        """Replace a message body."""
        message = await self.get_by_id(message_id)
        if message is None:
            return None

        message.content = content
        await self.session.flush()
        await self.session.refresh(message)
        return message

    async def migrate_existing_messages(self, allow_list: AllowListLike) -> RewriteStats:
        """
        Proxify image URLs in every stored message.

        Safe to run repeatedly: already proxied images are left alone. A message
        edited while the batch runs keeps the edit and is not counted.
        """
        contents = await self._load_contents()
        changes: dict[int, str] = {}
        stats = self.rewriter.rewrite_all(contents, allow_list, changes.__setitem__)
        await self._store_changes(changes, dict(contents), stats, reverting=False)
        return stats

    async def revert_all_messages(self) -> RewriteStats:
        """Restore the original image URLs in every stored message."""
        contents = await self._load_contents()
        changes: dict[int, str] = {}
        stats = self.rewriter.revert_all(contents, changes.__setitem__)
        await self._store_changes(changes, dict(contents), stats, reverting=True)
        return stats

    async def _load_contents(self) -> list[tuple[int, str]]:
        result = await self.session.execute(
            select(TicketMessage.id, TicketMessage.content).order_by(TicketMessage.id)
        )
        return [(row.id, row.content) for row in result.all()]

    async def _store_message(self, message_id: int, content: str, expected: str) -> bool:
        """Write new content only if the stored content is still ``expected``."""
        result = await self.session.execute(
            update(TicketMessage)
            .where(TicketMessage.id == message_id, TicketMessage.content == expected)
            .values(content=content)
        )
        return cast(CursorResult, result).rowcount == 1

    async def _store_changes(
        self,
        changes: dict[int, str],
        originals: dict[int, str],
        stats: RewriteStats,
        reverting: bool,
    ) -> None:
        for message_id, content in changes.items():
            try:
                async with self.session.begin_nested():
                    stored = await self._store_message(message_id, content, originals[message_id])
            except SQLAlchemyError:
                logger.exception("Failed to store message %s", message_id)
                stats.failed.append(message_id)
                stored = False
            else:
                if not stored:
                    logger.warning("Message %s changed during the batch, skipping", message_id)

            if stored:
                continue
            if reverting:
                stats.reverted -= 1
            else:
                stats.updated -= 1
