"""Ticket message routes."""

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from imageproxy.dependencies import MessagesDep, SettingsDep
from imageproxy.models.db import TicketMessage

router = APIRouter(prefix="/tickets", tags=["tickets"])


class MessageCreate(BaseModel):
    """Request body for posting a message."""

    author: str
    content: str


class MessageResponse(BaseModel):
    """Response body for a message."""

    id: int
    ticket_id: int
    author: str
    content: str
    created_at: datetime

    @classmethod
    def from_message(cls, message: TicketMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            ticket_id=message.ticket_id,
            author=message.author,
            content=message.content,
            created_at=message.created_at,
        )


@router.post("/{ticket_id}/messages", status_code=201)
async def post_message(
    ticket_id: int,
    message_data: MessageCreate,
    settings: SettingsDep,
    messages: MessagesDep,
) -> MessageResponse:
    """Post a message, routing its images through the proxy if enabled."""
    message = await messages.create(
        ticket_id=ticket_id,
        author=message_data.author,
        content=message_data.content,
        allow_list=settings.allow_list,
        proxify=settings.proxify_new_messages,
    )
    return MessageResponse.from_message(message)


@router.get("/{ticket_id}/messages")
async def list_messages(ticket_id: int, messages: MessagesDep) -> list[MessageResponse]:
    """List messages on a ticket."""
    return [MessageResponse.from_message(m) for m in await messages.get_for_ticket(ticket_id)]
