"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from imageproxy.config import Settings, get_settings
from imageproxy.models.db import get_db_session
from imageproxy.services.messages import MessagesService
from imageproxy.services.proxy_links import get_proxy_links
from imageproxy.services.url_rewriter import ReferenceRewriter

# Type alias for settings dependency
SettingsDep = Annotated[Settings, Depends(get_settings)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_rewriter(settings: SettingsDep) -> ReferenceRewriter:
    """Create a rewriter bound to the configured proxy endpoint."""
    return ReferenceRewriter(get_proxy_links(settings))


RewriterDep = Annotated[ReferenceRewriter, Depends(get_rewriter)]


def get_messages_service(session: DbSession, rewriter: RewriterDep) -> MessagesService:
    """Create a messages service for the request's database session."""
    return MessagesService(session, rewriter)


MessagesDep = Annotated[MessagesService, Depends(get_messages_service)]
