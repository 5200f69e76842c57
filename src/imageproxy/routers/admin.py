"""Admin routes for image proxy configuration and bulk URL migration."""

import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from imageproxy.dependencies import MessagesDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/imageproxy", tags=["admin"])


class ConfigResponse(BaseModel):
    """Response body for the effective proxy configuration."""

    whitelisted_hosts: list[str]
    proxy_route: str
    proxify_new_messages: bool


class MigrationResponse(BaseModel):
    """Response body for migrating existing messages."""

    processed: int
    updated: int
    images_found: int
    failed: list[int]


class RevertResponse(BaseModel):
    """Response body for reverting proxified URLs."""

    processed: int
    reverted: int
    failed: list[int]


async def require_admin(
    settings: SettingsDep,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """
    Check the admin token header.

    Raises HTTPException 401 if no token was sent.
    Raises HTTPException 403 if the token is wrong or none is configured.
    """
    # Dev mode auth bypass (requires both flags)
    if settings.debug and settings.dev_skip_auth:
        logger.warning("Auth bypassed for admin request")
        return

    if not x_admin_token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    if not settings.admin_token or not hmac.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(status_code=403, detail="Not authorized")


AdminGuard = Depends(require_admin)


@router.get("/config", dependencies=[AdminGuard])
async def get_config(settings: SettingsDep) -> ConfigResponse:
    """Show the parsed allow-list and proxy settings."""
    return ConfigResponse(
        whitelisted_hosts=list(settings.allow_list),
        proxy_route=settings.proxy_route,
        proxify_new_messages=settings.proxify_new_messages,
    )


@router.post("/migrate", dependencies=[AdminGuard])
async def migrate_existing_tickets(
    settings: SettingsDep,
    messages: MessagesDep,
) -> MigrationResponse:
    """Rewrite images in all stored ticket messages to use the proxy."""
    stats = await messages.migrate_existing_messages(settings.allow_list)
    return MigrationResponse(**stats.as_migration())


@router.post("/revert", dependencies=[AdminGuard])
async def revert_proxified_urls(messages: MessagesDep) -> RevertResponse:
    """Restore original image URLs in all stored ticket messages."""
    stats = await messages.revert_all_messages()
    return RevertResponse(**stats.as_reversion())
