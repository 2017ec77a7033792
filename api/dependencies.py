"""
FastAPI dependencies (shared across routes).

The connector objects are built once at startup and live on ``app.state``;
tests swap them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Request

from connectors.flow import AuthorizationFlow
from connectors.gmail import MailboxQueryService


async def get_flow(request: Request) -> AuthorizationFlow:
    return request.app.state.flow


async def get_mailbox(request: Request) -> MailboxQueryService:
    return request.app.state.mailbox
