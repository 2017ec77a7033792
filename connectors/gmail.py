"""
MailboxQueryService — Gmail search → normalized QR records.

Lists the most recent messages whose subject matches the configured
keywords (spam / trash / promotions / social excluded) and turns each into
a ``MessageRecord`` for the check-in display.

All sync ``googleapiclient`` calls are offloaded to a thread via
``asyncio.to_thread()`` so they never block the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from config.settings import Settings, config
from connectors.exceptions import PerItemFetchFailed, UpstreamQueryFailed
from utils.schemas import MessageRecord

logger = logging.getLogger(__name__)


def _build_service(credentials: Credentials) -> Any:
    return build("gmail", "v1", credentials=credentials, cache_discovery=False)


def format_date(value: Optional[str]) -> str:
    """
    RFC 2822 ``Date`` header → ``2024-05-01T09:30:00.000Z``.

    Raises ``ValueError`` for a header that cannot be parsed.
    """
    if not value:
        return "Unknown Date"
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, IndexError) as exc:
        raise ValueError(f"Unparseable Date header: {value!r}") from exc
    if dt is None:
        raise ValueError(f"Unparseable Date header: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MailboxQueryService:
    def __init__(
        self,
        settings: Settings = config,
        *,
        place: Optional[str] = None,
        qr_payload: Optional[str] = None,
        service_builder: Callable[[Credentials], Any] = _build_service,
    ):
        self.query = settings.mail_query()
        self.max_results = settings.mail_max_results
        self.link_base = settings.mail_link_base
        self.place = place if place is not None else settings.qr_place
        self.qr_payload = qr_payload if qr_payload is not None else settings.qr_payload
        self._service_builder = service_builder

    async def iter_messages(self, credentials: Credentials, user: str) -> AsyncIterator[MessageRecord]:
        """
        Yield one record per matching message.

        Raises
        ------
        UpstreamQueryFailed
            If the listing call fails.  Failures on a single message are
            logged and that message is skipped.
        """
        try:
            service = await asyncio.to_thread(self._service_builder, credentials)
            listing = await asyncio.to_thread(
                service.users()
                .messages()
                .list(userId="me", q=self.query, maxResults=self.max_results)
                .execute
            )
        except Exception as exc:
            logger.error("The API returned an error: %s", exc)
            raise UpstreamQueryFailed("Failed to fetch emails", error=exc)

        messages = listing.get("messages") or []
        if not messages:
            logger.info("No messages found for %s", user)
            return

        for meta in messages:
            try:
                yield await self._fetch_record(service, meta["id"], user)
            except PerItemFetchFailed as exc:
                logger.error("%s: %s", exc.message, exc.detail)

    async def fetch_messages(self, credentials: Credentials, user: str) -> List[MessageRecord]:
        return [record async for record in self.iter_messages(credentials, user)]

    async def _fetch_record(self, service: Any, message_id: str, user: str) -> MessageRecord:
        try:
            detail = await asyncio.to_thread(
                service.users()
                .messages()
                .get(
                    userId="me",
                    id=message_id,
                    format="metadata",
                    metadataHeaders=["Subject", "Date"],
                )
                .execute
            )
            headers: Dict[str, str] = {
                h["name"]: h["value"] for h in detail.get("payload", {}).get("headers", [])
            }
            date = format_date(headers.get("Date"))
        except Exception as exc:
            raise PerItemFetchFailed(message_id, exc)

        return MessageRecord(
            id=str(uuid.uuid4()),
            date=date,
            place=self.place,
            person=user,
            mail=f"{self.link_base}{message_id}",
            qr_data=self.qr_payload,
            subject=headers.get("Subject", "No Subject"),
        )
