"""
HTTP routes — OAuth start / callback and the QR message feed.

Authorization routes answer in plain text; the feed answers in JSON.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response

from api.dependencies import get_flow, get_mailbox
from connectors.exceptions import ExchangeFailed, GatewayError, MissingParameter, NotAuthorized
from connectors.flow import AuthorizationFlow
from connectors.gmail import MailboxQueryService
from utils.schemas import ErrorEnvelope, MessageRecord

logger = logging.getLogger(__name__)

router = APIRouter()


# ── OAuth ─────────────────────────────────────────────────────────────


@router.get("/authenticate/{name}", tags=["oauth"])
async def authenticate(
    name: str,
    flow: AuthorizationFlow = Depends(get_flow),
) -> Response:
    """Redirect the browser to Google's consent page for ``name``."""
    try:
        auth_url = await flow.begin_authorization(name)
    except MissingParameter as exc:
        return PlainTextResponse(exc.message, status_code=400)
    except Exception as exc:
        logger.error("Error generating auth URL for %s: %s", name, exc)
        return PlainTextResponse("Error generating auth URL.", status_code=500)
    return RedirectResponse(auth_url, status_code=302)


@router.get("/oauth2callback", tags=["oauth"])
@router.get("/callback", tags=["oauth"])
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    flow: AuthorizationFlow = Depends(get_flow),
) -> PlainTextResponse:
    """
    Google redirects here after consent with ``code`` and ``state``
    (the user name sent by /authenticate).
    """
    try:
        await flow.complete_authorization(code, state)
    except MissingParameter as exc:
        logger.error("OAuth callback rejected: %s", exc.message)
        return PlainTextResponse(exc.message, status_code=400)
    except ExchangeFailed as exc:
        return PlainTextResponse(exc.message, status_code=exc.status_code)
    except Exception as exc:
        logger.error("Error during OAuth2 callback: %s", exc)
        return PlainTextResponse("Authentication failed.", status_code=500)

    return PlainTextResponse(f"Authentication successful for {state}. Token saved.")


# ── QR feed ───────────────────────────────────────────────────────────


@router.get(
    "/qr/{name}",
    response_model=List[MessageRecord],
    responses={400: {"model": ErrorEnvelope}, 500: {"model": ErrorEnvelope}},
    tags=["qr"],
)
async def qr_feed(
    name: str,
    flow: AuthorizationFlow = Depends(get_flow),
    mailbox: MailboxQueryService = Depends(get_mailbox),
):
    """Latest check-in mails for ``name`` as QR records (possibly ``[]``)."""
    try:
        client = await flow.authorized_client(name)
        creds = client.credentials()
        records = await mailbox.fetch_messages(creds, name)
        await flow.sync_after_use(name, client, creds)
    except NotAuthorized as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    except GatewayError:
        raise
    except Exception as exc:
        logger.error("Error in /qr/%s: %s", name, exc)
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to fetch emails", "error": str(exc), "code": "internal_error"},
        )

    return records
