"""
Client registration loader.

Reads the application's Google OAuth client identity from
``credentials.json`` (the file downloaded from the Google Cloud console).
Called once at startup; any failure is fatal.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from connectors.exceptions import ConfigMissing
from utils.schemas import ClientRegistration

logger = logging.getLogger(__name__)


def load_client_registration(path: Union[str, Path]) -> ClientRegistration:
    """
    Load and validate the client registration.

    Raises
    ------
    ConfigMissing
        If the file is missing, unreadable, not JSON, or lacks
        client_id / client_secret / redirect_uris.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        registration = ClientRegistration.from_client_config(data)
    except FileNotFoundError as exc:
        raise ConfigMissing(f"Client credentials file not found: {path}", error=exc)
    except (OSError, json.JSONDecodeError, ValidationError, ValueError) as exc:
        raise ConfigMissing(f"Client credentials file is invalid: {path}", error=exc)

    logger.info("Credentials loaded successfully from %s", path)
    return registration
