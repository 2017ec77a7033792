"""
Credential store — file-based per-user token persistence.

One JSON file per user: ``{token_dir}/token-{name}.json``.  The user name is
percent-encoded into the file name, so every identity maps to exactly one
file and no two identities share one.

Absence is a normal state (``load`` returns ``None``); unreadable or corrupt
files are errors and are never reported as absence.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import quote, unquote

from pydantic import ValidationError

from connectors.exceptions import (
    CredentialDecodeError,
    CredentialReadError,
    CredentialWriteError,
    MissingParameter,
)
from utils.schemas import AuthorizationGrant

logger = logging.getLogger(__name__)

_PREFIX = "token-"
_SUFFIX = ".json"


class CredentialStore:
    """Reads and writes one AuthorizationGrant per user identity."""

    def __init__(self, token_dir: Union[str, Path]):
        self.token_dir = Path(token_dir)

    # ── Key derivation ──────────────────────────────────────────────────

    def path_for(self, user: str) -> Path:
        if not user:
            raise MissingParameter("User name must not be empty.")
        return self.token_dir / f"{_PREFIX}{quote(user, safe='')}{_SUFFIX}"

    # ── Sync I/O ────────────────────────────────────────────────────────

    def load(self, user: str) -> Optional[AuthorizationGrant]:
        """Return the stored grant, or ``None`` if the user never authorized."""
        path = self.path_for(user)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CredentialReadError(f"Could not read token file for {user}", error=exc)

        try:
            return AuthorizationGrant.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise CredentialDecodeError(f"Token file for {user} is corrupt", error=exc)

    def save(self, user: str, grant: AuthorizationGrant) -> Path:
        """
        Write the grant atomically: temp file in the same directory, then
        ``os.replace`` over the target.  Overwrites any prior grant.
        """
        path = self.path_for(user)
        payload = json.dumps(grant.model_dump(mode="json"), indent=2)
        tmp_name = None
        try:
            self.token_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.token_dir, prefix=f".{path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CredentialWriteError(f"Could not write token file for {user}", error=exc)

        logger.info("Token stored to %s", path)
        return path

    def exists(self, user: str) -> bool:
        return self.path_for(user).exists()

    def delete(self, user: str) -> bool:
        """Remove a user's grant.  Returns True if a file was deleted."""
        path = self.path_for(user)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted token file %s", path)
        return True

    def list_users(self) -> List[str]:
        """User identities that currently have a stored grant."""
        if not self.token_dir.is_dir():
            return []
        users = []
        for f in self.token_dir.glob(f"{_PREFIX}*{_SUFFIX}"):
            users.append(unquote(f.name[len(_PREFIX):-len(_SUFFIX)]))
        return sorted(users)

    # ── Async wrappers (file I/O off the event loop) ───────────────────

    async def aload(self, user: str) -> Optional[AuthorizationGrant]:
        return await asyncio.to_thread(self.load, user)

    async def asave(self, user: str, grant: AuthorizationGrant) -> Path:
        return await asyncio.to_thread(self.save, user, grant)
