"""
Application settings loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # ── Google OAuth2 ───────────────────────────────────────────────────
    credentials_file: str = "credentials.json"   # client registration (web / installed)
    token_dir: str = "."                          # where token-{name}.json files live
    gmail_scopes: List[str] = ["https://www.googleapis.com/auth/gmail.readonly"]

    cache_clients: bool = True            # keep one OAuth client per user in memory
    refresh_skew_seconds: int = 60        # refresh access tokens this close to expiry
    http_timeout: float = 15.0

    # ── Mailbox query ───────────────────────────────────────────────────
    mail_subject_keywords: List[str] = ["入退館", "入館", "来社", "来館", "訪問"]
    mail_excluded_labels: List[str] = ["spam", "trash", "promotions", "social"]
    mail_max_results: int = 50
    mail_link_base: str = "https://mail.google.com/mail/u/0/#inbox/"

    # ── QR record placeholders ──────────────────────────────────────────
    qr_place: str = "shibuya-OOOO"
    qr_payload: str = "abcdefghijk0123456"

    # ── Server ───────────────────────────────────────────────────────────
    port: int = 5001
    host: str = "0.0.0.0"
    debug: bool = False
    cors_origins: list = ["*"]

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }

    def mail_query(self) -> str:
        """Gmail search string: excluded labels plus an OR-ed subject filter."""
        parts = [f"-label:{label}" for label in self.mail_excluded_labels]
        if self.mail_subject_keywords:
            parts.append("subject:(" + " OR ".join(self.mail_subject_keywords) + ")")
        return " ".join(parts)


config = Settings()
