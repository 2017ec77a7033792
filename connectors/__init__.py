"""
connectors — per-user Google OAuth2 and the Gmail QR feed.

Provides:
  • Client registration loading (credentials.json)
  • File-based per-user token storage (token-{name}.json)
  • Per-user OAuth client factory with keyed cache & locks
  • Authorization flow: consent URL, code exchange, refresh
  • Gmail query → normalized QR message records
"""
