from __future__ import annotations

import logging
import os

import requests

logger = logging.getLogger(__name__)


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SupabaseAuth:
    """Resolves the caller's user id from a Supabase access token."""

    def __init__(
        self,
        *,
        url: str | None = None,
        anon_key: str | None = None,
        timeout: int = 10,
    ) -> None:
        self.url = (url or os.getenv("SUPABASE_URL") or "").rstrip("/")
        self.anon_key = anon_key or os.getenv("SUPABASE_ANON_KEY") or ""
        self.timeout = timeout

    def get_user_id(self, access_token: str | None) -> str | None:
        if not access_token or not self.url:
            return None
        try:
            response = requests.get(
                f"{self.url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "apikey": self.anon_key,
                },
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.warning("auth.lookup.failed", exc_info=True)
            return None
        if response.status_code != 200:
            logger.info("auth.lookup.rejected status=%s", response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("auth.lookup.invalid_body status=%s", response.status_code)
            return None
        user_id = data.get("id") if isinstance(data, dict) else None
        return user_id if isinstance(user_id, str) and user_id else None
