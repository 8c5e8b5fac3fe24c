"""
Download tokens for finished exports.

A token is an unguessable handle to an export payload held in object
storage. It is bound to the audit record of the export and expires at a
time fixed when it is issued.
"""

import secrets
import threading
from datetime import timedelta
from typing import Callable

from secure_batch.core.clock import Clock, SystemClock
from secure_batch.core.errors import DownloadNotFound
from secure_batch.core.models import DownloadToken
from secure_batch.observability.logger import get_logger
from secure_batch.storage.interfaces import ObjectStorage
from secure_batch.storage.memory import InMemoryObjectStorage

logger = get_logger(__name__)

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


class SecureArtifactIssuer:
    """
    Stores export payloads and hands out download tokens for them.

    Args:
        storage: Where payloads are kept
        ttl: Token lifetime
        token_factory: Secure random source for token values
        clock: Decides issuance and expiry times
    """

    def __init__(
        self,
        storage: ObjectStorage | None = None,
        ttl: timedelta = timedelta(hours=24),
        token_factory: Callable[[], str] = generate_token,
        clock: Clock | None = None,
    ):
        self.storage = storage if storage is not None else InMemoryObjectStorage()
        self.ttl = ttl
        self.token_factory = token_factory
        self.clock = clock or SystemClock()
        self._tokens: dict[str, tuple[DownloadToken, str]] = {}
        self._lock = threading.Lock()

    def issue(self, payload: bytes, audit_id: str) -> DownloadToken:
        """
        Store the payload and mint a token bound to `audit_id`.

        Raises:
            RuntimeError: If the token factory produced a value already in use
        """
        handle = self.storage.store(payload)
        token = DownloadToken(
            token=self.token_factory(),
            audit_id=audit_id,
            expires_at=self.clock.now() + self.ttl,
        )

        with self._lock:
            if token.token in self._tokens:
                self.storage.delete(handle)
                raise RuntimeError("Token factory returned a token that is already issued")
            self._tokens[token.token] = (token, handle)

        logger.info(
            "Download token issued",
            extra={"audit_id": audit_id, "expires_at": token.expires_at.isoformat(), "size": len(payload)}
        )
        return token

    def revoke(self, token: str) -> None:
        """Forget a token and delete its payload (used when the export cannot be audited)."""
        with self._lock:
            entry = self._tokens.pop(token, None)
        if entry is not None:
            self.storage.delete(entry[1])

    def resolve(self, token: str) -> bytes:
        """
        Return the payload for a live token.

        Raises:
            DownloadNotFound: Unknown and expired tokens alike
        """
        with self._lock:
            entry = self._tokens.get(token)

        if entry is None:
            logger.warning("Download attempted with unknown token")
            raise DownloadNotFound()

        download_token, handle = entry
        if download_token.is_expired(self.clock.now()):
            logger.warning("Download attempted with expired token", extra={"audit_id": download_token.audit_id})
            raise DownloadNotFound()

        return self.storage.load(handle)

    def purge_expired(self) -> int:
        """Drop expired tokens and their payloads; returns how many were removed."""
        now = self.clock.now()
        with self._lock:
            expired = [t for t, (dt, _) in self._tokens.items() if dt.is_expired(now)]
            entries = [self._tokens.pop(t) for t in expired]
        for _, handle in entries:
            self.storage.delete(handle)
        if entries:
            logger.info("Purged expired download tokens", extra={"count": len(entries)})
        return len(entries)
