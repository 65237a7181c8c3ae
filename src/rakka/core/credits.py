"""Per-user token accounting, encrypted personal API keys and feature flags."""

from __future__ import annotations

import base64
import json
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from rakka.core.locks import RWLock
from rakka.errors import APIKeyNotFoundError, CreditStoreError, DecryptionFailedError
from rakka.log import get_logger

logger = get_logger(__name__)

NONCE_SIZE = 12
_KDF_INFO = b"rakka credit store v1"


def derive_master_key(secret: str) -> bytes:
    """Derive the 32-byte cipher key from the configured master secret."""
    if not secret:
        raise ValueError("credits master key must not be empty")
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=_KDF_INFO)
    return hkdf.derive(secret.encode("utf-8"))


@dataclass
class UserCredit:
    user_id: str
    token_count: int = 0
    api_key: Optional[bytes] = None  # ciphertext
    nonce: Optional[bytes] = None
    search_enabled: bool = False

    @property
    def has_own_key(self) -> bool:
        return self.api_key is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "token_count": self.token_count,
            "api_key": base64.b64encode(self.api_key).decode() if self.api_key is not None else None,
            "nonce": base64.b64encode(self.nonce).decode() if self.nonce is not None else None,
            "search_enabled": self.search_enabled,
        }

    @classmethod
    def from_dict(cls, user_id: str, data: dict[str, Any]) -> UserCredit:
        api_key = data.get("api_key")
        nonce = data.get("nonce")
        return cls(
            user_id=data.get("user_id") or user_id,
            token_count=int(data.get("token_count", 0)),
            api_key=base64.b64decode(api_key) if api_key else None,
            nonce=base64.b64decode(nonce) if nonce else None,
            search_enabled=bool(data.get("search_enabled", False)),
        )


class CreditStore:
    """In-memory credit map with snapshot persistence to a single JSON file.

    Key and flag changes are written immediately. Usage counters only mark the
    store dirty; they reach disk on the next :meth:`flush` (called on an
    interval by the scheduler and forced on shutdown), so a crash can lose up
    to one flush interval of usage data.
    """

    def __init__(self, file_path: str | Path, global_limit: int, master_key: str):
        self._path = Path(file_path)
        self._global_limit = global_limit
        self._cipher = ChaCha20Poly1305(derive_master_key(master_key))
        self._users: dict[str, UserCredit] = {}
        self._lock = RWLock()
        self._io_lock = threading.Lock()
        self._dirty = False
        self._load()

    @property
    def global_limit(self) -> int:
        return self._global_limit

    @property
    def file_path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        with self._lock.read():
            return self._dirty

    # -- persistence -------------------------------------------------------

    def _load(self) -> None:
        if not self._path.exists():
            logger.info("credits_file_missing", path=str(self._path))
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
            users = {uid: UserCredit.from_dict(uid, rec) for uid, rec in raw.items()}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise CreditStoreError(f"cannot load credits file {self._path}: {e}") from e
        with self._lock.write():
            self._users = users
        logger.info("credits_loaded", path=str(self._path), users=len(users))

    def _snapshot(self) -> dict[str, Any]:
        return {uid: user.to_dict() for uid, user in self._users.items()}

    def _write_file(self, snapshot: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(snapshot, f)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self._path)

    def _persist(self, snapshot: dict[str, Any]) -> None:
        """Write *snapshot*; must be called with the I/O lock held."""
        try:
            self._write_file(snapshot)
        except OSError as e:
            with self._lock.write():
                self._dirty = True
            logger.error("credits_save_failed", path=str(self._path), error=str(e))
            raise CreditStoreError(f"cannot write credits file {self._path}: {e}") from e

    def flush(self, force: bool = False) -> bool:
        """Write the map to disk if it changed since the last write.

        Returns True when a write happened.
        """
        with self._io_lock:
            with self._lock.write():
                if not (self._dirty or force):
                    return False
                snapshot = self._snapshot()
                self._dirty = False
            self._persist(snapshot)
        logger.debug("credits_flushed", users=len(snapshot), forced=force)
        return True

    # -- helpers -----------------------------------------------------------

    def _get_or_create(self, user_id: str) -> UserCredit:
        user = self._users.get(user_id)
        if user is None:
            user = UserCredit(user_id=user_id)
            self._users[user_id] = user
        return user

    # -- API keys ----------------------------------------------------------

    def set_user_api_key(self, user_id: str, api_key: str) -> None:
        """Encrypt and store a personal key, then persist synchronously."""
        if not api_key:
            raise ValueError("API key must not be empty")
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._cipher.encrypt(nonce, api_key.encode("utf-8"), user_id.encode("utf-8"))

        with self._io_lock:
            with self._lock.write():
                user = self._get_or_create(user_id)
                previous = (user.api_key, user.nonce)
                user.api_key = ciphertext
                user.nonce = nonce
                snapshot = self._snapshot()
                self._dirty = False
            try:
                self._persist(snapshot)
            except CreditStoreError:
                # An unsaved key must not take effect.
                with self._lock.write():
                    user.api_key, user.nonce = previous
                raise
        logger.info("user_api_key_set", user_id=user_id)

    def get_user_api_key(self, user_id: str) -> str:
        with self._lock.read():
            user = self._users.get(user_id)
            if user is None or user.api_key is None:
                raise APIKeyNotFoundError(user_id)
            ciphertext, nonce = user.api_key, user.nonce

        if nonce is None or len(nonce) != NONCE_SIZE:
            raise DecryptionFailedError(user_id)
        try:
            plaintext = self._cipher.decrypt(nonce, ciphertext, user_id.encode("utf-8"))
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as e:
            raise DecryptionFailedError(user_id) from e

    # -- quota -------------------------------------------------------------

    def can_use_api(self, user_id: str) -> bool:
        with self._lock.read():
            user = self._users.get(user_id)
            if user is None:
                return True
            if user.has_own_key:
                return True
            return user.token_count < self._global_limit

    def record_usage(self, user_id: str, tokens: int) -> None:
        """Add *tokens* to the user's counter unless they bring their own key."""
        if tokens < 0:
            raise ValueError("token count must not be negative")
        with self._lock.write():
            user = self._get_or_create(user_id)
            if not user.has_own_key:
                user.token_count += tokens
            self._dirty = True

    def get_user_stats(self, user_id: str) -> tuple[int, bool]:
        with self._lock.read():
            user = self._users.get(user_id)
            if user is None:
                return 0, False
            return user.token_count, user.has_own_key

    # -- feature flags -----------------------------------------------------

    def set_search_enabled(self, user_id: str, enabled: bool) -> None:
        with self._io_lock:
            with self._lock.write():
                user = self._get_or_create(user_id)
                previous = user.search_enabled
                user.search_enabled = enabled
                snapshot = self._snapshot()
                self._dirty = False
            try:
                self._persist(snapshot)
            except CreditStoreError:
                with self._lock.write():
                    user.search_enabled = previous
                raise
        logger.info("user_search_toggled", user_id=user_id, enabled=enabled)

    def is_search_enabled(self, user_id: str) -> bool:
        with self._lock.read():
            user = self._users.get(user_id)
            return user.search_enabled if user else False
