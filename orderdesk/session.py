"""
Client-side store session.

A StoreSession holds the signed-in store user, the tenant id and the session
token for one client. It is created explicitly and passed to whatever needs it
(the API client, scripts, tests); there is no module-level session.

Lifecycle:
    UNLOADED --load()--> ANONYMOUS | AUTHENTICATED
    ANONYMOUS --sign_in()--> AUTHENTICATED
    AUTHENTICATED --sign_out()--> ANONYMOUS

load(), sign_in() and sign_out() are the only methods that change state.
Tokens are not refreshed or expired here: a stale token is rejected by the
server with AuthenticationFailed on the next call.
"""

import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from .core.errors import AuthenticationFailed, InvalidTenantId
from .tenancy.context import STORE_ID_PATTERN, validate_store_id

logger = logging.getLogger(__name__)

# Persisted keys
TOKEN_KEY = "store_app_token"
STORE_ID_KEY = "store_id"
STORE_SLUG_KEY = "store_slug"
USER_KEY = "store_auth_session"
PERSISTED_KEYS = (TOKEN_KEY, STORE_ID_KEY, STORE_SLUG_KEY, USER_KEY)


# ============================================================================
# STORAGE BACKENDS
# ============================================================================

class SessionStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemorySessionStorage:
    """Process-local storage; lives as long as the object does."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileSessionStorage:
    """
    Durable storage in a small JSON file (one object of string values).

    An unreadable or malformed file is treated as empty.
    """

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def keys(self) -> list[str]:
        return list(self._read())


# ============================================================================
# SESSION DATA
# ============================================================================

class SessionState(str, Enum):
    UNLOADED = "unloaded"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class StoreSessionUser:
    """The signed-in store user as the client remembers it."""

    id: str
    username: str
    role: str
    store_id: str
    store_name: str
    store_slug: str
    last_login: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StoreSessionUser":
        return cls(
            id=str(data["id"]),
            username=data["username"],
            role=data["role"],
            store_id=validate_store_id(data["store_id"]),
            store_name=data.get("store_name") or "",
            store_slug=data.get("store_slug") or "",
            last_login=data.get("last_login"),
        )


@dataclass(frozen=True)
class StoreLoginResult:
    """Successful store login, as returned by POST /api/auth/store-login."""

    user: StoreSessionUser
    token: str
    store_id: str
    current_slug: str
    needs_redirect: bool = False
    expires_at: Optional[str] = None

    @classmethod
    def from_response(cls, data: dict) -> "StoreLoginResult":
        store = data["store"]
        session = data["session"]
        return cls(
            user=StoreSessionUser.from_dict(data["user"]),
            token=session["token"],
            store_id=validate_store_id(store["store_id"]),
            current_slug=store["current_slug"],
            needs_redirect=bool(store.get("needs_redirect", False)),
            expires_at=session.get("expires_at"),
        )


# ============================================================================
# SESSION
# ============================================================================

class StoreSession:
    def __init__(self, storage: Optional[SessionStorage] = None):
        self.storage = storage if storage is not None else MemorySessionStorage()
        self._state = SessionState.UNLOADED
        self._token: Optional[str] = None
        self._store_id: Optional[str] = None
        self._store_slug: Optional[str] = None
        self._user: Optional[StoreSessionUser] = None

    def __repr__(self) -> str:
        return f"<StoreSession state={self._state.value} store_id={self._store_id}>"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def store_id(self) -> Optional[str]:
        return self._store_id

    @property
    def store_slug(self) -> Optional[str]:
        return self._store_slug

    @property
    def user(self) -> Optional[StoreSessionUser]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED

    def load(self) -> SessionState:
        """
        Restore a persisted session.

        AUTHENTICATED when a token and a well-formed store id are persisted,
        ANONYMOUS otherwise. A user record that cannot be parsed is removed.
        Loading an already loaded session changes nothing.
        """
        if self._state != SessionState.UNLOADED:
            return self._state

        token = self.storage.get(TOKEN_KEY)
        store_id = self.storage.get(STORE_ID_KEY)
        store_slug = self.storage.get(STORE_SLUG_KEY)

        user = None
        raw_user = self.storage.get(USER_KEY)
        if raw_user:
            try:
                user = StoreSessionUser.from_dict(json.loads(raw_user))
            except (ValueError, TypeError, KeyError, InvalidTenantId) as e:
                logger.warning(f"Discarding unreadable stored session user: {e}")
                self.storage.remove(USER_KEY)

        if token and store_id and STORE_ID_PATTERN.fullmatch(store_id):
            self._token = token
            self._store_id = store_id
            self._store_slug = store_slug
            self._user = user if user is not None and user.store_id == store_id else None
            self._state = SessionState.AUTHENTICATED
            logger.info(f"Restored session for store {store_id}")
        else:
            self._state = SessionState.ANONYMOUS
        return self._state

    def sign_in(self, result: StoreLoginResult) -> None:
        """Adopt a successful login and persist it."""
        if self._state == SessionState.UNLOADED:
            raise RuntimeError("Session must be loaded before signing in")

        store_id = validate_store_id(result.store_id)
        slug = result.current_slug or result.user.store_slug

        self.storage.set(TOKEN_KEY, result.token)
        self.storage.set(STORE_ID_KEY, store_id)
        self.storage.set(STORE_SLUG_KEY, slug)
        self.storage.set(USER_KEY, json.dumps(result.user.to_dict()))

        self._token = result.token
        self._store_id = store_id
        self._store_slug = slug
        self._user = result.user
        self._state = SessionState.AUTHENTICATED
        logger.info(f"Signed in {result.user.username} to store {store_id}")

    def sign_out(self) -> None:
        """Forget the session in memory and in storage."""
        for key in PERSISTED_KEYS:
            self.storage.remove(key)
        if self._store_id:
            logger.info(f"Signed out of store {self._store_id}")
        self._token = None
        self._store_id = None
        self._store_slug = None
        self._user = None
        self._state = SessionState.ANONYMOUS

    def require_store_id(self) -> str:
        """The tenant id for scoped calls. Raises InvalidTenantId when absent or malformed."""
        return validate_store_id(self._store_id)

    def auth_headers(self) -> dict[str, str]:
        if not self.is_authenticated or not self._token:
            raise AuthenticationFailed("Not signed in")
        return {"Authorization": f"Bearer {self._token}"}
