"""
=============================================================================
SESSIONS
=============================================================================

Per-client state that survives between requests: the logged-in user id and
one-shot "flash" messages. Each client is identified by a session-id
cookie; the server keeps one mapping per id.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     ONE SESSION PER CLIENT                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Cookie: webkernel_session=Qm9i...                                 │
    │        │                                                             │
    │        ▼                                                             │
    │   StartSession        store.open(id)  → Session (unknown id: new)   │
    │        │              store.activate(session)                        │
    │        ▼                                                             │
    │   Authenticate,       RequestSession  → the active Session          │
    │   controllers, ...    (the SessionInterface services receive)       │
    │        │                                                             │
    │        ▼                                                             │
    │   StartSession        store.save(session)                           │
    │                       Set-Cookie when the id is new or regenerated  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      FLASH MESSAGE LIFECYCLE                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   POST /login (bad password)                                        │
    │        session.set_flash("error", "Bad credentials")                │
    │        → 302 /login                                                 │
    │                                                                      │
    │   GET /login                                                         │
    │        session.get_flash("error")  → ["Bad credentials"]            │
    │        (reading removes the message)                                 │
    │                                                                      │
    │   kernel.terminate()                                                 │
    │        session.clear_flash()  → nothing leaks into later requests  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

SessionStore keeps sessions in process memory, which suits development
and single-process deployments. Other backends (Redis, a database)
subclass it and override open() and save().

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "Services are built once, but each client has its own session. How
    does Authenticate see the right one?"
A: "It receives RequestSession, a stand-in that forwards every call to
   the session StartSession activated for the current request. Outside
   a request there is no active session and every call raises."

Q: "Why a new id on login?"
A: "Session fixation. An attacker who planted an id in the victim's
   browser would otherwise share the authenticated session."

=============================================================================
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, MutableMapping, Optional
import logging
import secrets
import threading


logger = logging.getLogger(__name__)


DEFAULT_SESSION_COOKIE = "webkernel_session"


def new_session_id() -> str:
    """Unguessable session id, safe to put in a cookie unquoted."""
    return secrets.token_urlsafe(32)


class SessionInterface(ABC):
    """Session storage contract used by middleware and authentication."""

    # Session key holding the authenticated user's id
    AUTH_KEY = "auth_id"

    @property
    @abstractmethod
    def session_id(self) -> str: ...

    @abstractmethod
    def start(self) -> None:
        """Open the session. Calling it again is a no-op."""

    @abstractmethod
    def regenerate(self) -> None:
        """Move the data to a fresh id (call on login)."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    def has(self, key: str) -> bool: ...

    @abstractmethod
    def remove(self, key: str) -> None: ...

    @abstractmethod
    def set_flash(self, kind: str, message: str) -> None:
        """Queue a one-shot message under `kind` ("error", "success", ...)."""

    @abstractmethod
    def get_flash(self, kind: str) -> List[str]:
        """Pop the messages queued under `kind`."""

    @abstractmethod
    def has_flash(self, kind: str) -> bool: ...

    @abstractmethod
    def clear_flash(self) -> None:
        """Drop every queued flash message."""


class Session(SessionInterface):
    """
    One client's session: an id plus a plain mapping.

    Pass your own mapping to share storage between Session objects:

        store = {}
        Session(store).set("theme", "dark")
        Session(store).get("theme")  # "dark"
    """

    FLASH_KEY = "_flash"

    def __init__(
        self,
        storage: Optional[MutableMapping[str, Any]] = None,
        session_id: Optional[str] = None,
    ):
        self._storage: MutableMapping[str, Any] = {} if storage is None else storage
        self._session_id = session_id or new_session_id()
        self._started = False

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def data(self) -> MutableMapping[str, Any]:
        return self._storage

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if not self._started:
            self._started = True
            logger.debug("Session started")

    def regenerate(self) -> None:
        self._session_id = new_session_id()

    def get(self, key: str, default: Any = None) -> Any:
        return self._storage.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._storage[key] = value

    def has(self, key: str) -> bool:
        return key in self._storage

    def remove(self, key: str) -> None:
        self._storage.pop(key, None)

    # =========================================================================
    # FLASH MESSAGES
    # =========================================================================

    def _flashes(self) -> Dict[str, List[str]]:
        return self._storage.setdefault(self.FLASH_KEY, {})

    def set_flash(self, kind: str, message: str) -> None:
        self._flashes().setdefault(kind, []).append(message)

    def get_flash(self, kind: str) -> List[str]:
        if self.FLASH_KEY not in self._storage:
            return []
        return self._storage[self.FLASH_KEY].pop(kind, [])

    def has_flash(self, kind: str) -> bool:
        return bool(self._storage.get(self.FLASH_KEY, {}).get(kind))

    def clear_flash(self) -> None:
        self._storage.pop(self.FLASH_KEY, None)


# =============================================================================
# SERVER-SIDE STORE
# =============================================================================

class SessionStore:
    """
    Session data for every client, keyed by session id.

    Also tracks which session is active on the current thread, so that
    RequestSession can find it.

        store = SessionStore()
        session = store.open(request.get_cookie("webkernel_session"))
        with store.activate(session):
            ...
        store.save(session)
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, MutableMapping[str, Any]] = {}
        self._lock = threading.Lock()
        self._local = threading.local()

    def __len__(self) -> int:
        return len(self._sessions)

    def open(self, session_id: Optional[str] = None) -> Session:
        """
        The session stored under `session_id`.

        Missing or unknown ids get a new, empty session with a fresh id,
        so a client cannot choose its own id.
        """
        with self._lock:
            data = self._sessions.get(session_id) if session_id else None

        if data is None:
            if session_id:
                logger.debug("Unknown session id, starting a new session")
            return Session()
        return Session(data, session_id)

    def save(self, session: Session, opened_id: Optional[str] = None) -> None:
        """
        Persist `session`. `opened_id` is the id it was opened under; when
        regenerate() changed it, the old entry is dropped.

        Empty sessions are not kept.
        """
        with self._lock:
            if opened_id and opened_id != session.session_id:
                self._sessions.pop(opened_id, None)

            if session.data:
                self._sessions[session.session_id] = session.data
            else:
                self._sessions.pop(session.session_id, None)

    # =========================================================================
    # ACTIVE SESSION
    # =========================================================================

    @property
    def active(self) -> Optional[Session]:
        return getattr(self._local, "session", None)

    @contextmanager
    def activate(self, session: Session) -> Iterator[Session]:
        """Make `session` the active one on this thread for the block."""
        previous = self.active
        self._local.session = session
        try:
            yield session
        finally:
            self._local.session = previous


class RequestSession(SessionInterface):
    """
    The SessionInterface bound in the container.

    Forwards every call to the session active for the current request.

    Raises:
        RuntimeError: No session is active (StartSession did not run).
    """

    def __init__(self, store: SessionStore):
        self.store = store

    def _current(self) -> Session:
        session = self.store.active
        if session is None:
            raise RuntimeError("No active session; is StartSession in the middleware chain?")
        return session

    @property
    def session_id(self) -> str:
        return self._current().session_id

    def start(self) -> None:
        self._current().start()

    def regenerate(self) -> None:
        self._current().regenerate()

    def get(self, key: str, default: Any = None) -> Any:
        return self._current().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._current().set(key, value)

    def has(self, key: str) -> bool:
        return self._current().has(key)

    def remove(self, key: str) -> None:
        self._current().remove(key)

    def set_flash(self, kind: str, message: str) -> None:
        self._current().set_flash(kind, message)

    def get_flash(self, kind: str) -> List[str]:
        return self._current().get_flash(kind)

    def has_flash(self, kind: str) -> bool:
        return self._current().has_flash(kind)

    def clear_flash(self) -> None:
        self._current().clear_flash()
