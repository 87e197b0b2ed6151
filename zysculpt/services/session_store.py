"""
SESSION STORE MODULE
====================

Owns the ordered list of chat sessions and the active session id. This is the
authoritative state for the running process; the remote store only mirrors it.

MUTATIONS (all synchronous, visible on the next read):
  create_session(type, initial_context) - prepend a new session and make it active.
  update_session(id, {...})              - merge fields onto one session.
  rename_session(id, title)              - update_session with only the title.
  delete_session(id)                     - drop it; clear the active id if it was active.
  update_style(id, **prefs)              - merge into the session's StylePrefs.
  patch_message(id, message_id, text)    - replace one message's content (streaming only).

Each mutation then hands a remote write to OutboundSync. Remote failures are
logged there and never come back here: no rollback, no retry. A later full
fetch (load) replaces everything local with the remote snapshot.

UNKNOWN IDS:
  Updates against an id that isn't in the list are silent no-ops. A chat reply
  that finishes after its session was deleted lands here and is dropped. The
  active id may point at a missing session; active_session is then None.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError

from config import DEFAULT_SESSION_TITLES
from zysculpt.models import ChatSession, SessionType, StylePrefs
from zysculpt.services.remote_store import (
    RemoteStore,
    session_from_row,
    session_insert_row,
    session_update_payload,
)
from zysculpt.services.sync import OutboundSync
from zysculpt.utils.ids import new_id, now_ms

logger = logging.getLogger("Zysculpt")

Listener = Callable[[List[ChatSession]], None]

IMMUTABLE_FIELDS = frozenset({"id", "type"})


def default_title(session_type: str, initial_context: Optional[Mapping[str, Any]] = None) -> str:
    """Title from the job context when there is one, else a per-type default."""
    context = initial_context or {}
    job_title = (context.get("job_title") or "").strip()
    company = (context.get("company") or "").strip()
    if job_title and company:
        return f"{job_title} at {company}"
    if job_title or company:
        return job_title or company
    return DEFAULT_SESSION_TITLES.get(session_type, "New Session")


class SessionStore:
    """In-memory session list with optimistic, best-effort remote mirroring."""

    def __init__(
        self,
        remote: Optional[RemoteStore] = None,
        sync: Optional[OutboundSync] = None,
        user_id: Optional[str] = None,
    ):
        self.remote = remote
        self.sync = sync or OutboundSync(enabled=remote is not None)
        self.user_id = user_id
        self._sessions: List[ChatSession] = []
        self._active_id: Optional[str] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------ reads

    @property
    def sessions(self) -> List[ChatSession]:
        return list(self._sessions)

    @property
    def active_session_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_session(self) -> Optional[ChatSession]:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    def get(self, session_id: str) -> Optional[ChatSession]:
        index = self._index(session_id)
        return None if index is None else self._sessions[index]

    def _index(self, session_id: str) -> Optional[int]:
        for i, session in enumerate(self._sessions):
            if session.id == session_id:
                return i
        return None

    # -------------------------------------------------------------- observers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(sessions) after every mutation. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.sessions
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("Session listener %r failed: %s", listener, e)

    # ------------------------------------------------------------ remote side

    @property
    def _remote_ready(self) -> bool:
        return self.remote is not None and self.user_id is not None

    def _push(self, session_id: str, label: str, factory) -> None:
        if self._remote_ready:
            self.sync.submit(session_id, label, factory)

    # -------------------------------------------------------------- mutations

    def set_active(self, session_id: Optional[str]) -> None:
        self._active_id = session_id
        self._publish()

    def create_session(self, session_type: SessionType, initial_context: Optional[Mapping[str, Any]] = None) -> str:
        context = initial_context or {}
        session = ChatSession(
            id=new_id(),
            title=default_title(session_type, context),
            type=session_type,
            job_description=context.get("job_description") or None,
            resume_text=context.get("resume_text") or None,
            last_updated=now_ms(),
        )
        self._sessions.insert(0, session)
        self._active_id = session.id
        self._publish()
        logger.info("Created %s session %s (%s)", session.type, session.id, session.title)

        if self._remote_ready:
            row = session_insert_row(session, self.user_id)
            self._push(session.id, f"insert session {session.id}", lambda: self.remote.insert_session(row))
        return session.id

    def update_session(self, session_id: str, updates: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
        """
        Merge fields onto a session. Unknown session id: no-op.
        Only the whitelisted fields are mirrored remotely; everything else
        (including extra, caller-defined fields) changes locally only.
        """
        changes: Dict[str, Any] = dict(updates or {})
        changes.update(fields)
        frozen = IMMUTABLE_FIELDS & changes.keys()
        if frozen:
            raise ValueError(f"Session field(s) {sorted(frozen)} cannot be changed")

        index = self._index(session_id)
        if index is None:
            logger.debug("Ignoring update for missing session %s", session_id)
            return

        stamp = now_ms()
        data = self._sessions[index].model_dump()
        data.update(changes)
        data["last_updated"] = stamp
        self._sessions[index] = ChatSession.model_validate(data)
        self._publish()

        payload = session_update_payload(changes, stamp)
        if payload:
            self._push(session_id, f"update session {session_id}", lambda: self.remote.update_session(session_id, payload))

    def rename_session(self, session_id: str, title: str) -> None:
        self.update_session(session_id, title=title)

    def update_style(self, session_id: str, **prefs: Any) -> None:
        """Merge prefs over the session's current StylePrefs (defaults when it has none)."""
        session = self.get(session_id)
        if session is None:
            return
        current = session.style_prefs or StylePrefs()
        given = {k: v for k, v in prefs.items() if v is not None}
        merged = StylePrefs.model_validate({**current.model_dump(), **given})
        self.update_session(session_id, style_prefs=merged)

    def delete_session(self, session_id: str) -> None:
        index = self._index(session_id)
        if index is not None:
            del self._sessions[index]
        if self._active_id == session_id:
            self._active_id = None
        self._publish()
        logger.info("Deleted session %s", session_id)

        self._push(session_id, f"delete session {session_id}", lambda: self.remote.delete_session(session_id))

    def patch_message(self, session_id: str, message_id: str, content: str) -> None:
        """
        Replace the content of one message, locally only. Used for each streamed
        fragment; it touches nothing else on the session (not even last_updated).
        """
        index = self._index(session_id)
        if index is None:
            return
        session = self._sessions[index]
        messages = list(session.messages)
        for i, message in enumerate(messages):
            if message.id == message_id:
                messages[i] = message.model_copy(update={"content": content})
                break
        else:
            return
        self._sessions[index] = session.model_copy(update={"messages": messages})
        self._publish()

    # ------------------------------------------------------------- full fetch

    async def load(self, user_id: str) -> bool:
        """
        Replace the local collection with the remote snapshot for user_id.
        Returns False (and keeps local state) when the fetch fails.
        """
        self.user_id = user_id
        if self.remote is None:
            return False
        try:
            rows = await self.remote.fetch_sessions(user_id)
        except Exception as e:
            logger.error("Could not fetch sessions for %s: %s", user_id, e)
            return False

        sessions = []
        for row in rows:
            try:
                sessions.append(session_from_row(row))
            except (KeyError, ValueError, ValidationError) as e:
                logger.warning("Skipping unreadable session row %s: %s", row.get("id"), e)

        self._sessions = sessions
        if self._active_id is not None and self._index(self._active_id) is None:
            self._active_id = None
        self._publish()
        logger.info("Loaded %s session(s) from the remote store", len(sessions))
        return True
