"""
REMOTE STORE MODULE
===================

Thin client for the Supabase project that mirrors profiles and sessions.
Talks to the PostgREST interface (/rest/v1) and the auth endpoint (/auth/v1)
with `requests`; every blocking call is pushed to a worker thread so the event
loop keeps serving other requests.

TABLES:
  profiles - keyed by user id, written with upsert semantics.
  sessions - keyed by session id; insert / partial update / delete; read back
             filtered by user_id and ordered by last_updated (newest first).

FIELD MAPS:
  Which in-memory fields reach which remote column is declared once, below, as
  a static table. Anything not in SESSION_REMOTE_FIELDS stays local-only:
  resume_text, style_prefs, show_preview and any extra field a caller puts on a
  session. The tables are checked against the pydantic models at import time.

The remote store is a weak mirror. Callers (SessionStore, ProfileStore) never
read from it during a session except for the full fetch after sign-in.
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import requests
from pydantic import BaseModel

from config import REMOTE_CONFIGURED, SUPABASE_ANON_KEY, SUPABASE_TIMEOUT_SECONDS, SUPABASE_URL
from zysculpt.models import AuthUser, ChatSession, RemoteStoreError, UserProfile

logger = logging.getLogger("Zysculpt")


# ==============================================================================
# FIELD MAPS (in-memory name -> remote column)
# ==============================================================================

SESSION_REMOTE_FIELDS: Mapping[str, str] = MappingProxyType({
    "title": "title",
    "messages": "messages",
    "final_resume": "final_resume",
    "career_goal_data": "career_goal_data",
    "job_description": "job_description",
})

# Bookkeeping columns written on insert (and last_updated on every update).
SESSION_KEY_COLUMNS = ("id", "user_id", "type", "last_updated")

PROFILE_REMOTE_FIELDS: Mapping[str, str] = MappingProxyType({
    "full_name": "full_name",
    "title": "title",
    "email": "email",
    "phone": "phone",
    "location": "location",
    "linkedin": "linkedin",
    "website": "website",
    "base_resume_text": "base_resume_text",
    "daily_availability": "daily_availability",
    "voice_id": "voice_id",
    "avatar_url": "avatar_url",
})


def _check_field_map(mapping: Mapping[str, str], model: type) -> None:
    """Fail at import time if a field map names a field the model doesn't have."""
    unknown = set(mapping) - set(model.model_fields)
    if unknown:
        raise RuntimeError(f"{model.__name__} has no field(s) {sorted(unknown)} named in its remote field map")


_check_field_map(SESSION_REMOTE_FIELDS, ChatSession)
_check_field_map(PROFILE_REMOTE_FIELDS, UserProfile)


def _to_json(value: Any) -> Any:
    """Turn pydantic models (and lists of them) into plain JSON-ready data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    return value


# ==============================================================================
# ROW TRANSLATION
# ==============================================================================

def session_update_payload(updates: Mapping[str, Any], last_updated: int) -> Dict[str, Any]:
    """
    Translate a local partial update into the remote payload.
    Only whitelisted fields are carried; returns {} when none are present, in
    which case nothing should be sent at all.
    """
    payload = {
        SESSION_REMOTE_FIELDS[name]: _to_json(value)
        for name, value in updates.items()
        if name in SESSION_REMOTE_FIELDS
    }
    if payload:
        payload["last_updated"] = last_updated
    return payload


def session_insert_row(session: ChatSession, user_id: str) -> Dict[str, Any]:
    """Full row for a newly created session: key columns plus every whitelisted field."""
    row = {
        "id": session.id,
        "user_id": user_id,
        "type": session.type,
        "last_updated": session.last_updated,
    }
    for name, column in SESSION_REMOTE_FIELDS.items():
        row[column] = _to_json(getattr(session, name))
    return row


def session_from_row(row: Mapping[str, Any]) -> ChatSession:
    """Build a ChatSession from a fetched row. Local-only fields come back as defaults."""
    data = {"id": str(row["id"]), "type": row["type"], "last_updated": int(row.get("last_updated") or 0)}
    for name, column in SESSION_REMOTE_FIELDS.items():
        value = row.get(column)
        if value is not None:
            data[name] = value
    data.setdefault("title", "Untitled")
    return ChatSession.model_validate(data)


def profile_to_row(profile: UserProfile, user_id: str) -> Dict[str, Any]:
    row = {"id": user_id}
    for name, column in PROFILE_REMOTE_FIELDS.items():
        row[column] = getattr(profile, name)
    return row


def profile_fields_from_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Profile fields present (and not null) in a fetched row."""
    return {
        name: row[column]
        for name, column in PROFILE_REMOTE_FIELDS.items()
        if row.get(column) is not None
    }


# ==============================================================================
# REMOTE STORE CLIENT
# ==============================================================================

class RemoteStore:
    """
    Supabase client: password sign-in plus row operations on profiles and sessions.
    Every method raises RemoteStoreError on failure; deciding what to do about
    it (usually: log and move on) is the caller's job.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = SUPABASE_TIMEOUT_SECONDS,
        http: Optional[requests.Session] = None,
    ):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.http = http or requests.Session()
        self.access_token: Optional[str] = None

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _send(self, method: str, path: str, params=None, json=None, prefer=None) -> Any:
        """Blocking HTTP call; runs in a worker thread."""
        try:
            response = self.http.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteStoreError(f"{method} {path} failed: {e}") from e
        if not response.ok:
            raise RemoteStoreError(f"{method} {path} -> {response.status_code}: {response.text[:200]}")
        if not response.content:
            return None
        return response.json()

    async def _request(self, method: str, path: str, params=None, json=None, prefer=None) -> Any:
        return await asyncio.to_thread(self._send, method, path, params, json, prefer)

    # -- auth ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthUser:
        """Password sign-in. Later row calls run with the returned access token."""
        data = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        user = (data or {}).get("user") or {}
        if not user.get("id"):
            raise RemoteStoreError("Sign-in response did not include a user")
        self.access_token = data.get("access_token")
        logger.info("Signed in as %s", user.get("email", email))
        return AuthUser(
            id=user["id"],
            email=user.get("email", email),
            metadata=user.get("user_metadata") or {},
            access_token=self.access_token or "",
        )

    # -- profiles --------------------------------------------------------------

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._request("GET", "/rest/v1/profiles", params={"id": f"eq.{user_id}", "select": "*"})
        return rows[0] if rows else None

    async def upsert_profile(self, row: Dict[str, Any]) -> None:
        await self._request(
            "POST",
            "/rest/v1/profiles",
            json=row,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    # -- sessions --------------------------------------------------------------

    async def fetch_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        rows = await self._request(
            "GET",
            "/rest/v1/sessions",
            params={"user_id": f"eq.{user_id}", "order": "last_updated.desc", "select": "*"},
        )
        return rows or []

    async def insert_session(self, row: Dict[str, Any]) -> None:
        await self._request("POST", "/rest/v1/sessions", json=row, prefer="return=minimal")

    async def update_session(self, session_id: str, payload: Dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            "/rest/v1/sessions",
            params={"id": f"eq.{session_id}"},
            json=payload,
            prefer="return=minimal",
        )

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", "/rest/v1/sessions", params={"id": f"eq.{session_id}"})


def build_remote_store() -> Optional[RemoteStore]:
    """Return a RemoteStore when Supabase is configured, else None (local-only mode)."""
    if not REMOTE_CONFIGURED:
        return None
    return RemoteStore(SUPABASE_URL, SUPABASE_ANON_KEY)
