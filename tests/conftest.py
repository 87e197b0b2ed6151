"""Shared fakes: an in-memory remote store and a scripted AI provider."""

import asyncio

import pytest

from zysculpt.models import AuthUser, RemoteStoreError


class FakeRemoteStore:
    """Records every call in order. Methods named in `fail` raise RemoteStoreError."""

    def __init__(self, fail=(), session_rows=None, profile_row=None, user=None):
        self.calls = []
        self.fail = set(fail)
        self.session_rows = list(session_rows or [])
        self.profile_row = profile_row
        self.user = user or AuthUser(
            id="user-1",
            email="ada@example.com",
            metadata={"full_name": "Ada Lovelace"},
            access_token="token",
        )

    async def _record(self, name, *args):
        self.calls.append((name,) + args)
        await asyncio.sleep(0)
        if name in self.fail:
            raise RemoteStoreError(f"{name} failed")

    def names(self):
        return [call[0] for call in self.calls]

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]

    async def sign_in(self, email, password):
        await self._record("sign_in", email)
        return self.user

    async def fetch_profile(self, user_id):
        await self._record("fetch_profile", user_id)
        return self.profile_row

    async def upsert_profile(self, row):
        await self._record("upsert_profile", row)

    async def fetch_sessions(self, user_id):
        await self._record("fetch_sessions", user_id)
        return self.session_rows

    async def insert_session(self, row):
        await self._record("insert_session", row)

    async def update_session(self, session_id, payload):
        await self._record("update_session", session_id, payload)

    async def delete_session(self, session_id):
        await self._record("delete_session", session_id)


class FakeAIProvider:
    """
    Streams `fragments` one by one. With fail_after=n the stream raises after
    n fragments. If `gate` is set (an asyncio.Event) the stream waits on it
    before the first fragment.
    """

    def __init__(self, fragments=("Hello", " there"), fail_after=None, completion="# Document", complete_error=None):
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.completion = completion
        self.complete_error = complete_error
        self.gate = None
        self.stream_calls = []
        self.complete_calls = []

    async def stream(self, history, message, system_instruction, model=None, temperature=0.7, audio=None):
        self.stream_calls.append({
            "history": list(history),
            "message": message,
            "system_instruction": system_instruction,
            "model": model,
            "audio": audio,
        })
        if self.gate is not None:
            await self.gate.wait()
        for i, fragment in enumerate(self.fragments):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("stream broke")
            await asyncio.sleep(0)
            yield fragment
        if self.fail_after is not None and self.fail_after >= len(self.fragments):
            raise RuntimeError("stream broke")

    async def complete(self, prompt, model=None, temperature=0.4, json_mode=False):
        self.complete_calls.append({"prompt": prompt, "model": model, "json_mode": json_mode})
        await asyncio.sleep(0)
        if self.complete_error is not None:
            raise self.complete_error
        return self.completion


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def ai():
    return FakeAIProvider()
