"""Tests for one streamed chat turn (fake AI provider, fake remote)."""

import asyncio

import pytest

from conftest import FakeAIProvider, FakeRemoteStore
from config import BACKGROUND_SNAPSHOT_CHARS, CHAT_ERROR_MESSAGE, PERSONAS
from zysculpt.models import AudioPayload, SessionNotFoundError, TurnInProgressError, UserProfile
from zysculpt.services.ai_service import build_system_instruction
from zysculpt.services.chat_engine import VOICE_NOTE_LABEL, ChatEngine
from zysculpt.services.profile_store import ProfileStore
from zysculpt.services.session_store import SessionStore


def make_engine(ai, remote=None, profile=None):
    store = SessionStore(remote, user_id="user-1" if remote is not None else None)
    profiles = ProfileStore(profile=profile or UserProfile(full_name="Ada", title="Engineer"))
    return ChatEngine(store, profiles, ai), store


class TestTurn:
    """A successful turn: user message, placeholder, fragments, final sync."""

    def test_end_to_end(self):
        remote = FakeRemoteStore()
        ai = FakeAIProvider(fragments=["Hel", "lo"])

        async def scenario():
            engine, store = make_engine(ai, remote)
            sid = store.create_session("resume")
            result = await engine.run_turn(sid, "Hi")
            await store.sync.drain()
            return store, sid, result

        store, sid, result = asyncio.run(scenario())

        messages = store.get(sid).messages
        assert [(m.role, m.content) for m in messages] == [("user", "Hi"), ("assistant", "Hello")]
        assert result.ok
        assert result.message.content == "Hello"
        assert result.message.id == messages[1].id

        final_payload = remote.calls_named("update_session")[-1][2]
        assert [m["content"] for m in final_payload["messages"]] == ["Hi", "Hello"]

    def test_one_remote_write_per_step_not_per_fragment(self):
        remote = FakeRemoteStore()
        ai = FakeAIProvider(fragments=["a", "b", "c", "d", "e", "f"])

        async def scenario():
            engine, store = make_engine(ai, remote)
            sid = store.create_session("resume")
            await engine.run_turn(sid, "Hi")
            await store.sync.drain()

        asyncio.run(scenario())
        # user message, placeholder, final content
        assert len(remote.calls_named("update_session")) == 3

    def test_fragments_arrive_in_order(self):
        ai = FakeAIProvider(fragments=["one ", "two ", "three"])

        async def scenario():
            engine, store = make_engine(ai)
            sid = store.create_session("resume")
            seen, snapshots = [], []
            store.subscribe(lambda sessions: snapshots.append(sessions[0].messages[-1].content if sessions[0].messages else None))
            await engine.run_turn(sid, "Count", on_fragment=seen.append)
            return seen, snapshots

        seen, snapshots = asyncio.run(scenario())

        assert seen == ["one ", "two ", "three"]
        assert "one " in snapshots
        assert snapshots.index("one ") < snapshots.index("one two ") < snapshots.index("one two three")

    def test_placeholder_exists_before_first_fragment(self):
        ai = FakeAIProvider(fragments=["late"])

        async def scenario():
            engine, store = make_engine(ai)
            sid = store.create_session("resume")
            ai.gate = asyncio.Event()
            task = asyncio.create_task(engine.run_turn(sid, "Hi"))
            await asyncio.sleep(0.01)
            pending = store.get(sid).messages
            ai.gate.set()
            await task
            return pending

        pending = asyncio.run(scenario())
        assert [(m.role, m.content) for m in pending] == [("user", "Hi"), ("assistant", "")]

    def test_history_excludes_the_new_message(self):
        ai = FakeAIProvider(fragments=["ok"])

        async def scenario():
            engine, store = make_engine(ai)
            sid = store.create_session("resume")
            await engine.run_turn(sid, "first")
            await engine.run_turn(sid, "second")

        asyncio.run(scenario())

        assert ai.stream_calls[0]["history"] == []
        assert [m.content for m in ai.stream_calls[1]["history"]] == ["first", "ok"]
        assert ai.stream_calls[1]["message"] == "second"

    def test_voice_note_only_turn(self):
        ai = FakeAIProvider(fragments=["heard you"])
        audio = AudioPayload(data=b"\x00\x01")

        async def scenario():
            engine, store = make_engine(ai)
            sid = store.create_session("resume")
            await engine.run_turn(sid, "", audio=audio)
            return store.get(sid)

        session = asyncio.run(scenario())
        assert session.messages[0].content == VOICE_NOTE_LABEL
        assert ai.stream_calls[0]["audio"] is audio


class TestFailures:

    def test_stream_error_leaves_one_error_message(self):
        ai = FakeAIProvider(fragments=["par", "tial"], fail_after=1)

        async def scenario():
            engine, store = make_engine(ai)
            sid = store.create_session("resume")
            result = await engine.run_turn(sid, "Hi")
            return store.get(sid), result

        session, result = asyncio.run(scenario())

        assert result.error == CHAT_ERROR_MESSAGE
        assert not result.ok
        assistant = [m for m in session.messages if m.role == "assistant"]
        assert len(assistant) == 1
        assert assistant[0].content == CHAT_ERROR_MESSAGE

    def test_rate_limit_is_flagged(self):
        class RateLimited(FakeAIProvider):
            async def stream(self, *args, **kwargs):
                raise RuntimeError("Error code: 429 - rate limit reached")
                yield  # pragma: no cover

        async def scenario():
            engine, store = make_engine(RateLimited())
            sid = store.create_session("resume")
            return await engine.run_turn(sid, "Hi")

        result = asyncio.run(scenario())
        assert result.rate_limited is True

    def test_empty_turn_is_rejected(self, ai):
        engine, store = make_engine(ai)
        sid = store.create_session("resume")
        with pytest.raises(ValueError):
            asyncio.run(engine.run_turn(sid, "   "))
        assert store.get(sid).messages == []

    def test_unknown_session(self, ai):
        engine, _ = make_engine(ai)
        with pytest.raises(SessionNotFoundError):
            asyncio.run(engine.run_turn("missing", "Hi"))

    def test_second_turn_on_same_session_is_refused(self):
        ai = FakeAIProvider(fragments=["slow"])

        async def scenario():
            engine, store = make_engine(ai)
            sid = store.create_session("resume")
            ai.gate = asyncio.Event()
            first = asyncio.create_task(engine.run_turn(sid, "one"))
            await asyncio.sleep(0.01)
            with pytest.raises(TurnInProgressError):
                await engine.run_turn(sid, "two")
            ai.gate.set()
            await first
            return store.get(sid)

        session = asyncio.run(scenario())
        assert [m.content for m in session.messages] == ["one", "slow"]

    def test_session_deleted_mid_stream(self):
        remote = FakeRemoteStore()
        ai = FakeAIProvider(fragments=["orphan"])

        async def scenario():
            engine, store = make_engine(ai, remote)
            sid = store.create_session("resume")
            ai.gate = asyncio.Event()
            task = asyncio.create_task(engine.run_turn(sid, "Hi"))
            await asyncio.sleep(0.01)
            store.delete_session(sid)
            ai.gate.set()
            result = await task
            await store.sync.drain()
            return store, sid, result

        store, sid, result = asyncio.run(scenario())

        assert store.get(sid) is None
        assert store.sessions == []
        assert result.ok
        assert remote.names()[-1] == "delete_session"


class TestSystemInstruction:

    def test_persona_profile_and_target(self):
        profile = UserProfile(full_name="Ada", title="Engineer", base_resume_text="x" * 2000)
        text = build_system_instruction("cover-letter", profile, "Staff role at Acme")

        assert text.startswith(PERSONAS["cover-letter"])
        assert "Name: Ada" in text
        assert "Current Title: Engineer" in text
        assert "TARGET GOAL/JOB: Staff role at Acme" in text
        assert "x" * BACKGROUND_SNAPSHOT_CHARS in text
        assert "x" * (BACKGROUND_SNAPSHOT_CHARS + 1) not in text

    def test_session_background_wins_over_profile(self):
        ai = FakeAIProvider(fragments=["ok"])
        profile = UserProfile(full_name="Ada", base_resume_text="PROFILE BG")

        async def scenario():
            engine, store = make_engine(ai, profile=profile)
            sid = store.create_session("resume", {"resume_text": "SESSION BG", "job_description": "Data role"})
            await engine.run_turn(sid, "Hi")

        asyncio.run(scenario())
        instruction = ai.stream_calls[0]["system_instruction"]
        assert "SESSION BG" in instruction
        assert "PROFILE BG" not in instruction
        assert "Data role" in instruction

    def test_no_target_line_without_job(self):
        text = build_system_instruction("resume", UserProfile())
        assert "TARGET GOAL/JOB" not in text
