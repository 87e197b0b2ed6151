"""Tests for structured generation: quiz parsing and career plans."""

import asyncio
import json
from datetime import date

import pytest

from conftest import FakeAIProvider
from zysculpt.models import QuizItem, SessionNotFoundError, StructuredOutputError, UserProfile
from zysculpt.services.profile_store import ProfileStore
from zysculpt.services.session_store import SessionStore
from zysculpt.services.structured import (
    StructuredGenerationEngine,
    flashcard,
    parse_plan,
    parse_quiz,
    strip_code_fences,
)

ITEM = {"question": "What does ATS stand for?", "options": ["A", "Applicant Tracking System", "C", "D"], "correct_index": 1}


class TestParseQuiz:

    def test_bare_array(self):
        items = parse_quiz(json.dumps([ITEM]))
        assert items == [QuizItem(**ITEM)]

    def test_wrapped_object(self):
        assert len(parse_quiz(json.dumps({"items": [ITEM, ITEM]}))) == 2
        assert len(parse_quiz(json.dumps({"questions": [ITEM]}))) == 1

    def test_code_fences_are_stripped(self):
        raw = "```json\n" + json.dumps([ITEM]) + "\n```"
        assert parse_quiz(raw)[0].correct_index == 1
        assert strip_code_fences("```\n[1]\n```") == "[1]"

    def test_out_of_bounds_answer_rejects_whole_quiz(self):
        bad = dict(ITEM, correct_index=5)
        with pytest.raises(StructuredOutputError):
            parse_quiz(json.dumps([ITEM, bad]))

    def test_negative_answer_rejected(self):
        with pytest.raises(StructuredOutputError):
            parse_quiz(json.dumps([dict(ITEM, correct_index=-1)]))

    def test_wrong_option_count_rejected(self):
        with pytest.raises(StructuredOutputError):
            parse_quiz(json.dumps([dict(ITEM, options=["a", "b", "c"])]))

    def test_missing_field_rejected(self):
        with pytest.raises(StructuredOutputError):
            parse_quiz(json.dumps([{"question": "Q", "options": ["a", "b", "c", "d"]}]))

    def test_not_json(self):
        with pytest.raises(StructuredOutputError):
            parse_quiz("Sure! Here is your quiz:")

    def test_empty_list(self):
        with pytest.raises(StructuredOutputError):
            parse_quiz("[]")

    def test_object_without_items(self):
        with pytest.raises(StructuredOutputError):
            parse_quiz(json.dumps({"quizzes": "none"}))

    def test_flashcard_back_is_correct_option(self):
        card = flashcard(QuizItem(**ITEM))
        assert card == {"front": ITEM["question"], "back": "Applicant Tracking System"}


class TestParsePlan:

    def test_valid_plan(self):
        raw = json.dumps({"tasks": [{"day_number": 1, "task": "Update LinkedIn"}, {"day_number": 30, "task": "Apply"}]})
        assert [t.day_number for t in parse_plan(raw, 30)] == [1, 30]

    def test_day_out_of_range(self):
        raw = json.dumps([{"day_number": 31, "task": "Too late"}])
        with pytest.raises(StructuredOutputError):
            parse_plan(raw, 30)
        with pytest.raises(StructuredOutputError):
            parse_plan(json.dumps([{"day_number": 0, "task": "Too early"}]), 30)


class TestEngine:

    def test_generate_quiz_uses_json_mode(self):
        ai = FakeAIProvider(completion=json.dumps({"items": [ITEM]}))
        engine = StructuredGenerationEngine(ai)

        items = asyncio.run(engine.generate_quiz("Hiring", count=1))

        assert items[0].question == ITEM["question"]
        assert ai.complete_calls[0]["json_mode"] is True
        assert "Hiring" in ai.complete_calls[0]["prompt"]

    def test_generate_quiz_rejects_bad_output(self):
        ai = FakeAIProvider(completion=json.dumps([dict(ITEM, correct_index=5)]))
        with pytest.raises(StructuredOutputError):
            asyncio.run(StructuredGenerationEngine(ai).generate_quiz("Hiring"))

    def test_empty_topic(self, ai):
        with pytest.raises(ValueError):
            asyncio.run(StructuredGenerationEngine(ai).generate_quiz("  "))
        assert ai.complete_calls == []

    def test_career_plan_is_stored(self):
        plan = {"tasks": [{"day_number": 1, "task": "Audit skills"}, {"day_number": 2, "task": "Pick a course"}]}
        ai = FakeAIProvider(completion=json.dumps(plan))
        store = SessionStore()
        profiles = ProfileStore(profile=UserProfile(daily_availability=2))
        sid = store.create_session("career-copilot")
        engine = StructuredGenerationEngine(ai, store, profiles)

        goal = asyncio.run(engine.generate_career_plan(sid, "Become a data engineer"))

        assert store.get(sid).career_goal_data == goal
        assert goal.main_goal == "Become a data engineer"
        assert goal.start_date == date.today().isoformat()
        assert goal.logs == []
        assert [t.task for t in goal.scheduled_tasks] == ["Audit skills", "Pick a course"]
        assert not any(t.completed for t in goal.scheduled_tasks)
        assert len({t.id for t in goal.scheduled_tasks}) == 2
        assert "2 hour(s)" in ai.complete_calls[0]["prompt"]

    def test_bad_plan_stores_nothing(self):
        ai = FakeAIProvider(completion=json.dumps([{"day_number": 99, "task": "x"}]))
        store = SessionStore()
        sid = store.create_session("career-copilot")
        engine = StructuredGenerationEngine(ai, store)

        with pytest.raises(StructuredOutputError):
            asyncio.run(engine.generate_career_plan(sid, "Goal", days=30))
        assert store.get(sid).career_goal_data is None

    def test_plan_for_unknown_session(self, ai):
        engine = StructuredGenerationEngine(ai, SessionStore())
        with pytest.raises(SessionNotFoundError):
            asyncio.run(engine.generate_career_plan("missing", "Goal"))
        assert ai.complete_calls == []

    def test_plan_needs_career_copilot_session(self, ai):
        store = SessionStore()
        sid = store.create_session("resume")
        engine = StructuredGenerationEngine(ai, store)

        with pytest.raises(ValueError, match="career-copilot"):
            asyncio.run(engine.generate_career_plan(sid, "Goal"))
        assert ai.complete_calls == []
        assert store.get(sid).career_goal_data is None
