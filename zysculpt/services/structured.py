"""
STRUCTURED GENERATION MODULE
============================

AI calls whose answer must be data, not prose:

  generate_quiz(topic, count)                       - multiple-choice quiz items
                                                      (also used as flashcards).
  generate_career_plan(session_id, main_goal, days) - a day-by-day roadmap stored
                                                      on a career-copilot session.

Both ask the provider for JSON (json_mode=True) and then trust nothing:
Markdown fences are stripped, the payload may be a bare array or an object
wrapping one, every item is validated with pydantic, and the cross-field
bounds (correct_index inside options, day_number inside the plan) are checked.
Any problem raises StructuredOutputError for the whole response; a partial
quiz or plan is never returned or stored.
"""

import json
import logging
from datetime import date
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from config import CAREER_PLAN_DAYS, QUIZ_DEFAULT_COUNT
from zysculpt.models import CareerGoal, QuizItem, ScheduledTask, SessionNotFoundError, StructuredOutputError
from zysculpt.services.ai_service import AIProvider
from zysculpt.services.profile_store import ProfileStore
from zysculpt.services.session_store import SessionStore
from zysculpt.utils.ids import new_ids

logger = logging.getLogger("Zysculpt")


class PlannedTask(BaseModel):
    day_number: int
    task: str = Field(..., min_length=1)


_QUIZ_ITEMS = TypeAdapter(List[QuizItem])
_PLAN_ITEMS = TypeAdapter(List[PlannedTask])


# ==============================================================================
# PARSING
# ==============================================================================

def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` (or plain ```) fence if the model added one."""
    text = (text or "").strip()
    if "```json" in text:
        return text.split("```json", 1)[1].split("```", 1)[0].strip()
    if text.startswith("```"):
        return text.split("```", 2)[1].strip()
    return text


def extract_items(raw: str, keys: Sequence[str]) -> list:
    """
    Parse the model's JSON and return the list of items. Accepts a bare array
    or an object holding the array under one of `keys`.
    """
    try:
        payload = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        raise StructuredOutputError(f"Response is not valid JSON: {e}") from e

    if isinstance(payload, dict):
        for key in keys:
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
        else:
            raise StructuredOutputError(f"Expected a list under one of {list(keys)}")
    if not isinstance(payload, list):
        raise StructuredOutputError("Expected a JSON array of items")
    if not payload:
        raise StructuredOutputError("Response contained no items")
    return payload


def parse_quiz(raw: str) -> List[QuizItem]:
    try:
        items = _QUIZ_ITEMS.validate_python(extract_items(raw, ("items", "questions", "quiz")))
    except ValidationError as e:
        raise StructuredOutputError(f"Quiz item failed validation: {e}") from e
    for n, item in enumerate(items):
        if not 0 <= item.correct_index < len(item.options):
            raise StructuredOutputError(
                f"Quiz item {n} has correct_index {item.correct_index} outside its {len(item.options)} options"
            )
    return items


def parse_plan(raw: str, days: int) -> List[PlannedTask]:
    try:
        items = _PLAN_ITEMS.validate_python(extract_items(raw, ("tasks", "items", "plan")))
    except ValidationError as e:
        raise StructuredOutputError(f"Plan item failed validation: {e}") from e
    for item in items:
        if not 1 <= item.day_number <= days:
            raise StructuredOutputError(f"Task day_number {item.day_number} is outside 1..{days}")
    return items


def flashcard(item: QuizItem) -> dict:
    """Front/back view of a quiz item."""
    return {"front": item.question, "back": item.options[item.correct_index]}


# ==============================================================================
# ENGINE
# ==============================================================================

class StructuredGenerationEngine:

    def __init__(self, ai: AIProvider, sessions: Optional[SessionStore] = None, profiles: Optional[ProfileStore] = None):
        self.ai = ai
        self.sessions = sessions
        self.profiles = profiles

    async def generate_quiz(self, topic: str, count: int = QUIZ_DEFAULT_COUNT, model: Optional[str] = None) -> List[QuizItem]:
        if not (topic or "").strip():
            raise ValueError("Quiz topic must not be empty")
        prompt = (
            f"Generate a {count}-question multiple choice quiz about: {topic.strip()}.\n"
            'Return JSON only: {"items": [{"question": "...", "options": ["a", "b", "c", "d"], '
            '"correct_index": 0}]}\n'
            "Every item has exactly 4 options and correct_index is the 0-based index of the right option."
        )
        raw = await self.ai.complete(prompt, model=model, json_mode=True)
        items = parse_quiz(raw)
        logger.info("Generated %s quiz item(s) on %r", len(items), topic)
        return items

    async def generate_career_plan(
        self,
        session_id: str,
        main_goal: str,
        days: int = CAREER_PLAN_DAYS,
        model: Optional[str] = None,
    ) -> CareerGoal:
        """Ask for a day-by-day plan, then store it as the session's career goal (started today)."""
        if self.sessions is None:
            raise RuntimeError("generate_career_plan needs a session store")
        if not (main_goal or "").strip():
            raise ValueError("Career goal must not be empty")
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.type != "career-copilot":
            raise ValueError(f"Career plans belong to career-copilot sessions, not {session.type}")

        hours = self.profiles.profile.daily_availability if self.profiles is not None else 1
        prompt = (
            f"Create a {days}-day action plan for this career goal: {main_goal.strip()}.\n"
            f"The user can spend about {hours} hour(s) per day, so size each day's task to fit.\n"
            'Return JSON only: {"tasks": [{"day_number": 1, "task": "..."}]}\n'
            f"day_number runs from 1 to {days}."
        )
        raw = await self.ai.complete(prompt, model=model, json_mode=True)
        planned = parse_plan(raw, days)

        ids = new_ids(len(planned))
        goal = CareerGoal(
            main_goal=main_goal.strip(),
            scheduled_tasks=[
                ScheduledTask(id=task_id, day_number=item.day_number, task=item.task)
                for task_id, item in zip(ids, planned)
            ],
            logs=[],
            start_date=date.today().isoformat(),
        )
        self.sessions.update_session(session_id, career_goal_data=goal)
        logger.info("Stored %s-task career plan on session %s", len(goal.scheduled_tasks), session_id)
        return goal
