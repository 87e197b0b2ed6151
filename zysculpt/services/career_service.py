"""
CAREER SERVICE MODULE
=====================

Day-to-day operations on a career-copilot roadmap, plus the dashboard helpers:

  toggle_task(store, session_id, task_id) - flip one task's completed flag.
  log_win(store, session_id, day, win)    - record the "win" for a calendar day
                                            (replaces an earlier log for that date).
  tasks_for_day(goal, day)                - tasks scheduled on a calendar day.
  active_goal_session(sessions)           - the session whose roadmap the dashboard shows.
  is_onboarded(profile, sessions)         - has the user finished setting up?

Writes go through SessionStore.update_session(career_goal_data=...), so they
are local-first and mirrored like any other session change.
"""

import logging
from datetime import date
from typing import List, Optional, Sequence, Union

from zysculpt.models import CareerGoal, ChatSession, DailyLog, ScheduledTask, UserProfile
from zysculpt.services.session_store import SessionStore

logger = logging.getLogger("Zysculpt")

Day = Union[date, str]


def _as_date(day: Day) -> date:
    return day if isinstance(day, date) else date.fromisoformat(day)


def day_number(goal: CareerGoal, day: Day) -> int:
    """1 on the start date, 2 the day after, and so on (<= 0 before the start)."""
    return (_as_date(day) - date.fromisoformat(goal.start_date)).days + 1


def tasks_for_day(goal: CareerGoal, day: Day) -> List[ScheduledTask]:
    n = day_number(goal, day)
    return [task for task in goal.scheduled_tasks if task.day_number == n]


def active_goal_session(sessions: Sequence[ChatSession]) -> Optional[ChatSession]:
    for session in sessions:
        if session.type == "career-copilot" and session.career_goal_data is not None:
            return session
    return None


def is_onboarded(profile: UserProfile, sessions: Sequence[ChatSession]) -> bool:
    return bool(
        profile.full_name.strip()
        and profile.base_resume_text.strip()
        and active_goal_session(sessions) is not None
    )


def toggle_task(store: SessionStore, session_id: str, task_id: str) -> Optional[ScheduledTask]:
    """Returns the task after the flip, or None if session, roadmap or task is missing."""
    session = store.get(session_id)
    if session is None or session.career_goal_data is None:
        return None
    goal = session.career_goal_data

    toggled = None
    tasks = []
    for task in goal.scheduled_tasks:
        if task.id == task_id:
            task = task.model_copy(update={"completed": not task.completed})
            toggled = task
        tasks.append(task)
    if toggled is None:
        return None

    store.update_session(session_id, career_goal_data=goal.model_copy(update={"scheduled_tasks": tasks}))
    return toggled


def log_win(store: SessionStore, session_id: str, day: Day, win: str) -> Optional[DailyLog]:
    """Returns the new log, or None if the session has no roadmap."""
    session = store.get(session_id)
    if session is None or session.career_goal_data is None:
        return None
    goal = session.career_goal_data

    entry = DailyLog(date=_as_date(day).isoformat(), win=win, completed=True)
    logs = [log for log in goal.logs if log.date != entry.date] + [entry]
    store.update_session(session_id, career_goal_data=goal.model_copy(update={"logs": logs}))
    logger.info("Logged win for %s on session %s", entry.date, session_id)
    return entry
