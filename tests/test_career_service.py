"""Tests for roadmap operations and dashboard helpers."""

from datetime import date, timedelta

from zysculpt.models import CareerGoal, DailyLog, ScheduledTask, UserProfile
from zysculpt.services import career_service
from zysculpt.services.session_store import SessionStore

START = date(2026, 3, 1)


def goal():
    return CareerGoal(
        main_goal="Land a PM role",
        scheduled_tasks=[
            ScheduledTask(id="t1", day_number=1, task="Write a product teardown"),
            ScheduledTask(id="t2", day_number=2, task="Mock interview"),
            ScheduledTask(id="t3", day_number=2, task="Read a PRD"),
        ],
        logs=[DailyLog(date="2026-03-01", win="Started")],
        start_date=START.isoformat(),
    )


def store_with_goal():
    store = SessionStore()
    sid = store.create_session("career-copilot")
    store.update_session(sid, career_goal_data=goal())
    return store, sid


class TestToggleTask:

    def test_flips_one_task(self):
        store, sid = store_with_goal()

        task = career_service.toggle_task(store, sid, "t2")

        assert task.completed is True
        tasks = {t.id: t.completed for t in store.get(sid).career_goal_data.scheduled_tasks}
        assert tasks == {"t1": False, "t2": True, "t3": False}

        career_service.toggle_task(store, sid, "t2")
        assert not store.get(sid).career_goal_data.scheduled_tasks[1].completed

    def test_unknown_ids_are_no_ops(self):
        store, sid = store_with_goal()
        assert career_service.toggle_task(store, sid, "nope") is None
        assert career_service.toggle_task(store, "missing", "t1") is None

        plain = store.create_session("resume")
        assert career_service.toggle_task(store, plain, "t1") is None


class TestLogWin:

    def test_replaces_same_date(self):
        store, sid = store_with_goal()

        career_service.log_win(store, sid, "2026-03-01", "Shipped the teardown")
        career_service.log_win(store, sid, date(2026, 3, 2), "Nailed the mock")

        logs = store.get(sid).career_goal_data.logs
        assert [(log.date, log.win) for log in logs] == [
            ("2026-03-01", "Shipped the teardown"),
            ("2026-03-02", "Nailed the mock"),
        ]
        assert all(log.completed for log in logs)

    def test_without_goal(self):
        store = SessionStore()
        sid = store.create_session("career-copilot")
        assert career_service.log_win(store, sid, "2026-03-01", "x") is None


class TestDashboard:

    def test_tasks_for_day(self):
        g = goal()
        assert [t.id for t in career_service.tasks_for_day(g, START)] == ["t1"]
        assert [t.id for t in career_service.tasks_for_day(g, "2026-03-02")] == ["t2", "t3"]
        assert career_service.tasks_for_day(g, START + timedelta(days=10)) == []
        assert career_service.tasks_for_day(g, START - timedelta(days=1)) == []

    def test_active_goal_session(self):
        store, sid = store_with_goal()
        store.create_session("career-copilot")
        store.create_session("resume")
        assert career_service.active_goal_session(store.sessions).id == sid
        assert career_service.active_goal_session([]) is None

    def test_is_onboarded(self):
        store, _ = store_with_goal()
        ready = UserProfile(full_name="Ada", base_resume_text="Background")
        assert career_service.is_onboarded(ready, store.sessions)
        assert not career_service.is_onboarded(UserProfile(full_name="Ada"), store.sessions)
        assert not career_service.is_onboarded(ready, [])
