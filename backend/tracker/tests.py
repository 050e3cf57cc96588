from datetime import date, timedelta
from unittest.mock import patch

from django.contrib.admin.sites import site
from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from .admin import DailyLogAdmin
from .models import DailyLog, Task
from .scoring import (
    MalformedDailyLogError,
    ZERO_TARGET_RATIO,
    calculate_average_score,
    calculate_completion_score,
    calculate_streak,
    derive_insights,
    motivational_tier,
    task_ratio,
    validate_log_score,
)


def make_task(target, current):
    return {"target_value": target, "current_value": current}


def make_logs(*scores, start=date(2025, 11, 30)):
    """Logs with the given scores, most recent first, one per day."""
    return [{"date": start - timedelta(days=i), "completion_score": s} for i, s in enumerate(scores)]


class ScoringTests(TestCase):
    def test_empty_task_list_scores_zero(self):
        self.assertEqual(calculate_completion_score([]), 0)

    def test_mixed_tasks_average_their_ratios(self):
        """A complete task and an untouched one average to 50."""
        tasks = [make_task(10, 10), make_task(20, 0)]
        self.assertAlmostEqual(calculate_completion_score(tasks), 50.0)

    def test_over_completion_is_clamped(self):
        doubled = calculate_completion_score([make_task(10, 20), make_task(10, 5)])
        exact = calculate_completion_score([make_task(10, 10), make_task(10, 5)])
        self.assertAlmostEqual(doubled, exact)
        self.assertAlmostEqual(doubled, 75.0)

    def test_score_is_not_rounded(self):
        score = calculate_completion_score([make_task(3, 1)])
        self.assertAlmostEqual(score, 100.0 / 3)
        self.assertNotEqual(score, 33.3)

    def test_score_stays_within_bounds(self):
        tasks = [make_task(1, 1000), make_task(7, 3.5), make_task(0.5, 0), make_task(2, 2)]
        score = calculate_completion_score(tasks)
        self.assertGreaterEqual(score, 0)
        self.assertLessEqual(score, 100)

    def test_zero_target_uses_guarded_ratio(self):
        self.assertEqual(task_ratio(make_task(0, 0)), ZERO_TARGET_RATIO)
        self.assertEqual(task_ratio(make_task(0, 5)), ZERO_TARGET_RATIO)
        score = calculate_completion_score([make_task(0, 5), make_task(10, 10)])
        self.assertAlmostEqual(score, 50.0)

    def test_tier_boundaries_are_inclusive(self):
        self.assertEqual(motivational_tier(90.0)["tier"], "top")
        self.assertEqual(motivational_tier(89.999)["tier"], "high")
        self.assertEqual(motivational_tier(70)["tier"], "high")
        self.assertEqual(motivational_tier(50)["tier"], "mid")
        self.assertEqual(motivational_tier(25)["tier"], "low")
        self.assertEqual(motivational_tier(24.9)["tier"], "baseline")
        self.assertEqual(motivational_tier(0)["tier"], "baseline")
        self.assertEqual(motivational_tier(100)["tier"], "top")

    def test_each_tier_has_its_own_message(self):
        tiers = [motivational_tier(s) for s in (95, 75, 55, 30, 5)]
        self.assertEqual(len({t["message"] for t in tiers}), 5)
        self.assertEqual(len({t["emoji"] for t in tiers}), 5)


class StreakTests(TestCase):
    def test_streak_stops_at_first_miss(self):
        self.assertEqual(calculate_streak(make_logs(95, 85, 60, 90)), 2)

    def test_streak_edge_cases(self):
        self.assertEqual(calculate_streak([]), 0)
        self.assertEqual(calculate_streak(make_logs(100)), 1)
        self.assertEqual(calculate_streak(make_logs(10, 100)), 0)

    def test_threshold_is_inclusive(self):
        self.assertEqual(calculate_streak(make_logs(80, 80, 79.9)), 2)

    def test_unsorted_logs_are_rejected(self):
        logs = list(reversed(make_logs(90, 90, 90)))
        with self.assertRaises(ValueError):
            calculate_streak(logs)

    def test_iso_string_dates_are_accepted(self):
        logs = [
            {"date": "2025-11-30", "completion_score": 90},
            {"date": "2025-11-29T08:00:00", "completion_score": 85},
        ]
        self.assertEqual(calculate_streak(logs), 2)


class DailyLogValidationTests(TestCase):
    def test_missing_score_is_rejected(self):
        with self.assertRaises(MalformedDailyLogError):
            validate_log_score({"date": "2025-11-30"})
        with self.assertRaises(MalformedDailyLogError):
            validate_log_score({"date": "2025-11-30", "completion_score": None})

    def test_non_numeric_score_is_rejected(self):
        for bad in ("95", True, float("nan"), float("inf"), -1, 100.5):
            with self.assertRaises(MalformedDailyLogError):
                validate_log_score({"date": "2025-11-30", "completion_score": bad})

    def test_missing_or_bad_date_is_rejected(self):
        with self.assertRaises(MalformedDailyLogError):
            calculate_streak([{"completion_score": 90}])
        with self.assertRaises(MalformedDailyLogError):
            calculate_streak([{"date": None, "completion_score": 90}])
        with self.assertRaises(MalformedDailyLogError):
            calculate_streak([{"date": "yesterday", "completion_score": 90}])

    def test_average_score(self):
        self.assertEqual(calculate_average_score([]), 0)
        self.assertAlmostEqual(calculate_average_score(make_logs(90, 60, 30)), 60.0)

    def test_malformed_log_in_history_is_surfaced(self):
        logs = make_logs(90, 80)
        del logs[1]["completion_score"]
        with self.assertRaises(MalformedDailyLogError):
            calculate_average_score(logs)


class InsightTests(TestCase):
    def test_end_to_end_half_done_is_mid_tier(self):
        tasks = [make_task(10, 10), make_task(20, 0)]
        score = calculate_completion_score(tasks)
        insights = derive_insights(tasks, score, [])
        self.assertAlmostEqual(score, 50.0)
        self.assertEqual(insights["tier"], "mid")
        self.assertEqual(insights["completed_tasks"], 1)
        self.assertEqual(insights["incomplete_tasks"], 1)

    def test_counts_partition_all_tasks(self):
        tasks = [make_task(10, 10), make_task(10, 15), make_task(0, 3), make_task(4, 1), make_task(2, 0)]
        insights = derive_insights(tasks, calculate_completion_score(tasks), [])
        self.assertEqual(insights["completed_tasks"] + insights["incomplete_tasks"], len(tasks))
        self.assertEqual(insights["completed_tasks"], 2)
        self.assertEqual(insights["total_tasks"], 5)

    def test_totals_are_unclamped(self):
        tasks = [make_task(10, 25), make_task(5, 1)]
        insights = derive_insights(tasks, calculate_completion_score(tasks), [])
        self.assertEqual(insights["total_progress"], 26)
        self.assertEqual(insights["total_target"], 15)

    def test_history_feeds_average_and_streak(self):
        logs = make_logs(95, 85, 60, 90)
        insights = derive_insights([], 0, logs)
        self.assertEqual(insights["current_streak"], 2)
        self.assertAlmostEqual(insights["average_score"], 82.5)
        self.assertEqual(insights["tier"], "baseline")


class TrackerApiTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username="reader", password="pw")
        self.other = User.objects.create_user(username="runner", password="pw")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_requires_authentication(self):
        anonymous = APIClient()
        self.assertIn(anonymous.get("/api/tasks/").status_code, (401, 403))

    def test_create_and_list_tasks(self):
        resp = self.client.post("/api/tasks/", {"name": "Read", "target_value": 50, "unit": "pages"}, format="json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data["current_value"], 0)
        self.assertEqual(resp.data["percentage"], 0)

        Task.objects.create(user=self.other, name="Hidden", target_value=1, unit="x")
        listed = self.client.get("/api/tasks/")
        self.assertEqual(listed.status_code, 200)
        self.assertEqual([t["name"] for t in listed.data], ["Read"])

    def test_zero_target_is_rejected(self):
        resp = self.client.post("/api/tasks/", {"name": "Nothing", "target_value": 0, "unit": "x"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertIn("target_value", resp.data)

    def test_update_progress_and_delete(self):
        task = Task.objects.create(user=self.user, name="Run", target_value=5, unit="km")
        resp = self.client.patch(f"/api/tasks/{task.pk}/", {"current_value": 7.5}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data["percentage"], 100)

        negative = self.client.patch(f"/api/tasks/{task.pk}/", {"current_value": -1}, format="json")
        self.assertEqual(negative.status_code, 400)

        self.assertEqual(self.client.delete(f"/api/tasks/{task.pk}/").status_code, 204)
        self.assertFalse(Task.objects.filter(pk=task.pk).exists())

    def test_cannot_touch_another_users_task(self):
        task = Task.objects.create(user=self.other, name="Theirs", target_value=5, unit="km")
        resp = self.client.patch(f"/api/tasks/{task.pk}/", {"current_value": 1}, format="json")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(self.client.delete(f"/api/tasks/{task.pk}/").status_code, 404)

    def test_insights(self):
        Task.objects.create(user=self.user, name="Read", target_value=10, current_value=10, unit="pages")
        Task.objects.create(user=self.user, name="Run", target_value=20, current_value=0, unit="km")
        today = timezone.localdate()
        for offset, score in enumerate([95, 85, 60], start=1):
            DailyLog.objects.create(user=self.user, date=today - timedelta(days=offset), completion_score=score)

        resp = self.client.get("/api/insights/")
        self.assertEqual(resp.status_code, 200)
        self.assertAlmostEqual(resp.data["completion_score"], 50.0)
        insights = resp.data["insights"]
        self.assertEqual(insights["tier"], "mid")
        self.assertEqual(insights["current_streak"], 2)
        self.assertAlmostEqual(insights["average_score"], 80.0)

    def test_insights_use_only_the_recent_window(self):
        """Only the 7 newest logs count; an older failing day is outside the window."""
        today = timezone.localdate()
        for offset in range(1, 8):
            DailyLog.objects.create(user=self.user, date=today - timedelta(days=offset), completion_score=100)
        DailyLog.objects.create(user=self.user, date=today - timedelta(days=8), completion_score=0)

        insights = self.client.get("/api/insights/").data["insights"]
        self.assertAlmostEqual(insights["average_score"], 100.0)
        self.assertEqual(insights["current_streak"], 7)

    def test_recent_logs_are_limited_and_newest_first(self):
        today = timezone.localdate()
        for offset in range(10):
            DailyLog.objects.create(user=self.user, date=today - timedelta(days=offset), completion_score=offset)
        resp = self.client.get("/api/logs/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.data), 7)
        self.assertEqual(resp.data[0]["date"], today.isoformat())

    def test_malformed_history_is_reported(self):
        DailyLog.objects.create(user=self.user, date=timezone.localdate(), completion_score=150)
        with self.assertLogs("tracker.views", level="ERROR"):
            resp = self.client.get("/api/insights/")
        self.assertEqual(resp.status_code, 500)

    def test_end_day_logs_snapshot_and_resets(self):
        Task.objects.create(user=self.user, name="Read", target_value=10, current_value=10, unit="pages")
        Task.objects.create(user=self.user, name="Run", target_value=20, current_value=5, unit="km")

        resp = self.client.post("/api/day/end/")
        self.assertEqual(resp.status_code, 201)
        self.assertAlmostEqual(resp.data["log"]["completion_score"], 62.5)
        self.assertEqual(resp.data["completion_score"], 0)

        log = DailyLog.objects.get(user=self.user)
        self.assertEqual(log.date, timezone.localdate())
        self.assertEqual(sorted(t["current_value"] for t in log.tasks), [5, 10])
        self.assertEqual(set(Task.objects.filter(user=self.user).values_list("current_value", flat=True)), {0})

    def test_end_day_twice_is_a_conflict(self):
        task = Task.objects.create(user=self.user, name="Read", target_value=10, current_value=10, unit="pages")
        self.assertEqual(self.client.post("/api/day/end/").status_code, 201)

        Task.objects.filter(pk=task.pk).update(current_value=4)
        with self.assertLogs("tracker.views", level="WARNING"):
            resp = self.client.post("/api/day/end/")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(DailyLog.objects.get(user=self.user).completion_score, 100)
        self.assertEqual(Task.objects.get(pk=task.pk).current_value, 4)

    def test_end_day_without_tasks(self):
        resp = self.client.post("/api/day/end/")
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(DailyLog.objects.exists())

    def test_end_day_with_malformed_history_writes_nothing(self):
        DailyLog.objects.create(user=self.user, date=timezone.localdate() - timedelta(days=1), completion_score=150)
        task = Task.objects.create(user=self.user, name="Read", target_value=10, current_value=6, unit="pages")

        with self.assertLogs("tracker.views", level="ERROR"):
            resp = self.client.post("/api/day/end/")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(DailyLog.objects.filter(user=self.user).count(), 1)
        self.assertEqual(Task.objects.get(pk=task.pk).current_value, 6)

    def test_end_day_resets_only_snapshotted_tasks(self):
        Task.objects.create(user=self.user, name="Read", target_value=10, current_value=10, unit="pages")
        late = {}

        def score_then_add_task(tasks):
            # a task added while the day is being closed
            if "task" not in late:
                late["task"] = Task.objects.create(user=self.user, name="Late", target_value=4,
                                                   current_value=3, unit="km")
            return calculate_completion_score(tasks)

        with patch("tracker.views.calculate_completion_score", side_effect=score_then_add_task):
            resp = self.client.post("/api/day/end/")
        self.assertEqual(resp.status_code, 201)

        log = DailyLog.objects.get(user=self.user)
        self.assertEqual([t["name"] for t in log.tasks], ["Read"])
        self.assertEqual(Task.objects.get(pk=late["task"].pk).current_value, 3)


class DailyLogAdminTests(TestCase):
    def test_logs_cannot_be_added_or_edited_in_admin(self):
        request = RequestFactory().get("/admin/tracker/dailylog/")
        request.user = get_user_model().objects.create_superuser(username="admin", password="pw")
        log_admin = DailyLogAdmin(DailyLog, site)
        self.assertFalse(log_admin.has_add_permission(request))
        self.assertFalse(log_admin.has_change_permission(request))
        self.assertTrue(log_admin.has_view_permission(request))
