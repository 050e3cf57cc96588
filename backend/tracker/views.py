# views.py
import logging
from typing import List, Dict, Any, Tuple

from django.conf import settings
from django.db import IntegrityError, transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Task, DailyLog
from .scoring import (
    MalformedDailyLogError,
    RECENT_LOG_LIMIT,
    calculate_average_score,
    calculate_completion_score,
    calculate_streak,
    derive_insights,
)
from .serializers import (
    DailyLogSerializer,
    TaskCreateSerializer,
    TaskProgressSerializer,
    TaskSerializer,
)

logger = logging.getLogger(__name__)


class MalformedHistory(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Stored daily history is malformed.'
    default_code = 'malformed_daily_log'


def recent_log_limit() -> int:
    return getattr(settings, 'TRACKER', {}).get('RECENT_LOG_LIMIT', RECENT_LOG_LIMIT)


def task_values(tasks) -> List[Dict[str, float]]:
    """Plain task mappings for the scoring functions."""
    return [{'target_value': t.target_value, 'current_value': t.current_value} for t in tasks]


def recent_logs(user) -> List[Dict[str, Any]]:
    """Most recent daily logs for `user` as plain mappings, sorted by date descending."""
    logs = DailyLog.objects.filter(user=user).order_by('-date')[:recent_log_limit()]
    return [{'date': log.date, 'completion_score': log.completion_score} for log in logs]


def checked_recent_logs(user) -> List[Dict[str, Any]]:
    """recent_logs(user), raising MalformedHistory if any of them is unusable."""
    logs = recent_logs(user)
    try:
        calculate_average_score(logs)
        calculate_streak(logs)
    except MalformedDailyLogError as exc:
        logger.error("Malformed daily history for user %s: %s", user.pk, exc)
        raise MalformedHistory() from exc
    return logs


def build_summary(user) -> Tuple[float, Dict[str, Any]]:
    """Return (completion score, insight summary) for the user's current state."""
    logs = checked_recent_logs(user)
    tasks = task_values(Task.objects.filter(user=user))
    score = calculate_completion_score(tasks)
    return score, derive_insights(tasks, score, logs)


class TaskList(APIView):
    """
    GET  /api/tasks/  -> the user's tasks in creation order, with per-task percentage.
    POST /api/tasks/  -> create a task; current_value starts at 0.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        tasks = Task.objects.filter(user=request.user)
        return Response(TaskSerializer(tasks, many=True).data, status=status.HTTP_200_OK)

    def post(self, request):
        serializer = TaskCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = Task.objects.create(user=request.user, current_value=0, **serializer.validated_data)
        logger.info("Created task %s for user %s", task.pk, request.user.pk)
        return Response(TaskSerializer(task).data, status=status.HTTP_201_CREATED)


class TaskDetail(APIView):
    """
    PATCH  /api/tasks/<id>/  -> overwrite current_value (last write wins).
    DELETE /api/tasks/<id>/  -> remove the task.
    """
    permission_classes = [IsAuthenticated]

    def patch(self, request, task_id):
        task = get_object_or_404(Task, pk=task_id, user=request.user)
        serializer = TaskProgressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task.current_value = serializer.validated_data['current_value']
        task.save(update_fields=['current_value'])
        return Response(TaskSerializer(task).data, status=status.HTTP_200_OK)

    def delete(self, request, task_id):
        task = get_object_or_404(Task, pk=task_id, user=request.user)
        task.delete()
        logger.info("Deleted task %s for user %s", task_id, request.user.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class Insights(APIView):
    """
    GET /api/insights/
    Returns today's completion score and the insight summary
    (task counters, totals, recent average, streak, motivational tier).
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        score, insights = build_summary(request.user)
        return Response({"completion_score": score, "insights": insights}, status=status.HTTP_200_OK)


class DailyLogList(APIView):
    """GET /api/logs/ -> the most recent daily logs, newest first."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        logs = DailyLog.objects.filter(user=request.user).order_by('-date')[:recent_log_limit()]
        return Response(DailyLogSerializer(logs, many=True).data, status=status.HTTP_200_OK)


class EndDay(APIView):
    """
    POST /api/day/end/
    Records today's DailyLog (task snapshot + completion score), then resets
    the snapshotted tasks' current_value to 0. Only one log may exist per day;
    a second call on the same date returns 409 and changes nothing. A
    malformed stored history is reported before anything is written.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        user = request.user
        today = timezone.localdate()

        # raises MalformedHistory with nothing written
        checked_recent_logs(user)

        try:
            with transaction.atomic():
                tasks = list(Task.objects.select_for_update().filter(user=user))
                if not tasks:
                    return Response({"error": "No tasks to log"}, status=status.HTTP_400_BAD_REQUEST)

                if DailyLog.objects.filter(user=user, date=today).exists():
                    logger.warning("Day %s already ended for user %s", today, user.pk)
                    return Response({"error": "Day already ended", "date": today.isoformat()},
                                    status=status.HTTP_409_CONFLICT)

                score = calculate_completion_score(task_values(tasks))
                snapshot = TaskSerializer(tasks, many=True).data
                log = DailyLog.objects.create(user=user, date=today, tasks=snapshot, completion_score=score)
                Task.objects.filter(pk__in=[t.pk for t in tasks]).update(current_value=0)
        except IntegrityError:
            # another request committed today's log first
            logger.warning("Concurrent end-of-day for user %s on %s", user.pk, today)
            return Response({"error": "Day already ended", "date": today.isoformat()},
                            status=status.HTTP_409_CONFLICT)

        logger.info("Ended day %s for user %s with score %.1f", today, user.pk, score)
        new_score, insights = build_summary(user)
        return Response({
            "log": DailyLogSerializer(log).data,
            "completion_score": new_score,
            "insights": insights,
        }, status=status.HTTP_201_CREATED)
