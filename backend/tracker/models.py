import uuid

from django.conf import settings
from django.db import models


def generate_task_id() -> str:
    return uuid.uuid4().hex


class Task(models.Model):
    id = models.CharField(primary_key=True, max_length=64, default=generate_task_id, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='tracked_tasks')
    name = models.CharField(max_length=255)
    target_value = models.FloatField()
    current_value = models.FloatField(default=0)
    unit = models.CharField(max_length=64)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f"{self.name} ({self.current_value:g}/{self.target_value:g} {self.unit})"


class DailyLog(models.Model):
    """End-of-day record: task snapshot plus the day's completion score. Written once."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='daily_logs')
    date = models.DateField()
    tasks = models.JSONField(default=list)  # snapshot of serialized tasks at day end
    completion_score = models.FloatField()
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-date']
        constraints = [
            models.UniqueConstraint(fields=['user', 'date'], name='uq_dailylog_user_date'),
        ]

    def __str__(self):
        return f"{self.date.isoformat()}: {self.completion_score:.1f}%"
