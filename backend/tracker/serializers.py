import math

from rest_framework import serializers

from .scoring import task_percentage


class TaskSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    target_value = serializers.FloatField(read_only=True)
    current_value = serializers.FloatField(read_only=True)
    unit = serializers.CharField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)
    percentage = serializers.SerializerMethodField()

    def get_percentage(self, obj) -> float:
        return task_percentage({"target_value": obj.target_value, "current_value": obj.current_value})


class TaskCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    target_value = serializers.FloatField()
    unit = serializers.CharField(max_length=64)

    def validate_target_value(self, value: float):
        # a zero target has no meaningful completion ratio
        if not math.isfinite(value) or value <= 0:
            raise serializers.ValidationError('target_value must be a number greater than 0')
        return value


class TaskProgressSerializer(serializers.Serializer):
    current_value = serializers.FloatField(min_value=0)

    def validate_current_value(self, value: float):
        if not math.isfinite(value):
            raise serializers.ValidationError('current_value must be a finite number')
        return value


class DailyLogSerializer(serializers.Serializer):
    date = serializers.DateField(read_only=True)
    tasks = serializers.JSONField(read_only=True)
    completion_score = serializers.FloatField(read_only=True)
    timestamp = serializers.DateTimeField(read_only=True)
