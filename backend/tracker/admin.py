from django.contrib import admin

from .models import Task, DailyLog


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ('name', 'user', 'current_value', 'target_value', 'unit', 'created_at')
    list_filter = ('user',)


@admin.register(DailyLog)
class DailyLogAdmin(admin.ModelAdmin):
    list_display = ('date', 'user', 'completion_score', 'timestamp')
    list_filter = ('user',)
    readonly_fields = ('user', 'date', 'tasks', 'completion_score', 'timestamp')

    # logs are written only by the end-of-day endpoint and never edited
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
