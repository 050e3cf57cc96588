from django.urls import path

from .views import DailyLogList, EndDay, Insights, TaskDetail, TaskList

urlpatterns = [
    path('tasks/', TaskList.as_view(), name='task-list'),
    path('tasks/<str:task_id>/', TaskDetail.as_view(), name='task-detail'),
    path('insights/', Insights.as_view(), name='insights'),
    path('logs/', DailyLogList.as_view(), name='daily-log-list'),
    path('day/end/', EndDay.as_view(), name='end-day'),
]
