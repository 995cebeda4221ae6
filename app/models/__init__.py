from .user import User
from .task import Task
from .periodic_task import PeriodicTask
from .task_completion import TaskCompletion
from .periodic_task_stats import PeriodicTaskStats

__all__ = [
    "User",
    "Task",
    "PeriodicTask",
    "TaskCompletion",
    "PeriodicTaskStats",
]
