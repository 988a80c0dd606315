from . import dashboard, help, project_form, project_list, task_detail, task_form, task_list, time_tracking

__all__ = [
    "dashboard",
    "help",
    "project_form",
    "project_list",
    "task_detail",
    "task_form",
    "task_list",
    "time_tracking",
]
