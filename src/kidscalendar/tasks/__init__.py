"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, RecurrenceRule)
- timefmt.py: display time <-> minute-of-day conversion and input validators
- recurrence.py: which days a recurring task occurs on
- lifecycle.py: pending -> active -> done transitions and countdown projections
- task_api.py: edit boundary (single task, pasted tables, generated lists)
- task_scheduler.py: polling loop that raises start / time-up alarms
"""
