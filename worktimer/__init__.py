"""Work timer service: start/pause/resume/stop timing of tasks and subtasks.

The core is :class:`worktimer.services.timer.TimerSession`; the FastAPI
application lives in :mod:`worktimer.main`.
"""

__version__ = "0.1.0"
