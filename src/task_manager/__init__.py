"""
Task Manager backend package.

Personal task tracking over a FastAPI app (task_manager.main.app) with an
owner-scoped task lifecycle and a daily due date reminder sweep.
"""

__version__ = "0.1.0"
