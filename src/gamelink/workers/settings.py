"""arq worker settings module.

Import path for arq CLI: arq gamelink.workers.settings.WorkerSettings
"""

from __future__ import annotations

from gamelink.sessions.worker import SessionWorkerSettings as WorkerSettings

__all__ = ["WorkerSettings"]
