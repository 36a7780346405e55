"""Scheduled tasks for the teleconsultation service.

This package contains jobs that run periodically to handle:
- Cascade sweeping (offer expiry, round advancement, unattended marking)
"""

from teleconsulta.tasks.cascade_sweep import run_cascade_sweep_task, run_sweep_once

__all__ = [
    "run_cascade_sweep_task",
    "run_sweep_once",
]
