"""
Approval Gate - Jobs Module

This module contains offline jobs for the approval control layer:
- approval_sweep: One-shot expiry sweep over the persisted request index

Reliability Level: Offline Job (Cold Path)
"""

from jobs.approval_sweep import (
    run_sweep,
    main,
)

__all__ = [
    "run_sweep",
    "main",
]
