"""Sync — converge a project's library onto its desired state.

This package provides:
- Reconciliation: diff the desired closure against the lock and the library
- Workflows: bootstrap, snapshot, restore, clean, status and recover
"""
