"""Backup scheduling and execution services.

This package provides:
- Recurrence arithmetic to compute `next_run` timestamps
- Export aggregation and ZIP archive building
- Multi-channel delivery (email queue, object storage) with an
  at-least-one-succeeds policy
- Orchestration to run schedules, poll for due schedules and record executions
- Schedule CRUD and execution statistics
"""
