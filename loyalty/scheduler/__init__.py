"""Scheduled background jobs."""

from loyalty.scheduler.jobs import commission_recalculation_job, scheduler, setup_scheduler

__all__ = ["scheduler", "setup_scheduler", "commission_recalculation_job"]
