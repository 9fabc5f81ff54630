"""Ule privacy service — account deletion lifecycle and lock-guarded cron jobs."""

__version__ = "0.1.0"
