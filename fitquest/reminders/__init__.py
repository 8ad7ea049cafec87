"""Reminder service module (scheduler, store, notification sink, API).

The scheduler keeps one timer pair per active reminder and hands fired
reminders to a notification sink. Persisted reminder records live in Redis
and are replayed into the scheduler on startup.
"""
