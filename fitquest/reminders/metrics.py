from prometheus_client import Counter, Gauge


reminders_created_total = Counter(
    "reminders_created_total",
    "Total reminders created via API",
)

reminders_acknowledged_total = Counter(
    "reminders_acknowledged_total",
    "Total reminders acknowledged by clients",
)

scheduler_sessions_started_total = Counter(
    "reminder_scheduler_sessions_started_total",
    "Total reminder sessions started (including restarts and updates)",
)

scheduler_sessions_stopped_total = Counter(
    "reminder_scheduler_sessions_stopped_total",
    "Total reminder sessions stopped",
)

scheduler_rejected_total = Counter(
    "reminder_scheduler_rejected_total",
    "Total start/update requests rejected for an invalid interval",
)

scheduler_fires_total = Counter(
    "reminder_scheduler_fires_total",
    "Total timer firings",
    ["phase"],
)

scheduler_restarts_total = Counter(
    "reminder_scheduler_restarts_total",
    "Total restart-from-store reconciliations",
)

scheduler_active_sessions = Gauge(
    "reminder_scheduler_active_sessions",
    "Reminder sessions currently scheduled",
)

reminders_dispatch_success_total = Counter(
    "reminders_dispatch_success_total",
    "Total reminders pushed to a live client",
)

reminders_dispatch_queued_total = Counter(
    "reminders_dispatch_queued_total",
    "Total reminders queued for an offline client",
)

reminders_dispatch_failed_total = Counter(
    "reminders_dispatch_failed_total",
    "Total failed reminder deliveries",
)
