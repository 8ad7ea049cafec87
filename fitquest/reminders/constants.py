# Interval bounds in minutes, inclusive.
MIN_INTERVAL = 1
MAX_INTERVAL = 60

# Seconds between session start and the first notification.
# TODO: confirm with product whether this fast first-fire stays permanent.
FIRST_NOTIFICATION_DELAY = 5

SECONDS_PER_MINUTE = 60

SESSION_ID_PREFIX = "reminder-"
