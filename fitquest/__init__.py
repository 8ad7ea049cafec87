"""
FitQuest Backend Application Package

Reminder scheduling, notification delivery and the HTTP/WebSocket surface
that the dashboard talks to.
"""
