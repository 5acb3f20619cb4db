"""Simple runtime configuration for the Fast Lists app.

Control flags are read from environment variables to allow toggling in
development or production without code changes.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


# Where session snapshots live: 'memory' keeps them in-process (lost on
# restart), 'sql' stores them in the Session table at DATABASE_URL.
SESSION_BACKEND = os.getenv('SESSION_BACKEND', 'memory').lower()

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///./fast_lists.db')

# Sliding lifetime of a session: every saved request pushes expiry forward.
try:
    SESSION_EXPIRE_MINUTES = int(os.getenv('SESSION_EXPIRE_MINUTES', str(60 * 24 * 7)))
except Exception:
    SESSION_EXPIRE_MINUTES = 60 * 24 * 7

SESSION_COOKIE_NAME = os.getenv('SESSION_COOKIE_NAME', 'session_token')

COOKIE_SECURE = _trueish(os.getenv('COOKIE_SECURE', 'false'))

# Require a valid _csrf form field (or X-CSRF-Token header) on every POST.
CSRF_ENABLED = _trueish(os.getenv('CSRF_ENABLED', '1'))

# When true, the app is considered to be running in development mode.
# Use DEV_MODE=1 in the environment to enable template auto-reload and the
# dev banner.
DEV_MODE = _trueish(os.getenv('DEV_MODE', '0'))

# How often (at most) a store sweeps expired sessions while saving. Sessions
# from clients that never come back are removed without a restart.
try:
    SESSION_PURGE_INTERVAL_MINUTES = int(os.getenv('SESSION_PURGE_INTERVAL_MINUTES', '10'))
except Exception:
    SESSION_PURGE_INTERVAL_MINUTES = 10
