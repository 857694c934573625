# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets (REST key, session token). Use a local, gitignored .env.

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKSYNC_APP_NAME": "App display name (default: tasksync).",
    "TASKSYNC_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths (gitignored)
    "TASKSYNC_DATA_DIR": "Local data directory for logs and the snapshot (default: .local/tasksync).",
    "TASKSYNC_SNAPSHOT_DB_PATH": "SQLite snapshot path (default: <data_dir>/tasks.sqlite3).",
    # Remote (Parse / Back4App)
    "TASKSYNC_SERVER_URL": "Parse server URL, e.g. https://parseapi.back4app.com (empty => in-memory remote).",
    "TASKSYNC_APP_ID": "X-Parse-Application-Id (fallback: PARSE_APP_ID).",
    "TASKSYNC_REST_API_KEY": "X-Parse-REST-API-Key (fallback: PARSE_REST_API_KEY).",
    "TASKSYNC_SESSION_TOKEN": "Optional X-Parse-Session-Token, forwarded as-is.",
    # Sync tuning
    "TASKSYNC_MAX_CONCURRENCY": "Remote operations in flight at once (default: 4).",
    "TASKSYNC_REQUEST_TIMEOUT_SECONDS": "Per-call timeout; a timeout is retried (default: 1.0).",
    "TASKSYNC_RETRY_BASE_DELAY_SECONDS": "First backoff delay (default: 0.2).",
    "TASKSYNC_RETRY_FACTOR": "Backoff multiplier (default: 2).",
    "TASKSYNC_RETRY_MAX_ATTEMPTS": "Attempts per operation, first one included (default: 5).",
}
