"""
ONE-STOP-SHOP Configuration File
================================
All hardcoded values, API endpoints, timing constants, sequence
vocabularies and UI config for the sequence console live here.

To change ANY endpoint, poll interval, category list or message author,
edit ONLY this file.
"""

import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# ============================================================
# Backend API Configuration
# ============================================================

API = {
    "base_url": os.getenv("CONSOLE_API_BASE_URL", "http://localhost:3000"),
    "prefix": "/api",
    "session_cookie_name": os.getenv("CONSOLE_SESSION_COOKIE_NAME", "connect.sid"),
    "session_cookie": os.getenv("CONSOLE_SESSION_COOKIE", ""),
    # None keeps the httpx transport default
    "timeout_seconds": (
        float(os.getenv("CONSOLE_API_TIMEOUT"))
        if os.getenv("CONSOLE_API_TIMEOUT")
        else None
    ),
}


def get_api_url(path: str) -> str:
    """Build a full backend URL from a path like '/notifications/unread'."""
    base = API["base_url"].rstrip("/")
    return f"{base}{API['prefix']}{path}"


# ============================================================
# Async Lifecycle Configuration
# ============================================================

LIFECYCLE = {
    "min_loading_seconds": 0.8,     # Minimum visible loading time for generation
}

# ============================================================
# Polling Configuration
# ============================================================

POLLING = {
    "notifications_interval_seconds": 30,
    "active_sequences_interval_seconds": 30,
}

# ============================================================
# Toast Configuration
# ============================================================

TOASTS = {
    "notification_duration_ms": 5000,
    "badge_cap": 9,                 # Badge shows "9+" above this
}

# ============================================================
# Sequence Vocabulary
# ============================================================

SEQUENCE = {
    "categories": [
        "Electrical",
        "Plumbing",
        "HVAC",
        "Appliances",
        "Mechanical",
        "Other",
    ],
    "default_category": "Other",
    "sequence_types": ["troubleshooting", "linear"],
    "default_sequence_type": "troubleshooting",
    "url_categories": ["tool", "video", "documentation"],
    "default_url_category": "documentation",
    "key_max_length": 50,
    "allowed_url_schemes": ("http", "https"),
}

# Roles that may see the active sequence badge and handoff picker
ACTIVE_SEQUENCE_ROLES = ["technician", "manager", "admin"]

# Role of the operator using this console; unset means a local operator
CONSOLE_USER = {
    "role": os.getenv("CONSOLE_USER_ROLE") or None,
}

# ============================================================
# Message Authors
# ============================================================

AUTHORS = {
    "console": {
        "name": "Sequence Console",
        "role": "Sequence authoring assistant",
    },
    "notifications": {
        "name": "Notifications",
        "role": "Broadcast notifications",
    },
    "system": {
        "name": "System",
        "role": "System",
    },
}

# ============================================================
# UI Configuration
# ============================================================

UI = {
    "app_title": "Sequence Console",
    "app_description": "Turn resolved tickets into guided sequences",
    "welcome_message": (
        "Welcome to the **Sequence Console**.\n\n"
        "Convert a resolved ticket into a reusable guided sequence, edit its steps, "
        "then save it for the SMS assistant to use.\n\n"
        "**Commands:**\n"
        "- `convert <ticket id>` - generate a draft sequence from a ticket\n"
        "- `retry` - try the last generation again\n"
        "- `name <text>` / `description <text>` / `category <name>`\n"
        "- `type linear` or `type troubleshooting`\n"
        "- `keyword <text>` / `remove keyword <index>`\n"
        "- `add step` / `remove step <n>` / `move step <n> up|down` / `toggle step <n>`\n"
        "- `message <n> <text>` / `doc <n> <url> [title]`\n"
        "- `trigger <n> success|failure <text>` / `remove trigger <n> success|failure <index>`\n"
        "- `handoff <n> <trigger> <sequence key>` / `clear handoff <n>`\n"
        "- `add tool <name>` / `add part <name>` / `add url <url> [title]`\n"
        "- `tool step <id> <n|all>` / `part step <id> <n|all>`\n"
        "- `remove tool|part|url <id>`\n"
        "- `active on|off` / `targets` / `show` / `save` / `cancel`\n"
        "- `notifications` / `read <id>` / `read all` / `tickets`"
    ),
}


def get_author(key: str, default: Optional[str] = "system") -> str:
    """Display name for a message author key."""
    return AUTHORS.get(key, AUTHORS[default])["name"]
