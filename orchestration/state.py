"""
Lifecycle State
===============
Status values and records shared by the async fetch lifecycle manager
and the console UI.
"""

from enum import Enum
from typing import TypedDict


class GenerationStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


# ==============================
# Error tracking
# ==============================

class ErrorRecord(TypedDict):
    source: str                 # "generate", "save", "notifications", ...
    error_type: str
    message: str
    timestamp: str
    recoverable: bool
