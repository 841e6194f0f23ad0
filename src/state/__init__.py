"""
Database-backed records and persistence for the jobs.

Every record is read from Supabase at the start of an invocation and dropped at
the end; nothing survives between runs except what is written back.
"""

from .models import (
    ChainTarget,
    NotificationMessage,
    StockAlert,
    TravelCache,
    UserCredential,
    UserStatusFlags,
)

__all__ = [
    "ChainTarget",
    "NotificationMessage",
    "StockAlert",
    "TravelCache",
    "UserCredential",
    "UserStatusFlags",
]
