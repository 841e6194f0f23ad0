"""
Common utilities for the Torn watcher jobs.

Modules:
- torn: Torn API client with per-key rate limiting
- supabase: PostgREST client for the backing database
- push: Expo push gateway client and batch dispatcher
- transitions: flag transition and stock change detection
- distributor: round-robin work assignment over a credential pool
"""

__all__ = [
    "distributor",
    "push",
    "supabase",
    "torn",
    "transitions",
]
