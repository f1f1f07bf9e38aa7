"""portik Dashboard — Public API

Read-only Flask JSON API for live port ownership and history.

Usage:
    from dashboard.app import create_app, run_dashboard
    from dashboard.app import hash_password, verify_password
"""
from dashboard.app import create_app, run_dashboard, hash_password, verify_password

__all__ = [
    "create_app",
    "run_dashboard",
    "hash_password",
    "verify_password",
]
