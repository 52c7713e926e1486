"""Utility functions."""

from loyalty.utils.audit import get_client_ip, log_action, snapshot_fields
from loyalty.utils.password import hash_password, verify_password

__all__ = [
    "hash_password",
    "verify_password",
    "log_action",
    "get_client_ip",
    "snapshot_fields",
]
