"""Interaction with the running CA service."""
from __future__ import annotations

from ca_janitor.service.status import check_server_online, status_url

__all__ = [
    "check_server_online",
    "status_url",
]
