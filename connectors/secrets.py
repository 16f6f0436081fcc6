"""
Credentials providers — where per-connector credentials come from when the
caller does not pass an explicit override.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional


class CredentialsProvider(ABC):
    @abstractmethod
    async def get_credentials(self, connector_id: str) -> Optional[Dict[str, Any]]:
        """Return credentials for ``connector_id`` or None if it has none."""


class StaticCredentialsProvider(CredentialsProvider):
    """
    Credentials from a fixed mapping (typically ``config.connector_credentials``,
    i.e. the ``CONNECTOR_CREDENTIALS`` env var).
    """

    def __init__(self, credentials: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self._credentials = {k: dict(v) for k, v in (credentials or {}).items()}

    async def get_credentials(self, connector_id: str) -> Optional[Dict[str, Any]]:
        creds = self._credentials.get(connector_id)
        return dict(creds) if creds is not None else None
