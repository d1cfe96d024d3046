"""Where provider access tokens come from."""
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from foldly.config import settings
from foldly.services.cloud.types import ProviderId


class CloudTokenProvider(ABC):

    @abstractmethod
    async def get_token(self, user_id: UUID, provider: ProviderId) -> Optional[str]:
        """Bearer token for ``user_id`` on ``provider``, or None when not connected."""


class SettingsTokenProvider(CloudTokenProvider):
    """Single-tenant tokens from env vars. Used for local development."""

    async def get_token(self, user_id: UUID, provider: ProviderId) -> Optional[str]:
        tokens = {
            "google-drive": settings.GOOGLE_DRIVE_ACCESS_TOKEN,
            "onedrive": settings.ONEDRIVE_ACCESS_TOKEN,
        }
        return tokens.get(provider) or None
