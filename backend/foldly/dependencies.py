"""FastAPI dependencies: acting user and service instances.

Services are stateless and shared across requests; tests swap them out
through ``app.dependency_overrides``.
"""
import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException

from foldly.services.cloud import BaseCloudProvider, create_cloud_provider
from foldly.services.cloud.tokens import CloudTokenProvider, SettingsTokenProvider
from foldly.services.cloud.types import ProviderId
from foldly.services.link_files_copy import LinkFilesCopyService
from foldly.services.link_files_tree import LinkFilesTreeService
from foldly.services.storage_quota import StorageQuotaService

quota_service = StorageQuotaService()
copy_service = LinkFilesCopyService(quota_service)
tree_service = LinkFilesTreeService()
token_provider: CloudTokenProvider = SettingsTokenProvider()


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> uuid.UUID:
    """User id forwarded by the identity provider in ``X-User-Id``."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header")


def get_copy_service() -> LinkFilesCopyService:
    return copy_service


def get_tree_service() -> LinkFilesTreeService:
    return tree_service


def get_token_provider() -> CloudTokenProvider:
    return token_provider


async def get_cloud_provider(
    provider: ProviderId,
    user_id: uuid.UUID = Depends(get_current_user_id),
    tokens: CloudTokenProvider = Depends(get_token_provider),
):
    """Yield a pooled client for ``provider`` authorised as the acting user."""
    token = await tokens.get_token(user_id, provider)
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "AUTH_FAILED", "message": f"{provider} is not connected"},
        )
    client: BaseCloudProvider = create_cloud_provider(provider, token)
    async with client:
        yield client
