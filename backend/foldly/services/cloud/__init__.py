"""Cloud storage clients."""
from foldly.services.cloud.base import BaseCloudProvider
from foldly.services.cloud.google_drive import GoogleDriveProvider
from foldly.services.cloud.onedrive import OneDriveProvider

PROVIDERS: dict[str, type[BaseCloudProvider]] = {
    "google-drive": GoogleDriveProvider,
    "onedrive": OneDriveProvider,
}


def create_cloud_provider(provider_id: str, access_token: str, **kwargs) -> BaseCloudProvider:
    """Factory. Extra kwargs go to the provider constructor."""
    provider_cls = PROVIDERS.get(provider_id)
    if provider_cls is None:
        raise ValueError(f"Unknown cloud provider: {provider_id}")
    return provider_cls(access_token, **kwargs)
