"""Persistence backends selected by configuration."""

from mmt_forms.config import AppConfig, get_config
from mmt_forms.errors import ConfigurationError
from mmt_forms.logging import get_logger
from mmt_forms.storage.base import Storage
from mmt_forms.storage.document import DocumentStorage
from mmt_forms.storage.http_json import HttpJsonStorage
from mmt_forms.storage.json_file import JsonFileStorage
from mmt_forms.storage.sharepoint import SharePointStorage

log = get_logger(__name__)


def get_storage(config: AppConfig | None = None) -> Storage:
    """Build the backend named by ``config.storage_backend``.

    Raises:
        ConfigurationError: If the backend's required settings are missing.
    """
    config = config or get_config()
    backend = config.storage_backend
    log.debug("storage_backend_selected", backend=backend)

    if backend == "json":
        return JsonFileStorage(config.data_file)
    if backend == "http":
        if not config.storage_url:
            raise ConfigurationError("MMT_STORAGE_URL is required for the http backend")
        return HttpJsonStorage(config.storage_url, timeout=config.http_timeout)
    if backend == "sharepoint":
        if not config.sharepoint_site_url or not config.sharepoint_token:
            raise ConfigurationError(
                "MMT_SHAREPOINT_SITE_URL and MMT_SHAREPOINT_TOKEN are required "
                "for the sharepoint backend"
            )
        return SharePointStorage(
            config.sharepoint_site_url,
            config.sharepoint_token,
            participants_list=config.sharepoint_participants_list,
            classes_list=config.sharepoint_classes_list,
            attendances_list=config.sharepoint_attendances_list,
            timeout=config.http_timeout,
        )
    raise ConfigurationError(f"unknown storage backend {backend!r}")


__all__ = [
    "DocumentStorage",
    "HttpJsonStorage",
    "JsonFileStorage",
    "SharePointStorage",
    "Storage",
    "get_storage",
]
