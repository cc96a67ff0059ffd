"""Application configuration loaded from environment variables.

Every setting can be overridden with an ``MMT_``-prefixed variable or an
entry in a local ``.env`` file (see ``.env.example``).
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """mmt-forms configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Storage backend selection
    storage_backend: Literal["json", "http", "sharepoint"] = Field(
        default="json",
        description="Persistence adapter: local JSON file, JSON over HTTP, or SharePoint lists",
    )
    data_file: str = Field(
        default="data/mmt_db.json",
        description="Path of the JSON database for the 'json' backend",
    )
    storage_url: str = Field(
        default="",
        description="URL of the JSON document for the 'http' backend",
    )
    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for HTTP storage requests",
    )

    # SharePoint (token acquisition happens outside this package)
    sharepoint_site_url: str = Field(
        default="",
        description="SharePoint site URL, e.g. https://tenant.sharepoint.com/sites/mmt",
    )
    sharepoint_token: str = Field(
        default="",
        description="Bearer token sent with every SharePoint REST request",
    )
    sharepoint_participants_list: str = Field(default="MMT_Participants")
    sharepoint_classes_list: str = Field(default="MMT_Classes")
    sharepoint_attendances_list: str = Field(default="MMT_Attendances")

    # Form generation
    signature_location: str = Field(
        default="Porrentruy",
        description="Location written next to the signature on generated forms",
    )
    flatten_forms: bool = Field(
        default=True,
        description="Flatten generated forms so every viewer renders the same font",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "MMT_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get the application configuration singleton.

    Returns:
        AppConfig: Application configuration instance
    """
    global _config
    if _config is None:
        _config = AppConfig()
    return _config
