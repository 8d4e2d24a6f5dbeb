# client/invoice_templates/config.py
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_MIME_TYPE = "application/vnd.ms-excel"


class Settings(BaseSettings):
    """Client settings from environment variables"""

    # ===== BACKEND LOCATION =====
    # Explicit override always wins (Expo builds export EXPO_PUBLIC_API_URL)
    api_url: str = Field(
        default="",
        validation_alias=AliasChoices("api_url", "expo_public_api_url"),
    )
    # Origin of the hosting page when running inside a browser runtime
    host_origin: str = ""
    api_port: int = 8080
    api_prefix: str = "/api/v1"
    local_api_url: str = "http://localhost:8080/api/v1"

    # ===== TRANSPORT =====
    request_timeout_seconds: float = 30.0
    upload_timeout_seconds: float = 120.0  # master workbooks can be a few MB

    # ===== TEMPLATE AUTHORING =====
    temp_template_name: str = "Temp Analysis Template"
    default_field_mappings: Dict[str, str] = {
        "vendor_name": "B1",
        "invoice_number": "B2",
        "invoice_date": "B3",
        "total_amount": "B4",
    }
    accepted_mime_types: List[str] = [XLSX_MIME_TYPE, XLS_MIME_TYPE]

    @field_validator("default_field_mappings", "accepted_mime_types", mode="before")
    def parse_json_value(cls, v):
        if isinstance(v, str):
            import json
            return json.loads(v)
        return v

    # Paths
    log_dir: Path = Path("logs")

    # Environment
    environment: str = "development"  # development, production

    class Config:
        # client/.env sits one directory above the package
        env_file = Path(__file__).resolve().parent.parent / ".env"
        case_sensitive = False
        extra = "ignore"
        populate_by_name = True


def resolve_api_base_url(
    explicit_url: str = "",
    host_origin: str = "",
    local_default: str = "http://localhost:8080/api/v1",
    api_port: int = 8080,
    api_prefix: str = "/api/v1",
) -> str:
    """Pick the backend base URL.

    Precedence: explicit override, then the hosting page's origin (the API is
    served on the same host, on its own port), then the local default.
    """
    if explicit_url:
        return explicit_url.rstrip("/")

    if host_origin:
        origin = urlparse(host_origin)
        if origin.scheme and origin.hostname:
            return f"{origin.scheme}://{origin.hostname}:{api_port}{api_prefix}".rstrip("/")

    return local_default.rstrip("/")


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings handed to a RemoteTemplateClient instance."""
    base_url: str
    api_prefix: str = "/api/v1"
    timeout_seconds: float = 30.0
    upload_timeout_seconds: float = 120.0

    @property
    def server_root(self) -> str:
        """Base URL with the API prefix removed (where /health lives)."""
        if self.api_prefix and self.base_url.endswith(self.api_prefix):
            return self.base_url[: -len(self.api_prefix)]
        return self.base_url

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "ClientConfig":
        source = source or settings
        return cls(
            base_url=resolve_api_base_url(
                explicit_url=source.api_url,
                host_origin=source.host_origin,
                local_default=source.local_api_url,
                api_port=source.api_port,
                api_prefix=source.api_prefix,
            ),
            api_prefix=source.api_prefix,
            timeout_seconds=source.request_timeout_seconds,
            upload_timeout_seconds=source.upload_timeout_seconds,
        )


# Global settings instance
settings = Settings()
