"""Configuration management for the order entry engine."""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class OrderEntryConfig(BaseSettings):
    """Configuration for order entry validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    barcode_max_length: int = Field(
        default=50,
        ge=1,
        le=512,
        description="Maximum barcode length after trimming",
    )

    quantity_max: int = Field(
        default=999_999,
        ge=1,
        description="Largest accepted quantity per row",
    )

    price_max: int = Field(
        default=999_999,
        ge=1,
        description="Largest accepted unit price per row",
    )

    verification_timeout_sec: Optional[float] = Field(
        default=10.0,
        gt=0,
        le=300.0,
        description="Seconds to wait for a barcode existence check (set to null to disable)",
    )

    catalog_base_url: str = Field(
        default="http://localhost:9000/products",
        description="Base URL of the products service used for barcode checks",
    )

    catalog_timeout_sec: float = Field(
        default=5.0,
        gt=0,
        le=120.0,
        description="HTTP timeout for catalog requests in seconds",
    )

    mock_catalog: bool = Field(
        default=False,
        description="Use an in-memory catalog instead of calling the products service",
    )

    mock_known_barcodes: str = Field(
        default="",
        description="Comma-separated barcodes the in-memory catalog reports as existing",
    )

    draft_dir: Path = Field(
        default=Path.cwd() / "output" / "drafts",
        description="Directory holding persisted drafts",
    )

    draft_key_prefix: str = Field(
        default="add-order-modal-items",
        description="Storage key prefix for persisted drafts",
    )

    max_open_drafts: int = Field(
        default=256,
        ge=1,
        le=10_000,
        description="Draft sessions kept in memory; idle ones beyond this are reopened from storage",
    )

    api_host: str = Field(
        default="0.0.0.0",
        description="API host address",
    )

    api_port: int = Field(
        default=8000,
        description="API port",
    )

    @field_validator("draft_key_prefix")
    @classmethod
    def validate_draft_key_prefix(cls, v: str) -> str:
        """Draft keys end up in file names, keep them path-safe."""
        if not v.strip():
            raise ValueError("DRAFT_KEY_PREFIX cannot be empty")
        if any(ch in v for ch in ("/", "\\", "..")):
            raise ValueError(
                f"Invalid draft key prefix: '{v}'. Path separators are not allowed."
            )
        return v.strip()

    def get_known_barcodes(self) -> set[str]:
        """Parse mock catalog barcodes from comma-separated string."""
        return {b.strip() for b in self.mock_known_barcodes.split(",") if b.strip()}

    def draft_key(self, session_id: str = "default") -> str:
        """Build the storage key for one draft session."""
        return f"{self.draft_key_prefix}:{session_id}"

    def validate_config(self) -> None:
        """Validate configuration at startup. Raises ValueError if invalid."""
        errors = []

        if not self.mock_catalog:
            if not self.catalog_base_url.startswith(("http://", "https://")):
                errors.append("CATALOG_BASE_URL must be an http(s) URL")

        if self.mock_catalog and not self.get_known_barcodes():
            logger.warning(
                "MOCK_CATALOG enabled without MOCK_KNOWN_BARCODES; "
                "every barcode check will report not found"
            )

        if (
            self.verification_timeout_sec is not None
            and self.verification_timeout_sec < self.catalog_timeout_sec
        ):
            errors.append(
                "VERIFICATION_TIMEOUT_SEC must not be shorter than CATALOG_TIMEOUT_SEC"
            )

        if errors:
            raise ValueError(
                "Configuration validation failed:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )


_config_instance = None


def get_config() -> OrderEntryConfig:
    """Get or create global configuration instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = OrderEntryConfig()
        _config_instance.validate_config()
        logger.info("Configuration validated successfully")
    return _config_instance


def get_config_unvalidated() -> OrderEntryConfig:
    """Get or create global configuration instance without validation."""
    global _config_instance
    if _config_instance is None:
        _config_instance = OrderEntryConfig()
    return _config_instance


def reload_config() -> OrderEntryConfig:
    """Reload configuration (useful for testing)."""
    global _config_instance
    _config_instance = OrderEntryConfig()
    return _config_instance
