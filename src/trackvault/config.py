from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TRACKVAULT_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "trackvault"
    env: str = "dev"
    host: str = "0.0.0.0"  # nosec B104 - intentional for container deployments
    port: int = 8080
    log_level: str = "INFO"

    # Library layout
    library_dir: Path = Field(
        default=Path("static/gpx"),
        validation_alias=AliasChoices("TRACKVAULT_LIBRARY_DIR", "LIBRARY_DIR"),
    )
    document_name: str = "library.json"
    images_dirname: str = "images"

    # Image uploads
    max_image_bytes: int = Field(
        default=5 * 1024 * 1024,
        validation_alias=AliasChoices("TRACKVAULT_MAX_IMAGE_BYTES", "MAX_IMAGE_BYTES"),
    )

    # Access passwords (empty means unset; both unset means an open library)
    read_password: str = Field(
        default="",
        validation_alias=AliasChoices("TRACKVAULT_READ_PASSWORD", "PUBLIC_READ_PASSWORD"),
    )
    write_password: str = Field(
        default="",
        validation_alias=AliasChoices("TRACKVAULT_WRITE_PASSWORD", "PUBLIC_WRITE_PASSWORD"),
    )

    # Observability
    enable_metrics: bool = Field(
        default=True,
        validation_alias=AliasChoices("TRACKVAULT_ENABLE_METRICS", "ENABLE_METRICS"),
    )

    @property
    def document_path(self) -> Path:
        return self.library_dir / self.document_name

    @property
    def images_dir(self) -> Path:
        return self.library_dir / self.images_dirname


settings = Settings()
