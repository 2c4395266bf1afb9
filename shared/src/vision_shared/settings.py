from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Ingestion
    camera_ids: str = Field(default="cam-01")
    ingest_fps: int = Field(default=15)
    ingest_jpeg_quality: int = Field(default=90)
    frame_buffer_size: int = Field(default=30)

    # Detection models
    default_model: str = Field(default="Default Object Detector")
    models_dir: str = Field(default="services/perception/models")
    models_manifest: str = Field(default="services/perception/data/models.yaml")

    # Tracking
    tracking_enabled: bool = Field(default=True)
    tracking_iou_threshold: float = Field(
        default=0.5,
        description="IoU a detection must strictly exceed to keep a track id",
    )
    tracking_exclusive_matching: bool = Field(
        default=True,
        description="Remove a track from the candidate pool once claimed in a frame",
    )

    # Logging
    log_format: str = Field(default="console")
    log_level: str = Field(default="INFO")

    # Environment
    environment: str = Field(default="development")

    @property
    def camera_id_list(self) -> list[str]:
        return [c.strip() for c in self.camera_ids.split(",") if c.strip()]


# Module-level singleton, import and use directly
settings = Settings()
