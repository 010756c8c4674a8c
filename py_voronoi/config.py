"""Configuration management."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings pulled from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VORONOI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Seed set
    min_separation: float = Field(
        default=0.01, ge=0.0, description="Minimum distance between two live seeds"
    )
    max_sample_attempts: int = Field(
        default=30, ge=1, description="Rejection-sampling retries per seed"
    )

    # Geometric predicates
    in_circle_epsilon: float = Field(
        default=1e-12, ge=0.0, description="In-circle determinant tolerance"
    )
    orientation_epsilon: float = Field(
        default=1e-12, ge=0.0, description="Orientation test tolerance"
    )

    # Triangulation / clipping
    super_triangle_scale: float = Field(
        default=20.0, gt=1.0, description="Super triangle size relative to the domain"
    )
    ray_extension: float = Field(
        default=4.0, gt=0.0, description="Open-cell ray length in domain diagonals"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (json or console)")


settings = Settings()
