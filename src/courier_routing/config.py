"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTING_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Courier Route Planning API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for route exports.")
    default_average_speed_kmh: float = Field(
        default=30.0,
        gt=0.0,
        description="Courier speed used when a courier has no average speed on record.",
    )
    default_stop_duration_minutes: int = Field(
        default=10,
        ge=0,
        description="Handover time at a drop-off when the order carries no estimate.",
    )
    pickup_duration_minutes: int = Field(
        default=5,
        ge=0,
        description="Time spent collecting an order at the business location.",
    )
    default_cluster_radius_km: float = Field(default=2.0, gt=0.0)
    fallback_latitude: float = Field(
        default=41.0082,
        ge=-90.0,
        le=90.0,
        description="City default used when neither the courier nor the orders give a start position.",
    )
    fallback_longitude: float = Field(default=28.9784, ge=-180.0, le=180.0)
    plannable_order_statuses: tuple[str, ...] = Field(
        default=("PROCESSING", "PREPARING", "READY"),
        description="Order statuses that are ready to be routed.",
    )
    active_order_statuses: tuple[str, ...] = Field(
        default=("PROCESSING", "PREPARING", "READY", "IN_TRANSIT"),
        description="Order statuses shown on a courier's current route.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator(
        "frontend_allowed_origins",
        "plannable_order_statuses",
        "active_order_statuses",
        mode="before",
    )
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
