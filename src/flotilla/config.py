"""Configuration management using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class NavigationSettings(BaseSettings):
    """Navigation settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FLOTILLA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Agent physics
    agent_radius: float = 0.5
    max_thrust: int = 7          # thrust levels 0..max_thrust, 1 unit each
    heading_count: int = 360     # one heading per degree
    weapon_radius: float = 5.0
    forecast_fudge: float = 0.1  # extra clearance on top of the mover's radius

    # Influence grid
    grid_resolution: int = 4     # cells per unit distance
    max_field_width: int = 384
    max_field_height: int = 256

    # Scoring
    threat_ceiling: float = 100.0
    exposure_weight: float = 10000.0  # exposure term dominates proximity
    max_distance: float = 1000.0
    lookahead_samples: int = 8
    tie_epsilon: float = 0.01

    # Scheduler
    event_horizon_margin: float = 0.5
    time_budget_s: float = 1.5        # elapsed time before degraded mode
    degraded_window_deg: int = 15     # +/- degrees scanned once degraded
    degraded_scan_floor: int = 16     # leading ranks scanned regardless of heading

    # Logging
    log_level: str = "INFO"


settings = NavigationSettings()
