# src/mealmap/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/mealmap/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `MEALMAP_SEARCH_ENDPOINT`, `MEALMAP_LOG_LEVEL`)
- an external YAML file via `MEALMAP_CONFIG_PATH`

Design rule:
- The endpoint, slider range and marker styling live in YAML, not in the controllers.
  Components receive a `Settings` (or one of its sections) at construction time.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal
from mealmap.core.env import load_dotenv_if_present

import yaml
from pydantic import BaseModel, Field, model_validator


LocationAccuracy = Literal["lowest", "low", "medium", "high", "best", "best_for_navigation"]


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `mealmap.config`."""
    text = resources.files("mealmap.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "Trainee Meal Finder"
    log_level: str = "INFO"


class SearchSettings(BaseModel):
    endpoint: str
    filter_param: str = "minProtein"
    # None disables the timeout (a hanging request then keeps the spinner up).
    timeout_seconds: float | None = 15
    debounce_seconds: float = Field(0.3, ge=0)
    fetch_failed_message: str = "Failed to fetch data. Please check your connection."


class FilterSettings(BaseModel):
    min_value: float = 0
    max_value: float = 100
    step: float = Field(5, ge=0)
    default_value: float = 0
    initial_slider_value: float = 20
    label_template: str = "At least {value:.0f}g of protein"

    @model_validator(mode="after")
    def _validate_range(self) -> "FilterSettings":
        if self.max_value <= self.min_value:
            raise ValueError("filter.max_value must be greater than filter.min_value")
        for name in ("default_value", "initial_slider_value"):
            value = getattr(self, name)
            if not self.min_value <= value <= self.max_value:
                raise ValueError(f"filter.{name} must lie within [min_value, max_value]")
        return self


class TrackingSettings(BaseModel):
    accuracy: LocationAccuracy = "best"
    min_distance_m: float = Field(5, ge=0)


class IconSettings(BaseModel):
    name: str = "self_dot"
    size_px: float = Field(30, gt=0)
    fill_color: str = "#FF1E88E5"
    ring_color: str = "#FFFFFFFF"
    anchor: tuple[float, float] = (0.5, 0.5)


class CircleStyleSettings(BaseModel):
    stroke_width: int = 1
    stroke_color: str = "#B39E9E9E"
    fill_color: str = "#2E9E9E9E"
    z_order: int = 9998


class SelfMarkerSettings(BaseModel):
    title: str = "Your location"
    z_order: int = 9999
    radius_m: float = Field(250, gt=0)
    icon: IconSettings = Field(default_factory=IconSettings)
    circle: CircleStyleSettings = Field(default_factory=CircleStyleSettings)


class CameraSettings(BaseModel):
    zoom: float = Field(17, gt=0)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    search: SearchSettings
    filter: FilterSettings = Field(default_factory=FilterSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    self_marker: SelfMarkerSettings = Field(default_factory=SelfMarkerSettings)
    camera: CameraSettings = Field(default_factory=CameraSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("MEALMAP_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    endpoint = os.getenv("MEALMAP_SEARCH_ENDPOINT")
    if endpoint:
        data.setdefault("search", {})["endpoint"] = endpoint

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("MEALMAP_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
