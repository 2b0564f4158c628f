"""Configuration management using Pydantic settings with optional file persistence."""

import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Paths ---

APP_NAME = "image-from-image"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/image-from-image)."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / ".config")).expanduser()
    else:
        base = Path("~/.config").expanduser()

    path = base / APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


CONFIG_FILE = get_config_dir() / "config.json"


def load_config_file() -> dict[str, Any]:
    """Load settings from the JSON config file if it exists."""
    if not CONFIG_FILE.exists():
        return {}

    try:
        text = CONFIG_FILE.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return json.loads(text)
    except (OSError, json.JSONDecodeError):
        return {}


def save_config_file(config_data: dict[str, Any]) -> None:
    """Save settings to the JSON config file."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(config_data, indent=2), encoding="utf-8")


DEFAULT_PROMPT = (
    "Render this image as a richly textured oil painting, resembling a museum-quality handmade canvas artwork. "
    "Style of Raja Ravi Varma. Wide aspect ratio."
)

SUPPORTED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".tif", ".tiff", ".webp")

DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

CounterBackend = Literal["exif", "sqlite"]


class BrowserSettings(BaseSettings):
    """Browser launch configuration."""

    model_config = SettingsConfigDict(env_prefix="IFI_BROWSER_")

    headless: bool = Field(default=False)
    executable_path: Optional[str] = Field(default=None, description="Chrome/Chromium binary (default: browser-use lookup)")
    user_data_dir: Optional[str] = Field(default=None, description="Profile directory, or the directory of profiles in paired mode")
    args: list[str] = Field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))
    navigation_timeout: float = Field(default=60.0, description="Page navigation/reload timeout in seconds")
    action_timeout: float = Field(default=30.0, description="Timeout for clicks, uploads and typing in seconds")


class RunSettings(BaseSettings):
    """Batch behaviour configuration."""

    model_config = SettingsConfigDict(env_prefix="IFI_RUN_")

    prompt: str = Field(default=DEFAULT_PROMPT)
    url: Optional[str] = Field(default=None, description="Target URL; defaults to the surface's URL")
    platform: Optional[str] = Field(default=None, description="Explicit surface key (gemini, chatgpt)")
    wait_timeout: float = Field(default=5.0, description="Pacing delay between files in seconds")
    skip_if_created: bool = Field(default=True, description="Skip files whose stored successCount is above zero")
    concurrency: int = Field(default=4, ge=1, description="Parallel browser profiles in paired mode")
    output_dir: str = Field(default="./output", description="Directory for screenshots")
    selectors_file: Optional[str] = Field(default=None, description="YAML file overriding surface selectors")


class WaitSettings(BaseSettings):
    """Named timeouts and stabilization delays, all in seconds."""

    model_config = SettingsConfigDict(env_prefix="IFI_WAIT_")

    initial_ready_timeout: float = Field(default=20.0, description="Readiness check right after navigation")
    initial_settle_delay: float = Field(default=3.0, description="Used when a surface has no ready selectors")
    ready_timeout: float = Field(default=15.0, description="Readiness check before each unit")
    gate_timeout: float = Field(default=360.0, description="Deferred mode: wait for the submit gate to reopen")
    response_timeout: float = Field(default=240.0, description="Immediate mode: wait for the response block")
    loading_appear_timeout: float = Field(default=15.0, description="Immediate mode: wait for the loading marker")
    response_settle_delay: float = Field(default=2.0, description="Used when a surface has no loading marker")
    render_settle_delay: float = Field(default=1.5, description="Pause before counting artifacts in a response")
    preview_extra_timeout: float = Field(default=15.0, description="Added to action_timeout for upload previews")
    upload_settle_delay: float = Field(default=0.5, description="Pause after an upload preview appears")
    menu_settle_delay: float = Field(default=1.0, description="Pause after opening the upload menu")
    reload_stabilization_delay: float = Field(default=3.0, description="Pause after a recovery reload")
    obstruction_check_timeout: float = Field(default=5.0, description="Race window for obstruction vs ready markers")
    manual_intervention_timeout: float = Field(default=120.0, description="Pause while a human clears an obstruction")
    post_obstruction_ready_timeout: float = Field(default=30.0, description="Readiness re-check after an obstruction")
    fallback_check_timeout: float = Field(default=5.0, description="Check before the conservative fallback delay")
    fallback_delay: Optional[float] = Field(default=None, description="Fallback delay; defaults to run.wait_timeout")
    poll_interval: float = Field(default=0.25, description="Selector polling interval")


class CounterSettings(BaseSettings):
    """Per-file counter store configuration."""

    model_config = SettingsConfigDict(env_prefix="IFI_COUNTER_")

    backend: CounterBackend = Field(default="exif")
    app_name: str = Field(default="imageFromImage", description="Namespace of the JSON stored in the EXIF tag")
    success_key: str = Field(default="successCount")
    failed_key: str = Field(default="failedCount")
    database_path: Optional[str] = Field(default=None, description="SQLite path (default: config dir/counters.db)")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="IFI_LOG_")

    level: str = Field(default="INFO")
    json_logs: bool = Field(default=False, description="Render structured events as JSON")


class AppSettings(BaseSettings):
    """Root application settings.

    Priority: Environment Variables > Config File > Defaults
    """

    model_config = SettingsConfigDict(env_prefix="IFI_", extra="ignore")

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    run: RunSettings = Field(default_factory=RunSettings)
    wait: WaitSettings = Field(default_factory=WaitSettings)
    counter: CounterSettings = Field(default_factory=CounterSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def save(self) -> Path:
        """Save current configuration to file."""
        save_config_file(self.model_dump(mode="json", exclude_none=True))
        return CONFIG_FILE

    def get_output_dir(self) -> Path:
        """Get the screenshot directory, creating if needed."""
        path = Path(self.run.output_dir).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_fallback_delay(self) -> float:
        """Delay used when ready markers are slow to appear."""
        if self.wait.fallback_delay is not None:
            return self.wait.fallback_delay
        return self.run.wait_timeout

    def get_database_path(self) -> Path:
        """SQLite counter database location."""
        if self.counter.database_path:
            return Path(self.counter.database_path).expanduser()
        return get_config_dir() / "counters.db"


def _load_settings() -> AppSettings:
    """Load settings with file config as base, env vars overlay."""
    file_data = load_config_file()
    # Pydantic will overlay env vars on top
    return AppSettings(**file_data)


settings = _load_settings()
