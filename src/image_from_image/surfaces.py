"""Target surface registry: selectors, default URLs and verification mode.

Selectors drift as the sites change. Override them without a release by
pointing `--selectors-file` at a YAML document keyed by surface:

    chatgpt:
      submit_control: 'button[data-testid="send-button"]'
      obstruction_markers:
        - 'iframe[src*="challenges.cloudflare.com"]'
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .models import VerificationMode

logger = logging.getLogger(__name__)


class SurfaceSelectors(BaseModel):
    """CSS selectors an adapter needs to drive one surface."""

    ready_selectors: list[str] = Field(default_factory=list)
    prompt_field: str
    upload_trigger: Optional[str] = None  # clicked first when the file input only exists behind a menu
    upload_input: str
    upload_confirm: str
    submit_control: str
    loading_marker: Optional[str] = None
    response_block: str
    artifact_in_response: str
    obstruction_markers: list[str] = Field(default_factory=list)


class Surface(BaseModel):
    """A supported target site."""

    key: str
    url: str
    url_markers: list[str]
    verification: VerificationMode
    selectors: SurfaceSelectors

    def matches_url(self, url: str) -> bool:
        lowered = url.lower()
        return any(marker in lowered for marker in self.url_markers)


GEMINI = Surface(
    key="gemini",
    url="https://gemini.google.com/app",
    url_markers=["gemini.google.com"],
    verification=VerificationMode.IMMEDIATE,
    selectors=SurfaceSelectors(
        ready_selectors=[
            "div.ql-editor.textarea.new-input-ui",
            'button[aria-label="Open upload file menu"]',
        ],
        prompt_field="div.ql-editor.textarea.new-input-ui",
        upload_trigger='button[aria-label="Open upload file menu"]',
        upload_input='input[type="file"]',
        upload_confirm='img[data-test-id="image-preview"]',
        submit_control="button.send-button.submit",
        loading_marker=None,
        response_block="model-response",
        artifact_in_response="img",
        obstruction_markers=[],
    ),
)

CHATGPT = Surface(
    key="chatgpt",
    url="https://chatgpt.com/",
    url_markers=["chatgpt.com", "chat.openai.com"],
    verification=VerificationMode.DEFERRED,
    selectors=SurfaceSelectors(
        ready_selectors=['button[aria-label="Upload files and more"]'],
        prompt_field="#prompt-textarea",
        upload_trigger=None,
        upload_input='input[type="file"][tabindex="-1"]',
        upload_confirm='div.w-fit span[style*="background-image"]',
        submit_control='button[data-testid="send-button"]',
        loading_marker='button[data-testid="stop-button"]',
        response_block='div[data-message-author-role="assistant"]',
        artifact_in_response='img[alt="Generated image"]',
        obstruction_markers=[
            'iframe[src*="challenges.cloudflare.com"]',
            'iframe[src*="hcaptcha"]',
            "#turnstile-wrapper",
        ],
    ),
)

SURFACES: dict[str, Surface] = {surface.key: surface for surface in (GEMINI, CHATGPT)}


def resolve_surface(platform: str | None, url: str | None) -> Surface:
    """Pick a surface by explicit key first, then by URL.

    The returned surface carries `url` when one was given.

    Raises:
        ConfigurationError: if neither the key nor the URL identifies a surface.
    """
    key = platform.lower() if platform else None
    surface: Surface | None = None

    if key:
        surface = SURFACES.get(key)
        if surface is None:
            raise ConfigurationError(f"Unknown platform '{platform}'. Supported: {', '.join(sorted(SURFACES))}")
        logger.info(f"Selected surface '{surface.key}' from --platform")
    elif url:
        surface = next((s for s in SURFACES.values() if s.matches_url(url)), None)
        if surface is not None:
            logger.info(f"Selected surface '{surface.key}' from URL {url}")

    if surface is None:
        raise ConfigurationError(
            f"Could not determine surface for platform={platform!r}, url={url!r}. "
            f"Provide a supported --url or use --platform ({', '.join(sorted(SURFACES))})."
        )

    if url:
        surface = surface.model_copy(update={"url": url})
    return surface


def load_selector_overrides(path: str | Path) -> dict[str, dict[str, Any]]:
    """Read a YAML mapping of surface key -> selector fields."""
    file_path = Path(path).expanduser()
    try:
        with file_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read selectors file {file_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in selectors file {file_path}: {e}") from e

    if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
        raise ConfigurationError(f"Selectors file {file_path} must map surface keys to selector mappings")
    return data


def apply_selector_overrides(surface: Surface, overrides: dict[str, dict[str, Any]]) -> Surface:
    """Merge overrides for `surface.key` over its built-in selectors."""
    patch = overrides.get(surface.key)
    if not patch:
        return surface

    merged = surface.selectors.model_dump() | patch
    try:
        selectors = SurfaceSelectors.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid selector override for '{surface.key}': {e}") from e

    logger.info(f"Applied {len(patch)} selector override(s) to '{surface.key}'")
    return surface.model_copy(update={"selectors": selectors})
