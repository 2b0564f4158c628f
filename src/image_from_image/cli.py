"""CLI for batch image+prompt submission."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import BaseModel, ValidationError

from .config import CONFIG_FILE, AppSettings, settings
from .counters import SqliteCounterStore, create_counter_store
from .discovery import find_image_files
from .exceptions import ConfigurationError, CounterStoreError, DiscoveryError
from .models import RunSummary
from .observability import setup_structured_logging
from .scheduler import SessionScheduler
from .surfaces import SURFACES, Surface, apply_selector_overrides, load_selector_overrides, resolve_surface

app = typer.Typer(help="Submit images with a prompt to Gemini or ChatGPT through a real browser")


def _override(section: BaseModel, **updates: Any) -> BaseModel:
    """Re-validate a settings group with the non-None CLI values applied."""
    values = {key: value for key, value in updates.items() if value is not None}
    if not values:
        return section
    return type(section).model_validate({**section.model_dump(), **values})


def build_settings(base: AppSettings, **options: Any) -> AppSettings:
    """Apply CLI options over loaded settings."""
    return base.model_copy(
        update={
            "browser": _override(
                base.browser,
                headless=options.get("headless"),
                user_data_dir=options.get("user_data_dir"),
                navigation_timeout=options.get("navigation_timeout"),
                action_timeout=options.get("action_timeout"),
            ),
            "run": _override(
                base.run,
                prompt=options.get("prompt"),
                url=options.get("url"),
                platform=options.get("platform"),
                wait_timeout=options.get("wait_timeout"),
                skip_if_created=options.get("skip_if_created"),
                concurrency=options.get("concurrency"),
                output_dir=options.get("output_dir"),
                selectors_file=options.get("selectors_file"),
            ),
            "counter": _override(base.counter, backend=options.get("counter_backend")),
            "logging": _override(base.logging, level=options.get("log_level")),
        }
    )


def build_surface(effective: AppSettings) -> Surface:
    surface = resolve_surface(effective.run.platform, effective.run.url)
    if effective.run.selectors_file:
        surface = apply_selector_overrides(surface, load_selector_overrides(effective.run.selectors_file))
    return surface


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    raise typer.Exit(code=1)


@app.command()
def run(
    input_path: str = typer.Option(..., "--input", "-i", help="Image file or directory (directory of groups with --recurse)"),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Target URL (also used to detect the platform)"),
    platform: Optional[str] = typer.Option(None, "--platform", "-P", help=f"Platform: {', '.join(SURFACES)}"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Prompt submitted with every image"),
    recurse: bool = typer.Option(False, "--recurse", "-r", help="Pair input subdirectories with profile subdirectories"),
    user_data_dir: Optional[str] = typer.Option(None, "--user-data-dir", "-d", help="Browser profile (directory of profiles with --recurse)"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", min=1, help="Parallel browsers in paired mode"),
    headless: Optional[bool] = typer.Option(None, "--headless/--no-headless", help="Run browsers headless"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Directory for screenshots"),
    wait_timeout: Optional[float] = typer.Option(None, "--wait-timeout", "-w", help="Seconds to wait between images"),
    navigation_timeout: Optional[float] = typer.Option(None, "--navigation-timeout", help="Page load timeout in seconds"),
    action_timeout: Optional[float] = typer.Option(None, "--action-timeout", help="Element action timeout in seconds"),
    skip_if_created: Optional[bool] = typer.Option(None, "--skip-if-created/--no-skip-if-created", help="Skip images with a stored success"),
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR"),
    selectors_file: Optional[str] = typer.Option(None, "--selectors-file", help="YAML file overriding surface selectors"),
    counter_backend: Optional[str] = typer.Option(None, "--counter-backend", help="Counter store: exif or sqlite"),
) -> None:
    """Submit every image with the prompt and record per-file outcomes."""
    try:
        effective = build_settings(
            settings,
            url=url,
            platform=platform,
            prompt=prompt,
            user_data_dir=user_data_dir,
            concurrency=concurrency,
            headless=headless,
            output_dir=output_dir,
            wait_timeout=wait_timeout,
            navigation_timeout=navigation_timeout,
            action_timeout=action_timeout,
            skip_if_created=skip_if_created,
            log_level=log_level,
            selectors_file=selectors_file,
            counter_backend=counter_backend,
        )
        surface = build_surface(effective)
        if recurse and not effective.browser.user_data_dir:
            raise ConfigurationError("--recurse requires --user-data-dir pointing at a directory of browser profiles")
    except (ConfigurationError, ValidationError) as e:
        _fail(str(e))

    setup_structured_logging(effective.logging.level, effective.logging.json_logs)
    scheduler = SessionScheduler(effective, surface)

    async def _run() -> RunSummary:
        if recurse:
            return await scheduler.run_paired(input_path, effective.browser.user_data_dir)
        return await scheduler.run_single(input_path, profile_dir=effective.browser.user_data_dir)

    try:
        summary = asyncio.run(_run())
    except DiscoveryError as e:
        _fail(str(e))

    print(json.dumps(summary.as_dict()))


@app.command()
def config(
    as_json: bool = typer.Option(False, "--json", help="Print the full configuration as JSON"),
    save: bool = typer.Option(False, "--save", help="Write the effective configuration to the config file"),
) -> None:
    """Show current configuration."""
    if save:
        try:
            saved_to = settings.save()
        except OSError as e:
            _fail(f"Cannot save configuration: {e}")
        print(f"Saved configuration to {saved_to}", file=sys.stderr)
    if as_json:
        print(json.dumps(settings.model_dump(mode="json"), indent=2))
        return
    print(f"Config file: {CONFIG_FILE}")
    print(f"Platform: {settings.run.platform or '(from URL)'}")
    print(f"URL: {settings.run.url or '(surface default)'}")
    print(f"Headless: {settings.browser.headless}")
    print(f"Concurrency: {settings.run.concurrency}")
    print(f"Wait between images: {settings.run.wait_timeout}s")
    print(f"Skip if created: {settings.run.skip_if_created}")
    print(f"Counter backend: {settings.counter.backend}")
    print(f"Output dir: {settings.run.output_dir}")


@app.command()
def counts(
    path: str = typer.Argument(..., help="Image file or directory"),
    recurse: bool = typer.Option(False, "--recurse", "-r", help="Include subdirectories"),
    counter_backend: Optional[str] = typer.Option(None, "--counter-backend", help="Counter store: exif or sqlite"),
) -> None:
    """Show stored success/failure counters for images."""
    try:
        effective = build_settings(settings, counter_backend=counter_backend)
        images = find_image_files(path, recurse=recurse)
    except (ValidationError, DiscoveryError) as e:
        _fail(str(e))

    async def _counts() -> list[str]:
        store = create_counter_store(effective)
        lines = []
        try:
            # sqlite can answer for the whole tree in one query
            known = None
            if isinstance(store, SqliteCounterStore):
                try:
                    known = await store.list_records(prefix=str(Path(path).resolve()))
                except CounterStoreError as e:
                    lines.append(f"Bulk lookup failed, reading one by one: {e}")
            for image in images:
                try:
                    record = known.get(str(image)) if known is not None else await store.read(str(image))
                except CounterStoreError as e:
                    lines.append(f"{image.name}: error ({e})")
                    continue
                if record is None:
                    lines.append(f"{image.name}: no record")
                else:
                    lines.append(f"{image.name}: success={record.success_count} failed={record.failed_count}")
        finally:
            await store.close()
        return lines

    for line in asyncio.run(_counts()):
        print(line)
    if not images:
        print(f"No supported images in {Path(path)}")


if __name__ == "__main__":
    app()
