"""Application bootstrap: settings, credentials, controller assembly and CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.actions import AIActionRunner, MusicAssistant, PublishingAssistant
from .ai.client import ClientSettings, GenerationClient
from .domain.store import DomainStore
from .editing.session import MusicSession, PublishingSession
from .errors import MissingCredentialsError
from .events import EventBus
from .services.persistence import HttpPersistenceGateway, JsonFilePersistenceGateway, PersistenceGateway
from .services.save_queue import SaveQueueConfig
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)

EXIT_MISSING_CREDENTIALS = 2


@dataclass(slots=True)
class DashboardController:
    """Owns the application state object and everything wired to it."""

    settings: Settings
    event_bus: EventBus
    gateway: PersistenceGateway
    store: DomainStore
    music: MusicSession
    publishing: PublishingSession
    client: GenerationClient
    music_assistant: MusicAssistant
    publishing_assistant: PublishingAssistant
    loaded: bool = field(default=False)

    async def start(self) -> bool:
        """Load the snapshot and, on a first run, begin the onboarding tour."""

        self.loaded = await self.store.initialize()
        if not self.store.onboarding.complete:
            self.store.start_tour()
        return self.loaded

    async def aclose(self) -> None:
        await self.store.aclose()
        await self.client.aclose()
        close = getattr(self.gateway, "aclose", None)
        if close is not None:
            await close()


def configure_logging(debug: bool = False, *, log_dir: Path | str | None = None, force: bool = False) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, log_dir=log_dir, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def require_api_key(settings: Settings) -> str:
    """Return the generation API key or raise :class:`MissingCredentialsError`."""

    api_key = (settings.api_key or "").strip()
    if not api_key:
        raise MissingCredentialsError(
            "No generation API key configured. Set HARDBANLAB_API_KEY (or API_KEY) "
            "or store one with --set api_key=..."
        )
    return api_key


def build_gateway(settings: Settings) -> PersistenceGateway:
    if settings.snapshot_file:
        return JsonFilePersistenceGateway(settings.snapshot_file)
    return HttpPersistenceGateway(settings.backend_url, timeout=settings.backend_timeout)


def build_controller(
    settings: Settings,
    *,
    gateway: PersistenceGateway | None = None,
    client: GenerationClient | None = None,
    event_bus: EventBus | None = None,
) -> DashboardController:
    """Assemble the store, sessions and AI helpers.

    Raises:
        MissingCredentialsError: When no client is supplied and the settings
            carry no API key.
    """
    if client is None:
        client = GenerationClient(_client_settings(settings, require_api_key(settings)))
    bus = event_bus or EventBus()
    active_gateway = gateway or build_gateway(settings)
    store = DomainStore(
        active_gateway,
        bus,
        save_config=SaveQueueConfig(
            debounce_seconds=settings.save_debounce_seconds,
            max_attempts=settings.save_max_attempts,
            retry_min_seconds=settings.save_retry_min_seconds,
            retry_max_seconds=settings.save_retry_max_seconds,
        ),
        toast_ttl=settings.toast_ttl_seconds,
    )
    runner = AIActionRunner(store)
    return DashboardController(
        settings=settings,
        event_bus=bus,
        gateway=active_gateway,
        store=store,
        music=MusicSession(store, bus),
        publishing=PublishingSession(store, bus),
        client=client,
        music_assistant=MusicAssistant(store, client, runner),
        publishing_assistant=PublishingAssistant(store, client, runner),
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `hardbanlab` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("HARDBANLAB_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("HARDBANLAB_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    if args.snapshot_file:
        cli_overrides["snapshot_file"] = args.snapshot_file

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)
    logging_utils.register_secret(settings.api_key)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, log_dir=settings.log_dir, force=True)

    try:
        controller = build_controller(settings)
    except MissingCredentialsError as exc:
        _LOGGER.error("%s", exc)
        print(f"hardbanlab: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_MISSING_CREDENTIALS) from exc

    asyncio.run(_run_summary(controller))


async def _run_summary(controller: DashboardController, stream: TextIO | None = None) -> Dict[str, Any]:
    """Initialise the store, print entity counts as JSON and shut down."""

    destination = stream or sys.stdout
    try:
        await controller.start()
        store = controller.store
        summary = {
            "loaded": controller.loaded,
            "releases": len(store.releases),
            "books": len(store.books),
            "music_tasks": len(store.music_tasks),
            "publishing_tasks": len(store.publishing_tasks),
            "onboarding_complete": store.onboarding.complete,
            "toasts": [toast.message for toast in store.toasts],
        }
    finally:
        await controller.aclose()
    json.dump(summary, destination, indent=2)
    destination.write("\n")
    return summary


def _client_settings(settings: Settings, api_key: str) -> ClientSettings:
    return ClientSettings(
        api_key=api_key,
        model=settings.model,
        image_model=settings.image_model,
        base_url=settings.base_url,
        organization=settings.organization,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        default_headers=settings.default_headers,
        debug_logging=settings.debug_logging,
    )


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hardbanlab",
        description="Load the creative-projects dashboard state and print a summary.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=("summary",),
        default="summary",
        help="Run mode (default: summary).",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.hardbanlab/settings.json path.",
    )
    parser.add_argument(
        "--snapshot-file",
        metavar="PATH",
        help="Keep the snapshot in a local JSON file instead of the HTTP backend.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings before launch (repeatable).",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is dict:
        try:
            return json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin is dict:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(payload.get("api_key") or "")
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": payload, "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    names = [name for name in os.environ if name.startswith("HARDBANLAB_")]
    if "API_KEY" in os.environ:
        names.append("API_KEY")
    return sorted(names)


__all__ = [
    "DashboardController",
    "build_controller",
    "build_gateway",
    "configure_logging",
    "load_settings",
    "main",
    "require_api_key",
]
