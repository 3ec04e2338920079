"""Launch the GrowthLog backup API on localhost, or run a one-off backup."""
from __future__ import annotations

import argparse
import ipaddress
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import uvicorn

from api import __version__ as API_VERSION
from api.auth import static_token_validator
from api.server import APIServerConfig, create_app
from backup.api import BackupService
from core.logging_utils import configure_json_logging, redact_secret
from core.paths import ensure_working_dir_structure, resolve_app_paths, resolve_working_dir
from core.settings import load_settings, settings_section

LOGGER = logging.getLogger("growthlog.api")

LOOPBACK_HOST = "127.0.0.1"
DEFAULT_PORT = 3000


def loopback_host(candidate: Optional[str]) -> str:
    """Map *candidate* onto a loopback address, refusing anything reachable from the LAN."""

    value = (candidate or "").strip().strip("[]").lower()
    if not value or value == "localhost":
        return LOOPBACK_HOST
    if value.startswith("::ffff:"):
        value = value[len("::ffff:") :]
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        address = None
    if address is None or not address.is_loopback:
        raise ValueError(f"Refusing to bind to non-loopback host {candidate!r}; GrowthLog only serves on localhost.")
    return value if address.version == 4 else LOOPBACK_HOST


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Start the local GrowthLog backup API service.")
    parser.add_argument("--host", default=None, help="Bind host (default from settings.json)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default from settings.json)")
    parser.add_argument("--session-token", dest="session_token", default=None, help="Accepted session token for this run")
    parser.add_argument(
        "--cors",
        action="append",
        dest="cors",
        default=None,
        help="Allowed CORS origin (repeatable, replaces the configured list).",
    )
    parser.add_argument(
        "--backup-now",
        action="store_true",
        help="Write one backup artifact and exit instead of serving.",
    )
    return parser.parse_args(argv)


def _int_setting(section: Mapping[str, Any], key: str, fallback: int) -> int:
    try:
        return int(section.get(key) or fallback)
    except (TypeError, ValueError):
        return fallback


def build_service(working_dir: Path, settings: Dict[str, Any]) -> BackupService:
    paths = resolve_app_paths(working_dir, settings)
    paths.backups.mkdir(parents=True, exist_ok=True)
    return BackupService(paths, settings=settings)


def run_single_backup(service: BackupService) -> int:
    outcome = service.backup_now()
    if not outcome.success:
        LOGGER.error("Backup failed: %s", outcome.error)
        return 1
    LOGGER.info(
        "Wrote %s (%d records, %d media files)",
        outcome.filename,
        outcome.record_count,
        outcome.media_count,
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    args = parse_args(argv)

    working_dir = resolve_working_dir()
    ensure_working_dir_structure(working_dir)
    configure_json_logging(working_dir)
    settings = load_settings(working_dir)
    server_settings = settings_section(settings, "server")
    api_settings = settings_section(settings, "api")

    try:
        host = loopback_host(args.host or server_settings.get("host"))
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 2
    port = args.port or _int_setting(server_settings, "port", DEFAULT_PORT)

    service = build_service(working_dir, settings)
    if args.backup_now:
        return run_single_backup(service)

    token = args.session_token or api_settings.get("session_token")
    if token:
        LOGGER.info("Accepting session token %s", redact_secret(token))
    else:
        LOGGER.warning("No session token configured; every request will be rejected with 401.")

    app = create_app(
        APIServerConfig(
            service=service,
            session_validator=static_token_validator(token),
            cors_origins=list(args.cors or api_settings.get("cors_origins") or ()),
            app_version=API_VERSION,
            lan_only=bool(server_settings.get("lan_refuse", True)),
            max_upload_bytes=_int_setting(api_settings, "max_upload_mb", 500) * 1024 * 1024,
        )
    )

    print(f"GrowthLog API listening on http://{host}:{port}", flush=True)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info", access_log=False))
    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
