"""pi-sync: settings panel for a controller-hosted tile.

The controller host launches the panel as::

    pi-sync -port 28196 -pluginUUID <uuid> -registerEvent registerPropertyInspector \\
            -info '<json>' -actionInfo '<json>'

``pi-sync devhost`` runs a loopback host to develop against.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Optional, Sequence

from .config import PiSyncConfig
from .context import DEFAULT_REGISTER_EVENT, ConnectionParams
from .logging import PANEL_LOG, configure_logging


def _run_devhost_command(argv: Sequence[str]) -> None:
    from .devhost import DEFAULT_DEVHOST_PORT, run_devhost

    parser = argparse.ArgumentParser(prog="pi-sync devhost",
        description="Run a loopback controller host for development")
    parser.add_argument("devhost", help=argparse.SUPPRESS)  # consume 'devhost'
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=DEFAULT_DEVHOST_PORT)
    args = parser.parse_args(argv)
    run_devhost(args.host, args.port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="pi-sync: tile settings panel synced with the controller host"
    )
    # Launch parameters use single dashes because that is how the host passes them.
    parser.add_argument("-port", dest="port", default="0",
                        help="Controller websocket port")
    parser.add_argument("-pluginUUID", dest="plugin_uuid", default="",
                        help="Registration id of this panel")
    parser.add_argument("-registerEvent", dest="register_event", default=DEFAULT_REGISTER_EVENT)
    parser.add_argument("-info", dest="info", default="", help="Host info JSON")
    parser.add_argument("-actionInfo", dest="action_info", default="", help="Action info JSON")
    parser.add_argument("--query", default="", metavar="QUERY",
                        help="URL query string with fallback context/action")
    parser.add_argument("--config-file", default=None, metavar="PATH")
    parser.add_argument("--default-config", action="store_true",
                        help="Ignore user config, use built-in defaults (does not overwrite config file)")
    parser.add_argument("--reset-config", action="store_true",
                        help="Delete config.yml and regenerate with current defaults (clean slate)")
    return parser


def load_config(args: argparse.Namespace) -> PiSyncConfig:
    if args.default_config:
        config = PiSyncConfig.defaults()
        print("  Config: using built-in defaults (--default-config)", flush=True)
    elif args.reset_config:
        config = PiSyncConfig.reset(args.config_file)
        print("  Config: reset to defaults (--reset-config)", flush=True)
    else:
        config = PiSyncConfig.load(args.config_file)
    print(f"  Config: {config.config_path}", flush=True)
    return config


def main(argv: Optional[Sequence[str]] = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)

    # Check for subcommands first (before argparse to avoid conflicts)
    if argv and argv[0] == "devhost":
        _run_devhost_command(argv)
        return

    # ─── Ensure truecolor support ──────────────────────────────
    # The CSS uses hex colors only; tmux/screen strip COLORTERM.
    if not os.environ.get("COLORTERM"):
        os.environ["COLORTERM"] = "truecolor"

    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args)

    params = ConnectionParams.from_raw(
        args.port, args.plugin_uuid, args.register_event,
        args.info, args.action_info, args.query,
    )
    if params.port <= 0:
        parser.error("-port is required (the controller's websocket port)")

    configure_logging(config.log_level, PANEL_LOG)
    print(f"  Host: ws://{config.host}:{params.port} as {params.registration_id or '(no uuid)'}", flush=True)
    print(f"  Log: {PANEL_LOG}", flush=True)

    from .tui.app import PanelApp

    PanelApp(params, config).run()


if __name__ == "__main__":
    main()
