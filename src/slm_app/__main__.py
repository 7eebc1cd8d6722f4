"""Entry point for slm_app."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List

from slm_app.core.config import DEFAULT_CONFIG_PATH, load_config
from slm_app.core.dispatcher import CommandDispatcher, DeviceContext
from slm_app.core.logging import level_from_name, setup_logging
from slm_app.display.pygame_display import SlmDisplay
from slm_app.storage.local import LocalFileStore
from slm_app.transport.mqtt_client import MqttTransport


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slm-app", description="SLM aim pattern controller")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML/JSON config file")
    return parser


def run(config_path: Path) -> None:
    cfg = load_config(config_path)
    log = setup_logging(cfg.logging.log_dir, level_from_name(cfg.logging.log_level))
    log.info("Parsed config; initialized logger")

    transport = MqttTransport(cfg)
    transport.connect()

    display = SlmDisplay()
    try:
        display.open(cfg.screen.size, cfg.screen.fullscreen)
        store = LocalFileStore()
        dispatcher = CommandDispatcher(config=cfg, transport=transport, display=display, store=store)
        ctx = DeviceContext.from_defaults(cfg, store)

        dispatcher.update_state(ctx)
        dispatcher.run(ctx)
    finally:
        display.close()
        transport.close()


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        run(args.config)
    except Exception as exc:
        error = f"Encountered an unrecoverable error: {exc}"
        logging.getLogger("slm_app").error(error, exc_info=True)
        print(error)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
