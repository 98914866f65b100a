# ar844/cli/commands.py
from __future__ import annotations

import argparse
import logging
import signal
import threading

from ar844.app.config import AppConfig, load_config
from ar844.app.runner import build_run, build_transport, probe, run_acquisition
from ar844.common.logging_config import configure_logging
from ar844.core.errors import ConfigError
from ar844.protocol.decoder import decode_frame
from ar844.runtime.device_link import DeviceLink

from ar844.cli.args import config_overrides


def _load(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(getattr(args, "config", None), overrides=config_overrides(args))
    try:
        configure_logging(cfg.logging.level, cfg.logging.file)
    except ValueError as e:
        raise ConfigError("Invalid logging configuration.", hint=str(e)) from None
    return cfg


def install_signal_handlers(cancel: threading.Event) -> None:
    log = logging.getLogger(__name__)

    def _handler(signum, _frame) -> None:
        log.info("SIGNAL_RECEIVED signal=%s", signal.Signals(signum).name)
        cancel.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def cmd_run(args: argparse.Namespace) -> int:
    cfg = _load(args)
    app = build_run(cfg)

    cancel = threading.Event()
    install_signal_handlers(cancel)

    run_acquisition(app, cancel)
    return 0


def cmd_probe(args: argparse.Namespace) -> int:
    cfg = _load(args)
    transport = build_transport(cfg)

    with DeviceLink(transport):
        readings = probe(transport, count=args.count, timeout_ms=cfg.device.transfer_timeout_ms)

    ok = 0
    for i, reading in enumerate(readings):
        if reading is None:
            print(f"#{i} -> (no valid frame)")
            continue
        ok += 1
        print(f"#{i} -> {reading.as_dict()}")
    return 0 if ok else 1


def cmd_decode(args: argparse.Namespace) -> int:
    try:
        frame = bytes.fromhex(args.frame)
    except ValueError:
        print(f"ERROR: not a hex string: {args.frame!r}")
        return 2

    reading = decode_frame(frame)
    if reading is None:
        print(f"REJECTED len={len(frame)} (expected 8 bytes)")
        return 1
    print(reading.as_dict())
    return 0
