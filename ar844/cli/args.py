# ar844/cli/args.py
from __future__ import annotations

import argparse
from typing import Any, Dict, Optional


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ar844",
        description="Poll an AR844 sound level meter and publish per-period summaries over MQTT.",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="YAML config file (defaults are built in).")
    common.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    common.add_argument("--log-file", default=None, help="Also write logs to this file.")

    p_run = sub.add_parser("run", parents=[common], help="Acquire and publish until interrupted.")
    p_run.add_argument("--broker", default=None, help="MQTT broker host.")
    p_run.add_argument("--port", type=int, default=None, help="MQTT broker port.")
    p_run.add_argument("--topic", default=None, help="Topic template, {hostname} is substituted.")
    p_run.add_argument("--period", type=int, default=None, help="Aggregation period in seconds.")
    p_run.add_argument("--poll-ms", type=int, default=None, help="Minimum poll interval in ms.")

    p_probe = sub.add_parser("probe", parents=[common], help="Poll the meter a few times and print readings.")
    p_probe.add_argument("--count", type=int, default=1)

    p_decode = sub.add_parser("decode", help="Decode one response frame given as hex.")
    p_decode.add_argument("frame", help="e.g. 05dc100000000000")

    return parser


def config_overrides(args: argparse.Namespace) -> Dict[str, Dict[str, Any]]:
    """Map CLI flags onto config sections; None means 'not given'."""
    return {
        "broker": {
            "host": getattr(args, "broker", None),
            "port": getattr(args, "port", None),
            "topic": getattr(args, "topic", None),
        },
        "acquisition": {
            "period_s": getattr(args, "period", None),
            "poll_interval_ms": getattr(args, "poll_ms", None),
        },
        "logging": {
            "level": getattr(args, "log_level", None),
            "file": getattr(args, "log_file", None),
        },
    }


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
