"""Command-line entry point for the swarm scheduler.

Usage:
    # One tick against the built-in simulated network
    python scripts/swarm_scheduler.py --simulate --once

    # Run as daemon against a host agent, exporting metrics on :9109
    python scripts/swarm_scheduler.py --daemon --host-url http://localhost:8790 \
        --metrics-port 9109

    # Simulated daemon for 50 ticks with a custom network
    python scripts/swarm_scheduler.py --simulate --network config/network.yaml \
        --daemon --max-ticks 50 --tick-seconds 0.2
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from prometheus_client import start_http_server

from swarm.config import load_config
from swarm.controller import SwarmController
from swarm.errors import ConfigurationError, SwarmError
from swarm.http_host import HttpHost
from swarm.logging_config import configure_third_party_loggers, setup_logging
from swarm.simulation import SimulatedHost, demo_network

logger = logging.getLogger("swarm")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Swarm scheduler")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit (default)")
    parser.add_argument("--daemon", action="store_true", help="Run continuously until signalled")
    parser.add_argument("--simulate", action="store_true", help="Use the in-process simulated host")
    parser.add_argument("--network", type=Path, help="YAML network description for --simulate")
    parser.add_argument("--host-url", help="Base URL of the host agent API")
    parser.add_argument("--config", type=Path, help="Scheduler config YAML")
    parser.add_argument("--max-targets", type=int, help="Maximum number of tracked targets")
    parser.add_argument("--extract-fraction", type=float, help="Fraction of value removed per extract cycle")
    parser.add_argument("--extract-threshold", type=float, help="Value ratio above which to extract")
    parser.add_argument("--tick-seconds", type=float, help="Target period of one tick")
    parser.add_argument("--max-ticks", type=int, help="Stop after this many ticks (daemon mode)")
    parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--log-dir", type=Path, help="Also write logs to <log-dir>/swarm.log")
    return parser


def load_network(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return demo_network()
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict) or "nodes" not in data:
        raise ConfigurationError(f"Network file must define 'nodes': {path}")
    return data


def build_host(args: argparse.Namespace, config) -> Any:
    if args.simulate:
        return SimulatedHost.from_dict(load_network(args.network), unit_cost=config.unit_cost,
                                       programs=config.programs)
    return HttpHost(args.host_url, programs=config.programs)


def install_signal_handlers(controller: SwarmController) -> None:
    def signal_handler(sig, frame):
        logger.info(f"Received {signal.Signals(sig).name}, stopping after current tick")
        controller.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.simulate and not args.host_url:
        parser.error("either --simulate or --host-url is required")

    setup_logging("swarm", level=args.log_level, log_dir=args.log_dir)
    configure_third_party_loggers()

    overrides = {
        "max_targets": args.max_targets,
        "extract_fraction": args.extract_fraction,
        "extract_threshold": args.extract_threshold,
        "tick_seconds": args.tick_seconds,
    }
    try:
        config = load_config(args.config, overrides=overrides)
        host = build_host(args, config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    controller = SwarmController(host, config)

    if args.metrics_port:
        start_http_server(args.metrics_port)
        logger.info(f"Prometheus metrics on port {args.metrics_port}")

    if args.daemon:
        install_signal_handlers(controller)
        logger.info(f"Starting swarm scheduler daemon (tick: {config.tick_seconds}s)")
        controller.run(max_ticks=args.max_ticks)
        return 0

    try:
        pool = controller.tick()
    except SwarmError as e:
        logger.error(f"Tick failed: {e}")
        return 1
    print(json.dumps({
        "pool": pool.as_dict(),
        "targets": [t.summary() for t in controller.state.targets],
    }, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
