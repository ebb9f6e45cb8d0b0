"""
main.py
Stream watchdog entrypoint.
Loads the topic parameters, starts one monitor per topic and the supervisor,
and (by default) a set of simulated feeds to drive them.
"""

import argparse
import logging
import sys
from pathlib import Path

import config
from core.comms import MessageBus
from core.parameters import ConfigError, load_watchdog_config
from core.sensors import FeedManager
from modules.safety.supervisor import Supervisor


def setup_logging(cfg):
    logging.basicConfig(level=cfg["level"], format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    if cfg.get("log_to_file"):
        path = Path(cfg["filename"])
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path)
        fh.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
        logging.getLogger().addHandler(fh)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Topic frequency watchdog")
    parser.add_argument("--duration", type=float, default=None, help="stop after N seconds")
    parser.add_argument("--no-sim", action="store_true", help="do not start the simulated feeds")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(config.LOGGING)
    logger = logging.getLogger("watchdog")
    logger.info("Initializing stream watchdog...")

    try:
        wd_cfg = load_watchdog_config(config.WATCHDOG)
    except ConfigError as e:
        logger.critical("Invalid watchdog configuration: %s", e)
        return 1

    bus = MessageBus()
    supervisor = Supervisor(bus, wd_cfg)
    feeds = None
    if not args.no_sim:
        feeds = FeedManager(bus, seed=config.SIMULATION.get("seed"))
        feeds.register_from_config(config.SIMULATION)

    try:
        supervisor.initialize()
        if feeds is not None:
            feeds.start()
        supervisor.run(args.duration)
    except KeyboardInterrupt:
        logger.warning("Shutting down watchdog safely...")
    finally:
        if feeds is not None:
            feeds.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
