"""CLI entry point — ``python -m weather_oracle``."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from .config import Config
from .errors import CollaboratorError, OracleError
from .ledger import PredictionLedger
from .nws import NwsForecastSource, NwsObservationSource
from .scheduler import ResolutionScheduler
from .service import WeatherOracle
from .stations import default_directory

logger = logging.getLogger(__name__)


def _setup_logging(level: str = "INFO", json_log: bool = False) -> None:
    """Configure structured logging."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json_log:
        fmt = logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","module":"%(name)s","msg":"%(message)s"}'
        )
    else:
        fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
    handler.setFormatter(fmt)
    root.addHandler(handler)


def _build_oracle(config: Config, config_dir: str) -> WeatherOracle:
    """Wire NWS sources, the ledger and the station directory from config."""
    stations = default_directory().subset(config.active_cities)
    http_opts = {
        "timeout": config.http_timeout,
        "max_retries": config.max_retries,
        "base_delay": config.retry_base_delay,
    }
    return WeatherOracle(
        stations=stations,
        forecast_source=NwsForecastSource(stations, config.user_agent, **http_opts),
        observation_source=NwsObservationSource(config.user_agent, **http_opts),
        ledger=PredictionLedger(config.ledger_path(config_dir), retention_days=config.retention_days),
    )


def _print_json(data) -> None:
    print(json.dumps(data, indent=2))


async def _serve(oracle: WeatherOracle, config: Config) -> None:
    """Run the resolution scheduler until SIGINT/SIGTERM."""
    scheduler = ResolutionScheduler(
        oracle.resolve,
        interval=config.resolve_interval_seconds,
        startup_delay=config.resolve_startup_delay_seconds,
        max_consecutive_failures=config.max_consecutive_failures,
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    scheduler.start()
    waiter = asyncio.create_task(scheduler.wait())
    stopper = asyncio.create_task(stop.wait())
    await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
    if stop.is_set():
        logger.info("Received shutdown signal, stopping after current run")
    stopper.cancel()
    await scheduler.stop()


async def _async_main(args, config: Config, oracle: WeatherOracle) -> int:
    """Dispatch the subcommand and clean up the HTTP session."""
    from .http_client import close_session

    try:
        if args.command == "predict":
            if args.city.lower() == "all":
                results = await oracle.predict_all()
                _print_json({city: p.to_dict() for city, p in results.items()})
            else:
                _print_json((await oracle.predict(args.city)).to_dict())
        elif args.command == "resolve":
            records = await oracle.resolve()
            _print_json([r.to_dict() for r in records])
        elif args.command == "accuracy":
            _print_json(await oracle.accuracy())
        elif args.command == "serve":
            await _serve(oracle, config)
    except CollaboratorError as exc:
        logger.error("Upstream weather data unavailable: %s", exc)
        return 3
    except OracleError as exc:
        logger.error("%s", exc)
        return 2
    finally:
        await close_session()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="weather_oracle",
        description="Calibrated daily-high temperature predictions with an accuracy ledger",
    )
    parser.add_argument(
        "--set", action="append", metavar="KEY=VALUE",
        help="Set config value (e.g., --set retention_days=60)",
    )
    parser.add_argument("--config", action="store_true", help="Show current config and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging")
    parser.add_argument("--json-log", action="store_true", help="Output structured JSON logs")

    sub = parser.add_subparsers(dest="command")
    p_predict = sub.add_parser("predict", help="Predict today's high for a city (or 'all')")
    p_predict.add_argument("city")
    sub.add_parser("resolve", help="Resolve past predictions against observed highs")
    sub.add_parser("accuracy", help="Resolve, then print accuracy statistics")
    sub.add_parser("cities", help="List supported cities and stations")
    sub.add_parser("serve", help="Run hourly resolution until interrupted")

    args = parser.parse_args()

    config_dir = str(Path(__file__).parent)
    config = Config.load(config_dir)

    # Setup logging early so config.update() warnings are visible
    log_level = "DEBUG" if args.verbose else config.log_level
    _setup_logging(level=log_level, json_log=args.json_log)

    if args.set:
        updates: dict = {}
        for item in args.set:
            if "=" in item:
                key, value = item.split("=", 1)
                updates[key] = value
        if updates:
            config.update(updates)
            config.save(config_dir)
            logger.info("Config updated: %s", updates)

    if args.config:
        _print_json({**config.__dict__, "ledger_path": config.ledger_path(config_dir)})
        return

    if args.command == "cities":
        _print_json({"cities": default_directory().subset(config.active_cities).to_dict()})
        return

    if args.command is None:
        parser.print_help()
        return

    try:
        oracle = _build_oracle(config, config_dir)
    except OracleError as exc:
        logger.error("%s", exc)
        sys.exit(2)

    sys.exit(asyncio.run(_async_main(args, config, oracle)))


if __name__ == "__main__":
    main()
