"""Command line entry point: ``wisp init|backtest|live|status|stop``."""

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any, Sequence

import yaml
from pydantic import ValidationError

from wisp_engine import __version__
from wisp_engine.backtest.runner import BacktestRunner
from wisp_engine.cache.control import BotState, get_control_plane
from wisp_engine.config.loader import DEFAULT_CONFIG_FILE, load_config, strategy_config_path
from wisp_engine.config.models import WispConfig
from wisp_engine.core.scheduler import StrategyScheduler
from wisp_engine.errors import WispError
from wisp_engine.execution.ccxt_executor import CCXTExecutor
from wisp_engine.execution.executor import ExecutionEngine
from wisp_engine.execution.paper_executor import PaperExecutor
from wisp_engine.execution.portfolio import Portfolio
from wisp_engine.indicators.evaluator import IndicatorEvaluator
from wisp_engine.market_data.ccxt_provider import CCXTMarketDataProvider, create_exchange
from wisp_engine.market_data.facade import MarketData
from wisp_engine.market_data.history import PriceHistoryStore
from wisp_engine.market_data.provider import MarketDataProvider
from wisp_engine.market_data.stub_provider import StubMarketDataProvider
from wisp_engine.models.asset import Asset
from wisp_engine.monitoring.metrics import MetricsConfig, MetricsService
from wisp_engine.persistence.repository import JournalRepository, open_session
from wisp_engine.strategies import load_strategy_file, strategy_from_config
from wisp_engine.strategies.interface import Strategy

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2

logger = logging.getLogger("wisp_engine.cli")

_CONFIG_TEMPLATE = """\
# Overrides merged over the root config.yaml when running --strategy {name}
strategy:
  name: {name}
  interval: 1h
  assets: [BTC/USDT]
  warmup: 50
  params:
    rsi_period: 14
    oversold: 30
    overbought: 70
"""

_ROOT_CONFIG_TEMPLATE = """\
exchanges:
  - name: binance
    market_type: spot

risk:
  starting_cash: 10000
  max_position_size: 1000
  max_open_positions: 5

execution:
  mode: paper
  taker_fee_bps: 10
  slippage_bps: 5

journal:
  database_url: sqlite:///wisp.db
"""

_STRATEGY_TEMPLATE = '''\
"""{name} strategy."""

from wisp_engine.errors import InsufficientDataError
from wisp_engine.strategies import Strategy, StrategyContext, register_strategy


@register_strategy("{name}")
class {class_name}(Strategy):
    """Buy when RSI is oversold, sell the position when overbought."""

    default_params = {{
        "rsi_period": 14,
        "oversold": 30.0,
        "overbought": 70.0,
        "position_size": 100.0,
    }}

    def generate_signals(self, ctx: StrategyContext):
        p = ctx.params
        builder = ctx.signal()
        for exchange in self.exchanges:
            for asset in self.assets:
                try:
                    rsi = ctx.indicators.rsi(asset, exchange, ctx.options(period=p["rsi_period"]))
                except InsufficientDataError:
                    continue
                held = ctx.portfolio.position(asset, exchange)
                if held <= 0 and rsi < p["oversold"]:
                    price = ctx.market.current_price(asset, exchange)
                    builder.buy(asset, exchange, p["position_size"] * 0.99 / price)
                elif held > 0 and rsi > p["overbought"]:
                    builder.sell(asset, exchange, held)
        return [] if builder.empty else [builder.build()]
'''


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _parse_data_spec(value: str) -> tuple[tuple[str, str], str]:
    """Parse ``PAIR@EXCHANGE=path.csv``."""
    target, sep, path = value.partition("=")
    pair, at, exchange = target.partition("@")
    if not sep or not at or not pair or not exchange or not path:
        raise argparse.ArgumentTypeError(
            f"expected PAIR@EXCHANGE=path.csv, got '{value}'"
        )
    try:
        pair = Asset.parse(pair).pair
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e
    return (pair, exchange.lower()), path


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wisp", description="Wisp trading engine")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        default=None,
        help=f"Root config file (default: $WISP_CONFIG_PATH or {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument("--log-level", default=None, help="Override logging.level")
    sub = parser.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init", help="Scaffold a new strategy")
    p_init.add_argument("name", help="Strategy name (e.g. my_rsi)")
    p_init.add_argument("--dir", default=".", help="Project root (default: current directory)")

    p_bt = sub.add_parser("backtest", help="Run a strategy over historical candles")
    p_bt.add_argument("--strategy", required=True)
    p_bt.add_argument(
        "--data",
        required=True,
        action="append",
        type=_parse_data_spec,
        metavar="PAIR@EXCHANGE=PATH",
        help="CSV with timestamp,open,high,low,close,volume (repeatable)",
    )
    p_bt.add_argument("--json", dest="json_out", default=None, help="Write results JSON here")

    p_live = sub.add_parser("live", help="Run a strategy in paper or live mode")
    p_live.add_argument("--strategy", required=True)
    p_live.add_argument("--max-ticks", type=int, default=None)

    sub.add_parser("status", help="Show engine state and last heartbeat")
    sub.add_parser("stop", help="Ask a running engine to stop")
    return parser


def _project_root(config_path: str | None) -> Path:
    path = Path(config_path or os.environ.get("WISP_CONFIG_PATH", DEFAULT_CONFIG_FILE))
    return path.resolve().parent


def _load_strategy(args: argparse.Namespace) -> tuple[WispConfig, Strategy]:
    config = load_config(args.config, strategy_name=args.strategy)
    if args.log_level:
        config.logging.level = args.log_level.upper()
    _configure_logging(config.logging.level)

    user_file = strategy_config_path(_project_root(args.config), args.strategy).with_name("strategy.py")
    if user_file.exists():
        load_strategy_file(user_file)
    return config, strategy_from_config(config)


# -- Commands ------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    root = Path(args.dir)
    name = args.name
    if not name.isidentifier():
        print(f"Strategy name must be a valid identifier: {name}", file=sys.stderr)
        return EXIT_USAGE

    strategy_dir = root / "strategies" / name
    if strategy_dir.exists():
        print(f"Strategy already exists: {strategy_dir}", file=sys.stderr)
        return EXIT_ERROR

    strategy_dir.mkdir(parents=True)
    (strategy_dir / "config.yaml").write_text(_CONFIG_TEMPLATE.format(name=name))
    class_name = "".join(part.capitalize() for part in name.split("_")) + "Strategy"
    (strategy_dir / "strategy.py").write_text(
        _STRATEGY_TEMPLATE.format(name=name, class_name=class_name)
    )
    root_config = root / DEFAULT_CONFIG_FILE
    if not root_config.exists():
        root_config.write_text(_ROOT_CONFIG_TEMPLATE)

    print(f"Created {strategy_dir}/config.yaml and {strategy_dir}/strategy.py")
    return EXIT_OK


def cmd_backtest(args: argparse.Namespace) -> int:
    config, strategy = _load_strategy(args)
    data: dict[tuple[str, str], Any] = dict(args.data)

    journal = JournalRepository(open_session(config.journal.database_url))
    result = BacktestRunner(config, strategy, data, journal=journal).run()

    summary = result.to_dict(include_curve=False)
    width = max(len(k) for k in summary)
    for key, value in summary.items():
        print(f"{key:<{width}}  {value}")

    if args.json_out:
        Path(args.json_out).write_text(result.to_json())
        print(f"Results written to {args.json_out}")
    return EXIT_OK


def _build_providers(config: WispConfig) -> tuple[dict[str, MarketDataProvider], dict[str, Any]]:
    """Market data provider and (for ccxt) exchange client per configured exchange."""
    providers: dict[str, MarketDataProvider] = {}
    clients: dict[str, Any] = {}
    live = config.execution.mode == "live"

    for exchange in config.exchanges:
        if exchange.provider == "stub":
            providers[exchange.name] = StubMarketDataProvider()
            logger.info("Market data for %s: stub (deterministic)", exchange.name)
            continue

        api_key = os.environ.get(exchange.api_key_env) if exchange.api_key_env else None
        secret = os.environ.get(exchange.secret_env) if exchange.secret_env else None
        if live and not (api_key and secret):
            raise WispError(
                f"Live mode requires API credentials for {exchange.name} "
                f"(set api_key_env/secret_env and export them)"
            )
        client = create_exchange(
            exchange.name,
            market_type=exchange.market_type,
            testnet=exchange.testnet,
            api_key=api_key,
            secret=secret,
        )
        clients[exchange.name] = client
        providers[exchange.name] = CCXTMarketDataProvider(client)
        logger.info("Market data for %s: ccxt (testnet=%s)", exchange.name, exchange.testnet)
    return providers, clients


def cmd_live(args: argparse.Namespace) -> int:
    config, strategy = _load_strategy(args)
    providers, clients = _build_providers(config)

    portfolio = Portfolio(config.risk.starting_cash)
    executor: ExecutionEngine
    if config.execution.mode == "live":
        executor = CCXTExecutor(clients, portfolio)
        logger.info("Live execution enabled")
    else:
        executor = PaperExecutor(portfolio, config.risk, config.execution)
        logger.info("Paper execution enabled")

    store = PriceHistoryStore(config.scheduler.history_limit)
    metrics = None
    if config.metrics.enabled:
        metrics = MetricsService(MetricsConfig(port=config.metrics.port))
        metrics.start_server()

    control_plane = get_control_plane(config.control.redis_url, config.control.state_file)
    scheduler = StrategyScheduler(
        market=MarketData(store, providers),
        indicators=IndicatorEvaluator(store),
        executor=executor,
        journal=JournalRepository(open_session(config.journal.database_url)),
        control_plane=control_plane,
        metrics=metrics,
        config=config.scheduler,
    )
    scheduler.add_strategy(strategy)

    control_plane.set_state(BotState.RUNNING)
    try:
        ticks = scheduler.run(max_ticks=args.max_ticks)
    finally:
        control_plane.set_state(BotState.STOPPED)
    logger.info("Engine stopped after %d ticks", ticks)
    return EXIT_OK


def _control_config(args: argparse.Namespace) -> WispConfig:
    try:
        return load_config(args.config)
    except FileNotFoundError:
        return WispConfig()


def cmd_status(args: argparse.Namespace) -> int:
    config = _control_config(args)
    control_plane = get_control_plane(config.control.redis_url, config.control.state_file)
    state = control_plane.get_state()
    heartbeat = control_plane.last_heartbeat()
    print(f"state: {state.value}")
    if heartbeat is None:
        print("heartbeat: never")
    else:
        print(f"heartbeat: {time.time() - heartbeat:.0f}s ago")
    return EXIT_OK


def cmd_stop(args: argparse.Namespace) -> int:
    config = _control_config(args)
    control_plane = get_control_plane(config.control.redis_url, config.control.state_file)
    control_plane.set_state(BotState.STOPPED)
    print("state: STOPPED")
    return EXIT_OK


_COMMANDS = {
    "init": cmd_init,
    "backtest": cmd_backtest,
    "live": cmd_live,
    "status": cmd_status,
    "stop": cmd_stop,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the ``wisp`` command."""
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return int(e.code or 0)

    if args.command in ("init", "status", "stop"):
        _configure_logging(args.log_level or "INFO")

    try:
        return _COMMANDS[args.command](args)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_OK
    except (FileNotFoundError, ValidationError, yaml.YAMLError, KeyError, WispError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
