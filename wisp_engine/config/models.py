"""Pydantic configuration models with type safety and validation."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from wisp_engine.models.asset import INTERVAL_SECONDS, Asset


class ExchangeConfig(BaseModel):
    """One exchange connection."""

    name: str = Field(description="CCXT exchange id, e.g. binance, bybit")
    market_type: Literal["spot", "swap"] = Field(
        default="spot",
        description="spot markets or perpetual swaps (funding rates need swap)",
    )
    testnet: bool = Field(default=False, description="Use the exchange sandbox")
    provider: Literal["ccxt", "stub"] = Field(
        default="ccxt",
        description="Market data source: ccxt (real exchange) or stub (deterministic)",
    )
    api_key_env: str | None = Field(
        default=None, description="Env var holding the API key (live trading only)"
    )
    secret_env: str | None = Field(
        default=None, description="Env var holding the API secret (live trading only)"
    )

    @field_validator("name")
    @classmethod
    def _lower_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("exchange name must be non-empty")
        return value.strip().lower()


class StrategyConfig(BaseModel):
    """Which strategy to run and on what."""

    name: str = Field(default="rsi_reversion", description="Registered strategy name")
    interval: str = Field(default="1h", description="Evaluation interval, e.g. 5m, 1h, 1d")
    assets: list[str] = Field(
        default_factory=lambda: ["BTC/USDT"],
        min_length=1,
        description="Assets the strategy trades (BTC or BTC/USDT)",
    )
    exchanges: list[str] = Field(
        default_factory=list,
        description="Exchanges the strategy trades on (default: all configured)",
    )
    warmup: int = Field(
        default=100, ge=0, description="Candles to load before the first evaluation"
    )
    params: dict[str, Any] = Field(
        default_factory=dict, description="Strategy-specific parameters"
    )

    @field_validator("interval")
    @classmethod
    def _known_interval(cls, value: str) -> str:
        key = value.strip().lower()
        if key not in INTERVAL_SECONDS:
            raise ValueError(f"Unknown interval '{value}'. Valid: {list(INTERVAL_SECONDS)}")
        return key

    @field_validator("assets")
    @classmethod
    def _normalise_assets(cls, value: list[str]) -> list[str]:
        return [Asset.parse(a).pair for a in value]


class RiskConfig(BaseModel):
    """Risk limits applied to every signal action."""

    starting_cash: float = Field(
        default=10000.0, gt=0.0, description="Starting quote balance for paper/backtest"
    )
    max_position_size: float = Field(
        default=1000.0,
        gt=0.0,
        description="Maximum position notional in quote currency per asset/exchange",
    )
    max_open_positions: int = Field(
        default=5, ge=1, description="Maximum number of simultaneously open positions"
    )


class ExecutionConfig(BaseModel):
    """Execution mode and cost model."""

    mode: Literal["paper", "live"] = Field(
        default="paper",
        description="paper for simulated fills, live for real orders",
    )
    taker_fee_bps: float = Field(
        default=10.0,  # 0.1%
        ge=0.0,
        description="Taker fee in basis points (e.g. 10 bps = 0.1%)",
    )
    slippage_bps: float = Field(
        default=5.0,
        ge=0.0,
        description="Simulated slippage in basis points for market orders",
    )


class SchedulerConfig(BaseModel):
    """Strategy scheduler behaviour."""

    max_consecutive_errors: int = Field(
        default=5, ge=1, description="Disable a strategy after this many failing runs"
    )
    history_limit: int = Field(
        default=5000, ge=10, description="Candles retained per series"
    )
    refresh_limit: int = Field(
        default=200, ge=1, description="Candles fetched per refresh in live mode"
    )


class JournalConfig(BaseModel):
    """Run journal storage."""

    database_url: str = Field(
        default="sqlite:///:memory:", description="SQLAlchemy database URL"
    )


class ControlConfig(BaseModel):
    """Cross-process control plane."""

    redis_url: str | None = Field(default=None, description="Redis URL (optional)")
    state_file: str = Field(
        default=".wisp/state.json", description="State file used when Redis is not set"
    )


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class MetricsConfig(BaseModel):
    """Prometheus metrics exposure."""

    enabled: bool = False
    port: int = Field(default=9090, ge=1, le=65535)


class WispConfig(BaseModel):
    """Root configuration model."""

    exchanges: list[ExchangeConfig] = Field(
        default_factory=lambda: [ExchangeConfig(name="binance")],
        min_length=1,
    )
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    journal: JournalConfig = Field(default_factory=JournalConfig)
    control: ControlConfig = Field(default_factory=ControlConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="after")
    def _strategy_exchanges_configured(self) -> "WispConfig":
        configured = {e.name for e in self.exchanges}
        if len(configured) != len(self.exchanges):
            raise ValueError("exchange names must be unique")
        if not self.strategy.exchanges:
            self.strategy.exchanges = [e.name for e in self.exchanges]
        self.strategy.exchanges = [name.lower() for name in self.strategy.exchanges]
        unknown = set(self.strategy.exchanges) - configured
        if unknown:
            raise ValueError(
                f"strategy.exchanges references unconfigured exchanges: {sorted(unknown)}"
            )
        needed = max(self.scheduler.refresh_limit, self.strategy.warmup)
        if self.scheduler.history_limit < needed:
            raise ValueError(
                f"scheduler.history_limit ({self.scheduler.history_limit}) must be >= "
                f"max(scheduler.refresh_limit, strategy.warmup) ({needed})"
            )
        return self

    def exchange(self, name: str) -> ExchangeConfig:
        """Config for a named exchange."""
        for exchange in self.exchanges:
            if exchange.name == name.lower():
                return exchange
        raise KeyError(f"Exchange not configured: {name}")
