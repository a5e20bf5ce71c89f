"""Moving Average Crossover Strategy."""

from wisp_engine.errors import InsufficientDataError
from wisp_engine.models.signal import Signal

from .interface import Strategy, StrategyContext
from .registry import register_strategy


@register_strategy("ma_crossover")
class MACrossoverStrategy(Strategy):
    """Trend following on EMA fast/slow crossovers."""

    default_params = {
        "fast_period": 9,
        "slow_period": 21,
        "position_size": 1000.0,
        "size_buffer": 0.99,
    }

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        if self.params["fast_period"] >= self.params["slow_period"]:
            raise ValueError("fast_period must be less than slow_period")
        # (pair, exchange) -> previous fast - slow spread
        self._last_spread: dict[tuple[str, str], float] = {}

    def generate_signals(self, ctx: StrategyContext) -> list[Signal]:
        """
        Rule: fast EMA crosses above slow EMA while flat -> BUY
              fast EMA crosses below slow EMA while long -> SELL all
        """
        p = ctx.params
        fast_opts = ctx.options(period=int(p["fast_period"]))
        slow_opts = ctx.options(period=int(p["slow_period"]))
        builder = ctx.signal()

        for exchange in self.exchanges:
            for asset in self.assets:
                try:
                    fast = ctx.indicators.ema(asset, exchange, fast_opts)
                    slow = ctx.indicators.ema(asset, exchange, slow_opts)
                except InsufficientDataError:
                    continue

                spread = fast - slow
                previous = self._last_spread.get((asset.pair, exchange))
                self._last_spread[(asset.pair, exchange)] = spread
                if previous is None:
                    continue

                held = ctx.portfolio.position(asset, exchange)
                if previous <= 0 < spread and held <= 0:
                    price = ctx.market.current_price(asset, exchange)
                    quantity = p["position_size"] * p["size_buffer"] / price
                    builder.buy(asset, exchange, quantity, reason="ema_cross_up")
                    builder.tag(f"ema_spread:{asset.pair}@{exchange}", spread)
                elif previous >= 0 > spread and held > 0:
                    builder.sell(asset, exchange, held, reason="ema_cross_down")
                    builder.tag(f"ema_spread:{asset.pair}@{exchange}", spread)

        return [] if builder.empty else [builder.build()]
