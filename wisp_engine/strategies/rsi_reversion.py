"""RSI Mean Reversion Strategy."""

from wisp_engine.errors import InsufficientDataError
from wisp_engine.models.signal import Signal

from .interface import Strategy, StrategyContext
from .registry import register_strategy


@register_strategy("rsi_reversion")
class RSIReversionStrategy(Strategy):
    """Buy oversold, sell the whole position once overbought."""

    default_params = {
        "rsi_period": 14,
        "oversold": 30.0,
        "overbought": 70.0,
        "position_size": 1000.0,  # quote currency per entry
        "size_buffer": 0.99,  # headroom for slippage and fees
    }

    def generate_signals(self, ctx: StrategyContext) -> list[Signal]:
        """
        Rule: flat AND RSI < oversold -> BUY
              long AND RSI > overbought -> SELL all
        """
        p = ctx.params
        options = ctx.options(period=int(p["rsi_period"]))
        builder = ctx.signal()

        for exchange in self.exchanges:
            for asset in self.assets:
                try:
                    rsi = ctx.indicators.rsi(asset, exchange, options)
                except InsufficientDataError as e:
                    ctx.log.debug("Skipping %s@%s: %s", asset, exchange, e)
                    continue

                held = ctx.portfolio.position(asset, exchange)
                if held <= 0 and rsi < p["oversold"]:
                    price = ctx.market.current_price(asset, exchange)
                    quantity = p["position_size"] * p["size_buffer"] / price
                    builder.buy(asset, exchange, quantity, reason="rsi_oversold")
                    builder.tag(f"rsi:{asset.pair}@{exchange}", rsi)
                elif held > 0 and rsi > p["overbought"]:
                    builder.sell(asset, exchange, held, reason="rsi_overbought")
                    builder.tag(f"rsi:{asset.pair}@{exchange}", rsi)

        return [] if builder.empty else [builder.build()]
