"""
Entry point for the cycle arbitrage engine.

Usage:
    python -m cyclearb
    cyclearb  # if installed via pip
"""

import asyncio
import sys


# Try to use uvloop for better performance
try:
    import uvloop

    UVLOOP_AVAILABLE = True
except ImportError:
    UVLOOP_AVAILABLE = False


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success).
    """
    from cyclearb import __version__
    from cyclearb.config.settings import get_settings
    from cyclearb.core.engine import create_engine
    from cyclearb.exchange.client import ExchangeClientError, PublicExchangeClient
    from cyclearb.feed.ticker import BinanceTickerFeed
    from cyclearb.telemetry.logger import setup_logging

    # Print banner
    print(
        f"""
╔═══════════════════════════════════════════════════════════════╗
║     CYCLE ARBITRAGE ENGINE v{__version__:<28}      ║
║                                                               ║
║     Bellman-Ford Negative Cycle Scanner for Binance           ║
╚═══════════════════════════════════════════════════════════════╝
    """
    )

    # Load settings
    try:
        settings = get_settings()
    except Exception as e:
        print(f"Configuration error: {e}")
        print("\nSettings are read from CYCLEARB_* environment variables or .env, e.g.:")
        print("  CYCLEARB_BASE_ASSET=USDT")
        print("  CYCLEARB_MIN_MARGIN=0.001")
        return 1

    use_uvloop = settings.use_uvloop and UVLOOP_AVAILABLE

    # Print configuration summary
    print("Configuration:")
    print(f"  Mode:           {'DRY RUN' if settings.dry_run else 'LIVE DISPATCH'}")
    print(f"  Exchange:       {'Testnet' if settings.use_testnet else 'Production'}")
    print(f"  Base asset:     {settings.base_asset}")
    print(f"  Quote assets:   {', '.join(settings.quote_assets) or 'all'}")
    print(f"  Fee rate:       {settings.fee_rate * 100:.3f}%")
    print(f"  Min margin:     {settings.min_margin * 100:.3f}%")
    print(f"  Z-score:        >= {settings.z_score_threshold:.2f}")
    print(f"  Max staleness:  {settings.max_staleness_ms}ms")
    print(f"  Interval:       {settings.evaluation_interval_ms}ms")
    print(f"  uvloop:         {'Enabled' if use_uvloop else 'Disabled'}")
    print()

    if not settings.dry_run:
        print("Live dispatch needs an ExecutionDispatcher implementation.")
        print("Embed ArbitrageEngine with your dispatcher, or set CYCLEARB_DRY_RUN=true.")
        return 1

    async_logger = setup_logging(level=settings.log_level, log_file=settings.log_file)

    # Run the engine
    async def run_engine() -> int:
        async with PublicExchangeClient(use_testnet=settings.use_testnet) as client:
            feed = BinanceTickerFeed(
                client=client,
                fee_rate=settings.fee_rate,
                poll_interval_ms=settings.feed_poll_interval_ms,
                quote_assets=settings.quote_assets,
            )

            try:
                await feed.load_pairs()
            except ExchangeClientError as e:
                print(f"\nCould not load exchange info: {e}")
                return 1

            async with create_engine(settings) as engine:
                try:
                    await engine.run(feed)
                finally:
                    feed.stop()
        return 0

    try:
        if use_uvloop:
            return uvloop.run(run_engine())
        return asyncio.run(run_engine())

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0

    except Exception as e:
        print(f"\nFatal error: {e}")
        import traceback

        traceback.print_exc()
        return 1

    finally:
        async_logger.stop()


if __name__ == "__main__":
    sys.exit(main())
