#!/usr/bin/env python3
"""Command-line interface for the trading backtester."""

from __future__ import annotations

import argparse
import sys
from datetime import date
from decimal import InvalidOperation


def parse_date(date_str: str) -> date:
    """Parse date string to date."""
    return date.fromisoformat(date_str)


def cmd_ingest(args: argparse.Namespace) -> int:
    """Fetch, clean and store bars (and signals) from a configuration file."""
    from backtester.commands.ingest import build_pipeline, load_ingest_config
    from backtester.exceptions import ConfigError
    from backtester.logging_config import configure_logging

    try:
        config = load_ingest_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1

    configure_logging(args.log_level or config.log_level)

    print("=" * 60)
    print("INGEST")
    print("=" * 60)
    print(f"Symbols:     {', '.join(str(s) for s in config.symbols)}")
    print(f"Source:      {config.source}")
    print(f"Output size: {config.pipeline.output_size.value}")
    if config.pipeline.strategy is not None:
        strategy = config.pipeline.strategy
        print(f"Strategy:    {strategy.name} ({strategy.short_window}/{strategy.long_window})")
    print(f"Store:       {config.store_path}")

    try:
        pipeline = build_pipeline(config)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1

    print("\n📊 Running pipeline...")
    report = pipeline.run(config.symbols)

    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)
    print(f"Run ID:          {report.run_id}")
    print(f"Status:          {report.status.value}")
    print(f"Bars written:    {report.bars_written}")
    print(f"Signals written: {report.signals_written}")
    print(f"Rejected bars:   {report.rejected}")

    for outcome in report.symbols:
        line = f"   {outcome.symbol:<8} {outcome.status.value:<10}"
        if outcome.reason:
            line += f" {outcome.reason}"
        print(line)

    if not report.succeeded:
        print(f"\nRun failed: {report.error}")
        return 1

    print("\n✅ Done!")
    return 0


def cmd_signals(args: argparse.Namespace) -> int:
    """Generate signals from bars already in the store."""
    from backtester.exceptions import ConfigError, StorageError
    from backtester.logging_config import configure_logging
    from backtester.pipeline import SignalGenerationService
    from backtester.storage import LocalMarketDataStore, LocalSignalStore
    from backtester.strategies import MovingAverageCrossoverStrategy
    from backtester.types import DateRange, SignalKeyMode

    configure_logging(args.log_level or "WARNING")

    try:
        strategy = MovingAverageCrossoverStrategy(
            short_window=args.short,
            long_window=args.long,
            threshold=args.threshold,
        )
        date_range = DateRange(
            start=parse_date(args.start) if args.start else None,
            end=parse_date(args.end) if args.end else None,
        )
    except (ConfigError, ValueError, InvalidOperation) as e:
        print(f"Error: {e}")
        return 1

    key_mode = SignalKeyMode.STABLE if args.stable_keys else SignalKeyMode.TIMESTAMPED
    service = SignalGenerationService(
        LocalMarketDataStore(args.store),
        LocalSignalStore(args.store, key_mode=key_mode),
    )

    print(f"Strategy: {strategy.name}")
    print(f"{'Symbol':<10} {'Signals':>8} {'BUY':>6} {'SELL':>6}")
    print("-" * 34)

    try:
        for symbol in args.symbols:
            written = service.generate_signals(symbol, strategy, date_range)
            summary = service.signal_summary(symbol, strategy.strategy_id)
            counts = {t.value: n for t, n in summary.items()}
            print(f"{symbol.upper():<10} {written:>8} {counts['BUY']:>6} {counts['SELL']:>6}")
    except StorageError as e:
        print(f"Failed to store signals: {e}")
        return 1

    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Describe the crossover strategy for the given parameters."""
    from backtester.exceptions import ConfigError
    from backtester.strategies import MovingAverageCrossoverStrategy

    try:
        strategy = MovingAverageCrossoverStrategy(
            short_window=args.short,
            long_window=args.long,
            threshold=args.threshold,
        )
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    print(f"ID:                  {strategy.strategy_id}")
    print(f"Name:                {strategy.name}")
    print(f"Minimum data points: {strategy.minimum_data_points}")
    print("Parameters:")
    for key, value in strategy.parameters.items():
        print(f"   {key}: {value}")
    print(f"\n{strategy.describe()}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Print stored bars or signals for a symbol."""
    from backtester.exceptions import StorageError
    from backtester.storage import LocalMarketDataStore, LocalSignalStore

    try:
        if args.signals:
            signals = LocalSignalStore(args.store).query_signals(args.symbol)
            if not signals:
                print(f"No signals stored for {args.symbol.upper()}")
                return 0
            print(f"{'Date':<12} {'Type':<5} {'Price':>10} {'Strength':>9}  Strategy")
            print("-" * 60)
            for s in signals:
                print(
                    f"{s.date.isoformat():<12} {s.signal_type.value:<5} "
                    f"{s.price_at_signal:>10} {s.strength:>9.2%}  {s.strategy_id}"
                )
            return 0

        bars = LocalMarketDataStore(args.store).query_bars(args.symbol)
    except StorageError as e:
        print(f"Failed to read store: {e}")
        return 1

    if not bars:
        print(f"No bars stored for {args.symbol.upper()}")
        return 0

    print(f"{'Date':<12} {'Open':>10} {'High':>10} {'Low':>10} {'Close':>10} {'Volume':>12}")
    print("-" * 70)
    for b in bars[-args.limit:]:
        print(
            f"{b.date.isoformat():<12} {b.open:>10} {b.high:>10} {b.low:>10} "
            f"{b.close:>10} {b.volume:>12}"
        )
    if len(bars) > args.limit:
        print(f"   ... {len(bars) - args.limit} earlier bars not shown")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    from backtester.storage.local import DEFAULT_STORE_DIR

    default_store = str(DEFAULT_STORE_DIR.expanduser())

    parser = argparse.ArgumentParser(
        description="Trading backtester CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default=None, help="Logging level (e.g., DEBUG)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Ingest command
    ingest_parser = subparsers.add_parser(
        "ingest", help="Fetch, clean and store market data from a configuration file"
    )
    ingest_parser.add_argument("config", help="Path to YAML configuration file")

    # Signals command
    signals_parser = subparsers.add_parser(
        "signals", help="Generate crossover signals from stored bars"
    )
    signals_parser.add_argument("symbols", nargs="+", help="Stock symbols (e.g., AAPL)")
    signals_parser.add_argument("--store", default=default_store, help="Store directory")
    signals_parser.add_argument("--short", type=int, default=20, help="Short MA window")
    signals_parser.add_argument("--long", type=int, default=50, help="Long MA window")
    signals_parser.add_argument(
        "--threshold", default="0.01", help="Minimum relative MA gap (default: 0.01)"
    )
    signals_parser.add_argument("--start", default=None, help="Start date (YYYY-MM-DD)")
    signals_parser.add_argument("--end", default=None, help="End date (YYYY-MM-DD)")
    signals_parser.add_argument(
        "--stable-keys",
        action="store_true",
        help="Key signals on (symbol, date, strategy) so re-runs overwrite",
    )

    # Info command
    info_parser = subparsers.add_parser("info", help="Describe the crossover strategy")
    info_parser.add_argument("--short", type=int, default=20, help="Short MA window")
    info_parser.add_argument("--long", type=int, default=50, help="Long MA window")
    info_parser.add_argument(
        "--threshold", default="0.01", help="Minimum relative MA gap (default: 0.01)"
    )

    # Show command
    show_parser = subparsers.add_parser("show", help="Show stored bars or signals")
    show_parser.add_argument("symbol", help="Stock symbol (e.g., AAPL)")
    show_parser.add_argument("--store", default=default_store, help="Store directory")
    show_parser.add_argument(
        "--signals", action="store_true", help="Show signals instead of bars"
    )
    show_parser.add_argument(
        "-n", "--limit", type=int, default=20, help="Number of most recent bars to show"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "ingest":
        return cmd_ingest(args)
    elif args.command == "signals":
        return cmd_signals(args)
    elif args.command == "info":
        return cmd_info(args)
    elif args.command == "show":
        return cmd_show(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
