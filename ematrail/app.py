"""
Application entry point.

This module defines a simple command‑line interface for running the
strategy in its two modes: ``paper`` replays CSV bars through the engine
with simulated fills, ``live`` trades through a MetaTrader 5 terminal.
Both modes log the dashboard, append completed trades to the CSV trade
log and write an end-of-session report.
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional

from .config.schema import load_config
from .execution.mt5_exec import MT5LiveSession
from .execution.paper_exec import PaperSession
from .reporting.dashboard import DashboardSink
from .reporting.report import generate_session_report
from .reporting.trade_log import TradeLogWriter


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def main(argv: Optional[List[str]] = None) -> None:
    """Parse command‑line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="EMA crossover trailing-stop strategy")
    parser.add_argument('mode', choices=['paper', 'live'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--csv', default=None, help="CSV file with bars (paper mode; overrides data.csv_dir)")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = load_config(args.config)
    # Override mode from CLI if provided
    config.mode = args.mode

    out_dir = config.output.results_dir
    sinks = [
        DashboardSink(config),
        TradeLogWriter(os.path.join(out_dir, config.output.trade_log), config),
    ]

    if args.mode == 'paper':
        logging.info("Running paper session on %s...", config.instrument.symbol)
        session = PaperSession(config, sinks=sinks)
        df = None
        if args.csv:
            df = session.data_loader.load_file(args.csv, config.instrument.symbol)
        trades, start = session.run(df)
        generate_session_report(trades, config, out_dir=out_dir,
                                stats=session.engine.stats, session_start=start)
        logging.info("Paper session complete. Results saved to the '%s' directory.", out_dir)
    else:
        logging.info("Starting live trading via MetaTrader 5...")
        session = MT5LiveSession(config, sinks=sinks)
        session.run()
        generate_session_report(session.engine.history, config, out_dir=out_dir,
                                stats=session.engine.stats)


if __name__ == '__main__':
    main()
