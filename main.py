"""
===============================================================================
  SETUP ENGINE: Command line entry point
===============================================================================
  Usage:
    python main.py classify SNAPSHOT.json
    python main.py analyze SYMBOL --data-dir DIR [--store PATH]
    python main.py intraday CANDLES.csv --sentiment BULLISH --impact HIGH [--open PRICE]
    python main.py next-open [--at ISO]

  Every command prints JSON on stdout; logs go to stderr and the log file.
===============================================================================
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from datetime import datetime
from typing import Optional

import config as cfg
from core.analysis.classifier import classify
from core.analysis.freshness import FreshnessController, JsonCardStore
from core.analysis.levels import calculate_atr, calculate_intraday_levels
from core.analysis.pipeline import SetupAnalyzer
from core.analysis.providers import FileDataProvider, load_snapshot, read_candles_csv
from utils.logger import setup_logging, get_logger
from utils import market_hours

log = get_logger("main")


def _emit(payload) -> None:
    json.dump(payload, sys.stdout, indent=2, default=str, ensure_ascii=False)
    sys.stdout.write("\n")


def _parse_at(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    return datetime.fromisoformat(raw)


# ═════════════════════════════════════════════════════════════════════════════
#  COMMANDS
# ═════════════════════════════════════════════════════════════════════════════

def cmd_classify(args) -> int:
    result = classify(load_snapshot(args.snapshot))
    _emit({"is_setup": result.is_setup, **asdict(result)})
    return 0


def cmd_analyze(args) -> int:
    controller = FreshnessController(JsonCardStore(args.store))
    analyzer = SetupAnalyzer(FileDataProvider(args.data_dir), controller, analysis_kind=args.kind)
    outcome = analyzer.analyze(args.symbol, now=_parse_at(args.at))
    _emit({"cached": outcome.cached, "card": outcome.card.to_dict()})
    return 0


def cmd_intraday(args) -> int:
    candles = read_candles_csv(args.candles)
    atr = calculate_atr(candles, cfg.ATR_PERIOD)
    levels = calculate_intraday_levels(
        candles[-1] if candles else None,
        atr,
        args.sentiment,
        args.impact,
        opening_price=args.open,
    )
    if levels is None:
        log.error(f"Not enough data in {args.candles} for intraday levels")
        _emit(None)
        return 1
    _emit(asdict(levels))
    return 0


def cmd_next_open(args) -> int:
    now = _parse_at(args.at) or market_hours.utcnow()
    _emit({
        "now": now.isoformat(),
        "market_open": market_hours.is_market_open(now),
        "next_open": market_hours.get_next_market_open(now).isoformat(),
        "session_close_validity": market_hours.get_session_close_validity(now).isoformat(),
        "freshness_key": market_hours.freshness_key(now),
    })
    return 0


# ═════════════════════════════════════════════════════════════════════════════
#  ENTRY POINT
# ═════════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Swing/intraday setup analysis engine")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("classify", help="Classify one indicator snapshot (JSON file)")
    p.add_argument("snapshot", help="Path to snapshot JSON")
    p.set_defaults(func=cmd_classify)

    p = sub.add_parser("analyze", help="Full cached analysis for one symbol")
    p.add_argument("symbol")
    p.add_argument("--data-dir", required=True, help="Directory with <SYMBOL>.json and <SYMBOL>.csv")
    p.add_argument("--store", default=None, help=f"Card store path (default {cfg.CARD_STORE_PATH})")
    p.add_argument("--kind", default=cfg.DEFAULT_ANALYSIS_KIND, help="Analysis kind")
    p.add_argument("--at", default=None, help="Evaluate as of this ISO datetime")
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("intraday", help="ATR-based intraday levels from a candle CSV")
    p.add_argument("candles", help="Daily candle CSV; the last row is the previous session")
    p.add_argument("--sentiment", choices=["BULLISH", "BEARISH", "NEUTRAL"], default="NEUTRAL")
    p.add_argument("--impact", choices=["HIGH", "MEDIUM", "LOW"], default=None)
    p.add_argument("--open", type=float, default=None, help="Today's opening price")
    p.set_defaults(func=cmd_intraday)

    p = sub.add_parser("next-open", help="Session boundaries and freshness key")
    p.add_argument("--at", default=None, help="ISO datetime (default: now)")
    p.set_defaults(func=cmd_next_open)

    return parser


def main(argv=None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
