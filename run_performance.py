#!/usr/bin/env python3
# coding: utf-8

# File: run_performance.py

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

load_dotenv()

from portfolio_performance_engine import config
from portfolio_performance_engine.analysis_config import load_analysis_config
from portfolio_performance_engine.config import EnginePolicy
from portfolio_performance_engine.exceptions import InputError
from portfolio_performance_engine.performance_analysis import analyze_performance
from portfolio_performance_engine.results import PerformanceResult

from portfolio_performance_engine._logging import log_errors, log_operation


@log_errors("high")
@log_operation("run_performance")
def run_performance(
    transactions_path: str,
    *,
    benchmark: Optional[Dict[str, Any]] = None,
    policy: Optional[EnginePolicy] = None,
    return_data: bool = False,
    as_json: bool = False,
) -> Union[None, PerformanceResult, Dict[str, Any]]:
    """
    Analyze a transaction export and print or return the result.

    Contract:
    - Returns ``PerformanceResult`` (or the error dict) in data mode.
    - Prints the CLI report, or the API payload as JSON, otherwise.
    """
    benchmark = benchmark or {}
    result = analyze_performance(
        transactions_path,
        benchmark_path=benchmark.get("file"),
        policy=policy,
        benchmark_name=benchmark.get("name"),
        date_column=benchmark.get("date_column"),
        price_column=benchmark.get("price_column"),
    )

    if isinstance(result, dict) and "error" in result:
        if return_data:
            return result
        if as_json:
            print(json.dumps(result, indent=2, ensure_ascii=False))
        else:
            print(f"❌ Performance calculation failed: {result['error']}")
        return result

    if return_data:
        return result
    if as_json:
        print(json.dumps(result.to_api_response(), indent=2, ensure_ascii=False))
    else:
        print(result.to_cli_report())
    return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay a broker transaction export and report portfolio performance.")
    parser.add_argument("--transactions", type=str, help="Path to the transaction CSV export (newest row first)")
    parser.add_argument("--benchmark", type=str, help="Path to a CSV of benchmark closes")
    parser.add_argument("--benchmark-name", type=str, help="Display name for the benchmark")
    parser.add_argument("--config", type=str, help="Path to a YAML run configuration")
    parser.add_argument("--capital-mode", choices=config.CAPITAL_MODES, help="Where external capital comes from")
    parser.add_argument("--nav-mark", choices=config.NAV_MARKS, help="Price used to value open positions")
    parser.add_argument("--fee-policy", choices=config.FEE_POLICIES, help="How transaction fees are booked")
    parser.add_argument("--scheduling", choices=config.SCHEDULING_POLICIES, help="Same-day event ordering")
    parser.add_argument("--json", action="store_true", help="Print the API payload as JSON")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    file_cfg: Dict[str, Any] = {}
    if args.config:
        try:
            file_cfg = load_analysis_config(args.config)
        except (OSError, InputError) as e:
            print(f"❌ Could not load config {args.config}: {e}")
            return 1

    transactions = args.transactions or file_cfg.get("transactions")
    if not transactions:
        parser.error("--transactions is required (directly or via --config)")

    benchmark = dict(file_cfg.get("benchmark") or {})
    if args.benchmark:
        benchmark["file"] = args.benchmark
    if args.benchmark_name:
        benchmark["name"] = args.benchmark_name

    settings = dict(file_cfg.get("policy_settings") or {})
    overrides = {
        "capital_mode": args.capital_mode,
        "nav_mark": args.nav_mark,
        "fee_policy": args.fee_policy,
        "scheduling": args.scheduling,
    }
    # CLI flags win over the file; unset nav_mark follows the capital mode.
    settings.update({k: v for k, v in overrides.items() if v is not None})
    try:
        policy = EnginePolicy.from_config(**settings)
    except ValueError as e:
        print(f"❌ Invalid policy: {e}")
        return 1

    result = run_performance(transactions, benchmark=benchmark, policy=policy, as_json=args.json)
    return 1 if isinstance(result, dict) and "error" in result else 0


if __name__ == "__main__":
    sys.exit(main())
