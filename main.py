"""ForecastLab entrypoint -- wires plugins together and runs backtests.

Usage:
    python main.py single --asset BTC --date 2024-07-15 --days 3
    python main.py batch --asset ETH --start 2024-01-01 --end 2024-07-01 --step 7
    python main.py batch --asset BTC --start 2024-01-01 --end 2024-03-01 --mock
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, timedelta
from pathlib import Path

import httpx

from core.config import AppConfig, load_config
from core.errors import BacktestError
from core.registry import PluginRegistry
from simulator.engine import BacktestRunner

logger = logging.getLogger("forecastlab")


def setup_logging(level: str) -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backtest AI price forecasts against history")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Path to config.yaml (default: ~/.forecastlab/config.yaml)")
    parser.add_argument("--env", type=str, default=None,
                        help="Path to .env file (default: ~/.forecastlab/.env)")
    parser.add_argument("--mock", action="store_true",
                        help="Use synthetic prices and a canned forecaster (no network)")
    parser.add_argument("--output", "-o", type=str, default=None,
                        help="Write the JSON report to this file instead of stdout")

    sub = parser.add_subparsers(dest="command", required=True)

    single = sub.add_parser("single", help="Run one backtest")
    single.add_argument("--asset", required=True)
    single.add_argument("--date", required=True, type=date.fromisoformat, help="YYYY-MM-DD")
    single.add_argument("--days", type=int, default=None, help="Days to predict")

    batch = sub.add_parser("batch", help="Run backtests over a date range")
    batch.add_argument("--asset", required=True)
    batch.add_argument("--start", required=True, type=date.fromisoformat, help="YYYY-MM-DD")
    batch.add_argument("--end", required=True, type=date.fromisoformat, help="YYYY-MM-DD")
    batch.add_argument("--step", type=int, default=None, help="Days between trials")
    batch.add_argument("--days", type=int, default=None, help="Days to predict")

    return parser.parse_args(argv)


def build_registry(config: AppConfig, args: argparse.Namespace) -> PluginRegistry:
    """Instantiate the price source and forecaster and register them."""
    registry = PluginRegistry()

    if args.mock:
        from simulator.mocks import MockForecaster, MockPriceSource, synthetic_history

        first, last = _date_span(args)
        start = first - timedelta(days=config.backtest.history_days + 1)
        end = last + timedelta(days=config.backtest.max_days_to_predict + 1)
        registry.register("price_source", MockPriceSource({args.asset: synthetic_history(start, end)}))
        registry.register("forecaster", MockForecaster())
        return registry

    md = config.market_data
    if md.provider != "coingecko":
        raise ValueError(f"Unknown market data provider: {md.provider}")

    from plugins.market_data.coingecko import CoinGeckoPriceSource
    registry.register(
        "price_source",
        CoinGeckoPriceSource(base_url=md.base_url, api_key=md.api_key, asset_ids=md.asset_ids),
    )

    provider_name = config.ai.default_provider
    provider_config = config.ai.active()
    if provider_config is None or not provider_config.api_key:
        raise ValueError(f"AI provider '{provider_name}' is not configured (missing api_key)")

    kwargs = {
        "api_key": provider_config.api_key,
        "max_tokens": provider_config.max_tokens,
        "temperature": provider_config.temperature,
    }
    if provider_config.model:
        kwargs["model"] = provider_config.model
    if provider_config.base_url:
        kwargs["base_url"] = provider_config.base_url

    if provider_name == "gemini":
        from plugins.ai_providers.gemini import GeminiProvider
        llm = GeminiProvider(**kwargs)
    elif provider_name == "openai":
        from plugins.ai_providers.openai import OpenAIProvider
        llm = OpenAIProvider(**kwargs)
    else:
        raise ValueError(f"Unknown AI provider: {provider_name}")
    registry.register("llm", llm)

    from plugins.forecasters.llm import LLMForecaster
    registry.register("forecaster", LLMForecaster(llm=llm, strict=config.ai.strict_parsing))
    return registry


def validate_args(config: AppConfig, args: argparse.Namespace) -> None:
    """Fill defaults from config and enforce bounds. Raises ValueError."""
    bt = config.backtest
    if args.days is None:
        args.days = bt.default_days_to_predict
    if not 1 <= args.days <= bt.max_days_to_predict:
        raise ValueError(f"days to predict must be between 1 and {bt.max_days_to_predict}")

    if args.command == "batch":
        if args.step is None:
            args.step = bt.default_step_days
        if not 1 <= args.step <= bt.max_step_days:
            raise ValueError(f"step must be between 1 and {bt.max_step_days}")
        if args.start >= args.end:
            raise ValueError("start date must be before end date")

    args.asset = args.asset.upper()


async def run(config: AppConfig, args: argparse.Namespace) -> dict:
    """Run the requested backtest and return its JSON-ready report."""
    registry = build_registry(config, args)
    runner = BacktestRunner(
        price_source=registry.first("price_source"),
        forecaster=registry.first("forecaster"),
        history_days=config.backtest.history_days,
        max_concurrency=config.backtest.max_concurrency,
        trial_delay=config.backtest.trial_delay_seconds,
        indicator_config=config.indicators,
    )
    logger.info("Plugins: %s", registry.summary())

    try:
        if args.command == "single":
            valid, message = runner.validate_test_date(args.date)
            if not valid:
                raise ValueError(message)
            trial = await runner.run_single_backtest(args.asset, args.date, args.days)
            return {"success": True, **trial.model_dump(mode="json")}

        batch = await runner.run_batch_backtest(
            args.asset, args.start, args.end, step_days=args.step, days_to_predict=args.days,
        )
        return {"success": True, **batch.model_dump(mode="json")}
    finally:
        await registry.close_all()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = load_config(config_path=args.config, env_path=args.env)
    setup_logging(config.logging.level)

    try:
        validate_args(config, args)
        report = asyncio.run(run(config, args))
        exit_code = 0
    except BacktestError as e:
        logger.error("Backtest failed: [%s] %s", e.kind, e.message)
        report = {"success": False, **e.to_dict()}
        exit_code = 1
    except httpx.HTTPError as e:
        logger.error("Upstream request failed: %s", e)
        report = {"success": False, "error": "UpstreamError", "message": str(e)}
        exit_code = 3
    except ValueError as e:
        logger.error("%s", e)
        report = {"success": False, "error": "InvalidRequest", "message": str(e)}
        exit_code = 2

    text = json.dumps(report, indent=2)
    if args.output:
        Path(args.output).write_text(text + "\n")
        logger.info("Report written to %s", args.output)
    else:
        print(text)
    return exit_code


def _date_span(args: argparse.Namespace) -> tuple[date, date]:
    if args.command == "single":
        return args.date, args.date
    return args.start, args.end


if __name__ == "__main__":
    sys.exit(main())
