"""LLM forecaster -- asks a language model for a structured price forecast.

Implements the Forecaster protocol on top of any LLMProvider. The model is
given the indicator snapshot and recent price history and must answer in
JSON. Missing fields are filled from the indicators. A response with no
parsable JSON raises ValueError, which the backtest runner reports as an
unavailable forecast; with `strict=False` it is replaced by an
indicator-driven forecast instead.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Sequence
from typing import Any

from analysis.indicators import risk_level, rsi_interpretation
from core.models.forecasts import Forecast
from core.models.indicators import IndicatorSnapshot
from core.models.market import PricePoint
from core.protocols import LLMProvider

logger = logging.getLogger(__name__)

PLUGIN_META = {
    "name": "llm",
    "display_name": "LLM Technical Analyst",
    "description": "Price forecasts from an LLM conditioned on technical indicators",
    "category": "forecaster",
    "protocols": ["forecaster"],
    "class_name": "LLMForecaster",
}

SYSTEM_PROMPT = """You are an expert cryptocurrency technical analyst.

You analyze price history together with technical indicators (moving
averages, RSI, volatility, trend) and produce a realistic short-term price
forecast. Base every statement on the indicators provided, be specific
about moving average relationships, read RSI in the context of overbought
and oversold conditions, and keep price targets consistent with volatility.

Respond with strict JSON only:
{
    "direction": "UP" | "DOWN" | "NEUTRAL",
    "priceTarget": number,
    "confidence": 0-100,
    "riskLevel": "LOW" | "MEDIUM" | "HIGH",
    "timeframe": "24h",
    "analysis": "3-4 paragraph technical analysis",
    "keyFactors": ["factor1", "factor2", "factor3"]
}"""

HISTORY_LINES = 30
DEFAULT_CONFIDENCE = 65.0

_FENCE_RE = re.compile(r"```(?:json)?\s*")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class LLMForecaster:
    """Technical-analysis forecaster backed by a language model.

    Implements the Forecaster protocol. Transport errors from the LLM
    propagate. An unparsable response raises ValueError unless
    `strict=False`, in which case the indicator fallback is returned.
    """

    def __init__(self, llm: LLMProvider, strict: bool = True) -> None:
        self._llm = llm
        self._strict = strict

    @property
    def name(self) -> str:
        return f"llm_{self._llm.name}"

    async def predict(
        self,
        asset: str,
        history: Sequence[PricePoint],
        indicators: IndicatorSnapshot,
        current_price: float,
    ) -> Forecast:
        change_24h = price_change_24h(history)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(asset, history, indicators, current_price, change_24h)},
        ]

        response = await self._llm.complete(messages, json_mode=True)

        data = extract_json(response)
        if data is None:
            if self._strict:
                raise ValueError(f"Unparsable forecast response: {response[:200]!r}")
            logger.warning("No JSON in %s response for %s, using fallback forecast", self._llm.name, asset)
            return fallback_forecast(indicators, current_price, change_24h)

        return parse_forecast(data, indicators, current_price, change_24h)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def build_prompt(
    asset: str,
    history: Sequence[PricePoint],
    indicators: IndicatorSnapshot,
    current_price: float,
    change_24h: float,
) -> str:
    parts = [
        f"Analyze {asset} and forecast its price for the next 24h.",
        "",
        "Current market data:",
        f"  Current price: ${current_price:,.2f}",
        f"  24h price change: {change_24h:.2f}%",
    ]
    if history:
        parts.append(f"  Data range: {history[0].day.isoformat()} to {history[-1].day.isoformat()}")
    parts.append(f"  Total data points: {len(history)}")

    parts.append("\nTechnical indicators:")
    for window, value in sorted(indicators.smas.items()):
        parts.append(f"  {window}-day SMA: {_money(value)}")
    for window, value in sorted(indicators.emas.items()):
        parts.append(f"  {window}-day EMA: {_money(value)}")

    rsi = indicators.rsi
    if rsi is not None:
        parts.append(f"  RSI ({indicators.rsi_window}): {rsi:.2f} ({rsi_interpretation(rsi)})")
    else:
        parts.append("  RSI: N/A")

    volatility = indicators.volatility
    if volatility is not None:
        parts.append(f"  Volatility: {volatility:.2f}% ({risk_level(volatility)} risk)")
    else:
        parts.append("  Volatility: N/A")

    trend = indicators.trend
    parts.append(
        f"  Trend: {trend.direction}, strength {trend.strength:.2f}%, "
        f"price change {trend.price_change:.2f}%"
    )

    if history:
        parts.append(f"\nPrice history (last {min(HISTORY_LINES, len(history))} samples):")
        for point in history[-HISTORY_LINES:]:
            parts.append(f"  {point.at.strftime('%b %d %H:%M')}: ${point.price:,.2f}")

    parts.append("\nProvide your forecast as strict JSON.")
    return "\n".join(parts)


def price_change_24h(history: Sequence[PricePoint]) -> float:
    """Percent change between the last two samples."""
    if len(history) < 2:
        return 0.0
    previous = history[-2].price
    return (history[-1].price - previous) / previous * 100


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def extract_json(response: str) -> dict | None:
    """Pull the outermost JSON object out of a model response."""
    cleaned = _FENCE_RE.sub("", response or "")
    match = _OBJECT_RE.search(cleaned)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_forecast(
    data: dict[str, Any],
    indicators: IndicatorSnapshot,
    current_price: float,
    change_24h: float = 0.0,
) -> Forecast:
    """Build a Forecast from parsed JSON, filling gaps from the indicators."""
    direction = str(data.get("direction") or "NEUTRAL").upper()
    if direction not in ("UP", "DOWN", "NEUTRAL"):
        direction = "NEUTRAL"

    target = _positive_float(data.get("priceTarget")) or current_price

    confidence = _float(data.get("confidence"))
    confidence = DEFAULT_CONFIDENCE if confidence is None else min(100.0, max(0.0, confidence))

    risk = str(data.get("riskLevel") or "").upper()
    if risk not in ("LOW", "MEDIUM", "HIGH"):
        risk = _risk_from_volatility(indicators.volatility)

    analysis = data.get("analysis") or fallback_analysis(indicators, current_price, change_24h)

    factors = data.get("keyFactors")
    if isinstance(factors, list) and factors:
        key_factors = [str(f) for f in factors]
    else:
        key_factors = fallback_factors(indicators, current_price)

    return Forecast(
        direction=direction,
        price_target=target,
        confidence=confidence,
        risk_level=risk,
        timeframe=str(data.get("timeframe") or "24h"),
        analysis=str(analysis),
        key_factors=key_factors,
    )


# ---------------------------------------------------------------------------
# Indicator-driven fallback
# ---------------------------------------------------------------------------

def fallback_forecast(
    indicators: IndicatorSnapshot,
    current_price: float,
    change_24h: float = 0.0,
) -> Forecast:
    """Forecast derived purely from RSI, trend, and the last 24h move."""
    rsi = indicators.rsi if indicators.rsi is not None else 50.0
    trend = indicators.trend.direction

    direction = "NEUTRAL"
    if rsi > 60 or trend == "uptrend":
        direction = "UP"
    elif rsi < 40 or trend == "downtrend":
        direction = "DOWN"

    return Forecast(
        direction=direction,
        price_target=current_price * (1 + change_24h / 100),
        confidence=DEFAULT_CONFIDENCE,
        risk_level=_risk_from_volatility(indicators.volatility),
        timeframe="24h",
        analysis=fallback_analysis(indicators, current_price, change_24h),
        key_factors=fallback_factors(indicators, current_price),
    )


def fallback_analysis(
    indicators: IndicatorSnapshot,
    current_price: float,
    change_24h: float = 0.0,
) -> str:
    parts = []

    short_ma, long_ma = _ma_pair(indicators)
    if short_ma is not None and long_ma is not None:
        if current_price > short_ma > long_ma:
            parts.append(
                "The market shows a bullish structure with price above both "
                "short-term and long-term moving averages."
            )
        elif current_price < short_ma < long_ma:
            parts.append("The market shows a bearish structure with price below its moving averages.")
        else:
            parts.append("The market shows a mixed structure indicating potential consolidation.")

    rsi = indicators.rsi if indicators.rsi is not None else 50.0
    parts.append(f"RSI at {rsi:.2f} suggests {_rsi_condition(rsi)} conditions.")

    trend = indicators.trend
    parts.append(
        f"The {trend.direction} shows {trend.strength:.2f}% strength, "
        + ("making it vulnerable to reversals." if trend.strength < 50 else "indicating a strong trend.")
    )

    if change_24h > 0:
        outlook = "continued upward momentum"
    elif change_24h < 0:
        outlook = "potential downward pressure"
    else:
        outlook = "consolidation"
    parts.append(f"Market conditions suggest {outlook} in the near term.")

    return " ".join(parts)


def fallback_factors(indicators: IndicatorSnapshot, current_price: float) -> list[str]:
    factors = []

    short_ma, long_ma = _ma_pair(indicators)
    if short_ma is not None and long_ma is not None:
        if current_price > short_ma > long_ma:
            factors.append(
                f"Price is above the short SMA (${short_ma:,.2f}) and long SMA "
                f"(${long_ma:,.2f}), indicating bullish alignment."
            )
        elif current_price < short_ma < long_ma:
            factors.append(
                f"Price is below the short SMA (${short_ma:,.2f}) and long SMA "
                f"(${long_ma:,.2f}), indicating bearish structure."
            )
        else:
            factors.append(
                "Mixed moving average alignment suggests a potential reversal or consolidation phase."
            )

    if indicators.rsi is not None:
        factors.append(
            f"RSI at {indicators.rsi:.2f} indicates {_rsi_condition(indicators.rsi)} momentum conditions."
        )

    trend = indicators.trend
    factors.append(
        f"Trend direction is {trend.direction} with {trend.strength:.2f}% strength, "
        + (
            "making it susceptible to counter-trend moves."
            if trend.strength < 50
            else "indicating strong directional bias."
        )
    )

    volatility = indicators.volatility
    if volatility:
        if volatility > 20:
            level = "high risk"
        elif volatility > 10:
            level = "moderate risk"
        else:
            level = "lower risk"
        factors.append(f"Volatility at {volatility:.2f}% suggests {level} trading conditions.")

    return factors


def _ma_pair(indicators: IndicatorSnapshot) -> tuple[float | None, float | None]:
    """Shortest and longest available SMA."""
    available = sorted((w, v) for w, v in indicators.smas.items() if v is not None)
    if len(available) < 2:
        return None, None
    return available[0][1], available[-1][1]


def _risk_from_volatility(volatility: float | None) -> str:
    if volatility is None:
        volatility = 15.0
    if volatility > 20:
        return "HIGH"
    if volatility > 10:
        return "MEDIUM"
    return "LOW"


def _rsi_condition(rsi: float) -> str:
    if rsi > 70:
        return "overbought"
    if rsi < 30:
        return "oversold"
    return "neutral"


def _money(value: float | None) -> str:
    return f"${value:,.2f}" if value is not None else "N/A"


def _float(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _positive_float(value: Any) -> float | None:
    number = _float(value)
    if number is None or number <= 0:
        return None
    return number
