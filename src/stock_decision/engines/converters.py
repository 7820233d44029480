"""Snapshot converters: StockSnapshot -> model input records.

Every field has a documented default so conversion always completes.
"""

from statistics import mean

from stock_decision.data.snapshot import StockSnapshot
from stock_decision.engines.strategic import StrategicInputs
from stock_decision.engines.tactical import TacticalInputs
from stock_decision.engines.types import clamp


# Strategic defaults (portfolio and macro context not carried by a snapshot)
DEFAULT_PORTFOLIO_CONCENTRATION = 10.0
DEFAULT_SECTOR_EXPOSURE = 15.0
DEFAULT_VIX = 18.0
DEFAULT_GDP_GROWTH = 2.5
DEFAULT_RATE_TREND = "stable"
DEFAULT_INSTITUTIONAL_OWNERSHIP = 50.0
DEFAULT_MAX_HOLDING_DAYS = 180

# Tactical defaults
DEFAULT_BID_ASK_SPREAD = 0.03
DEFAULT_PUT_CALL = 0.8
DEFAULT_DAYS_TO_EARNINGS = 30
DEFAULT_DAYS_TO_EX_DIVIDEND = 45
DEFAULT_MAX_TRADE_DAYS = 30
DEFAULT_SECTOR_RANK = 5

_INSTITUTIONAL_ACTIVITY = {"INCREASING": "buying", "DECREASING": "selling"}
_MARKET_TREND = {"UP": "bullish", "DOWN": "bearish"}


def to_strategic_inputs(
    snapshot: StockSnapshot,
    *,
    portfolio_concentration: float | None = None,
    sector_exposure: float | None = None,
    vix_level: float | None = None,
    days_in_position: float = 0,
    max_holding_period: float = DEFAULT_MAX_HOLDING_DAYS,
) -> StrategicInputs:
    """
    Derive Strategic Growth inputs from a snapshot.

    Derivations:
        revenue_growth        mean of revenue growth series (0 if empty)
        earnings_acceleration latest minus prior EPS growth (mean if one point)
        weekly_ma_alignment   MA50 > MA200 and price > MA50
        market_trend          weekly trend UP/DOWN -> bullish/bearish
    """
    fundamentals = snapshot.fundamentals
    technicals = snapshot.technicals
    sentiment = snapshot.sentiment

    revenue_growth = mean(fundamentals.revenue_growth_yoy) if fundamentals.revenue_growth_yoy else 0.0
    eps = fundamentals.eps_growth_yoy
    if len(eps) >= 2:
        earnings_acceleration = eps[0] - eps[1]
    elif eps:
        earnings_acceleration = eps[0]
    else:
        earnings_acceleration = 0.0

    weekly_ma_alignment = (
        technicals.sma50 > technicals.sma200 and snapshot.price > technicals.sma50
    )

    ownership = sentiment.institutional_ownership
    return StrategicInputs(
        portfolio_concentration=(
            portfolio_concentration
            if portfolio_concentration is not None
            else DEFAULT_PORTFOLIO_CONCENTRATION
        ),
        sector_exposure=sector_exposure if sector_exposure is not None else DEFAULT_SECTOR_EXPOSURE,
        vix_level=vix_level if vix_level is not None else DEFAULT_VIX,
        market_trend=_MARKET_TREND.get(technicals.weekly_trend, "neutral"),
        gdp_growth=DEFAULT_GDP_GROWTH,
        interest_rate_trend=DEFAULT_RATE_TREND,
        institutional_ownership=ownership if ownership is not None else DEFAULT_INSTITUTIONAL_OWNERSHIP,
        institutional_activity=_INSTITUTIONAL_ACTIVITY.get(
            sentiment.institutional_trend or "", "neutral"
        ),
        revenue_growth=round(revenue_growth, 2),
        earnings_acceleration=round(earnings_acceleration, 2),
        weekly_ma_alignment=weekly_ma_alignment,
        weekly_rsi=technicals.rsi14,
        days_in_position=days_in_position,
        max_holding_period=max_holding_period,
    )


def to_tactical_inputs(
    snapshot: StockSnapshot,
    *,
    sector_rank: int = DEFAULT_SECTOR_RANK,
    days_in_trade: float = 0,
    max_trade_days: float = DEFAULT_MAX_TRADE_DAYS,
    has_pending_news: bool = False,
) -> TacticalInputs:
    """
    Derive Tactical Sentinel inputs from a snapshot.

    Derivations:
        daily_ma_alignment  price > MA20 > MA50
        hourly_confirmation daily trend is UP
        above_vwap          price > MA20 (VWAP proxy)
        momentum_score      max(45, RSI), +10 on an UP trend, -10 on DOWN
        momentum_direction  RSI > 60 accelerating, < 40 decelerating
        social_sentiment    analyst rating > 3.5 bullish, < 2.5 bearish
        relative_strength   50 + price vs MA200 %, clamped to [0, 100]
    """
    technicals = snapshot.technicals
    sentiment = snapshot.sentiment
    price = snapshot.price

    momentum_score = max(45.0, technicals.rsi14)
    if technicals.daily_trend == "UP":
        momentum_score += 10
    elif technicals.daily_trend == "DOWN":
        momentum_score -= 10

    if technicals.rsi14 > 60:
        direction = "accelerating"
    elif technicals.rsi14 < 40:
        direction = "decelerating"
    else:
        direction = "stable"

    rating = sentiment.analyst_rating
    if rating is not None and rating > 3.5:
        social = "bullish"
    elif rating is not None and rating < 2.5:
        social = "bearish"
    else:
        social = "neutral"

    put_call = sentiment.put_call_ratio
    if put_call is None and snapshot.options is not None:
        put_call = snapshot.options.put_call_ratio
    if put_call is None:
        put_call = DEFAULT_PUT_CALL

    events = snapshot.events
    return TacticalInputs(
        daily_ma_alignment=price > technicals.sma20 and technicals.sma20 > technicals.sma50,
        hourly_confirmation=technicals.daily_trend == "UP",
        above_vwap=price > technicals.sma20,
        momentum_score=round(momentum_score, 2),
        momentum_direction=direction,
        avg_volume=technicals.avg_volume20 or snapshot.volume,
        current_volume=snapshot.volume,
        bid_ask_spread=DEFAULT_BID_ASK_SPREAD,
        put_call_ratio=put_call,
        social_sentiment=social,
        days_to_earnings=(
            events.days_to_earnings
            if events.days_to_earnings is not None
            else DEFAULT_DAYS_TO_EARNINGS
        ),
        days_to_ex_dividend=(
            events.days_to_ex_dividend
            if events.days_to_ex_dividend is not None
            else DEFAULT_DAYS_TO_EX_DIVIDEND
        ),
        has_pending_news=has_pending_news,
        days_in_trade=days_in_trade,
        max_trade_days=max_trade_days,
        relative_strength=round(clamp(50 + technicals.price_vs_ma200, 0, 100), 2),
        sector_rank=sector_rank,
    )
