"""Fundamental and risk scoring of discovered assets"""

from .risk_analyzer import (
    AssetProfile,
    Recommendation,
    RiskAnalyzer,
    calculate_buy_pressure,
    calculate_momentum,
    calculate_volatility,
    recommend,
    score_fundamentals,
    score_risk,
)

__all__ = [
    "AssetProfile",
    "Recommendation",
    "RiskAnalyzer",
    "calculate_buy_pressure",
    "calculate_momentum",
    "calculate_volatility",
    "recommend",
    "score_fundamentals",
    "score_risk",
]
