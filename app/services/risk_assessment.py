# app/services/risk_assessment.py
"""Read-only portfolio risk scoring. Nothing here touches orders or stores."""
from typing import Dict, List

from pydantic import BaseModel, Field

from app.models.holding_model import Investable, MutualFund
from app.models.risk_model import UserRiskProfile

BASE_RISK = {"stock": 60, "mutual_fund": 40}


class HoldingRisk(BaseModel):
    ticker: str
    company_name: str
    risk_score: int
    risk_level: str
    profit_loss: float
    profit_loss_percent: float
    should_alert: bool
    reasons: List[str] = Field(default_factory=list)
    recommendation: str


class PortfolioRiskReport(BaseModel):
    total_holdings: int
    average_risk_score: float
    risk_distribution: Dict[str, int]
    total_loss: float
    portfolio_loss_percent: float
    exceeds_max_loss: bool
    high_risk: List[HoldingRisk] = Field(default_factory=list)
    assessments: List[HoldingRisk] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


def risk_score(holding: Investable) -> int:
    score = BASE_RISK.get(holding.kind, 50)
    change = holding.profit_loss_percent
    if change < -20:
        score += 30
    elif change < -10:
        score += 20
    elif change < -5:
        score += 10
    if change > 10:
        score -= 10
    return min(100, max(0, score))


def risk_level(score: int) -> str:
    if score >= 80:
        return "critical"
    if score >= 60:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def assess_holding(holding: Investable) -> HoldingRisk:
    score = risk_score(holding)
    level = risk_level(score)
    change = holding.profit_loss_percent

    reasons = []
    recommendation = ""
    if change < -20:
        reasons.append(f"Heavy loss of {change:.1f}%")
        recommendation = "Consider selling immediately to prevent further losses"
    elif change < -10:
        reasons.append(f"Significant loss of {change:.1f}%")
        recommendation = "Consider selling or setting a stop-loss"
    elif change < -5:
        reasons.append(f"Moderate loss of {change:.1f}%")
        recommendation = "Monitor closely and consider an exit strategy"

    if not isinstance(holding, MutualFund) and change < 0:
        reasons.append("Stock trading below purchase price")

    if not recommendation:
        recommendation = "Low risk, continue monitoring" if level == "low" else "Monitor this holding regularly"

    return HoldingRisk(
        ticker=holding.ticker,
        company_name=holding.company_name,
        risk_score=score,
        risk_level=level,
        profit_loss=holding.profit_loss,
        profit_loss_percent=change,
        should_alert=level == "critical" or (level == "high" and change < -10) or change < -15,
        reasons=reasons or ["Normal market fluctuations"],
        recommendation=recommendation,
    )


def assess_portfolio(
    holdings: List[Investable], profile: UserRiskProfile
) -> PortfolioRiskReport:
    assessments = [assess_holding(h) for h in holdings]
    distribution = {level: 0 for level in ("low", "medium", "high", "critical")}
    for a in assessments:
        distribution[a.risk_level] += 1

    high_risk = [a for a in assessments if a.risk_level in ("high", "critical")]
    average = sum(a.risk_score for a in assessments) / len(assessments) if assessments else 0.0
    total_loss = sum(a.profit_loss for a in assessments if a.profit_loss < 0)

    cost_basis = sum(h.quantity * h.purchase_price for h in holdings)
    net = sum(h.profit_loss for h in holdings)
    loss_percent = -net / cost_basis * 100 if cost_basis > 0 and net < 0 else 0.0
    exceeds = loss_percent > profile.max_portfolio_loss_percent

    recommendations = []
    if high_risk:
        recommendations.append(f"{len(high_risk)} high-risk holdings need attention")
    if exceeds:
        recommendations.append(
            f"Portfolio loss of {loss_percent:.1f}% exceeds your limit of "
            f"{profile.max_portfolio_loss_percent:g}%. Consider rebalancing"
        )
    if distribution["critical"]:
        recommendations.append("Review critical risk holdings immediately")
    if not recommendations:
        recommendations.append("Portfolio risk is within your limits")

    return PortfolioRiskReport(
        total_holdings=len(holdings),
        average_risk_score=round(average, 1),
        risk_distribution=distribution,
        total_loss=total_loss,
        portfolio_loss_percent=loss_percent,
        exceeds_max_loss=exceeds,
        high_risk=high_risk,
        assessments=assessments,
        recommendations=recommendations,
    )
