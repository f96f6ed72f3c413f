"""AI Agents package."""

from balanceview.agents.ai_agents import (
    AdviceBill,
    AdviceRequest,
    FinancialAdvice,
    FinancialAdvisorAgent,
)

__all__ = [
    "AdviceBill",
    "AdviceRequest",
    "FinancialAdvice",
    "FinancialAdvisorAgent",
]
