"""
AI Agents for BalanceView

DESIGN DECISION: The advice agent only ever sees numbers the ledger already
computed. It is asked to comment on them, never to calculate them.

BOUNDARIES:
   - CAN: Summarise the month and suggest 2-3 concrete actions
   - CAN: Use the profile (household, location, occupation) for context
   - CANNOT: Change any stored data
   - CANNOT: Break the page - if the model fails or answers with something
     unparseable, a rule-based answer is returned instead
"""

import json
from decimal import Decimal
from typing import Any, Optional

import google.generativeai as genai
import structlog
from pydantic import BaseModel, Field, ValidationError

from balanceview.config import get_settings
from balanceview.models.currency import currency_symbol, format_currency
from balanceview.models.ledger import Bill, Profile
from balanceview.queries.summary import BudgetSummary


class AdviceBill(BaseModel):
    name: str
    amount: Decimal
    recurring: bool = False


class AdviceRequest(BaseModel):
    """Everything the advisor is allowed to know about the month."""

    income: Decimal
    total_bills: Decimal
    balance: Decimal
    currency: str = "USD"
    profile: Optional[Profile] = None
    bills: list[AdviceBill] = Field(default_factory=list)

    @classmethod
    def from_summary(
        cls,
        summary: BudgetSummary,
        bills: list[Bill],
        currency: str = "USD",
        profile: Optional[Profile] = None,
    ) -> "AdviceRequest":
        return cls(
            income=summary.income,
            total_bills=summary.total_bills,
            balance=summary.balance,
            currency=currency,
            profile=profile,
            bills=[
                AdviceBill(name=b.name, amount=b.amount, recurring=b.recurring)
                for b in bills
            ],
        )


class FinancialAdvice(BaseModel):
    """What the advisor says about the month."""

    summary: str = Field(description="1-2 sentence summary of the month")
    recommendations: list[str] = Field(
        default_factory=list,
        description="2-3 specific, actionable recommendations",
    )
    insights: Optional[str] = Field(
        default=None,
        description="Profile-specific insights, if a profile was given",
    )
    used_fallback: bool = Field(
        default=False,
        description="True when the rule-based answer was used instead of the model",
    )


def _extract_json(text: str) -> Optional[dict[str, Any]]:
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(text[start:end])
    except json.JSONDecodeError:
        return None


class FinancialAdvisorAgent:
    """
    Gemini-backed monthly budget advisor.

    RESPONSIBILITIES:
    - Summarise income, bills and balance in plain language
    - Suggest a few concrete next steps

    The rule-based fallback guarantees an answer without the model.
    """

    def __init__(self, model: Optional[Any] = None):
        if model is not None:
            self._model = model
        else:
            self._settings = get_settings().gemini
            self._configure_genai()
        self._logger = structlog.get_logger(__name__)

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            }
        )

    def build_prompt(self, request: AdviceRequest) -> str:
        """Prompt text for a month's numbers."""
        code = request.currency.upper()
        symbol = currency_symbol(code)

        def money(amount: Decimal) -> str:
            return format_currency(amount, code)

        profile_context = ""
        profile = request.profile
        if profile and (profile.location or profile.occupation or profile.household_size > 1):
            profile_context = (
                "\n\nUser Profile:"
                f"\n- Household size: {profile.household_size}"
                f"\n- Location: {profile.location or 'Not specified'}"
                f"\n- Occupation: {profile.occupation or 'Not specified'}"
            )

        bills_context = ""
        if request.bills:
            lines = [
                f"- {b.name}: {money(b.amount)}{' (recurring)' if b.recurring else ''}"
                for b in request.bills
            ]
            bills_context = "\n\nBills breakdown:\n" + "\n".join(lines)

        return f"""You are a helpful personal finance advisor. Analyze the following monthly budget and provide a brief summary and personalized recommendations. Use {code} currency and the {symbol} symbol in your response.

Monthly Income: {money(request.income)}
Total Bills: {money(request.total_bills)}
Remaining Balance: {money(request.balance)}{profile_context}{bills_context}

Provide:
1. A brief 1-2 sentence summary of their financial situation
2. 2-3 specific, actionable recommendations to improve their finances
3. If profile information is available, location-specific or occupation-specific insights

Respond with ONLY a JSON object in this exact format:
{{"summary": "...", "recommendations": ["...", "..."], "insights": "..."}}"""

    async def get_advice(self, request: AdviceRequest) -> FinancialAdvice:
        """
        Advice for one month.

        Never raises for model problems; falls back to rules instead.
        """
        prompt = self.build_prompt(request)

        try:
            response = await self._model.generate_content_async(prompt)
            data = _extract_json(response.text.strip())
            if data:
                advice = FinancialAdvice.model_validate(data)
                if advice.summary and advice.recommendations:
                    advice.recommendations = advice.recommendations[:3]
                    return advice
            self._logger.warning("advice_unparseable")
        except ValidationError as e:
            self._logger.warning("advice_invalid_shape", error=str(e))
        except Exception as e:
            self._logger.warning("advice_model_failed", error=str(e))

        return self.fallback_advice(request)

    @staticmethod
    def fallback_advice(request: AdviceRequest) -> FinancialAdvice:
        """Deterministic advice from the numbers alone."""
        code = request.currency

        def money(amount: Decimal) -> str:
            return format_currency(amount, code)

        largest = max(request.bills, key=lambda b: b.amount, default=None)
        recommendations = []

        if request.income <= 0:
            summary = (
                f"No income is recorded for this month, against "
                f"{money(request.total_bills)} in bills."
            )
            recommendations.append("Record this month's income to see your real balance.")
            if largest:
                recommendations.append(
                    f"Your largest bill is {largest.name} at {money(largest.amount)}; "
                    "make sure it is covered first."
                )
        elif request.balance < 0:
            summary = (
                f"Your bills exceed your income by {money(-request.balance)} this month."
            )
            if largest:
                recommendations.append(
                    f"Review {largest.name} ({money(largest.amount)}), your largest bill, "
                    "for a cheaper plan or provider."
                )
            recommendations.append("Pause or cancel any recurring bill you can live without.")
            recommendations.append(
                f"Look for {money(-request.balance)} of extra income or cuts to break even."
            )
        else:
            spent = request.total_bills / request.income
            summary = (
                f"You have {money(request.balance)} left after "
                f"{money(request.total_bills)} in bills ({spent:.0%} of income)."
            )
            if spent > Decimal("0.8"):
                recommendations.append(
                    "Bills take up most of your income; aim to bring them under 80%."
                )
                if largest:
                    recommendations.append(
                        f"Start with {largest.name} ({money(largest.amount)}), your largest bill."
                    )
            else:
                saving = (request.balance * Decimal("0.2")).quantize(Decimal("0.01"))
                recommendations.append(
                    f"Move {money(saving)} (20% of what is left) into savings this month."
                )
                recommendations.append("Build an emergency fund covering three months of bills.")
            recommendations.append("Check your recurring bills once a year for price increases.")

        return FinancialAdvice(
            summary=summary,
            recommendations=recommendations[:3],
            used_fallback=True,
        )
