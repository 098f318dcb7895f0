"""
Finance domain: transactions, budgets, savings goals and money worries
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from companion.core.state import ConversationState, SteeringHints
from companion.domains.base import LLMExtractor
from companion.domains.registry import DomainDefinition

FINANCE_DOMAIN = "finance"


class Transaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["income", "expense", "transfer"]
    amount: float
    currency: str = "USD"
    description: str = ""
    category: Optional[str] = None


class BudgetCategory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    amount: float
    spent: Optional[float] = None


class Budget(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total: Optional[float] = None
    period: Optional[Literal["daily", "weekly", "monthly", "yearly"]] = None
    categories: Optional[List[BudgetCategory]] = None


class FinancialGoal(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    target_amount: float
    current_amount: Optional[float] = None
    deadline: Optional[str] = None


class FinancialConcern(BaseModel):
    model_config = ConfigDict(extra="ignore")

    topic: str
    severity: Optional[Literal["minor", "moderate", "major"]] = None


class FinanceData(BaseModel):
    """Finance extraction payload"""
    model_config = ConfigDict(extra="ignore")

    transactions: Optional[List[Transaction]] = None
    budget: Optional[Budget] = None
    goals: Optional[List[FinancialGoal]] = None
    concerns: Optional[List[FinancialConcern]] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class FinanceExtractor(LLMExtractor):
    domain_id = FINANCE_DOMAIN
    data_model = FinanceData
    instructions = """Extract personal finance information from the user's message.

Fields:
- transactions: [{"type" (income|expense|transfer), "amount", "currency", "description", "category"}]
- budget: {"total", "period" (daily|weekly|monthly|yearly), "categories": [{"name", "amount", "spent"}]}
- goals: savings goals [{"name", "target_amount", "current_amount", "deadline"}]
- concerns: money worries [{"topic", "severity" (minor|moderate|major)}]

Amounts are plain numbers without currency symbols."""


def _expenses(data: dict) -> List[dict]:
    return [t for t in data.get("transactions") or [] if t.get("type") == "expense"]


class BudgetGuidanceStrategy:
    """Budgeting prompts when expenses, budgets or spending worries come up"""

    strategy_id = "finance_budget_guidance"
    priority = 0.8

    def should_apply(self, state: ConversationState) -> bool:
        latest = state.latest_extraction(FINANCE_DOMAIN)
        if latest is None:
            return False
        data = latest.data
        spending_worry = any(
            any(word in (c.get("topic") or "").lower() for word in ("spend", "budget", "expense"))
            for c in data.get("concerns") or []
        )
        return bool(data.get("budget") or _expenses(data) or spending_worry)

    def build_suggestions(self, data: dict) -> List[str]:
        suggestions: List[str] = []
        expenses = _expenses(data)
        budget = data.get("budget")

        if expenses and not budget:
            suggestions.append("Would you like help creating a budget based on your expenses?")
        if budget:
            overspent = [c for c in budget.get("categories") or [] if (c.get("spent") or 0) > c.get("amount", 0)]
            if overspent:
                suggestions.append(
                    f"I notice you're over budget in {overspent[0]['name']}. Would you like suggestions for cutting back?"
                )
            elif not budget.get("categories"):
                suggestions.append("Would you like to break down your budget into categories?")
        for concern in data.get("concerns") or []:
            if concern.get("severity") == "major":
                suggestions.append(
                    f"You mentioned concerns about {concern['topic']}. What's your biggest challenge with this?"
                )
                break
        if expenses:
            if any(not e.get("category") for e in expenses):
                suggestions.append("Would you like help categorizing your expenses for better tracking?")
            average = sum(e.get("amount", 0) for e in expenses) / len(expenses)
            large = [e for e in expenses if e.get("amount", 0) > average * 2]
            if large:
                suggestions.append(f"That {large[0].get('description') or 'purchase'} was a significant expense. Was it planned?")
        suggestions.append("Have you tried the 50/30/20 budgeting rule?")
        return suggestions

    async def generate_hints(self, state: ConversationState) -> SteeringHints:
        data = state.latest_extraction(FINANCE_DOMAIN).data
        categories = sorted({
            *(t["category"] for t in data.get("transactions") or [] if t.get("category")),
            *(c["name"] for c in (data.get("budget") or {}).get("categories") or []),
        })
        return SteeringHints(
            type="budget_guidance",
            suggestions=self.build_suggestions(data)[:3],
            context={
                "has_budget": bool(data.get("budget")),
                "recent_expenses": len(_expenses(data)),
                "categories": categories,
            },
            priority=self.priority,
        )


class GoalPlanningStrategy:
    """Savings-goal planning prompts"""

    strategy_id = "finance_goal_planning"
    priority = 0.7

    def should_apply(self, state: ConversationState) -> bool:
        latest = state.latest_extraction(FINANCE_DOMAIN)
        return latest is not None and bool(latest.data.get("goals"))

    async def generate_hints(self, state: ConversationState) -> SteeringHints:
        goals = state.latest_extraction(FINANCE_DOMAIN).data.get("goals") or []
        suggestions: List[str] = []
        for goal in goals:
            if not goal.get("deadline"):
                suggestions.append(f"When would you like to reach your {goal['name']} goal?")
            remaining = goal.get("target_amount", 0) - (goal.get("current_amount") or 0)
            if remaining > 0:
                suggestions.append(f"How much could you set aside each month toward {goal['name']}?")
        suggestions.append("Would an automatic transfer to savings make this easier?")
        return SteeringHints(
            type="goal_planning",
            suggestions=suggestions[:3],
            context={
                "goals_count": len(goals),
                "total_goal_amount": sum(g.get("target_amount", 0) for g in goals),
            },
            priority=self.priority,
        )


def finance_domain(llm, confidence_threshold: float = 0.5) -> DomainDefinition:
    return DomainDefinition(
        id=FINANCE_DOMAIN,
        name="Personal Finance",
        description="Spending, income, budgets, savings goals and money worries",
        extractor=FinanceExtractor(llm),
        strategies=(BudgetGuidanceStrategy(), GoalPlanningStrategy()),
        priority=0.8,
        confidence_threshold=confidence_threshold,
    )
