"""
Prompt templates.

Every builder is a pure function of its inputs: context is embedded as
key-sorted JSON and every structured prompt ends with the exact JSON keys
the response decoder expects.
"""
from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import BaseModel

from expense_ai.schemas import (
    BudgetRecord,
    CategoryInfo,
    ChatTurn,
    ExpenseInput,
    ExpenseRecord,
    IncomeSummary,
    SavingsSummary,
)

RECENT_EXPENSE_LINES = 20
CHAT_HISTORY_TURNS = 5
OPTIMIZATION_EXPENSES = 30


def to_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif isinstance(value, (list, tuple)):
        value = [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def _json_instruction(keys: Iterable[str]) -> str:
    return (
        "Respond with a single JSON object only, no prose and no code fences, "
        f"with keys: {', '.join(keys)}"
    )


def _expense_line(e: ExpenseRecord) -> str:
    return f"{e.date.isoformat()}: ${e.amount:.2f} - {e.description or ''} ({e.category_name or 'Other'})"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_expense_analysis_prompt(expense: ExpenseInput, history: list[ExpenseRecord]) -> str:
    recent = "\n".join(_expense_line(e) for e in history[:RECENT_EXPENSE_LINES])
    return f"""
Analyze this expense and provide insights:

Current Expense:
- Amount: ${expense.amount:.2f}
- Description: {expense.description}
- Category: {expense.category or 'Uncategorized'}
- Date: {expense.date.isoformat() if expense.date else 'unknown'}

Recent spending history:
{recent or '(none)'}

Please provide:
1. Spending pattern analysis
2. Comparison to usual spending
3. Potential savings suggestions
4. Category optimization
5. Overall financial health impact (impact_score from 1 to 10)

{_json_instruction(['pattern', 'comparison', 'suggestions', 'category_feedback', 'impact_score'])}
"""


def build_insights_prompt(
    total_spent: float, breakdown: dict[str, float], budgets: list[BudgetRecord]
) -> str:
    return f"""
Generate comprehensive financial insights based on this data:

Total Monthly Spending: ${total_spent:.2f}
Category Breakdown: {to_json(breakdown)}
Active Budgets: {to_json(budgets)}

Provide insights on:
1. Spending trends and patterns
2. Budget performance
3. Top spending categories
4. Unusual expenses or patterns
5. Financial health score (0-100)
6. Actionable recommendations

{_json_instruction(['trends', 'budget_performance', 'top_categories', 'anomalies', 'health_score', 'recommendations'])}
"""


def build_budget_recommendation_prompt(
    monthly_spending: dict[str, dict[str, float]], budgets: list[BudgetRecord]
) -> str:
    return f"""
Recommend optimal budget allocations based on spending data:

Monthly spending by category: {to_json(monthly_spending)}
Current budgets: {to_json(budgets)}

Provide recommendations for:
1. Budget amounts per category
2. Areas to reduce spending
3. Emergency fund allocation
4. Savings targets
5. Budget adjustment tips

{_json_instruction(['recommended_budgets', 'reduction_areas', 'emergency_fund', 'savings_target', 'tips'])}
"""


def build_savings_prompt(patterns: dict[str, Any]) -> str:
    return f"""
Identify savings opportunities from spending data:

Expense patterns: {to_json(patterns)}

Analyze and suggest:
1. Subscription optimizations
2. Recurring expense reductions
3. Alternative spending options
4. Seasonal saving opportunities
5. Long-term financial goals

{_json_instruction(['subscriptions', 'recurring_savings', 'alternatives', 'seasonal_tips', 'long_term_goals'])}
"""


def build_categorization_prompt(
    description: str, amount: float, categories: list[CategoryInfo]
) -> str:
    category_list = ", ".join(f"{c.name} ({c.icon})" if c.icon else c.name for c in categories)
    return f"""
Categorize this expense:
Description: "{description}"
Amount: ${amount:.2f}

Available categories: {category_list}

Pick exactly one of the available category names.
{_json_instruction(['category'])}
"""


def build_receipt_prompt(receipt_text: str) -> str:
    return f"""
Extract expense information from this receipt text:

---
{receipt_text}
---

Extract:
1. Store name and address
2. Date (YYYY-MM-DD) and time of purchase
3. Individual items with prices (amount as a number)
4. Subtotal, tax, and total amounts
5. Payment method
6. A suggested expense category for each item

{_json_instruction(['store {name, address}', 'date', 'time', 'items [{description, amount, category}]', 'totals {subtotal, tax, total}', 'payment_method'])}
"""


def build_goals_prompt(total_spent: float, breakdown: dict[str, float], income: IncomeSummary) -> str:
    return f"""
Generate personalized financial goals based on spending and income:

Monthly Expenses: ${total_spent:.2f}
Expenses by Category: {to_json(breakdown)}
Monthly Income: {to_json(income)}

Generate goals for:
1. Short-term savings targets (3-6 months)
2. Medium-term financial milestones (1-2 years)
3. Long-term wealth building (5+ years)
4. Emergency fund recommendations
5. Investment allocation suggestions

{_json_instruction(['short_term', 'medium_term', 'long_term', 'emergency_fund', 'investments'])}
"""


def build_prediction_prompt(monthly_spending: dict[str, dict[str, float]], timeframe: str) -> str:
    return f"""
Predict future spending based on historical data:

Historical Spending by Month and Category: {to_json(monthly_spending)}
Prediction Timeframe: {timeframe}

Analyze patterns and predict:
1. Total spending for the period
2. Category-wise breakdown
3. Seasonal variations
4. Potential overspending alerts
5. Confidence level for the prediction (0-100)

{_json_instruction(['total_prediction', 'category_breakdown', 'seasonal_factors', 'alerts', 'confidence'])}
"""


def build_health_score_prompt(
    expenses: list[ExpenseRecord], budgets: list[BudgetRecord], savings: SavingsSummary
) -> str:
    return f"""
Calculate a comprehensive financial health score:

Expenses: {to_json(expenses)}
Budgets: {to_json(budgets)}
Savings: {to_json(savings)}

Consider:
1. Expense-to-income ratio
2. Savings rate
3. Budget variance
4. Debt-to-income ratio
5. Investment diversification

Provide an integer score from 0 to 100 and a breakdown mapping each key
factor to an integer (0-100) or a short explanation.

{_json_instruction(['score', 'breakdown'])}
"""


def build_budget_optimization_prompt(
    expenses: list[ExpenseRecord], current_budget: dict[str, Any], goals: Any
) -> str:
    return f"""
Optimize this budget based on spending patterns and financial goals:

Current Spending: {to_json(expenses[:OPTIMIZATION_EXPENSES])}
Current Budget: {to_json(current_budget)}
Financial Goals: {to_json(goals)}

Provide optimized budget recommendations that:
1. Align with financial goals
2. Account for spending patterns
3. Suggest realistic adjustments
4. Identify potential savings
5. Balance needs vs wants

{_json_instruction(['optimized_budget', 'adjustments', 'savings_opportunities', 'goal_alignment'])}
"""


def build_trends_prompt(monthly_spending: dict[str, dict[str, float]], period: str) -> str:
    return f"""
Analyze spending trends over {period}:

Spending by Month and Category: {to_json(monthly_spending)}

Identify:
1. Spending trends by category
2. Seasonal patterns
3. Unusual spikes or drops
4. Growth rates
5. Predictive insights

{_json_instruction(['category_trends', 'seasonal_patterns', 'anomalies', 'predictions', 'analysis'])}
"""


def build_chat_prompt(message: str, history: list[ChatTurn], context: BaseModel) -> str:
    recent = "\n".join(f"{h.role}: {h.content}" for h in history[-CHAT_HISTORY_TURNS:])
    return f"""
You are a friendly AI financial advisor. Help the user with their financial question.

User's Financial Context:
{to_json(context)}

Recent Conversation:
{recent or '(none)'}

Current Question: {message}

Provide helpful, personalized advice based on their financial situation. Be encouraging and practical.
"""
