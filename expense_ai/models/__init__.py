from expense_ai.models.finance import (  # noqa: F401
    BudgetModel,
    CategoryModel,
    ExpenseModel,
    IncomeModel,
    SavingsModel,
)
from expense_ai.models.insight import AIInsightModel  # noqa: F401
