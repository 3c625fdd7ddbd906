from expense_ai.schemas.base import (  # noqa: F401
    AIInsight,
    AIResult,
    BudgetRecord,
    CategoryInfo,
    CategorySuggestion,
    ExpenseRecord,
    HealthScore,
    IncomeSource,
    IncomeSummary,
    InsightType,
    LineItem,
    Money,
    ParsedReceipt,
    ReceiptTotals,
    ResultSource,
    SavingsSummary,
    StoreInfo,
)
from expense_ai.schemas.insights import (  # noqa: F401
    BudgetOptimization,
    BudgetRecommendations,
    CategoryAnswer,
    ChatReply,
    ChatTurn,
    ExpenseAnalysis,
    ExpenseInput,
    FinancialContext,
    FinancialGoals,
    FinancialInsights,
    ReceiptAnswer,
    ReceiptItemAnswer,
    SavingsOpportunities,
    SpendingPredictions,
    TrendAnalysis,
)
