"""
Expense engines for expensebot.

Modules:
    - expense_models: Shared dataclasses, enums and constants
    - context_dictionaries: Static lookup tables (hints, brands, locations, actions)
    - expense_parsing: Rule-table message parser
    - categorization: Weighted category scoring
    - alerts: Budget, anomaly and pattern alerts
    - insights: Spending aggregates and suggestions
    - capture: Message-level orchestration
"""
