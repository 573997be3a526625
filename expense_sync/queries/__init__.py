"""Read-only views over the published expense feed."""

from expense_sync.queries.summary import ExpenseSummary

__all__ = ["ExpenseSummary"]
