"""
Expense Summaries

DESIGN DECISION: Summaries are computed from the published feed only.
The feed holds active expenses, so soft-deleted records can never be
counted, and no summary ever touches the stores directly.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from expense_sync.models.expense import Expense, ExpenseCategory


class ExpenseSummary:
    """
    Totals over a list of expenses.

    All amounts are Decimal; nothing is rounded here.
    """

    def __init__(self, expenses: Iterable[Expense]):
        self._expenses = list(expenses)

    @property
    def expenses(self) -> list[Expense]:
        return list(self._expenses)

    @property
    def total(self) -> Decimal:
        return sum((e.amount for e in self._expenses), Decimal("0"))

    def for_category(self, category: ExpenseCategory) -> list[Expense]:
        return [e for e in self._expenses if e.category == category]

    def category_totals(self) -> list[tuple[ExpenseCategory, Decimal]]:
        """Per-category totals, largest first. Empty categories are left out."""
        totals: dict[ExpenseCategory, Decimal] = defaultdict(Decimal)
        for expense in self._expenses:
            totals[expense.category] += expense.amount
        return sorted(totals.items(), key=lambda item: item[1], reverse=True)

    @property
    def total_lent(self) -> Decimal:
        return sum((e.amount for e in self._expenses if e.is_lent_money), Decimal("0"))

    @property
    def outstanding_lent(self) -> Decimal:
        """Lent money not yet repaid."""
        return sum((e.amount for e in self._expenses if e.is_outstanding), Decimal("0"))

    def lent_by_person(self, outstanding_only: bool = False) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = defaultdict(Decimal)
        for expense in self._expenses:
            if not expense.is_lent_money:
                continue
            if outstanding_only and expense.is_repaid:
                continue
            totals[expense.lent_to_person_name or "Unknown"] += expense.amount
        return dict(totals)
