"""
CSV Import

Turns a spreadsheet export into expenses.

DESIGN DECISION: Imported rows are ordinary local additions. Each one
goes through SyncEngine.add_expense, so it is stored dirty, published
at once and uploaded by the next sweep like any hand-entered expense.

Row handling:
1. Required columns: Date, Title, Amount, Category
2. Dates are YYYY-MM-DD
3. Unknown categories map to the closest known one by keyword, else Other
4. A row matching an existing expense (same title, amount and day)
   is counted as a duplicate and skipped
5. A bad row is reported with its line number; the other rows still import
"""

import csv
import io
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Iterable, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from expense_sync.models.expense import (
    CASH,
    DEFAULT_PAYMENT_MODES,
    Expense,
    ExpenseCategory,
    PaymentMode,
)

if TYPE_CHECKING:
    from expense_sync.sync.engine import SyncEngine


logger = structlog.get_logger(__name__)

CSV_HEADERS = [
    "Date",
    "Title",
    "Amount",
    "Category",
    "Is Lent Money",
    "Lent To Person",
    "Is Repaid",
    "Repaid Date",
    "Payment Mode",
    "Notes",
]

REQUIRED_HEADERS = ["Date", "Title", "Amount", "Category"]

DATE_FORMAT = "%Y-%m-%d"

SAMPLE_CSV = """Date,Title,Amount,Category,Is Lent Money,Lent To Person,Is Repaid,Repaid Date,Payment Mode,Notes
2024-01-15,Coffee,4.50,Food,No,,,,Cash,Morning coffee
2024-01-15,Lunch with John,25.00,Food,Yes,John,No,,Credit Card,Team lunch - John will pay back
2024-01-16,Gas,45.00,Transportation,No,,,,Debit Card,
2024-01-16,Movie tickets,24.00,Entertainment,No,,,,Cash,Weekend movie
2024-01-17,Grocery shopping,67.89,Shopping,No,,,,Credit Card,Weekly groceries
2024-01-18,Doctor visit,120.00,Health,No,,,,Net Banking,Regular checkup
2024-01-20,Coffee,4.50,Food,Yes,Sarah,Yes,2024-01-22,Cash,Paid Sarah back
"""

# Keyword -> category, for category names that are not one of ours
CATEGORY_KEYWORDS: dict[str, ExpenseCategory] = {
    "groceries": ExpenseCategory.SHOPPING,
    "grocery": ExpenseCategory.SHOPPING,
    "clothes": ExpenseCategory.SHOPPING,
    "clothing": ExpenseCategory.SHOPPING,
    "transport": ExpenseCategory.TRANSPORTATION,
    "gas": ExpenseCategory.TRANSPORTATION,
    "fuel": ExpenseCategory.TRANSPORTATION,
    "movie": ExpenseCategory.ENTERTAINMENT,
    "movies": ExpenseCategory.ENTERTAINMENT,
    "restaurant": ExpenseCategory.FOOD,
    "dining": ExpenseCategory.FOOD,
    "medical": ExpenseCategory.HEALTH,
    "doctor": ExpenseCategory.HEALTH,
    "medicine": ExpenseCategory.HEALTH,
    "utilities": ExpenseCategory.BILLS,
    "rent": ExpenseCategory.BILLS,
    "mortgage": ExpenseCategory.BILLS,
}


class RowError(Exception):
    """A CSV row that cannot become an expense."""
    pass


class ImportResults(BaseModel):
    """Outcome of one CSV import."""

    total_rows: int = 0
    successful_imports: int = Field(default=0, description="Imported plus duplicates")
    failed_imports: int = 0
    duplicates: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def success_rate(self) -> float:
        if self.total_rows == 0:
            return 0.0
        return self.successful_imports / self.total_rows


def map_category(value: str) -> ExpenseCategory:
    """Exact (case-insensitive) match first, then keyword matching, then Other."""
    wanted = value.strip().lower()
    for category in ExpenseCategory:
        if category.value.lower() == wanted:
            return category
    if not wanted:
        return ExpenseCategory.OTHER
    if wanted in CATEGORY_KEYWORDS:
        return CATEGORY_KEYWORDS[wanted]
    for keyword, category in CATEGORY_KEYWORDS.items():
        if keyword in wanted or wanted in keyword:
            return category
    return ExpenseCategory.OTHER


def _parse_date(value: str, field: str) -> datetime:
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        raise RowError(f"Invalid {field} format: {value}. Expected: YYYY-MM-DD")


def _is_yes(value: str) -> bool:
    return value.strip().lower() == "yes"


class CSVImporter:
    """Imports CSV content into a SyncEngine."""

    def __init__(self, payment_modes: Optional[Iterable[PaymentMode]] = None):
        self._payment_modes = list(payment_modes) if payment_modes is not None else DEFAULT_PAYMENT_MODES

    def parse_row(self, row: dict[str, str]) -> Expense:
        """
        Build an expense from one CSV row (header -> cell).

        Raises:
            RowError: If the row is missing data or has invalid values
        """
        title = row.get("Title", "").strip()
        if not title:
            raise RowError("Title is required")

        amount_text = row.get("Amount", "").strip()
        try:
            amount = Decimal(amount_text)
        except InvalidOperation:
            raise RowError(f"Invalid amount: {amount_text}")
        if not amount.is_finite() or amount <= 0:
            raise RowError(f"Invalid amount: {amount_text}")

        date = _parse_date(row.get("Date", ""), "date")
        category = map_category(row.get("Category", ""))

        is_lent_money = _is_yes(row.get("Is Lent Money", ""))
        is_repaid = _is_yes(row.get("Is Repaid", ""))
        repaid_text = row.get("Repaid Date", "").strip()
        repaid_date = _parse_date(repaid_text, "repaid date") if is_repaid and repaid_text else None

        try:
            return Expense(
                title=title,
                amount=amount,
                category=category,
                date=date,
                notes=row.get("Notes", "").strip() or None,
                is_lent_money=is_lent_money,
                lent_to_person_name=row.get("Lent To Person", "").strip() if is_lent_money else None,
                is_repaid=is_repaid,
                repaid_date=repaid_date,
                payment_mode=self._resolve_payment_mode(row.get("Payment Mode", "")),
            )
        except ValidationError as e:
            raise RowError(str(e.errors()[0]["msg"]))

    def _resolve_payment_mode(self, name: str) -> PaymentMode:
        wanted = name.strip().lower()
        if not wanted:
            return CASH
        return next((m for m in self._payment_modes if m.name.lower() == wanted), CASH)

    async def import_csv(self, content: str, engine: "SyncEngine") -> ImportResults:
        """Import every data row of `content` through `engine`."""
        rows = [
            [cell.strip() for cell in row]
            for row in csv.reader(io.StringIO(content))
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            return ImportResults(errors=["CSV file is empty or has no data rows"])

        headers, data_rows = rows[0], rows[1:]
        missing = [h for h in REQUIRED_HEADERS if h not in headers]
        if missing:
            return ImportResults(
                total_rows=len(data_rows),
                failed_imports=len(data_rows),
                errors=[f"Missing required columns: {', '.join(missing)}"],
            )

        results = ImportResults(total_rows=len(data_rows))
        for line_number, values in enumerate(data_rows, start=2):
            if len(values) != len(headers):
                results.errors.append(f"Row {line_number}: Column count mismatch")
                results.failed_imports += 1
                continue
            try:
                expense = self.parse_row(dict(zip(headers, values)))
            except RowError as e:
                results.errors.append(f"Row {line_number}: {e}")
                results.failed_imports += 1
                continue

            if self._is_duplicate(expense, engine.expenses.value):
                results.duplicates += 1
            else:
                await engine.add_expense(expense)
            results.successful_imports += 1

        logger.info(
            "csv_import_completed",
            total_rows=results.total_rows,
            imported=results.successful_imports - results.duplicates,
            duplicates=results.duplicates,
            failed=results.failed_imports,
        )
        return results

    @staticmethod
    def _is_duplicate(expense: Expense, existing: list[Expense]) -> bool:
        return any(
            other.title == expense.title
            and other.amount == expense.amount
            and other.date.date() == expense.date.date()
            for other in existing
        )
