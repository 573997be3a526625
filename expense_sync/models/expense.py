"""
Core Data Models for Expense Sync

These models define the schemas for everything that flows between the
presentation layer, the local store and the remote document store.
They are designed to:
1. Enforce type safety at the boundaries (user input, remote documents)
2. Keep the domain entity separate from its sync bookkeeping
3. Make the wire format explicit instead of looking fields up by name

DESIGN DECISION: Remote documents are parsed into a typed model with
explicit defaults for every optional field. Older documents that predate
a field still parse; documents missing a required field are rejected
one at a time and never poison the rest of a batch.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)


logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so timestamps always compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Fixed set of expense categories.

    The values are what goes over the wire, so they must stay stable.
    """
    FOOD = "Food"
    TRANSPORTATION = "Transportation"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    BILLS = "Bills"
    HEALTH = "Health"
    OTHER = "Other"

    @classmethod
    def from_wire(cls, value: str) -> "ExpenseCategory":
        """Parse a stored category, falling back to OTHER for unknown names."""
        for category in cls:
            if category.value.lower() == value.strip().lower():
                return category
        return cls.OTHER


# =============================================================================
# PAYMENT MODES
# =============================================================================

class PaymentMode(BaseModel):
    """
    A user-configurable way of paying (cash, card, UPI...).

    Payment modes live in a device-local catalog and are not synced.
    Only the name travels to the remote store.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1)
    icon: str = Field(default="creditcard")
    color: str = Field(
        default="#2196F3",
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Hex color, e.g. #4CAF50"
    )
    is_default: bool = False


CASH = PaymentMode(name="Cash", icon="banknote", color="#4CAF50", is_default=True)

DEFAULT_PAYMENT_MODES: list[PaymentMode] = [
    CASH,
    PaymentMode(name="Credit Card", icon="creditcard", color="#2196F3"),
    PaymentMode(name="Debit Card", icon="creditcard.fill", color="#FF9800"),
    PaymentMode(name="Net Banking", icon="building.columns", color="#9C27B0"),
    PaymentMode(name="UPI", icon="qrcode", color="#E91E63"),
    PaymentMode(name="Digital Wallet", icon="wallet.pass", color="#00BCD4"),
]


def resolve_payment_mode(
    name: Optional[str],
    catalog: Optional[Iterable[PaymentMode]] = None,
) -> PaymentMode:
    """
    Map a payment mode name back to a catalog entry.

    Blank names resolve to Cash. Names not in the catalog produce a
    plain mode carrying that name, so nothing the user typed is lost.
    """
    if not name or not name.strip():
        return CASH
    modes = list(catalog) if catalog is not None else DEFAULT_PAYMENT_MODES
    wanted = name.strip().lower()
    for mode in modes:
        if mode.name.lower() == wanted:
            return mode
    return PaymentMode(name=name.strip())


# =============================================================================
# DOMAIN ENTITY
# =============================================================================

class Expense(BaseModel):
    """
    A single expense as the user sees it.

    `id` is generated on the client and never changes; it is the join
    key between the local record and the remote document.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, description="Positive amount, currency agnostic")
    category: ExpenseCategory = ExpenseCategory.OTHER
    date: datetime = Field(..., description="Economic date of the expense")
    notes: Optional[str] = None

    # Lent money
    is_lent_money: bool = False
    lent_to_person_name: Optional[str] = None
    is_repaid: bool = False
    repaid_date: Optional[datetime] = None

    payment_mode: PaymentMode = Field(default_factory=lambda: CASH.model_copy())

    @field_validator("notes", "lent_to_person_name")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("date", "repaid_date")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @property
    def display_title(self) -> str:
        if self.is_lent_money and self.lent_to_person_name:
            status = "repaid" if self.is_repaid else "pending"
            return f"{self.title} ({status}, lent to {self.lent_to_person_name})"
        return self.title

    @property
    def is_outstanding(self) -> bool:
        """Lent money that has not come back yet."""
        return self.is_lent_money and not self.is_repaid


class LocalExpenseRecord(BaseModel):
    """
    An expense plus the bookkeeping the sync engine needs.

    `needs_sync` is the dirty flag: it is set on every local mutation
    and cleared only after the remote store confirmed the write.
    """

    expense: Expense
    created_at: datetime
    updated_at: datetime
    is_removed: bool = False
    remote_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    needs_sync: bool = False

    @property
    def id(self) -> UUID:
        return self.expense.id


# =============================================================================
# WIRE MODEL
# =============================================================================

class MalformedRemoteRecordError(Exception):
    """A remote document could not be parsed into an expense."""

    def __init__(self, document_id: Optional[str], reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Malformed remote document {document_id}: {reason}")


class RemoteExpense(BaseModel):
    """
    One expense document as stored in the remote collection.

    Field names follow the wire shape (camelCase). Every optional field
    has a typed default so that documents written by older clients still
    parse.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    document_id: str = Field(..., min_length=1)
    id: UUID
    title: str
    amount: Decimal
    category: str
    date: datetime
    notes: str = ""
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    is_removed: bool = Field(default=False, alias="isRemoved")
    is_lent_money: bool = Field(default=False, alias="isLentMoney")
    lent_to_person_name: str = Field(default="", alias="lentToPersonName")
    is_repaid: bool = Field(default=False, alias="isRepaid")
    repaid_date: Optional[datetime] = Field(default=None, alias="repaidDate")
    payment_mode_name: str = Field(default="", alias="paymentModeName")

    @field_validator("notes", "lent_to_person_name", "payment_mode_name", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("date", "created_at", "updated_at", "repaid_date")
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @classmethod
    def from_document(cls, document_id: str, data: dict[str, Any]) -> "RemoteExpense":
        """
        Parse a raw document.

        Raises:
            MalformedRemoteRecordError: If required fields are missing or invalid
        """
        try:
            return cls.model_validate({**data, "document_id": document_id})
        except (ValidationError, TypeError) as e:
            raise MalformedRemoteRecordError(document_id, str(e)) from e

    @classmethod
    def from_expense(
        cls,
        expense: Expense,
        document_id: str,
        created_at: datetime,
        updated_at: datetime,
        is_removed: bool = False,
    ) -> "RemoteExpense":
        return cls(
            document_id=document_id,
            id=expense.id,
            title=expense.title,
            amount=expense.amount,
            category=expense.category.value,
            date=expense.date,
            notes=expense.notes or "",
            created_at=created_at,
            updated_at=updated_at,
            is_removed=is_removed,
            is_lent_money=expense.is_lent_money,
            lent_to_person_name=expense.lent_to_person_name or "",
            is_repaid=expense.is_repaid,
            repaid_date=expense.repaid_date,
            payment_mode_name=expense.payment_mode.name,
        )

    def to_document(self) -> dict[str, Any]:
        """Wire representation (without the document id)."""
        return {
            "id": str(self.id),
            "title": self.title,
            "amount": float(self.amount),
            "category": self.category,
            "date": self.date,
            "notes": self.notes,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "isRemoved": self.is_removed,
            "isLentMoney": self.is_lent_money,
            "lentToPersonName": self.lent_to_person_name,
            "isRepaid": self.is_repaid,
            "repaidDate": self.repaid_date,
            "paymentModeName": self.payment_mode_name,
        }

    def to_expense(self, catalog: Optional[Iterable[PaymentMode]] = None) -> Expense:
        """
        Convert to the domain entity.

        Raises:
            MalformedRemoteRecordError: If the document violates domain rules
                (empty title, non-positive amount)
        """
        try:
            return Expense(
                id=self.id,
                title=self.title,
                amount=self.amount,
                category=ExpenseCategory.from_wire(self.category),
                date=self.date,
                notes=self.notes or None,
                is_lent_money=self.is_lent_money,
                lent_to_person_name=self.lent_to_person_name or None,
                is_repaid=self.is_repaid,
                repaid_date=self.repaid_date,
                payment_mode=resolve_payment_mode(self.payment_mode_name, catalog),
            )
        except ValidationError as e:
            raise MalformedRemoteRecordError(self.document_id, str(e)) from e


def parse_remote_documents(
    documents: Iterable[tuple[str, dict[str, Any]]],
) -> list[RemoteExpense]:
    """
    Parse (document_id, data) pairs, skipping malformed documents.

    One bad document is logged and dropped; the rest still parse.
    """
    parsed = []
    for document_id, data in documents:
        try:
            parsed.append(RemoteExpense.from_document(document_id, data))
        except MalformedRemoteRecordError as e:
            logger.warning(
                "remote_document_skipped",
                document_id=document_id,
                reason=e.reason,
            )
    return parsed
