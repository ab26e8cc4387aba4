"""
Core Finance Models

Accounts, transactions and the reference entities they point at
(categories, labels, contacts, budgets, goals).

DESIGN DECISION: Money is always ``Decimal``. Balances are mutated by
adding and reversing transaction effects many times over the life of an
account, and must come back to exactly the same value.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, field_validator, model_validator

from dailymate.models.base import CamelModel, RecordModel, TimestampedModel


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Account types offered by the app."""
    CASH = "Cash"
    DIGITAL_WALLET = "Digital Wallet"
    SAVINGS_ACCOUNT = "Savings Account"
    CURRENT_ACCOUNT = "Current Account"
    FIXED_DEPOSIT = "Fixed Deposit (FD)"
    RECURRING_DEPOSIT = "Recurring Deposit (RD)"
    PPF = "Public Provident Fund (PPF)"
    MIS = "Monthly Income Scheme (MIS)"
    NPS = "National Pension System (NPS)"
    MUTUAL_FUND = "Mutual Fund"
    STOCKS = "Stocks"
    BONDS = "Bonds"
    GOLD = "Gold"
    CREDIT_CARD = "Credit Card"
    LOAN = "Loan"
    OTHER = "Other"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


Money = Annotated[Decimal, Field(decimal_places=2)]
PositiveMoney = Annotated[Decimal, Field(gt=0, decimal_places=2)]


# =============================================================================
# ACCOUNT DETAILS - one variant per account family, keyed by ``kind``
# =============================================================================

class _DetailsBase(CamelModel):
    """Fields shared by every details variant."""

    enable_notifications: bool = Field(
        default=False,
        description="Remind before the maturity / end date"
    )
    notification_days_before: int = Field(
        default=7,
        ge=0,
        le=365,
        description="Days before the end date to remind"
    )

    @property
    def end_date_for_reminders(self) -> Optional[date]:
        """Date the account matures or ends, if the variant has one."""
        return None


class PlainDetails(_DetailsBase):
    kind: Literal["Cash", "Other"]


class BankAccountDetails(_DetailsBase):
    kind: Literal["Savings Account", "Current Account"]
    account_number: Optional[str] = None
    bank_name: Optional[str] = None
    ifsc_code: Optional[str] = None
    branch_name: Optional[str] = None


class DigitalWalletDetails(_DetailsBase):
    kind: Literal["Digital Wallet"]
    wallet_provider: Optional[str] = None
    wallet_phone_number: Optional[str] = None


class _DepositDetails(_DetailsBase):
    start_date: Optional[date] = None
    maturity_date: Optional[date] = None
    interest_rate: Optional[Decimal] = Field(default=None, ge=0)
    principal_amount: Optional[Money] = None

    @property
    def end_date_for_reminders(self) -> Optional[date]:
        return self.maturity_date


class FixedDepositDetails(_DepositDetails):
    kind: Literal["Fixed Deposit (FD)"]
    fd_tenure: Optional[int] = Field(default=None, ge=1)
    fd_type: Optional[Literal["cumulative", "non-cumulative"]] = None


class RecurringDepositDetails(_DepositDetails):
    kind: Literal["Recurring Deposit (RD)"]
    rd_monthly_amount: Optional[Money] = None
    rd_tenure: Optional[int] = Field(default=None, ge=1)


class PPFDetails(_DepositDetails):
    kind: Literal["Public Provident Fund (PPF)"]
    ppf_account_number: Optional[str] = None


class MISDetails(_DepositDetails):
    kind: Literal["Monthly Income Scheme (MIS)"]
    mis_monthly_income: Optional[Money] = None


class NPSDetails(_DetailsBase):
    kind: Literal["National Pension System (NPS)"]
    nps_pran: Optional[str] = Field(
        default=None,
        alias="npsPRAN",
        description="Permanent Retirement Account Number"
    )
    nps_tier: Optional[Literal["Tier I", "Tier II"]] = None


class MutualFundDetails(_DetailsBase):
    kind: Literal["Mutual Fund"]
    mutual_fund_scheme: Optional[str] = None
    mutual_fund_folio_number: Optional[str] = None
    mutual_fund_nav: Optional[Decimal] = Field(default=None, ge=0)


class StockDetails(_DetailsBase):
    kind: Literal["Stocks"]
    stock_symbol: Optional[str] = None
    stock_exchange: Optional[str] = None
    stock_quantity: Optional[Decimal] = Field(default=None, ge=0)
    stock_purchase_price: Optional[Decimal] = Field(default=None, ge=0)


class BondDetails(_DetailsBase):
    kind: Literal["Bonds"]
    bond_face_value: Optional[Money] = None
    bond_coupon_rate: Optional[Decimal] = Field(default=None, ge=0)
    bond_maturity_date: Optional[date] = None

    @property
    def end_date_for_reminders(self) -> Optional[date]:
        return self.bond_maturity_date


class GoldDetails(_DepositDetails):
    kind: Literal["Gold"]


class CreditCardDetails(_DetailsBase):
    kind: Literal["Credit Card"]
    credit_card_number: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}$",
        description="Last four digits only"
    )
    credit_card_limit: Optional[Money] = None
    credit_card_due_date: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Payment due day of month"
    )
    credit_card_bank: Optional[str] = None


class LoanDetails(_DetailsBase):
    kind: Literal["Loan"]
    loan_principal: Optional[Money] = None
    loan_interest_rate: Optional[Decimal] = Field(default=None, ge=0)
    loan_tenure: Optional[int] = Field(default=None, ge=1, description="Months")
    loan_emi: Optional[Money] = Field(default=None, alias="loanEMI")
    loan_start_date: Optional[date] = None
    loan_end_date: Optional[date] = None
    loan_type: Optional[Literal["home", "personal", "car", "education", "other"]] = None

    @property
    def end_date_for_reminders(self) -> Optional[date]:
        return self.loan_end_date


AccountDetails = Annotated[
    Union[
        PlainDetails,
        BankAccountDetails,
        DigitalWalletDetails,
        FixedDepositDetails,
        RecurringDepositDetails,
        PPFDetails,
        MISDetails,
        NPSDetails,
        MutualFundDetails,
        StockDetails,
        BondDetails,
        GoldDetails,
        CreditCardDetails,
        LoanDetails,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# ACCOUNT
# =============================================================================

class Account(TimestampedModel):
    """
    A place money lives in.

    ``balance`` is the running total maintained by the balance protocol.
    ``opening_balance`` is what the balance was before any stored
    transaction touched it; replaying the transaction log from it must give
    ``balance`` back.
    """

    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Money = Decimal("0")
    opening_balance: Optional[Money] = Field(
        default=None,
        description="Balance before any stored transaction; derived on first reconciliation when unknown"
    )
    color: str = "#4D96FF"
    icon: Optional[str] = None
    details: Optional[AccountDetails] = None

    @model_validator(mode="before")
    @classmethod
    def key_details_by_type(cls, data: Any) -> Any:
        """Tag an untagged details payload with the account's own type."""
        if isinstance(data, dict):
            details = data.get("details")
            account_type = data.get("type")
            if isinstance(details, dict) and "kind" not in details and account_type is not None:
                kind = account_type.value if isinstance(account_type, AccountType) else account_type
                data = {**data, "details": {**details, "kind": kind}}
        return data

    @model_validator(mode="after")
    def validate_account(self) -> "Account":
        if self.details is not None and self.details.kind != self.type.value:
            raise ValueError(
                f"Details for '{self.details.kind}' do not match "
                f"account type '{self.type.value}'"
            )
        return self


# =============================================================================
# REFERENCE ENTITIES
# =============================================================================

class Category(RecordModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = ""
    color: str = "#C7CEEA"
    type: CategoryType


class Label(TimestampedModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = "#95E1D3"


class Contact(TimestampedModel):
    """A payee or payer."""
    name: str = Field(..., min_length=1, max_length=100)
    phone_number: Optional[str] = None
    email: Optional[str] = None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionSplit(RecordModel):
    """Part of a transaction booked to a different category."""
    category_id: str
    amount: PositiveMoney
    description: Optional[str] = None


class TransactionFields(TimestampedModel):
    """
    Fields shared by a concrete transaction and a planned transaction
    template, with the invariants both must hold.
    """

    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    type: TransactionType
    amount: PositiveMoney
    description: str = ""
    time: Optional[str] = Field(
        default=None,
        pattern=r"^([01]\d|2[0-3]):[0-5]\d$",
        description="Time of day, HH:mm"
    )
    to_account_id: Optional[str] = Field(
        default=None,
        description="Destination account, transfers only"
    )
    labels: list[str] = Field(default_factory=list)
    payee_ids: list[str] = Field(default_factory=list)
    item_name: Optional[str] = None
    warranty_date: Optional[date] = None

    @model_validator(mode="after")
    def validate_transfer(self):
        """A destination account exists iff this is a transfer, and differs from the source."""
        if self.type == TransactionType.TRANSFER:
            if not self.to_account_id:
                raise ValueError("Transfer requires a destination account")
            if self.to_account_id == self.account_id:
                raise ValueError("Cannot transfer to the same account")
        elif self.to_account_id:
            raise ValueError(f"Only transfers can have a destination account, not {self.type.value}")
        return self


class Transaction(TransactionFields):
    """A concrete money movement."""

    date: date
    status: Optional[TransactionStatus] = None
    splits: list[TransactionSplit] = Field(default_factory=list)

    @field_validator("splits")
    @classmethod
    def validate_split_ids(cls, v: list[TransactionSplit]) -> list[TransactionSplit]:
        ids = [split.id for split in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Split ids must be unique within a transaction")
        return v

    @property
    def counterpart_accounts(self) -> tuple[str, ...]:
        """Every account whose balance this transaction moves."""
        if self.to_account_id:
            return (self.account_id, self.to_account_id)
        return (self.account_id,)


# =============================================================================
# BUDGETS & GOALS
# =============================================================================

class Budget(TimestampedModel):
    """Spending limit for one category (or overall) over a period."""

    name: str = Field(..., min_length=1, max_length=100)
    category_id: Optional[str] = Field(
        default=None,
        description="None means an overall budget across all expenses"
    )
    amount: PositiveMoney
    period: BudgetPeriod
    start_date: date
    end_date: Optional[date] = None
    color: str = "#FFD3A5"
    icon: Optional[str] = None
    enable_notifications: bool = False
    notify_at_percentage: list[int] = Field(default_factory=lambda: [50, 75, 90, 100])

    @model_validator(mode="after")
    def validate_period(self) -> "Budget":
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self


class Goal(TimestampedModel):
    """A savings target, optionally tracked through a linked account."""

    name: str = Field(..., min_length=1, max_length=100)
    target_amount: PositiveMoney
    current_amount: Money = Decimal("0")
    target_date: date
    account_id: Optional[str] = None
    color: str = "#6BCB77"
    icon: Optional[str] = None
    description: Optional[str] = None
    enable_notifications: bool = False
    notify_at_percentage: list[int] = Field(default_factory=lambda: [25, 50, 75, 90, 100])
    notify_days_before: int = Field(default=7, ge=0)


# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_CATEGORIES: list[Category] = [
    # Expense categories
    Category(id="food", name="Food & Dining", icon="🍽️", color="#FF6B6B", type=CategoryType.EXPENSE),
    Category(id="transport", name="Transportation", icon="🚗", color="#4ECDC4", type=CategoryType.EXPENSE),
    Category(id="shopping", name="Shopping", icon="🛍️", color="#FFE66D", type=CategoryType.EXPENSE),
    Category(id="bills", name="Bills & Utilities", icon="💡", color="#95E1D3", type=CategoryType.EXPENSE),
    Category(id="entertainment", name="Entertainment", icon="🎬", color="#F38181", type=CategoryType.EXPENSE),
    Category(id="healthcare", name="Healthcare", icon="🏥", color="#AA96DA", type=CategoryType.EXPENSE),
    Category(id="education", name="Education", icon="📚", color="#FCBAD3", type=CategoryType.EXPENSE),
    Category(id="travel", name="Travel", icon="✈️", color="#A8E6CF", type=CategoryType.EXPENSE),
    Category(id="personal", name="Personal Care", icon="💅", color="#FFD3A5", type=CategoryType.EXPENSE),
    Category(id="other-expense", name="Other", icon="📦", color="#C7CEEA", type=CategoryType.EXPENSE),
    # Income categories
    Category(id="salary", name="Salary", icon="💰", color="#6BCB77", type=CategoryType.INCOME),
    Category(id="freelance", name="Freelance", icon="💼", color="#4D96FF", type=CategoryType.INCOME),
    Category(id="investment", name="Investment Returns", icon="📈", color="#9B59B6", type=CategoryType.INCOME),
    Category(id="gift", name="Gift", icon="🎁", color="#E74C3C", type=CategoryType.INCOME),
    Category(id="other-income", name="Other Income", icon="💵", color="#3498DB", type=CategoryType.INCOME),
]
