"""
Service layer models - DTOs derived from transactions.

These models are computed on every read and never persisted.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from unified_ledger.domain.categories import DEFAULT_COLOR, DEFAULT_ICON
from unified_ledger.domain.models import CategoryRule, Transaction


@dataclass
class CategoryStats:
    """Spending summary for one category"""
    category_name: str
    total_amount: Decimal
    percentage: float
    transaction_count: int
    transactions: List[Transaction] = field(default_factory=list)
    rule: Optional[CategoryRule] = None

    @property
    def color(self) -> str:
        return self.rule.color if self.rule else DEFAULT_COLOR

    @property
    def icon(self) -> str:
        return self.rule.icon if self.rule else DEFAULT_ICON

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categoryName": self.category_name,
            "totalAmount": float(self.total_amount),
            "percentage": self.percentage,
            "transactionCount": self.transaction_count,
            "color": self.color,
            "icon": self.icon,
            "transactions": [t.to_dict() for t in self.transactions],
            "rule": self.rule.to_dict() if self.rule else None,
        }


@dataclass(frozen=True)
class DateRange:
    """Inclusive [start, end] window"""
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass
class MonthlyIncome:
    """Income for one calendar month and its change versus the month before"""
    month: str
    year: int
    income: Decimal
    change: float
    transactions: List[Transaction] = field(default_factory=list)


@dataclass
class IncomeBreakdown:
    """Income split into salary, interest/cashback and everything else"""
    salary: Decimal = Decimal("0")
    salary_txs: List[Transaction] = field(default_factory=list)
    interest_total: Decimal = Decimal("0")
    interest_count: int = 0
    other: Decimal = Decimal("0")
    other_txs: List[Transaction] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return self.salary + self.interest_total + self.other


@dataclass
class TransactionRow:
    """
    One display row.

    Interest/cashback payments of the same day collapse into a single row
    whose `payment_count` says how many payments it sums.
    """
    uid: str
    day_key: str
    day_label: str
    transaction: Transaction
    amount: Decimal
    description: str
    payment_count: int = 1

    @property
    def is_grouped(self) -> bool:
        return self.uid.endswith("-interest-grouped")


@dataclass
class CombinedFinancialData:
    """Response of the combined read"""
    transactions: List[Transaction] = field(default_factory=list)
    total_balance: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactions": [t.to_dict() for t in self.transactions],
            "totalBalance": float(self.total_balance),
        }
