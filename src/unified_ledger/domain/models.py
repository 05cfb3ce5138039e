from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from unified_ledger.domain.categories import DEFAULT_COLOR, DEFAULT_ICON
from unified_ledger.domain.dates import parse_datetime
from unified_ledger.domain.enums import TransactionSource, TransactionType


def to_decimal(value: Any) -> Decimal:
    """Convert JSON numbers/strings to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        raise ValueError("amount is missing")
    try:
        return Decimal(str(value).replace(",", "").strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


@dataclass(frozen=True)
class Transaction:
    """Canonical transaction shared by every source"""
    type: TransactionType
    amount: Decimal
    reference: str
    date_time: str
    source: TransactionSource
    description: str = ""
    category: Optional[str] = None

    @property
    def timestamp(self) -> datetime:
        """Parsed date_time; epoch when malformed"""
        return parse_datetime(self.date_time)

    @property
    def is_outflow(self) -> bool:
        return self.amount < 0

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0

    def with_category(self, category: str) -> "Transaction":
        """Return a copy with the category set; transactions are never mutated."""
        return replace(self, category=category)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "amount": float(self.amount),
            "reference": self.reference,
            "dateTime": self.date_time,
            "source": self.source.value,
            "description": self.description,
        }
        if self.category is not None:
            data["category"] = self.category
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """
        Build a transaction from its JSON form.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping, got {type(data).__name__}")
        try:
            return cls(
                type=TransactionType.parse(data["type"]),
                amount=to_decimal(data["amount"]),
                reference=str(data["reference"]),
                date_time=str(data.get("dateTime") or data.get("timestamp") or ""),
                source=TransactionSource(data["source"]),
                description=str(data.get("description") or ""),
                category=data.get("category"),
            )
        except KeyError as e:
            raise ValueError(f"Missing field {e} in transaction") from e

    def __repr__(self):
        return (
            f"Transaction({self.source.value}, {self.date_time}, "
            f"{self.description[:30]!r}, {self.amount})"
        )


@dataclass
class CategoryRule:
    """User-defined keyword rule mapping descriptions to a category"""
    id: str
    name: str
    keywords: List[str]
    color: str = DEFAULT_COLOR
    icon: str = DEFAULT_ICON
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "keywords": list(self.keywords),
            "color": self.color,
            "icon": self.icon,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoryRule":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            keywords=[str(k) for k in data.get("keywords") or []],
            color=data.get("color") or DEFAULT_COLOR,
            icon=data.get("icon") or DEFAULT_ICON,
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass(frozen=True)
class CategoryMatch:
    """Result of matching one description against rules and overrides"""
    category: str
    rule: Optional[CategoryRule] = None
    is_uncategorized: bool = False


@dataclass
class CachedTransactions:
    """Snapshot of one source's cached transactions"""
    transactions: List[Transaction] = field(default_factory=list)
    last_updated: Optional[str] = None
    balance: Optional[Decimal] = None

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactions": [t.to_dict() for t in self.transactions],
            "transactionCount": self.transaction_count,
            "lastUpdated": self.last_updated,
            "balance": float(self.balance) if self.balance is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedTransactions":
        """Rebuild a snapshot, skipping transactions that no longer parse."""
        balance = data.get("balance")
        return cls(
            transactions=parse_transactions(data.get("transactions") or []),
            last_updated=data.get("lastUpdated"),
            balance=to_decimal(balance) if balance is not None else None,
        )


@dataclass
class CachedResource:
    """
    Cached state of one account or card inside a provider source.

    `resource` is the provider's own metadata (account_id, display_name, ...);
    each resource is merged on its own, matched by `resource_id`.
    """
    resource: Dict[str, Any]
    balance: Decimal = Decimal("0")
    transactions: List[Transaction] = field(default_factory=list)
    last_updated: Optional[str] = None

    @property
    def resource_id(self) -> str:
        return str(self.resource.get("account_id", ""))

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource": dict(self.resource),
            "balance": float(self.balance),
            "transactions": [t.to_dict() for t in self.transactions],
            "transactionCount": self.transaction_count,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedResource":
        resource = data.get("resource")
        if not isinstance(resource, dict):
            raise ValueError("Cached resource is missing its metadata")
        return cls(
            resource=resource,
            balance=to_decimal(data.get("balance") or 0),
            transactions=parse_transactions(data.get("transactions") or []),
            last_updated=data.get("lastUpdated"),
        )


def parse_transactions(rows: List[Any]) -> List[Transaction]:
    """Parse JSON rows into transactions, dropping the ones that don't parse."""
    transactions = []
    for row in rows:
        try:
            transactions.append(Transaction.from_dict(row))
        except ValueError:
            continue
    return transactions
