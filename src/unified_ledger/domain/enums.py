from enum import Enum


class TransactionType(Enum):
    """What kind of money movement a transaction represents"""
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER = "TRANSFER"
    INTEREST_CASHBACK = "INTEREST/CASHBACK"

    @classmethod
    def parse(cls, value) -> "TransactionType":
        """Accept either the wire value ('INTEREST/CASHBACK') or the member name."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().upper()
        for member in cls:
            if text in (member.value, member.name):
                return member
        raise ValueError(f"Unknown transaction type: {value!r}")


class TransactionSource(Enum):
    """The upstream system a transaction was fetched from"""
    BANK_ACCOUNT = "bank-account"
    CREDIT_CARD = "credit-card"
    TRADING212 = "trading212"


class RefreshState(Enum):
    """Status published on the finance stream while a source refreshes"""
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"
