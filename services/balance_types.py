"""
Balance Types - Plain snapshots consumed and produced by the balance engine

Rules:
- No Flask, no models, no db
- Immutable values; the engine never mutates its input
- Amounts are Decimal and never rounded here
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple


ZERO = Decimal("0")


def to_decimal(value):
    """Convert floats, ints and strings to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class Member:
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class Group:
    id: str
    members: Tuple[Member, ...] = ()
    currency: str = "TRY"
    name: Optional[str] = None

    def member_ids(self):
        return [m.id for m in self.members]

    def has_member(self, user_id):
        return any(m.id == user_id for m in self.members)


class SplitScope:
    """Who shares an expense: every current group member, or a named list."""

    @staticmethod
    def from_participants(user_ids):
        user_ids = list(user_ids or [])
        if not user_ids:
            return AllMembers()
        return Explicit(tuple(user_ids))


@dataclass(frozen=True)
class AllMembers(SplitScope):
    pass


@dataclass(frozen=True)
class Explicit(SplitScope):
    user_ids: Tuple[str, ...]

    def __post_init__(self):
        if not self.user_ids:
            raise ValueError("Explicit split needs at least one participant")


@dataclass(frozen=True)
class Expense:
    id: str
    group_id: str
    amount: Decimal
    paid_by: str
    scope: SplitScope = field(default_factory=AllMembers)
    currency: str = "TRY"
    created_at: Optional[datetime] = None
    description: Optional[str] = None
    category: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "amount", to_decimal(self.amount))


@dataclass(frozen=True)
class ShareResult:
    per_person_share: Decimal
    payer_id: str
    shareholders: Tuple[str, ...]


@dataclass(frozen=True)
class ConsolidatedDebt:
    from_user_id: str
    from_user_name: str
    to_user_id: str
    to_user_name: str
    amount: Decimal


@dataclass(frozen=True)
class UserBalance:
    user_id: str
    full_name: str
    email: Optional[str]
    balance: Decimal
    debts: Tuple[ConsolidatedDebt, ...] = ()
    credits: Tuple[ConsolidatedDebt, ...] = ()
    is_current_user: bool = False


@dataclass(frozen=True)
class Consolidation:
    """Result of netting a ledger: one record per owing pair plus balances."""
    debts: Tuple[ConsolidatedDebt, ...]
    balances: Dict[str, Decimal]
    user_balances: Tuple[UserBalance, ...]


@dataclass(frozen=True)
class BalanceSummary:
    total_receivable: Decimal = ZERO
    total_payable: Decimal = ZERO
    net_balance: Decimal = ZERO
    currency: str = "TRY"


@dataclass(frozen=True)
class BalanceReport:
    summary: BalanceSummary
    user_balances: Tuple[UserBalance, ...] = ()
    debts: Tuple[ConsolidatedDebt, ...] = ()
    anomalies: Tuple[Exception, ...] = ()

    def balance_for(self, user_id):
        for user_balance in self.user_balances:
            if user_balance.user_id == user_id:
                return user_balance
        return None
