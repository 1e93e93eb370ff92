"""
Ledger Service - Pairwise debt accumulation and netting

Rules:
- No Flask, no db, no I/O
- Works on balance_types snapshots and returns plain Python data
- Bad expenses are skipped and recorded on the ledger, never raised
  out of accumulate() or consolidate()
"""
import logging
from collections import defaultdict
from decimal import Decimal

from services.balance_types import (
    ZERO,
    AllMembers,
    ConsolidatedDebt,
    Consolidation,
    ShareResult,
    UserBalance,
)

logger = logging.getLogger(__name__)

DEFAULT_UNKNOWN_NAME = "Unknown User"
TOLERANCE = Decimal("0.01")
# Far below display precision; nets smaller than this are division noise
NET_EPSILON = Decimal("1e-9")


class InvalidGroupStateError(Exception):
    """Raised when a group has no members but expenses reference it"""
    pass


class InvalidExpenseAmountError(Exception):
    """Raised when an expense amount is zero or negative"""
    pass


class UnresolvedParticipantError(Exception):
    """Recorded when an expense names a user who is not a group member"""
    pass


class BalanceIntegrityError(Exception):
    """Recorded when consolidated balances do not sum to zero"""
    pass


def compute_share(expense, group):
    """
    Split one expense between its shareholders.

    Args:
        expense: Expense snapshot
        group: Group snapshot the expense belongs to

    Returns:
        ShareResult with per_person_share, payer_id and shareholders

    Raises:
        InvalidExpenseAmountError: If amount is not positive
        InvalidGroupStateError: If the group has no members
    """
    if expense.amount <= ZERO:
        raise InvalidExpenseAmountError(
            f"Expense {expense.id} has non-positive amount {expense.amount}"
        )

    if not group.members:
        raise InvalidGroupStateError(
            f"Group {group.id} has no members but expense {expense.id} references it"
        )

    if isinstance(expense.scope, AllMembers):
        user_ids = group.member_ids()
    else:
        user_ids = expense.scope.user_ids

    # dict.fromkeys keeps the first occurrence and drops repeats
    shareholders = list(dict.fromkeys(user_ids))

    return ShareResult(
        per_person_share=expense.amount / len(shareholders),
        payer_id=expense.paid_by,
        shareholders=tuple(shareholders),
    )


class PairwiseLedger:
    """
    Signed running totals between every pair of users.

    ledger[a][b] is what a owes b. Every posting writes both directions,
    so ledger[a][b] == -ledger[b][a] always holds.
    """

    def __init__(self):
        self._entries = {}
        self.members = {}
        self.anomalies = []

    def register(self, user_id, member=None):
        self._entries.setdefault(user_id, defaultdict(lambda: ZERO))
        if member is not None:
            self.members.setdefault(user_id, member)

    def register_group(self, group):
        for member in group.members:
            self.register(member.id, member)

    def post(self, debtor_id, creditor_id, amount):
        if debtor_id == creditor_id:
            return
        self.register(debtor_id)
        self.register(creditor_id)
        self._entries[debtor_id][creditor_id] += amount
        self._entries[creditor_id][debtor_id] -= amount

    def owed(self, debtor_id, creditor_id):
        row = self._entries.get(debtor_id)
        if row is None:
            return ZERO
        return row.get(creditor_id, ZERO)

    def user_ids(self):
        return sorted(self._entries)

    def counterparts(self, user_id):
        return sorted(self._entries.get(user_id, {}))

    def record_anomaly(self, error):
        self.anomalies.append(error)

    def as_dict(self):
        return {
            user_id: dict(row)
            for user_id, row in self._entries.items()
        }

    def __contains__(self, user_id):
        return user_id in self._entries

    def __len__(self):
        return len(self._entries)


def _canonical_order(expenses):
    return sorted(expenses, key=lambda e: (str(e.group_id), str(e.id)))


def accumulate(expenses, group, ledger=None):
    """
    Fold a group's expenses into a pairwise ledger.

    Every member of the group is registered even without activity. Expenses
    are folded in (group_id, id) order so the resulting Decimal totals do not
    depend on the order the store returned them in.

    Args:
        expenses: Iterable of Expense snapshots for this group
        group: Group snapshot
        ledger: Existing PairwiseLedger to extend (optional)

    Returns:
        PairwiseLedger
    """
    if ledger is None:
        ledger = PairwiseLedger()

    ledger.register_group(group)

    for expense in _canonical_order(expenses):
        try:
            share = compute_share(expense, group)
        except (InvalidGroupStateError, InvalidExpenseAmountError) as e:
            logger.warning("Skipping expense %s: %s", expense.id, e)
            ledger.record_anomaly(e)
            continue

        _flag_unresolved(expense, share, group, ledger)

        for shareholder in share.shareholders:
            if shareholder == share.payer_id:
                continue
            ledger.post(shareholder, share.payer_id, share.per_person_share)

    return ledger


def _flag_unresolved(expense, share, group, ledger):
    involved = [share.payer_id] + [
        uid for uid in share.shareholders if uid != share.payer_id
    ]
    for user_id in involved:
        if group.has_member(user_id):
            continue
        logger.info(
            "Expense %s in group %s references non-member %s",
            expense.id, group.id, user_id,
        )
        ledger.record_anomaly(
            UnresolvedParticipantError(
                f"User {user_id} in expense {expense.id} is not a member of group {group.id}"
            )
        )


def consolidate(ledger, current_user_id=None, members=None, unknown_name=DEFAULT_UNKNOWN_NAME):
    """
    Net the ledger into directional debts and per-user balances.

    Each unordered pair is visited once, lowest id first, and produces at
    most one ConsolidatedDebt. Pairs whose net is below NET_EPSILON
    (leftover noise from dividing shares) count as settled and produce none.

    Args:
        ledger: PairwiseLedger
        current_user_id: Flags the matching UserBalance (optional)
        members: Extra {user_id: Member} profiles for name lookup (optional)
        unknown_name: Display name for users nobody can resolve

    Returns:
        Consolidation with debts, balances {user_id: Decimal} and user_balances
    """
    profiles = dict(ledger.members)
    if members:
        profiles.update({uid: m for uid, m in members.items() if m is not None})

    def name_of(user_id):
        member = profiles.get(user_id)
        if member is None or not member.full_name:
            return unknown_name
        return member.full_name

    user_ids = ledger.user_ids()
    debts = []
    outgoing = defaultdict(list)
    incoming = defaultdict(list)

    for user_a in user_ids:
        for user_b in ledger.counterparts(user_a):
            if user_b <= user_a:
                continue

            net = ledger.owed(user_a, user_b)
            if abs(net) < NET_EPSILON:
                continue

            if net > ZERO:
                debtor, creditor, amount = user_a, user_b, net
            else:
                debtor, creditor, amount = user_b, user_a, -net

            debt = ConsolidatedDebt(
                from_user_id=debtor,
                from_user_name=name_of(debtor),
                to_user_id=creditor,
                to_user_name=name_of(creditor),
                amount=amount,
            )
            debts.append(debt)
            outgoing[debtor].append(debt)
            incoming[creditor].append(debt)

    balances = {}
    user_balances = []
    for user_id in user_ids:
        balance = (
            sum((d.amount for d in incoming[user_id]), ZERO)
            - sum((d.amount for d in outgoing[user_id]), ZERO)
        )
        balances[user_id] = balance

        member = profiles.get(user_id)
        user_balances.append(
            UserBalance(
                user_id=user_id,
                full_name=name_of(user_id),
                email=member.email if member else None,
                balance=balance,
                debts=tuple(outgoing[user_id]),
                credits=tuple(incoming[user_id]),
                is_current_user=(user_id == current_user_id),
            )
        )

    return Consolidation(
        debts=tuple(debts),
        balances=balances,
        user_balances=tuple(user_balances),
    )


def balance_integrity_ok(balances):
    """
    Check if balances sum to zero (within tolerance).

    Args:
        balances: Dict mapping user_id to balance

    Returns:
        bool: True if balances are balanced
    """
    total = sum(balances.values(), ZERO)
    return abs(total) < TOLERANCE
