"""
Summary Service - Receivable / payable totals for the current user

Rules:
- No Flask, no db, no I/O
- The summary shown to users comes from the consolidated balances;
  summarize() is an independent gross pass used to cross-check it
"""
import logging

from services.balance_types import ZERO, BalanceSummary
from services.ledger_service import (
    TOLERANCE,
    InvalidExpenseAmountError,
    InvalidGroupStateError,
    compute_share,
)

logger = logging.getLogger(__name__)


class BalanceDriftError(Exception):
    """Recorded when the gross and consolidated totals disagree"""
    pass


def summarize(group_expenses, current_user_id, currency="TRY"):
    """
    Gross receivable / payable for one user across every expense.

    Args:
        group_expenses: Iterable of (Group, [Expense]) pairs
        current_user_id: User the summary is for
        currency: Currency reported on the summary

    Returns:
        BalanceSummary
    """
    receivable = ZERO
    payable = ZERO

    for group, expenses in group_expenses:
        for expense in expenses:
            try:
                share = compute_share(expense, group)
            except (InvalidGroupStateError, InvalidExpenseAmountError):
                # already recorded by the ledger pass
                continue

            if share.payer_id == current_user_id:
                others = [uid for uid in share.shareholders if uid != current_user_id]
                receivable += share.per_person_share * len(others)
            elif current_user_id in share.shareholders:
                payable += share.per_person_share

    return BalanceSummary(
        total_receivable=receivable,
        total_payable=payable,
        net_balance=receivable - payable,
        currency=currency,
    )


def summary_from_balance(user_balance, currency="TRY"):
    """Totals taken from a consolidated UserBalance (None means no activity)."""
    if user_balance is None:
        return BalanceSummary(currency=currency)

    receivable = sum((d.amount for d in user_balance.credits), ZERO)
    payable = sum((d.amount for d in user_balance.debts), ZERO)
    return BalanceSummary(
        total_receivable=receivable,
        total_payable=payable,
        net_balance=receivable - payable,
        currency=currency,
    )


def summaries_agree(consolidated, gross):
    return abs(consolidated.net_balance - gross.net_balance) < TOLERANCE


def check_drift(consolidated, gross, current_user_id):
    """
    Compare the two summaries.

    Returns:
        BalanceDriftError if they disagree, else None
    """
    if summaries_agree(consolidated, gross):
        return None

    logger.error(
        "Balance drift for user %s: consolidated net %s, gross net %s",
        current_user_id, consolidated.net_balance, gross.net_balance,
    )
    return BalanceDriftError(
        f"Net balance for {current_user_id} is {consolidated.net_balance} "
        f"but expenses add up to {gross.net_balance}"
    )


def resolve_currency(groups, default="TRY"):
    """The groups' shared currency, or the default when they differ or are absent."""
    currencies = {g.currency for g in groups if g.currency}
    if len(currencies) == 1:
        return currencies.pop()
    if len(currencies) > 1:
        logger.warning(
            "Groups use mixed currencies %s; reporting totals in %s",
            sorted(currencies), default,
        )
    return default
