"""
Balance Service - Entry point for the balance view

Rules:
- No Flask (request, session, current_app)
- Stores are passed in; nothing here reaches for a global
- Fetches finish before any computation starts; a failed fetch aborts
  the whole computation
- Returns a BalanceReport of plain Python data
"""
import itertools
import logging
import threading

from services.balance_types import BalanceReport, BalanceSummary
from services.ledger_service import (
    DEFAULT_UNKNOWN_NAME,
    BalanceIntegrityError,
    PairwiseLedger,
    accumulate,
    balance_integrity_ok,
    consolidate,
)
from services.summary_service import (
    check_drift,
    resolve_currency,
    summarize,
    summary_from_balance,
)

logger = logging.getLogger(__name__)


class RefreshSupersededError(Exception):
    """Raised when a refresh finishes after a newer one for the same user started"""
    pass


def fetch_group_expenses(groups, expense_store, executor=None):
    """
    Fetch every group's expenses.

    With an executor the fetches run concurrently; the result keeps the
    order of ``groups`` either way.

    Args:
        groups: List of Group snapshots
        expense_store: ExpenseStore
        executor: concurrent.futures.Executor (optional)

    Returns:
        List of (Group, [Expense]) pairs

    Raises:
        DataFetchError: If any fetch fails (outstanding fetches are cancelled)
    """
    if executor is None:
        return [(g, expense_store.list_expenses(g.id)) for g in groups]

    futures = [(g, executor.submit(expense_store.list_expenses, g.id)) for g in groups]
    try:
        return [(g, f.result()) for g, f in futures]
    except Exception:
        for _, f in futures:
            f.cancel()
        raise


def _display_order(user_balance):
    return (
        not user_balance.is_current_user,
        (user_balance.full_name or "").lower(),
        user_balance.user_id,
    )


def compute_balances(
    current_user_id,
    group_store,
    expense_store,
    user_directory=None,
    executor=None,
    default_currency="TRY",
    unknown_name=DEFAULT_UNKNOWN_NAME,
):
    """
    Compute the balance view for one user from a fresh snapshot.

    Args:
        current_user_id: User the view is for
        group_store: GroupStore
        expense_store: ExpenseStore
        user_directory: UserDirectory for names of non-members (optional)
        executor: Executor used to fetch group expenses concurrently (optional)
        default_currency: Currency when the groups do not agree on one
        unknown_name: Display name for users nobody can resolve

    Returns:
        BalanceReport

    Raises:
        DataFetchError: If any store call fails
    """
    # 1️⃣ Groups the user belongs to
    groups = sorted(group_store.list_groups_for_user(current_user_id), key=lambda g: g.id)
    if not groups:
        return BalanceReport(summary=BalanceSummary(currency=default_currency))

    # 2️⃣ Every group's expenses, all fetched before computing
    snapshots = fetch_group_expenses(groups, expense_store, executor)

    # 3️⃣ Pairwise ledger across all groups
    ledger = PairwiseLedger()
    for group, expenses in snapshots:
        accumulate(expenses, group, ledger)

    # 4️⃣ Names for people who are no longer members anywhere
    resolved = {}
    unknown_ids = [uid for uid in ledger.user_ids() if uid not in ledger.members]
    if unknown_ids and user_directory is not None:
        resolved = user_directory.resolve(unknown_ids)

    # 5️⃣ Net it
    consolidation = consolidate(
        ledger,
        current_user_id=current_user_id,
        members=resolved,
        unknown_name=unknown_name,
    )
    user_balances = sorted(consolidation.user_balances, key=_display_order)
    current = next((ub for ub in user_balances if ub.is_current_user), None)

    currency = resolve_currency(groups, default_currency)
    summary = summary_from_balance(current, currency)

    anomalies = list(ledger.anomalies)
    if not balance_integrity_ok(consolidation.balances):
        logger.error(
            "Balances for %s do not sum to zero: %s",
            current_user_id, sum(consolidation.balances.values()),
        )
        anomalies.append(
            BalanceIntegrityError(f"Balances computed for {current_user_id} do not sum to zero")
        )
    drift = check_drift(summary, summarize(snapshots, current_user_id, currency), current_user_id)
    if drift is not None:
        anomalies.append(drift)

    logger.debug(
        "Balances for %s: %d groups, %d users, %d debts, %d anomalies",
        current_user_id, len(groups), len(user_balances),
        len(consolidation.debts), len(anomalies),
    )

    return BalanceReport(
        summary=summary,
        user_balances=tuple(user_balances),
        debts=tuple(consolidation.debts),
        anomalies=tuple(anomalies),
    )


class BalanceRefresher:
    """
    Runs balance computations where the last started refresh wins.

    Each refresh takes a generation number from one counter shared by all
    users. A refresh that finishes after a newer one for the same user has
    started is discarded and raises RefreshSupersededError. Only users with
    a refresh in flight are tracked.
    """

    def __init__(self, group_store, expense_store, user_directory=None, executor=None, **options):
        self.group_store = group_store
        self.expense_store = expense_store
        self.user_directory = user_directory
        self.executor = executor
        self.options = options

        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        # user_id -> generation of the newest refresh in flight
        self._generations = {}

    def refresh(self, current_user_id):
        with self._lock:
            generation = next(self._counter)
            self._generations[current_user_id] = generation

        try:
            report = compute_balances(
                current_user_id,
                self.group_store,
                self.expense_store,
                user_directory=self.user_directory,
                executor=self.executor,
                **self.options,
            )
        finally:
            with self._lock:
                newest = self._generations.get(current_user_id)
                if newest == generation:
                    del self._generations[current_user_id]

        if newest != generation:
            logger.info(
                "Discarding balance refresh %d for %s; a newer refresh started",
                generation, current_user_id,
            )
            raise RefreshSupersededError(
                f"Refresh {generation} for {current_user_id} was superseded"
            )

        return report
