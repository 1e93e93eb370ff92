"""
SQL Stores - Read adapters from the SQLAlchemy models to balance snapshots

Rules:
- Read only; nothing here writes to the database
- Returns balance_types snapshots, never ORM objects
- Database failures surface as DataFetchError
"""
import logging
from contextlib import contextmanager
from functools import wraps

from sqlalchemy.exc import SQLAlchemyError

from models import db, Group, GroupMember, Expense, User
from services import balance_types as bt
from services.stores import (
    DataFetchError,
    ExpenseStore,
    GroupNotFoundError,
    GroupStore,
    UserDirectory,
)

logger = logging.getLogger(__name__)


def _fetch(what):
    def decorator(fn):
        @wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                with self._context():
                    return fn(self, *args, **kwargs)
            except SQLAlchemyError as e:
                logger.error("Failed to fetch %s %s", what, args, exc_info=True)
                raise DataFetchError(f"Failed to fetch {what}") from e
        return wrapper
    return decorator


class _SqlStore:
    """
    Base for the SQL stores.

    When built with an app, every call pushes its own app context (and so
    gets its own session), which lets fetches run on executor threads.
    """

    def __init__(self, app=None):
        self._app = app

    @contextmanager
    def _context(self):
        if self._app is None:
            yield
            return
        with self._app.app_context():
            yield


def _member_snapshot(membership):
    user = membership.user
    if user is None:
        return bt.Member(id=membership.user_id)
    return bt.Member(id=user.id, full_name=user.full_name, email=user.email)


def _group_snapshot(group):
    members = sorted(
        (_member_snapshot(m) for m in group.memberships),
        key=lambda m: m.id,
    )
    return bt.Group(
        id=group.id,
        name=group.name,
        currency=group.currency,
        members=tuple(members),
    )


def _expense_snapshot(expense):
    return bt.Expense(
        id=expense.id,
        group_id=expense.group_id,
        amount=bt.to_decimal(expense.amount),
        currency=expense.currency,
        paid_by=expense.paid_by,
        scope=bt.SplitScope.from_participants(
            [p.user_id for p in expense.participants]
        ),
        created_at=expense.created_at,
        description=expense.description,
        category=expense.category,
    )


class SqlGroupStore(_SqlStore, GroupStore):

    @_fetch("groups")
    def list_groups_for_user(self, user_id):
        groups = (
            db.session.query(Group)
            .join(GroupMember)
            .filter(GroupMember.user_id == user_id)
            .order_by(Group.id)
            .all()
        )
        return [_group_snapshot(g) for g in groups]

    @_fetch("group")
    def get_group(self, group_id):
        group = db.session.get(Group, group_id)
        if not group:
            raise GroupNotFoundError(f"Group {group_id} not found")
        return _group_snapshot(group)


class SqlExpenseStore(_SqlStore, ExpenseStore):

    @_fetch("expenses")
    def list_expenses(self, group_id):
        # Newest first, the way the expense list shows them
        expenses = (
            Expense.query
            .filter_by(group_id=group_id)
            .order_by(Expense.created_at.desc())
            .all()
        )
        return [_expense_snapshot(e) for e in expenses]


class SqlUserDirectory(_SqlStore, UserDirectory):

    @_fetch("users")
    def resolve(self, user_ids):
        user_ids = list(user_ids)
        if not user_ids:
            return {}

        users = User.query.filter(User.id.in_(user_ids)).all()
        return {
            u.id: bt.Member(id=u.id, full_name=u.full_name, email=u.email)
            for u in users
        }
