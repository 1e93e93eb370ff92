from decimal import Decimal

import pytest

from app import create_app
from config import TestConfig
from models import db, User, Group, GroupMember, Expense, ExpenseParticipant


@pytest.fixture
def app():
    app = create_app(TestConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded(app):
    """
    Alice, Bob and Carol share "Trip"; Alice and Bob share "Flat".
    Alice paid 100 for the trip (split across everyone), Bob paid 60 at
    the flat for himself and Alice.
    """
    with app.app_context():
        db.session.add_all([
            User(id="a", full_name="Alice", email="alice@example.com"),
            User(id="b", full_name="Bob", email="bob@example.com"),
            User(id="c", full_name="Carol", email="carol@example.com"),
            Group(id="g1", name="Trip", currency="TRY", created_by="a"),
            Group(id="g2", name="Flat", currency="TRY", created_by="b"),
        ])
        db.session.flush()

        db.session.add_all([
            GroupMember(group_id="g1", user_id="a"),
            GroupMember(group_id="g1", user_id="b"),
            GroupMember(group_id="g1", user_id="c"),
            GroupMember(group_id="g2", user_id="a"),
            GroupMember(group_id="g2", user_id="b"),
        ])

        db.session.add_all([
            Expense(id="e1", group_id="g1", amount=Decimal("100.00"), paid_by="a",
                    description="Hotel", category="Konut"),
            Expense(id="e2", group_id="g2", amount=Decimal("60.00"), paid_by="b",
                    description="Groceries", category="Market"),
        ])
        db.session.flush()

        db.session.add_all([
            ExpenseParticipant(expense_id="e2", user_id="a"),
            ExpenseParticipant(expense_id="e2", user_id="b"),
        ])
        db.session.commit()

    return app
