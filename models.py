# models.py
import uuid
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()


def _new_id():
    return uuid.uuid4().hex


class User(db.Model):
    __tablename__ = "expense_users"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    full_name = db.Column(db.String(100))
    email = db.Column(db.String(120), unique=True)


class Group(db.Model):
    __tablename__ = "groups"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(100), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="TRY")
    created_by = db.Column(db.String(64), db.ForeignKey("expense_users.id"))

    memberships = db.relationship("GroupMember", backref="group")


class GroupMember(db.Model):
    __tablename__ = "group_members"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.String(64), db.ForeignKey("groups.id"), nullable=False)
    user_id = db.Column(db.String(64), db.ForeignKey("expense_users.id"), nullable=False)

    user = db.relationship("User")

    __table_args__ = (db.UniqueConstraint("group_id", "user_id"),)


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    group_id = db.Column(db.String(64), db.ForeignKey("groups.id"), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="TRY")
    description = db.Column(db.String(255))
    category = db.Column(db.String(50))
    # Not a foreign key: payers may have left the group or the directory
    paid_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # No participant rows means the expense is split across all members
    participants = db.relationship(
        "ExpenseParticipant",
        backref="expense",
        order_by="ExpenseParticipant.id",
    )


class ExpenseParticipant(db.Model):
    __tablename__ = "expense_participants"

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.String(64), db.ForeignKey("expenses.id"), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
