import logging

from flask import Blueprint, current_app, jsonify

from services.balance_service import RefreshSupersededError
from services.settlement_service import suggest_settlements
from services.stores import DataFetchError
from utils.formatters import money_to_json

logger = logging.getLogger(__name__)

balances_bp = Blueprint("balances", __name__)


def _refresher():
    return current_app.extensions["balance_refresher"]


def debt_to_dict(debt):
    return {
        "from_user_id": debt.from_user_id,
        "from_user_name": debt.from_user_name,
        "to_user_id": debt.to_user_id,
        "to_user_name": debt.to_user_name,
        "amount": money_to_json(debt.amount),
    }


def user_balance_to_dict(ub):
    return {
        "user_id": ub.user_id,
        "full_name": ub.full_name,
        "email": ub.email,
        "balance": money_to_json(ub.balance),
        "debts": [debt_to_dict(d) for d in ub.debts],
        "credits": [debt_to_dict(d) for d in ub.credits],
        "is_current_user": ub.is_current_user,
    }


def summary_to_dict(summary):
    return {
        "total_receivable": money_to_json(summary.total_receivable),
        "total_payable": money_to_json(summary.total_payable),
        "net_balance": money_to_json(summary.net_balance),
        "currency": summary.currency,
    }


def report_to_dict(report):
    return {
        "summary": summary_to_dict(report.summary),
        "user_balances": [user_balance_to_dict(ub) for ub in report.user_balances],
        "debts": [debt_to_dict(d) for d in report.debts],
    }


@balances_bp.route("/api/health")
def health():
    return jsonify({"status": "ok"})


@balances_bp.route("/api/users/<user_id>/balances")
def api_user_balances(user_id):
    try:
        report = _refresher().refresh(user_id)
        return jsonify(report_to_dict(report))
    except RefreshSupersededError:
        return jsonify({"error": "A newer refresh is in progress"}), 409
    except DataFetchError as e:
        logger.error("Balance refresh for %s failed: %s", user_id, e)
        return jsonify({"error": "Failed to load balances"}), 502


@balances_bp.route("/api/users/<user_id>/settlements/suggested")
def api_suggested_settlements(user_id):
    try:
        report = _refresher().refresh(user_id)
    except RefreshSupersededError:
        return jsonify({"error": "A newer refresh is in progress"}), 409
    except DataFetchError as e:
        logger.error("Settlement suggestions for %s failed: %s", user_id, e)
        return jsonify({"error": "Failed to load balances"}), 502

    suggestions = suggest_settlements(report.user_balances)
    return jsonify([
        {**s, "amount": money_to_json(s["amount"])}
        for s in suggestions
    ])
