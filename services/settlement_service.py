from decimal import Decimal

from services.balance_types import ZERO

# Small threshold to ignore leftovers from uneven splits
SETTLE_THRESHOLD = Decimal("0.01")


def suggest_settlements(user_balances):
    """
    Suggest payments that clear every balance in few transactions.

    Uses a greedy algorithm: the largest debtor pays the largest creditor
    until one of them is settled. Ties are broken by user id so the plan
    is stable between refreshes.

    Args:
        user_balances: Iterable of UserBalance

    Returns:
        List of dicts with keys: from, from_name, to, to_name, amount (Decimal)
    """
    creditors = []  # People who are owed money (positive balance)
    debtors = []    # People who owe money (negative balance)
    names = {}

    for ub in user_balances:
        names[ub.user_id] = ub.full_name
        if ub.balance > SETTLE_THRESHOLD:
            creditors.append([ub.user_id, ub.balance])
        elif ub.balance < -SETTLE_THRESHOLD:
            debtors.append([ub.user_id, -ub.balance])  # Store as positive for easier calculation

    # Sort by amount (largest first)
    creditors.sort(key=lambda x: (-x[1], x[0]))
    debtors.sort(key=lambda x: (-x[1], x[0]))

    suggestions = []
    i = j = 0

    while i < len(debtors) and j < len(creditors):
        debtor_id, debtor_amount = debtors[i]
        creditor_id, creditor_amount = creditors[j]

        settle_amount = min(debtor_amount, creditor_amount)
        if settle_amount > ZERO:
            suggestions.append({
                "from": debtor_id,
                "from_name": names[debtor_id],
                "to": creditor_id,
                "to_name": names[creditor_id],
                "amount": settle_amount,
            })

        debtors[i][1] -= settle_amount
        creditors[j][1] -= settle_amount

        # Move to next if fully settled
        if debtors[i][1] < SETTLE_THRESHOLD:
            i += 1
        if creditors[j][1] < SETTLE_THRESHOLD:
            j += 1

    return suggestions
