import dataclasses
import random
from decimal import Decimal

import pytest

from factories import expense, group, member, two_group_scenario
from services import balance_types as bt
from services.balance_types import Consolidation, Explicit
from services.ledger_service import (
    NET_EPSILON,
    InvalidExpenseAmountError,
    InvalidGroupStateError,
    PairwiseLedger,
    UnresolvedParticipantError,
    accumulate,
    balance_integrity_ok,
    compute_share,
    consolidate,
)
from utils.formatters import round_money


def _ledger_for(groups, expenses_by_group):
    ledger = PairwiseLedger()
    for g in groups:
        accumulate(expenses_by_group.get(g.id, []), g, ledger)
    return ledger


def _many_expenses():
    g = group("g1", "a", "b", "c", "d")
    expenses = [
        expense("e1", "g1", 90, "a"),
        expense("e2", "g1", "10.01", "b", ["a", "b", "c"]),
        expense("e3", "g1", 45, "c", ["d"]),
        expense("e4", "g1", "33.33", "d", ["a", "b"]),
        expense("e5", "g1", 7, "a", ["a", "b", "c", "d"]),
        expense("e6", "g1", "100", "b", ["c", "a"]),
    ]
    return g, expenses


# --------------------------------------------------
# compute_share
# --------------------------------------------------

def test_equal_split_across_all_members():
    share = compute_share(expense("e1", "g1", 90, "a"), group("g1", "a", "b", "c"))

    assert share.per_person_share == Decimal("30")
    assert share.payer_id == "a"
    assert share.shareholders == ("a", "b", "c")


def test_explicit_participants_only():
    share = compute_share(
        expense("e1", "g1", 60, "b", ["a", "b"]),
        group("g1", "a", "b", "c"),
    )

    assert share.per_person_share == Decimal("30")
    assert share.shareholders == ("a", "b")


def test_payer_outside_participants_is_only_payer():
    share = compute_share(
        expense("e1", "g1", 50, "a", ["b", "c"]),
        group("g1", "a", "b", "c"),
    )

    assert share.per_person_share == Decimal("25")
    assert "a" not in share.shareholders


def test_repeated_participants_count_once():
    share = compute_share(
        expense("e1", "g1", 40, "a", ["b", "b", "c"]),
        group("g1", "a", "b", "c"),
    )

    assert share.shareholders == ("b", "c")
    assert share.per_person_share == Decimal("20")


def test_member_listed_twice_in_group_counts_once():
    g = bt.Group(id="g1", members=(member("a"), member("b"), member("b")))

    share = compute_share(expense("e1", "g1", 40, "a"), g)

    assert share.shareholders == ("a", "b")
    assert share.per_person_share == Decimal("20")


def test_share_is_not_rounded():
    share = compute_share(expense("e1", "g1", 100, "a"), group("g1", "a", "b", "c"))

    assert share.per_person_share != Decimal("33.33")
    assert round_money(share.per_person_share) == Decimal("33.33")


@pytest.mark.parametrize("amount", [0, -5])
def test_non_positive_amount_rejected(amount):
    with pytest.raises(InvalidExpenseAmountError):
        compute_share(expense("e1", "g1", amount, "a"), group("g1", "a", "b"))


def test_zero_member_group_rejected():
    with pytest.raises(InvalidGroupStateError):
        compute_share(expense("e1", "g1", 10, "a"), group("g1"))


def test_explicit_scope_needs_someone():
    with pytest.raises(ValueError):
        Explicit(())


# --------------------------------------------------
# accumulate
# --------------------------------------------------

def test_members_without_activity_are_registered():
    ledger = accumulate([], group("g1", "a", "b", "c"))

    assert ledger.user_ids() == ["a", "b", "c"]
    assert ledger.counterparts("a") == []


def test_non_payers_owe_payer_both_directions():
    ledger = accumulate([expense("e1", "g1", 90, "a")], group("g1", "a", "b", "c"))

    assert ledger.owed("b", "a") == Decimal("30")
    assert ledger.owed("c", "a") == Decimal("30")
    assert ledger.owed("a", "b") == Decimal("-30")
    assert ledger.owed("a", "c") == Decimal("-30")
    assert ledger.owed("b", "c") == Decimal("0")


def test_payer_never_owes_themselves():
    ledger = accumulate([expense("e1", "g1", 90, "a")], group("g1", "a", "b", "c"))

    assert "a" not in ledger.counterparts("a")
    assert ledger.owed("a", "a") == Decimal("0")


def test_zero_member_group_is_skipped_and_recorded():
    ledger = accumulate([expense("e1", "g1", 90, "a")], group("g1"))

    assert len(ledger) == 0
    assert len(ledger.anomalies) == 1
    assert isinstance(ledger.anomalies[0], InvalidGroupStateError)


def test_bad_expense_does_not_block_others():
    g = group("g1", "a", "b")
    ledger = accumulate(
        [expense("bad", "g1", 0, "a"), expense("ok", "g1", 10, "a")],
        g,
    )

    assert ledger.owed("b", "a") == Decimal("5")
    assert [type(e) for e in ledger.anomalies] == [InvalidExpenseAmountError]


def test_removed_member_keeps_their_debt():
    g = group("g1", "a", "b")
    ledger = accumulate([expense("e1", "g1", 30, "a", ["a", "b", "x"])], g)

    assert ledger.owed("x", "a") == Decimal("10")
    assert "x" in ledger
    assert "x" not in ledger.members
    assert any(isinstance(e, UnresolvedParticipantError) for e in ledger.anomalies)


def test_removed_payer_is_still_credited():
    g = group("g1", "a", "b")
    ledger = accumulate([expense("e1", "g1", 20, "x", ["a", "b"])], g)

    assert ledger.owed("a", "x") == Decimal("10")
    assert ledger.owed("b", "x") == Decimal("10")


def test_accumulate_extends_an_existing_ledger():
    groups, expenses = two_group_scenario()
    ledger = _ledger_for(groups, expenses)

    # 33.33... owed for the trip, 30 back for the flat
    assert ledger.owed("b", "a") == Decimal(100) / 3 - Decimal(30)


def test_expense_order_does_not_change_ledger():
    g, expenses = _many_expenses()
    expected = accumulate(expenses, g).as_dict()

    rng = random.Random(7)
    for _ in range(10):
        shuffled = list(expenses)
        rng.shuffle(shuffled)
        assert accumulate(shuffled, g).as_dict() == expected


# --------------------------------------------------
# consolidate
# --------------------------------------------------

def test_payer_balance_for_equal_split():
    ledger = accumulate([expense("e1", "g1", 90, "a")], group("g1", "a", "b", "c"))
    result = consolidate(ledger)

    assert result.balances == {
        "a": Decimal("60"),
        "b": Decimal("-30"),
        "c": Decimal("-30"),
    }
    assert [(d.from_user_id, d.to_user_id, d.amount) for d in result.debts] == [
        ("b", "a", Decimal("30")),
        ("c", "a", Decimal("30")),
    ]


def test_two_group_scenario_nets_pairs():
    groups, expenses = two_group_scenario()
    result = consolidate(_ledger_for(groups, expenses))

    debts = {(d.from_user_id, d.to_user_id): round_money(d.amount) for d in result.debts}
    assert debts == {
        ("b", "a"): Decimal("3.33"),
        ("c", "a"): Decimal("33.33"),
    }


def test_one_record_per_pair():
    g, expenses = _many_expenses()
    result = consolidate(accumulate(expenses, g))

    pairs = [frozenset((d.from_user_id, d.to_user_id)) for d in result.debts]
    assert len(pairs) == len(set(pairs))


def test_no_self_debt():
    g, expenses = _many_expenses()
    result = consolidate(accumulate(expenses, g))

    assert all(d.from_user_id != d.to_user_id for d in result.debts)
    assert all(d.amount > 0 for d in result.debts)


def test_balances_sum_to_zero():
    g, expenses = _many_expenses()
    result = consolidate(accumulate(expenses, g))

    assert abs(sum(result.balances.values())) < Decimal("1e-20")
    assert balance_integrity_ok(result.balances)


def test_pair_that_nets_to_zero_emits_nothing():
    g = group("g1", "a", "b")
    ledger = accumulate(
        [
            expense("e1", "g1", 20, "a", ["a", "b"]),
            expense("e2", "g1", 20, "b", ["a", "b"]),
        ],
        g,
    )
    result = consolidate(ledger, current_user_id="a")

    assert result.debts == ()
    assert result.balances == {"a": Decimal("0"), "b": Decimal("0")}
    alice = result.user_balances[0]
    assert alice.is_current_user
    assert alice.debts == () and alice.credits == ()


def test_division_leftovers_do_not_create_debts():
    g = group("g1", "a", "b", "c")
    ledger = accumulate(
        [
            expense("e1", "g1", 10, "a"),
            expense("e2", "g1", 10, "a"),
            expense("e3", "g1", 10, "a"),
            expense("e4", "g1", 20, "b", ["a", "b"]),
        ],
        g,
    )
    # thirds of 10 leave a tiny remainder between a and b
    assert ledger.owed("a", "b") != Decimal("0")

    result = consolidate(ledger)

    assert [(d.from_user_id, d.to_user_id) for d in result.debts] == [("c", "a")]
    assert round_money(result.debts[0].amount) == Decimal("10.00")
    assert result.balances["b"] == Decimal("0")
    assert result.balances["a"] == result.debts[0].amount


def test_debts_and_credits_attached_to_users():
    groups, expenses = two_group_scenario()
    result = consolidate(_ledger_for(groups, expenses), current_user_id="a")
    by_id = {ub.user_id: ub for ub in result.user_balances}

    assert [d.from_user_id for d in by_id["a"].credits] == ["b", "c"]
    assert by_id["a"].debts == ()
    assert [d.to_user_id for d in by_id["c"].debts] == ["a"]
    assert by_id["a"].email == "alice@example.com"
    assert by_id["a"].is_current_user
    assert not by_id["b"].is_current_user


def test_names_fall_back_to_placeholder():
    g = group("g1", "a", "b")
    ledger = accumulate([expense("e1", "g1", 30, "a", ["a", "x"])], g)
    result = consolidate(ledger, unknown_name="Bilinmeyen Kullanıcı")

    debt = result.debts[0]
    assert debt.from_user_id == "x"
    assert debt.from_user_name == "Bilinmeyen Kullanıcı"
    assert debt.to_user_name == "Alice"


def test_extra_profiles_resolve_non_members():
    g = group("g1", "a", "b")
    ledger = accumulate([expense("e1", "g1", 30, "a", ["a", "d"])], g)
    result = consolidate(ledger, members={"d": member("d")})

    assert result.debts[0].from_user_name == "Dave"


def test_consolidation_is_order_independent():
    g, many = _many_expenses()
    expected = consolidate(accumulate(many, g))

    shuffled = list(reversed(many))
    result = consolidate(accumulate(shuffled, g))

    assert result.debts == expected.debts
    assert result.balances == expected.balances


def test_consolidation_is_frozen():
    groups, expenses = two_group_scenario()
    result = consolidate(_ledger_for(groups, expenses))

    assert isinstance(result, Consolidation)
    assert isinstance(result.debts, tuple)
    assert isinstance(result.user_balances, tuple)
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.debts = ()
    assert all(d.amount >= NET_EPSILON for d in result.debts)
