from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from lotto_ledger.models import BetLine, CommissionOrigin
from lotto_ledger.schemas.commission import CommissionMatchInput, CommissionSnapshot
from lotto_ledger.services.commission import (
    CommissionResolver,
    PolicyCache,
    PolicySource,
    apply_commission_snapshot,
    parse_commission_policy,
)

from tests.helpers import make_hierarchy


def policy(rules, default_percent=10, **fields):
    return {"version": 1, "defaultPercent": default_percent, "rules": rules, **fields}


SELLER_POLICY = policy([
    {"id": "r-seller", "lotteryId": "L1", "betType": "NUMERO", "multiplierRange": {"min": 0, "max": 100}, "percent": 12},
])


def bet(bet_type="NUMERO", multiplier="90", amount="100", lottery_id="L1"):
    return CommissionMatchInput(
        lottery_id=lottery_id,
        bet_type=bet_type,
        final_multiplier_x=Decimal(multiplier) if multiplier is not None else None,
        amount=Decimal(amount),
    )


@pytest.fixture
def resolver():
    return CommissionResolver(cache=PolicyCache(ttl=300, max_size=100))


def test_seller_rule_match(resolver):
    snapshot = resolver.resolve_seller_commission(bet(), PolicySource(uuid4(), SELLER_POLICY), None, None)

    assert snapshot.percent == Decimal("12")
    assert snapshot.amount == Decimal("12.00")
    assert snapshot.origin == CommissionOrigin.SELLER
    assert snapshot.rule_id == "r-seller"


def test_no_match_ignores_default_percent(resolver):
    snapshot = resolver.resolve_seller_commission(
        bet(bet_type="REVENTADO"), PolicySource(uuid4(), SELLER_POLICY), None, None
    )

    assert snapshot == CommissionSnapshot(percent=Decimal("0"), amount=Decimal("0"), origin=None)


def test_no_match_cascades_to_window_then_bank(resolver):
    window_policy = policy([{"lotteryId": "OTHER", "percent": 7}])
    bank_policy = policy([{"id": "bank-any", "percent": 5}])

    snapshot = resolver.resolve_seller_commission(
        bet(bet_type="REVENTADO"),
        PolicySource(uuid4(), SELLER_POLICY),
        PolicySource(uuid4(), window_policy),
        PolicySource(uuid4(), bank_policy),
    )

    assert snapshot.origin == CommissionOrigin.BANK
    assert snapshot.rule_id == "bank-any"
    assert snapshot.amount == Decimal("5.00")


def test_seller_match_wins_over_window_and_bank(resolver):
    snapshot = resolver.resolve_seller_commission(
        bet(),
        PolicySource(uuid4(), SELLER_POLICY),
        PolicySource(uuid4(), policy([{"percent": 30}])),
        PolicySource(uuid4(), policy([{"percent": 40}])),
    )

    assert snapshot.origin == CommissionOrigin.SELLER
    assert snapshot.percent == Decimal("12")


def test_rule_order_is_precedence(resolver):
    ordered = policy([
        {"id": "generic", "percent": 3},
        {"id": "specific", "lotteryId": "L1", "betType": "NUMERO", "percent": 9},
    ])

    snapshot = resolver.resolve_seller_commission(bet(), PolicySource(uuid4(), ordered), None, None)

    assert snapshot.rule_id == "generic"


@pytest.mark.parametrize("multiplier,matches", [
    ("50", True),
    ("80", True),
    ("49.99", False),
    ("80.01", False),
    (None, True),
])
def test_multiplier_range_is_inclusive(resolver, multiplier, matches):
    ranged = policy([{"multiplierRange": {"min": 50, "max": 80}, "percent": 8}])

    snapshot = resolver.resolve_seller_commission(
        bet(multiplier=multiplier), PolicySource(uuid4(), ranged), None, None
    )

    assert (snapshot.origin == CommissionOrigin.SELLER) is matches


def test_wildcard_rule_matches_any_lottery_and_type(resolver):
    wildcard = policy([{"percent": 4}])
    source = PolicySource(uuid4(), wildcard)

    for match_input in (bet(lottery_id="ZZ"), bet(bet_type="REVENTADO"), bet(multiplier=None)):
        assert resolver.resolve_seller_commission(match_input, source, None, None).percent == Decimal("4")


def test_amount_rounds_half_up(resolver):
    snapshot = resolver.resolve_seller_commission(
        bet(amount="0.50"), PolicySource(uuid4(), policy([{"percent": 5}])), None, None
    )

    # 0.50 * 5% = 0.025
    assert snapshot.amount == Decimal("0.03")


def test_resolution_is_deterministic(resolver):
    source = PolicySource(uuid4(), SELLER_POLICY)
    results = {resolver.resolve_seller_commission(bet(), source, None, None) for _ in range(5)}
    assert len(results) == 1


def test_malformed_policy_fails_closed(resolver):
    broken = {"version": 2, "defaultPercent": "abc", "rules": "nope"}
    bank_policy = policy([{"percent": 5}])

    snapshot = resolver.resolve_seller_commission(
        bet(), PolicySource(uuid4(), broken), None, PolicySource(uuid4(), bank_policy)
    )

    assert snapshot.origin == CommissionOrigin.BANK


def test_window_commission_never_uses_seller(resolver):
    snapshot = resolver.resolve_window_commission(
        bet(), PolicySource(uuid4(), policy([{"percent": 6}])), PolicySource(uuid4(), policy([{"percent": 2}]))
    )

    assert snapshot.origin == CommissionOrigin.WINDOW
    assert snapshot.percent == Decimal("6")


def test_policy_outside_effective_window_is_ignored(resolver):
    as_of = datetime(2026, 10, 18, 12, tzinfo=timezone.utc)
    future = policy([{"percent": 20}], effectiveFrom="2026-11-01T00:00:00Z")
    expired = policy([{"percent": 20}], effectiveTo="2026-10-01T00:00:00Z")

    assert resolver.resolve_seller_commission(bet(), PolicySource(uuid4(), future), None, None, as_of).origin is None
    assert resolver.resolve_seller_commission(bet(), PolicySource(uuid4(), expired), None, None, as_of).origin is None


def test_parsed_policy_is_cached_until_invalidated(resolver):
    seller_id = uuid4()
    first = resolver.resolve_seller_commission(bet(), PolicySource(seller_id, SELLER_POLICY), None, None)

    edited = policy([{"id": "r-new", "percent": 15}])
    cached = resolver.resolve_seller_commission(bet(), PolicySource(seller_id, edited), None, None)
    assert cached == first

    assert resolver.invalidate_policy(CommissionOrigin.SELLER, seller_id) == 1
    fresh = resolver.resolve_seller_commission(bet(), PolicySource(seller_id, edited), None, None)
    assert fresh.rule_id == "r-new"


def test_parse_commission_policy_rejects_bad_documents():
    assert parse_commission_policy(None, "SELLER") is None
    assert parse_commission_policy("not a dict", "SELLER") is None
    assert parse_commission_policy(policy([], default_percent=101), "SELLER") is None
    assert parse_commission_policy(policy([{"percent": 5, "multiplierRange": {"min": 9, "max": 1}}]), "SELLER") is None

    parsed = parse_commission_policy(SELLER_POLICY, "SELLER")
    assert parsed.default_percent == Decimal("10")
    assert parsed.rules[0].lottery_id == "L1"


def test_apply_commission_snapshot_writes_both_snapshots(resolver):
    bank, window, (seller,) = make_hierarchy(
        policy_bank=policy([{"id": "b", "percent": 2}]),
        policy_window=policy([{"id": "w", "betType": "NUMERO", "percent": 6}]),
        policy_seller=policy([{"id": "s", "betType": "REVENTADO", "percent": 11}]),
    )
    line = BetLine(bet_type="NUMERO", number="33", amount=Decimal("200"), final_multiplier_x=Decimal("90"))

    apply_commission_snapshot(line, "L1", seller, window, bank, resolver=resolver)

    # Seller rule only covers REVENTADO, so the window rule prices the seller
    assert line.commission_origin == "WINDOW"
    assert line.commission_rule_id == "w"
    assert line.commission_amount == Decimal("12.00")
    assert line.window_commission_origin == "WINDOW"
    assert line.window_commission_amount == Decimal("12.00")
