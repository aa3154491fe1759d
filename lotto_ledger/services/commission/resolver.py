"""
Commission Resolver.

Prices a bet line against up to three policies ordered most specific first
(seller, window, bank):

- the first policy with a matching rule wins; within a policy the first
  matching rule in stored order wins
- a policy without a matching rule hands over to the next, less specific
  level; its defaultPercent is NOT used as a fallback
- no match anywhere gives zero commission with origin None

amount = round_half_up(amount * percent / 100, 2)
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, NamedTuple, Optional, Tuple

from lotto_ledger.config import settings
from lotto_ledger.db_types import CENTS
from lotto_ledger.models.ticket import CommissionOrigin
from lotto_ledger.schemas.commission import (
    CommissionMatchInput, CommissionPolicy, CommissionSnapshot,
)
from lotto_ledger.services.commission.policy_cache import PolicyCache
from lotto_ledger.services.commission.policy_parser import (
    validate_commission_policy, effective_policy,
)
from lotto_ledger.services.commission.rule_matcher import find_matching_rule

logger = logging.getLogger(__name__)

NO_COMMISSION = CommissionSnapshot()


class PolicySource(NamedTuple):
    """Raw policy document as held by one hierarchy entity."""
    entity_id: Any
    document: Any


def commission_amount(amount: Decimal, percent: Decimal) -> Decimal:
    return (Decimal(amount) * Decimal(percent) / Decimal("100")).quantize(CENTS, rounding=ROUND_HALF_UP)


class CommissionResolver:
    """
    Stateless pricing logic plus the parsed-policy cache it owns.
    """

    def __init__(self, cache: Optional[PolicyCache] = None):
        self.cache = cache or PolicyCache(
            ttl=settings.COMMISSION_POLICY_CACHE_TTL,
            max_size=settings.COMMISSION_POLICY_CACHE_MAX_SIZE,
        )

    # ==================== Policy loading ====================

    def load_policy(
        self,
        origin: CommissionOrigin,
        source: Optional[PolicySource],
        as_of: Optional[datetime] = None,
    ) -> Optional[CommissionPolicy]:
        """Parsed, effective policy for an entity, going through the cache."""
        if source is None:
            return None

        if source.entity_id is None:
            policy = validate_commission_policy(source.document, origin.value)
        else:
            hit, policy = self.cache.get(origin.value, source.entity_id)
            if not hit:
                policy = validate_commission_policy(source.document, origin.value)
                self.cache.put(origin.value, source.entity_id, policy)

        return effective_policy(policy, origin.value, as_of)

    def invalidate_policy(self, origin: CommissionOrigin, entity_id=None) -> int:
        """Call after a policy edit so the next sale sees the new version."""
        removed = self.cache.invalidate(origin.value, entity_id)
        logger.info(f"Invalidated {removed} cached {origin.value} policies (entity={entity_id})")
        return removed

    # ==================== Resolution ====================

    def resolve(
        self,
        match_input: CommissionMatchInput,
        policies: Iterable[Tuple[CommissionOrigin, Optional[CommissionPolicy]]],
    ) -> CommissionSnapshot:
        """Resolve against already parsed policies, most specific first."""
        for origin, policy in policies:
            if policy is None:
                continue
            rule = find_matching_rule(policy, match_input)
            if rule is None:
                continue
            return CommissionSnapshot(
                percent=rule.percent,
                amount=commission_amount(match_input.amount, rule.percent),
                origin=origin,
                rule_id=rule.id,
            )

        logger.debug(
            f"No commission rule for lottery={match_input.lottery_id} "
            f"bet_type={match_input.bet_type.value} x={match_input.final_multiplier_x}"
        )
        return NO_COMMISSION

    def resolve_seller_commission(
        self,
        match_input: CommissionMatchInput,
        seller: Optional[PolicySource],
        window: Optional[PolicySource],
        bank: Optional[PolicySource],
        as_of: Optional[datetime] = None,
    ) -> CommissionSnapshot:
        """Seller commission: seller -> window -> bank."""
        return self.resolve(
            match_input,
            (
                (CommissionOrigin.SELLER, self.load_policy(CommissionOrigin.SELLER, seller, as_of)),
                (CommissionOrigin.WINDOW, self.load_policy(CommissionOrigin.WINDOW, window, as_of)),
                (CommissionOrigin.BANK, self.load_policy(CommissionOrigin.BANK, bank, as_of)),
            ),
        )

    def resolve_window_commission(
        self,
        match_input: CommissionMatchInput,
        window: Optional[PolicySource],
        bank: Optional[PolicySource],
        as_of: Optional[datetime] = None,
    ) -> CommissionSnapshot:
        """Window's own commission: window -> bank, sellers never participate."""
        snapshot = self.resolve(
            match_input,
            (
                (CommissionOrigin.WINDOW, self.load_policy(CommissionOrigin.WINDOW, window, as_of)),
                (CommissionOrigin.BANK, self.load_policy(CommissionOrigin.BANK, bank, as_of)),
            ),
        )
        if snapshot.origin is None:
            logger.warning(
                f"No window commission found for lottery={match_input.lottery_id} "
                f"bet_type={match_input.bet_type.value} x={match_input.final_multiplier_x}"
            )
        return snapshot


# Global resolver instance
_resolver: Optional[CommissionResolver] = None


def get_commission_resolver() -> CommissionResolver:
    """Get or create the global resolver (and its cache)."""
    global _resolver
    if _resolver is None:
        _resolver = CommissionResolver()
    return _resolver


def policy_source(entity) -> Optional[PolicySource]:
    """PolicySource for a Bank, Window or Seller row (None passes through)."""
    if entity is None:
        return None
    return PolicySource(entity.id, entity.commission_policy)


def apply_commission_snapshot(
    bet_line,
    lottery_id,
    seller=None,
    window=None,
    bank=None,
    resolver: Optional[CommissionResolver] = None,
    as_of: Optional[datetime] = None,
):
    """
    Price a bet line once and store both snapshots on it.

    The seller snapshot walks seller -> window -> bank, the window snapshot
    walks window -> bank. Snapshots are never recomputed afterwards.
    """
    resolver = resolver or get_commission_resolver()
    match_input = CommissionMatchInput(
        lottery_id=str(lottery_id),
        bet_type=bet_line.bet_type,
        final_multiplier_x=bet_line.final_multiplier_x,
        amount=bet_line.amount,
    )

    seller_snapshot = resolver.resolve_seller_commission(
        match_input, policy_source(seller), policy_source(window), policy_source(bank), as_of
    )
    window_snapshot = resolver.resolve_window_commission(
        match_input, policy_source(window), policy_source(bank), as_of
    )

    bet_line.commission_percent = seller_snapshot.percent
    bet_line.commission_amount = seller_snapshot.amount
    bet_line.commission_origin = seller_snapshot.origin.value if seller_snapshot.origin else None
    bet_line.commission_rule_id = seller_snapshot.rule_id

    bet_line.window_commission_percent = window_snapshot.percent
    bet_line.window_commission_amount = window_snapshot.amount
    bet_line.window_commission_origin = window_snapshot.origin.value if window_snapshot.origin else None
    bet_line.window_commission_rule_id = window_snapshot.rule_id

    return seller_snapshot, window_snapshot
