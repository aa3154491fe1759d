# Commission resolution
from lotto_ledger.services.commission.policy_cache import PolicyCache
from lotto_ledger.services.commission.policy_parser import (
    parse_commission_policy, validate_commission_policy,
)
from lotto_ledger.services.commission.rule_matcher import find_matching_rule, rule_matches
from lotto_ledger.services.commission.resolver import (
    CommissionResolver,
    PolicySource,
    apply_commission_snapshot,
    commission_amount,
    get_commission_resolver,
    policy_source,
)

__all__ = [
    "PolicyCache",
    "parse_commission_policy",
    "validate_commission_policy",
    "find_matching_rule",
    "rule_matches",
    "CommissionResolver",
    "PolicySource",
    "apply_commission_snapshot",
    "commission_amount",
    "get_commission_resolver",
    "policy_source",
]
