"""First-match rule lookup within a single policy."""
from typing import Optional

from lotto_ledger.schemas.commission import CommissionPolicy, CommissionRule, CommissionMatchInput


def rule_matches(rule: CommissionRule, match_input: CommissionMatchInput) -> bool:
    """
    Unset lottery_id / bet_type / multiplier_range are wildcards.
    The multiplier range is inclusive and only checked when the bet line
    carries a multiplier.
    """
    if rule.lottery_id is not None and rule.lottery_id != match_input.lottery_id:
        return False

    if rule.bet_type is not None and rule.bet_type != match_input.bet_type:
        return False

    if rule.multiplier_range is not None and match_input.final_multiplier_x is not None:
        if not rule.multiplier_range.contains(match_input.final_multiplier_x):
            return False

    return True


def find_matching_rule(
    policy: CommissionPolicy,
    match_input: CommissionMatchInput,
) -> Optional[CommissionRule]:
    """Stored order is the precedence; defaultPercent is never used here."""
    for rule in policy.rules:
        if rule_matches(rule, match_input):
            return rule
    return None
