"""Commission policy document parsing (fail closed)."""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from lotto_ledger.schemas.commission import CommissionPolicy

logger = logging.getLogger(__name__)


def validate_commission_policy(document: Any, origin: str) -> Optional[CommissionPolicy]:
    """
    Validate the structure of a raw policy document.

    Returns None when the document is missing or malformed (logged as
    WARNING). Never raises: pricing must not block on a bad policy edit.
    """
    if not document:
        return None
    if isinstance(document, CommissionPolicy):
        return document
    if not isinstance(document, dict):
        logger.warning(f"Commission policy ({origin}) is not an object: {type(document).__name__}")
        return None

    try:
        return CommissionPolicy.model_validate(document)
    except ValidationError as e:
        logger.warning(
            f"Malformed commission policy ({origin}) ignored: "
            f"{e.error_count()} errors, first: {e.errors()[0]['msg']}"
        )
        return None


def parse_commission_policy(
    document: Any,
    origin: str,
    as_of: Optional[datetime] = None,
) -> Optional[CommissionPolicy]:
    """Validate a document and drop it when outside its effective window."""
    policy = validate_commission_policy(document, origin)
    if policy is None:
        return None
    return effective_policy(policy, origin, as_of)


def effective_policy(
    policy: Optional[CommissionPolicy],
    origin: str,
    as_of: Optional[datetime] = None,
) -> Optional[CommissionPolicy]:
    if policy is None:
        return None
    as_of = as_of or datetime.now(timezone.utc)
    if not policy.is_effective(as_of):
        logger.info(
            f"Commission policy ({origin}) not in effect at {as_of.isoformat()} "
            f"(from={policy.effective_from}, to={policy.effective_to})"
        )
        return None
    return policy
