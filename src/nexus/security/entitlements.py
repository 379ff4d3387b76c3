from __future__ import annotations

"""Per user-type quotas.

The table must cover every ``UserType``; a missing entry is a configuration
error raised at import time rather than at request time.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from ..errors import ChatError


class UserType(str, Enum):
    GUEST = "guest"
    REGULAR = "regular"


@dataclass(frozen=True)
class Entitlements:
    max_messages_per_day: int


ENTITLEMENTS_BY_USER_TYPE: Dict[UserType, Entitlements] = {
    # Users without an account
    UserType.GUEST: Entitlements(max_messages_per_day=20),
    # Users with an account
    UserType.REGULAR: Entitlements(max_messages_per_day=50),
}


class EntitlementConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    reason: Optional[str] = None
    limit: int = 0
    used: int = 0


def validate_entitlements(table: Mapping[UserType, Entitlements] = ENTITLEMENTS_BY_USER_TYPE) -> None:
    missing = [ut.value for ut in UserType if ut not in table]
    if missing:
        raise EntitlementConfigError(f"Missing entitlements for user types: {', '.join(missing)}")
    for user_type, ent in table.items():
        if ent.max_messages_per_day < 0:
            raise EntitlementConfigError(f"Negative quota for user type {user_type.value}")


def entitlements_for(user_type: UserType | str) -> Entitlements:
    return ENTITLEMENTS_BY_USER_TYPE[UserType(user_type)]


def check_quota(user_type: UserType | str, messages_sent_today: int) -> QuotaDecision:
    limit = entitlements_for(user_type).max_messages_per_day
    used = max(0, int(messages_sent_today))
    if used >= limit:
        return QuotaDecision(allowed=False, reason="quota_exceeded", limit=limit, used=used)
    return QuotaDecision(allowed=True, limit=limit, used=used)


def enforce_quota(user_type: UserType | str, messages_sent_today: int) -> QuotaDecision:
    decision = check_quota(user_type, messages_sent_today)
    if not decision.allowed:
        raise ChatError("quota_exceeded:chat")
    return decision


validate_entitlements()
