from __future__ import annotations

"""Single-owner access control for chats and documents.

Denials are checked in a fixed order: missing caller, missing resource,
owner match, public read. Non-owners of a private resource get ``forbidden``;
the router layer decides when that should be reported as ``not_found``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import ChatError


logger = logging.getLogger(__name__)


class Right(str, Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    kind: Optional[str] = None


ALLOW = AccessDecision(allowed=True)


def check_access(
    owner_id: Optional[str],
    caller_id: Optional[str],
    right: Right = Right.READ,
    visibility: str = "private",
) -> AccessDecision:
    if not caller_id:
        return AccessDecision(allowed=False, kind="unauthorized")
    if owner_id is None:
        return AccessDecision(allowed=False, kind="not_found")
    if owner_id == caller_id:
        return ALLOW
    if right == Right.READ and visibility == "public":
        return ALLOW
    return AccessDecision(allowed=False, kind="forbidden")


def authorize(
    owner_id: Optional[str],
    caller_id: Optional[str],
    right: Right,
    *,
    surface: str,
    visibility: str = "private",
) -> None:
    """Raise ``ChatError(<kind>:<surface>)`` unless the caller may use the resource."""
    decision = check_access(owner_id, caller_id, right, visibility)
    if decision.allowed:
        return
    if decision.kind == "forbidden":
        logger.info("Denied %s on %s for caller %s", right.value, surface, caller_id)
    raise ChatError(f"{decision.kind}:{surface}")
