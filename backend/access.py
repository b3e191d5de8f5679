# access.py
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from errors import Forbidden, Unauthorized
from schemas import ProfileRecord

STUDENT = "student"
MENTOR = "mentor"
ADMIN = "admin"

AUTHORS = (MENTOR, ADMIN)


@dataclass(frozen=True)
class Allowed:
    profile: ProfileRecord


@dataclass(frozen=True)
class Denied:
    reason: str          # "unauthenticated" | "forbidden"
    message: str


Decision = Union[Allowed, Denied]


def check_access(profile: Optional[ProfileRecord], allowed_roles: Optional[Iterable[str]] = None) -> Decision:
    """Single capability check used by every protected route.

    `allowed_roles=None` means any signed-in profile.
    """
    if profile is None:
        return Denied("unauthenticated", "Unauthorized")
    if allowed_roles is not None and profile.role not in set(allowed_roles):
        return Denied("forbidden", "Forbidden")
    return Allowed(profile)


def enforce(decision: Decision) -> ProfileRecord:
    if isinstance(decision, Allowed):
        return decision.profile
    if decision.reason == "unauthenticated":
        raise Unauthorized(decision.message)
    raise Forbidden(decision.message)
