"""
Owner references for stories and reactions.

A story is owned either by an anonymous browser identity (a client-generated
id kept in local storage) or by an authenticated user. Both are persisted as a
``(kind, id)`` pair so the same ownership check applies to every write path.
"""

from dataclasses import dataclass
from typing import Optional, Union

from common.errors import ValidationError

ANONYMOUS = "anonymous"
AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class AnonymousOwner:
    client_id: str

    @property
    def kind(self) -> str:
        return ANONYMOUS

    @property
    def ref(self) -> str:
        return self.client_id


@dataclass(frozen=True)
class AuthenticatedOwner:
    user_id: str

    @property
    def kind(self) -> str:
        return AUTHENTICATED

    @property
    def ref(self) -> str:
        return self.user_id


Owner = Union[AnonymousOwner, AuthenticatedOwner]


def find_owner(claims: Optional[dict], client_id: Optional[str]) -> Optional[Owner]:
    """
    Pick the owner reference for a request.

    Verified token claims win over a client id; returns None when neither
    is present.
    """
    if claims and claims.get("sub"):
        return AuthenticatedOwner(user_id=str(claims["sub"]))
    if client_id and client_id.strip():
        return AnonymousOwner(client_id=client_id.strip())
    return None


def resolve_owner(claims: Optional[dict], client_id: Optional[str]) -> Owner:
    """Like find_owner, but an owner reference is mandatory."""
    owner = find_owner(claims, client_id)
    if owner is None:
        raise ValidationError("Owner reference required")
    return owner
