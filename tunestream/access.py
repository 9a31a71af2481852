from dataclasses import dataclass
from typing import Annotated, Protocol

from fastapi import Header, Path

from tunestream.depends import Injected
from tunestream.errors import AccessDenied, AuthenticationRequired


class AccessPolicy(Protocol):
    async def authorize(self, caller: str | None, resource_id: str) -> bool: ...


class PublicAccess(AccessPolicy):
    async def authorize(self, caller: str | None, resource_id: str) -> bool:
        return True


@dataclass
class TokenAccess(AccessPolicy):
    """Only callers presenting one of a fixed set of bearer tokens may stream."""

    tokens: frozenset[str]

    async def authorize(self, caller: str | None, resource_id: str) -> bool:
        return caller is not None and caller in self.tokens


def caller_from_header(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_access(
    resource_id: Annotated[str, Path()],
    policy: Injected[AccessPolicy],
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    caller = caller_from_header(authorization)
    if await policy.authorize(caller, resource_id):
        return caller
    if caller is None:
        raise AuthenticationRequired()
    raise AccessDenied()
