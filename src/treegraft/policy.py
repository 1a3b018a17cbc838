"""Write-access checks applied by callers before invoking the engine.

The engine performs only structural validation; deciding who may write
to which branch belongs to the request-handling layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from .exceptions import PermissionDeniedError


@dataclass(frozen=True, slots=True)
class AccessDecision:
    """Allow/deny verdict with a reason suitable for the caller."""

    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


class Authorizer(ABC):
    """Decides whether *actor* may write to *branch*."""

    @abstractmethod
    def check(self, actor: str, branch: str) -> AccessDecision: ...

    def require(self, actor: str, branch: str) -> None:
        """Raise PermissionDeniedError unless *actor* may write to *branch*."""
        decision = self.check(actor, branch)
        if not decision:
            raise PermissionDeniedError(decision.reason)


class ProtectedBranchAuthorizer(Authorizer):
    """Denies every write to a protected branch, allows everything else."""

    def __init__(self, protected: Iterable[str] = ("main",)):
        self.protected = frozenset(protected)

    def check(self, actor: str, branch: str) -> AccessDecision:
        if branch in self.protected:
            return AccessDecision(False, f"Cannot modify the protected branch '{branch}'.")
        return AccessDecision(True)
