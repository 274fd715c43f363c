"""
Errors raised by the windowing core.

Configuration problems never reach this module: ``WindowingConfig`` rejects
them when the config is loaded. What remains are violations of the per-user
input contract, which must fail that one user's walk without stopping the run.
"""

from __future__ import annotations


class SessionContractError(ValueError):
    """Raised when a user's session list breaks the input contract.

    Attributes:
        user_id: The user whose walk was rejected.
        reason:  Human-readable description of the violation.
    """

    def __init__(self, user_id: str, reason: str) -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Invalid sessions for user '{user_id}': {reason}")
