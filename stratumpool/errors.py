"""Errors raised while serving Stratum clients.

Any of these propagating out of a message handler means the miner
misbehaved and its connection should be closed.
"""

from __future__ import annotations


class StratumError(Exception):
    """Base class for every error the Stratum server raises."""


class InvalidMethod(StratumError):
    """The client called a method the server does not know."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Invalid stratum method: {method}")


class InvalidParams(StratumError):
    """The parameters of a request were missing or malformed."""

    def __init__(self) -> None:
        super().__init__("Invalid parameters provided")


class AuthorizationFailure(StratumError):
    """A mining.authorize request was refused."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Authorization failed {reason}")


class SubmitFailure(StratumError):
    """A mining.submit request was refused."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Submit failure: {reason}")


class SubscriptionFailure(StratumError):
    """A mining.subscribe request was refused."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Subscription failure: {reason}")


class StratumIOError(StratumError):
    """An I/O error happened on the client connection."""

    def __init__(self, error: OSError) -> None:
        self.error = error
        super().__init__(f"IO error: {error}")
        self.__cause__ = error