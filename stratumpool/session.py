"""Per-connection state for a Stratum miner."""

from __future__ import annotations

import secrets

EXTRANONCE2_SIZE = 8
"""Size in bytes of the extranonce2 the miner rolls."""


def _swap_bytes(value: int) -> int:
    """Reverse the byte order of a 32-bit unsigned integer."""
    return int.from_bytes(value.to_bytes(4, "big"), "little")


class Session:
    """State of one miner connection: ids, extranonce1 and difficulty."""

    def __init__(self, minimum_difficulty: int) -> None:
        raw_id = secrets.randbits(32)
        self.id: str = f"{raw_id:08x}"
        self.enonce1: str = f"{raw_id:08x}"
        self.enonce1_inverted: str = f"{_swap_bytes(raw_id):08x}"
        self.subscribed: bool = False
        self.username: str | None = None
        self.password: str | None = None
        self.minimum_difficulty: int = minimum_difficulty
        self.current_difficulty: int = minimum_difficulty

    def recalculate_difficulty(self) -> int:
        """Recalculate and return the current difficulty of the session."""
        return self.current_difficulty