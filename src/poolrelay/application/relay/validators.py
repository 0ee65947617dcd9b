"""Pure validation and timing functions for the relay pipeline.

These functions contain business rules that can be tested in isolation
without repositories or infrastructure.
"""

from __future__ import annotations

import secrets
from typing import Callable, Optional

import base58

from ...domain.errors import InvalidAddress

ADDRESS_BYTES = 32


def validate_address(address: str) -> str:
    """Validate a base58 ledger address. Pure function.

    Raises:
        InvalidAddress: If the string is not base58 or does not decode to 32 bytes.
    """
    candidate = address.strip() if address else ""
    if not candidate:
        raise InvalidAddress("Address is empty")
    try:
        raw = base58.b58decode(candidate)
    except ValueError as e:
        raise InvalidAddress(f"Address is not valid base58: {e}") from e
    if len(raw) != ADDRESS_BYTES:
        raise InvalidAddress(
            f"Address must decode to {ADDRESS_BYTES} bytes, got {len(raw)}"
        )
    return candidate


def compute_backoff_ms(attempts: int, base_backoff_ms: int) -> int:
    """Exponential backoff. ``attempts`` counts failures so far, including this one."""
    return (2**attempts) * base_backoff_ms


def draw_jitter_ms(
    jitter_max_ms: int, rng: Optional[Callable[[int], int]] = None
) -> int:
    """Uniform delay in ``[0, jitter_max_ms]`` from a CSPRNG by default."""
    if jitter_max_ms <= 0:
        return 0
    draw = rng or secrets.randbelow
    return draw(jitter_max_ms + 1)


def next_scheduled_for(previous: int, now_ms: int, delay_ms: int) -> int:
    """Next schedule time, never earlier than the previous one."""
    return max(previous, now_ms + delay_ms)
