# =============================================
# File: companion/utils/optimistic.py
# Purpose: Optimistic toggle (like/unlike) with reconciliation against the authoritative result
# =============================================
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from loguru import logger


@dataclass(frozen=True)
class ToggleState:
    flag: bool
    count: int


Reader = Callable[[], ToggleState]
Writer = Callable[[ToggleState], None]


def optimistic_guess(original: ToggleState) -> ToggleState:
    delta = -1 if original.flag else 1
    return ToggleState(flag=not original.flag, count=max(0, original.count + delta))


def corrected_state(original: ToggleState, authoritative: bool) -> ToggleState:
    """State consistent with the server's answer, derived from the pre-toggle count."""
    if authoritative == original.flag:
        return original
    count = original.count + 1 if authoritative else max(0, original.count - 1)
    return ToggleState(flag=authoritative, count=count)


async def optimistic_toggle(
    read: Reader,
    write: Writer,
    remote: Callable[[], Awaitable[bool]],
    invalidate: Optional[Callable[[], Any]] = None,
) -> ToggleState:
    """
    Flip the flag locally before `remote` resolves, then converge:
      - remote agrees  -> keep the optimistic state (no extra write)
      - remote differs -> write the state matching the authoritative flag
      - remote raises or is cancelled -> restore the original state and re-raise
    `invalidate` runs in every case; when the remote call failed, an invalidation
    error is logged and the remote error is the one raised.
    """
    original = read()
    guess = optimistic_guess(original)
    write(guess)
    try:
        authoritative = bool(await remote())
    except BaseException:
        write(original)
        if invalidate is not None:
            try:
                invalidate()
            except Exception as e:
                logger.exception(f"[optimistic] invalidation after failed toggle raised: {e}")
        raise
    if invalidate is not None:
        invalidate()
    if authoritative != guess.flag:
        final = corrected_state(original, authoritative)
        write(final)
        return final
    return guess


def dict_accessors(
    item: Dict[str, Any],
    flag_field: str = "is_liked",
    count_field: str = "likes_count",
) -> Tuple[Reader, Writer]:
    """read/write pair over a plain dict (post, comment or nested reply)."""

    def read() -> ToggleState:
        return ToggleState(flag=bool(item.get(flag_field)), count=int(item.get(count_field) or 0))

    def write(state: ToggleState) -> None:
        item[flag_field] = state.flag
        item[count_field] = state.count

    return read, write
