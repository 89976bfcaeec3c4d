"""Linear vesting with a cliff.

All three streams share the same vesting start: the end of the presale
window. Nothing vests before ``start + cliff``; afterwards the vested amount
grows linearly from ``start`` and reaches the full allocation at
``start + duration``. Released amounts only ever grow by values previously
returned from :func:`withdrawable`, so the result is never negative.
"""

from presale.core.types import VestingSchedule, VestingState


def vested(schedule: VestingSchedule, total_allocated: int, vesting_start: int, now: int) -> int:
    """Amount vested at ``now`` regardless of what was already released."""
    if now < vesting_start + schedule.cliff:
        return 0
    if now < vesting_start + schedule.duration:
        return total_allocated * (now - vesting_start) // schedule.duration
    return total_allocated


def withdrawable(schedule: VestingSchedule, state: VestingState, vesting_start: int, now: int) -> int:
    """Amount that can be released at ``now``.

    Args:
        schedule: Cliff and duration of the stream
        state: Allocated and already released totals
        vesting_start: Presale end timestamp
        now: Current timestamp

    Returns:
        Withdrawable amount in base units
    """
    return vested(schedule, state.total_allocated, vesting_start, now) - state.released
