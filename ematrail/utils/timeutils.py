"""
Timezone and trading window utilities.

This module centralises all timezone handling.  The engine itself never
looks at the clock to decide whether entries are allowed; the session
runners call `entries_allowed()` for each bar and pass the answer in.
"""

from __future__ import annotations

from datetime import time
import pandas as pd

from ..config.schema import SessionConfig


def parse_time_str(ts: str) -> time:
    """Parse a `HH:MM` string into a `datetime.time` object.

    Parameters
    ----------
    ts : str
        A string in 24‑hour format such as ``"08:30"``.

    Returns
    -------
    datetime.time
        The corresponding time.
    """
    hour, minute = map(int, ts.split(":"))
    return time(hour=hour, minute=minute)


def to_timezone(ts: pd.Timestamp, tz_name: str) -> pd.Timestamp:
    """Convert a `pandas.Timestamp` to the specified timezone.

    If the timestamp is naive, it is assumed to be in UTC before
    conversion.  If it already has a timezone, it will be converted.
    """
    if not isinstance(ts, pd.Timestamp):
        ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(tz_name)


def is_in_session(ts: pd.Timestamp, session_start: time, session_end: time, tz_name: str) -> bool:
    """Check whether `ts` is within the trading window.

    The timestamp is converted to the given timezone and its wall-clock
    time is compared to the start and end times.  Both ends are
    inclusive.
    """
    local_ts = to_timezone(ts, tz_name)
    current_time = local_ts.time()
    return session_start <= current_time <= session_end


def entries_allowed(ts: pd.Timestamp, session: SessionConfig) -> bool:
    """Whether new positions may be opened on the bar stamped `ts`."""
    if not session.use_time_filter:
        return True
    return is_in_session(ts, parse_time_str(session.start), parse_time_str(session.end), session.timezone)


def describe_session(session: SessionConfig) -> str:
    return f"{session.start}-{session.end} {session.timezone}"
