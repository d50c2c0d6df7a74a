"""
===============================================================================
  Market Hours: exchange session boundaries and freshness keys
===============================================================================

The exchange runs Monday-Friday, 09:15 → 15:30 local time.  Local time is a
fixed UTC offset (config.MARKET_UTC_OFFSET_MINUTES, IST by default), so no
DST handling is needed.  Exchange holidays are not modelled: every weekday
is treated as a trading day.

All public functions accept aware datetimes in any zone (naive values are
taken as UTC) and return aware UTC datetimes.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

import config as cfg

MARKET_TZ = timezone(timedelta(minutes=cfg.MARKET_UTC_OFFSET_MINUTES))

_OPEN = time(cfg.MARKET_OPEN["hour"], cfg.MARKET_OPEN["minute"])
_CLOSE = time(cfg.MARKET_CLOSE["hour"], cfg.MARKET_CLOSE["minute"])


def utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Aware UTC copy of *dt* (naive input is treated as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_market_time(dt: datetime) -> datetime:
    """Convert *dt* to exchange-local time (naive input is treated as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(MARKET_TZ)


def _at_local(day: date, at: time) -> datetime:
    """UTC instant of local wall-clock *at* on *day*."""
    return datetime.combine(day, at, tzinfo=MARKET_TZ).astimezone(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
#  TRADING DAYS
# ═════════════════════════════════════════════════════════════════════════════

def is_trading_day(day: date) -> bool:
    return day.weekday() < 5  # Mon=0 … Fri=4


def next_trading_day(day: date) -> date:
    """First weekday strictly after *day*."""
    nxt = day + timedelta(days=1)
    while not is_trading_day(nxt):
        nxt += timedelta(days=1)
    return nxt


def previous_trading_day(day: date) -> date:
    """Last weekday strictly before *day*."""
    prev = day - timedelta(days=1)
    while not is_trading_day(prev):
        prev -= timedelta(days=1)
    return prev


def is_market_open(now: Optional[datetime] = None) -> bool:
    local = to_market_time(now or utcnow())
    if not is_trading_day(local.date()):
        return False
    return _OPEN <= local.time() < _CLOSE


# ═════════════════════════════════════════════════════════════════════════════
#  SESSION BOUNDARIES
# ═════════════════════════════════════════════════════════════════════════════

def get_next_market_open(from_dt: Optional[datetime] = None) -> datetime:
    """
    Next session open (09:15 local) as UTC.

    If local time is already at or past today's open, the search starts
    from the following calendar day; weekends are then skipped.  A
    Friday evening therefore yields Monday 09:15, never a weekend.
    """
    local = to_market_time(from_dt or utcnow())
    day = local.date()
    if local.time() >= _OPEN:
        day += timedelta(days=1)
    while not is_trading_day(day):
        day += timedelta(days=1)
    return _at_local(day, _OPEN)


def calculate_valid_until(reference: Union[date, datetime]) -> datetime:
    """
    Validity end for an analysis built from *reference*'s data: the open of
    the first trading day after the reference date.
    """
    if isinstance(reference, datetime):
        reference = to_market_time(reference).date()
    return _at_local(next_trading_day(reference), _OPEN)


def get_session_close_validity(now: Optional[datetime] = None) -> datetime:
    """
    Market-hours-aware window: today's close while today's session has not
    closed yet, otherwise the next trading day's close.

      Friday 14:00 → Friday 15:30
      Friday 16:00 → Monday 15:30
    """
    local = to_market_time(now or utcnow())
    day = local.date()
    if is_trading_day(day) and local.time() < _CLOSE:
        return _at_local(day, _CLOSE)
    return _at_local(next_trading_day(day), _CLOSE)


def last_completed_session(now: Optional[datetime] = None) -> date:
    """Date of the most recent session whose closing data exists."""
    local = to_market_time(now or utcnow())
    day = local.date()
    if is_trading_day(day) and local.time() >= _CLOSE:
        return day
    return previous_trading_day(day)


def freshness_key(now: Optional[datetime] = None) -> str:
    """
    Identifier of the closing data that is authoritative at *now*
    ("YYYY-MM-DD" of the last completed session).  A card computed under
    one key stays valid until this value changes.
    """
    return last_completed_session(now).isoformat()
