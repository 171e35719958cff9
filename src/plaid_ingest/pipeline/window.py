"""Date window selection for incremental fetches."""

from datetime import date, datetime, timedelta
from typing import Optional, Tuple

from ..models.core import DATE_FORMAT


DEFAULT_INITIAL_LOOKBACK_DAYS = 800
DEFAULT_OVERLAP_DAYS = 10


def format_date(value) -> str:
    """Render a date the way the aggregation API expects it (YYYY-MM-DD)"""
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(DATE_FORMAT)


class WindowSelector:
    """Computes the date range for the next fetch.

    With no stored data the window reaches back far enough to cover the
    API's full history (about two years). Otherwise it starts a little
    before the most recent stored date, so transactions that settled late
    are picked up; the dedup filter drops the ones already stored.

    Assumes storage is sorted by date, most recent first.
    """

    def __init__(self,
                 initial_lookback_days: int = DEFAULT_INITIAL_LOOKBACK_DAYS,
                 overlap_days: int = DEFAULT_OVERLAP_DAYS,
                 today: Optional[date] = None):
        """
        Args:
            initial_lookback_days: Days to reach back when nothing is stored
            overlap_days: Days to re-fetch before the latest stored date
            today: Fixed current date, mainly for tests
        """
        if initial_lookback_days < 0 or overlap_days < 0:
            raise ValueError("Window constants must not be negative")
        self.initial_lookback_days = initial_lookback_days
        self.overlap_days = overlap_days
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    def select_start(self, latest_stored: Optional[date]) -> date:
        """Return the start date for the next fetch"""
        if latest_stored is None:
            return self.today - timedelta(days=self.initial_lookback_days)
        if isinstance(latest_stored, datetime):
            latest_stored = latest_stored.date()
        return latest_stored - timedelta(days=self.overlap_days)

    def select_window(self, latest_stored: Optional[date]) -> Tuple[date, date]:
        """Return (start, end) for the next fetch, ending today"""
        return self.select_start(latest_stored), self.today
