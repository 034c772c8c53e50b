"""Tests for time window and pagination helpers."""

from datetime import datetime, timedelta

import pytest

from archives.core.errors import InvalidParameterError
from archives.core.time_range import last_hours, last_minutes, paginate

pytestmark = pytest.mark.tier(0)


class TestTimeWindows:
    """Tests for last_minutes() and last_hours()."""

    @pytest.mark.core
    def test_last_minutes_ends_now(self, frozen_clock: datetime) -> None:
        """last_minutes ends at the current time."""
        window = last_minutes(10)
        assert window.end == frozen_clock
        assert window.start == frozen_clock - timedelta(minutes=10)

    @pytest.mark.core
    def test_last_hours_ends_now(self, frozen_clock: datetime) -> None:
        """last_hours spans the requested number of hours."""
        window = last_hours(24)
        assert window.end == frozen_clock
        assert window.end - window.start == timedelta(hours=24)

    @pytest.mark.core
    def test_windows_are_utc(self, frozen_clock: datetime) -> None:
        """Both window bounds are in UTC."""
        window = last_hours(1)
        assert window.start.utcoffset() == timedelta(0)
        assert window.end.utcoffset() == timedelta(0)


class TestPaginate:
    """Tests for paginate() defaults."""

    @pytest.mark.core
    def test_omitted_values_use_defaults(self) -> None:
        """Omitted values take the default offset and limit."""
        page = paginate()
        assert (page.offset, page.limit) == (0, 100)

    @pytest.mark.core
    def test_explicit_values_are_kept(self) -> None:
        """Explicit offset and limit are kept."""
        page = paginate(offset=20, limit=5)
        assert (page.offset, page.limit) == (20, 5)

    @pytest.mark.core
    def test_only_limit_given(self) -> None:
        """Giving only a limit still starts at offset zero."""
        assert paginate(limit=7).offset == 0

    @pytest.mark.core
    def test_invalid_values_are_rejected(self) -> None:
        """Invalid values raise InvalidParameterError."""
        with pytest.raises(InvalidParameterError):
            paginate(limit=0)
