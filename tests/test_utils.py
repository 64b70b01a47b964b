from datetime import datetime, timezone

from bfflix.cancellation import OperationScope
from bfflix.utils import encode_data_url, is_image_data_url, parse_datetime, parse_year


def test_parse_datetime_accepts_iso_and_epoch_millis():
    assert parse_datetime("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert parse_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert parse_datetime("2024-05-01T10:00:00").tzinfo is timezone.utc
    assert parse_datetime("yesterday") is None
    assert parse_datetime(True) is None


def test_parse_year_from_dates_and_ints():
    assert parse_year("2016-11-11") == 2016
    assert parse_year(1999) == 1999
    assert parse_year(42) is None
    assert parse_year(True) is None


def test_data_urls_round_trip_the_mime_type():
    url = encode_data_url(b"\x89PNG", "image/png")
    assert url.startswith("data:image/png;base64,")
    assert is_image_data_url(url)
    assert not is_image_data_url("data:text/plain;base64,aGk=")


def test_operation_tokens_track_supersession_and_teardown():
    scope = OperationScope("feed")
    first = scope.issue()
    second = scope.issue()

    assert not first.current and first.superseded
    assert second.current

    scope.invalidate()
    assert not second.current

    third = scope.issue()
    scope.close()
    assert third.cancelled and not third.current
    assert "closed" in repr(scope)
