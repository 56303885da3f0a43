"""Parsing of request values"""
from datetime import datetime, timedelta, timezone

import pytest

from clinicdesk.errors import ValidationError
from clinicdesk.utils.parsing import parse_datetime


def test_naive_datetime_is_kept():
    assert parse_datetime('2030-01-07T09:30') == datetime(2030, 1, 7, 9, 30)


def test_offset_is_converted_to_utc():
    assert parse_datetime('2030-01-07T09:30:00+02:00', local=False) == datetime(2030, 1, 7, 7, 30)


def test_offset_is_converted_to_clinic_time():
    aware = datetime(2030, 1, 7, 9, 30, tzinfo=timezone(timedelta(hours=-7)))

    assert parse_datetime(aware.isoformat()) == aware.astimezone().replace(tzinfo=None)


def test_bad_datetime():
    with pytest.raises(ValidationError) as exc:
        parse_datetime('next monday', 'scheduled_at')
    assert exc.value.field == 'scheduled_at'
