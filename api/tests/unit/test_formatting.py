"""
Tests de las utilidades de formato de items.
"""
from zotsync.shared.utils.formatting import (
    format_date,
    format_duration,
    package_creators,
    stringify_creators,
    truncate,
)


def test_format_duration_by_magnitude():
    assert format_duration(9244) == "2:34:04"
    assert format_duration(2722) == "45:22"
    assert format_duration(27) == "0:27"
    assert format_duration(3600) == "1:00:00"
    assert format_duration(None) == ""


def test_format_date_converts_iso_to_utc():
    assert format_date("2020-12-07T21:55:43.000Z") == "2020-12-07 21:55:43"
    assert format_date("2020-12-07T16:55:43-05:00") == "2020-12-07 21:55:43"


def test_format_date_leaves_other_values_untouched():
    assert format_date("December 2020") == "December 2020"
    assert format_date(None) is None


def test_package_creators_defaults_to_placeholder():
    assert package_creators([], []) == [{"creatorType": "contributor", "name": "Unknown"}]


def test_package_creators_merges_names():
    creators = package_creators(["John C.", "", "Marjorie"], ["Smith", "Johnson", ""])
    assert creators == [
        {"creatorType": "contributor", "firstName": "John C.", "lastName": "Smith"},
        {"creatorType": "contributor", "name": "Johnson"},
        {"creatorType": "contributor", "name": "Marjorie"},
    ]


def test_stringify_creators_uses_serial_comma():
    people = [
        {"firstName": "Ada", "lastName": "Lovelace"},
        {"name": "USGS"},
        {"firstName": "Marie", "lastName": "Tharp"},
    ]
    assert stringify_creators(people) == "Ada Lovelace, USGS, and Marie Tharp"
    assert stringify_creators(people[:2]) == "Ada Lovelace and USGS"
    assert stringify_creators(people[:1], full_name=False) == "Lovelace"


def test_truncate():
    assert truncate("abc", 5) == "abc"
    assert truncate("abcdef", 3) == "abc…"
