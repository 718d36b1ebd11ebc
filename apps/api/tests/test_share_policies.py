from datetime import datetime, timedelta, timezone

import pytest

from services.share_credentials import hash_password, verify_password
from services.share_errors import (
    InvalidExpiry,
    InvalidViewLimit,
    PayloadTooLarge,
    ShareNotFound,
    ShareExpired,
    ShareValidationError,
)
from services.share_expiry import MAX_EXPIRY_MINUTES, ensure_utc, resolve_expiry
from services.share_ids import generate_share_id, is_valid_share_id
from services.share_requests import FilePayload, parse_share_form

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def test_resolve_expiry_defaults_to_ten_minutes():
    assert resolve_expiry(now=NOW) == NOW + timedelta(minutes=10)


def test_resolve_expiry_relative_minutes_bounds():
    assert resolve_expiry(1, now=NOW) == NOW + timedelta(minutes=1)
    assert resolve_expiry(MAX_EXPIRY_MINUTES, now=NOW) == NOW + timedelta(days=365)

    for bad in (0, -5, MAX_EXPIRY_MINUTES + 1, True, 2.5):
        with pytest.raises(InvalidExpiry):
            resolve_expiry(bad, now=NOW)


def test_resolve_expiry_absolute_wins_over_relative():
    target = NOW + timedelta(hours=3)
    assert resolve_expiry(5, target, now=NOW) == target


def test_resolve_expiry_rejects_past_and_far_future_instants():
    with pytest.raises(InvalidExpiry):
        resolve_expiry(absolute_at=NOW, now=NOW)
    with pytest.raises(InvalidExpiry):
        resolve_expiry(absolute_at=NOW - timedelta(seconds=1), now=NOW)
    with pytest.raises(InvalidExpiry):
        resolve_expiry(absolute_at=NOW + timedelta(days=365, seconds=1), now=NOW)

    assert resolve_expiry(absolute_at=NOW + timedelta(days=365), now=NOW) == NOW + timedelta(days=365)


def test_naive_instants_are_treated_as_utc():
    naive = datetime(2026, 10, 18, 13, 0)
    assert ensure_utc(naive) == NOW + timedelta(hours=1)
    assert resolve_expiry(absolute_at=naive, now=NOW) == NOW + timedelta(hours=1)


def test_password_hash_roundtrip_and_salting():
    first = hash_password("s3cret", iterations=1_000)
    second = hash_password("s3cret", iterations=1_000)

    assert first != second
    assert first.startswith("pbkdf2_sha256$1000$")
    assert "s3cret" not in first
    assert verify_password("s3cret", first)
    assert verify_password("s3cret", second)
    assert not verify_password("S3cret", first)
    assert not verify_password("", first)


def test_verify_password_rejects_malformed_hashes():
    assert not verify_password("s3cret", "")
    assert not verify_password("s3cret", "plain-text")
    assert not verify_password("s3cret", "bcrypt$10$abc$def")
    assert not verify_password("s3cret", "pbkdf2_sha256$many$abc$def")


def test_generated_share_ids_are_hex_and_distinct():
    ids = {generate_share_id() for _ in range(200)}

    assert len(ids) == 200
    assert all(len(value) == 12 and is_valid_share_id(value) for value in ids)
    assert len(generate_share_id(16)) == 16
    with pytest.raises(ValueError):
        generate_share_id(4)


def test_is_valid_share_id_rejects_path_like_values():
    assert not is_valid_share_id("")
    assert not is_valid_share_id("../etc/passwd")
    assert not is_valid_share_id("ABCDEF012345")
    assert not is_valid_share_id("abc")


def test_parse_share_form_treats_blank_fields_as_absent():
    request = parse_share_form(
        text="hello",
        password="",
        one_time_view="",
        expiry_minutes=" ",
        expiry_at="",
        max_views="",
    )

    assert request.text == "hello"
    assert request.password is None
    assert request.one_time_view is False
    assert request.expiry_minutes is None
    assert request.expiry_at is None
    assert request.view_limit is None


def test_parse_share_form_parses_typed_values():
    payload = FilePayload(filename="notes.txt", content=b"abc", mime_type="text/plain")
    request = parse_share_form(
        file=payload,
        password="pw",
        one_time_view="true",
        expiry_minutes="30",
        expiry_at="2026-10-19T08:00:00Z",
        max_views="3",
    )

    assert request.file.size == 3
    assert request.one_time_view is True
    assert request.expiry_minutes == 30
    assert request.expiry_at == datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
    assert request.view_limit == 3


def test_parse_share_form_rejects_unparseable_values():
    with pytest.raises(InvalidExpiry):
        parse_share_form(text="x", expiry_minutes="soon")
    with pytest.raises(InvalidExpiry):
        parse_share_form(text="x", expiry_at="tomorrow")
    with pytest.raises(InvalidViewLimit):
        parse_share_form(text="x", max_views="0")
    with pytest.raises(InvalidViewLimit):
        parse_share_form(text="x", max_views="many")
    with pytest.raises(ShareValidationError):
        parse_share_form(text="x", one_time_view="maybe")


def test_share_errors_expose_stable_reasons():
    assert ShareExpired().to_detail()["reason"] == ShareNotFound().to_detail()["reason"] == "not_found"
    assert isinstance(ShareExpired(), ShareNotFound)
    assert PayloadTooLarge().status_code == 413
    assert InvalidViewLimit().status_code == 400
