from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from models import AccessDuration, AccessGrant, MedicalRecord, User

CREATED = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_grant(duration="7-days", record_ids=(1,)):
    return AccessGrant(
        id=1,
        patient_address="0xP",
        doctor_address="0xD",
        record_ids=list(record_ids),
        duration=duration,
        created_at=CREATED,
    )


@pytest.mark.parametrize("duration, lifetime", [
    ("1-day", timedelta(days=1)),
    ("7-days", timedelta(days=7)),
    ("30-days", timedelta(days=30)),
    ("permanent", None),
])
def test_duration_lifetimes(duration, lifetime):
    assert AccessDuration(duration).lifetime == lifetime


def test_grant_expiry_is_computed_from_creation():
    grant = make_grant("7-days")

    assert grant.expires_at() == CREATED + timedelta(days=7)
    assert not grant.is_expired(CREATED + timedelta(days=6, hours=23))
    assert grant.is_expired(CREATED + timedelta(days=7))


def test_permanent_grant_has_no_expiry():
    grant = make_grant("permanent")

    assert grant.expires_at() is None
    assert not grant.is_expired(CREATED + timedelta(days=10000))


def test_grant_requires_record_ids():
    with pytest.raises(ValidationError):
        make_grant(record_ids=())


def test_grant_rejects_unknown_duration():
    with pytest.raises(ValidationError):
        make_grant(duration="2-weeks")


def test_grant_record_ids_are_deduplicated_in_order():
    assert make_grant(record_ids=(3, 1, 3, 2, 1)).record_ids == [3, 1, 2]


def test_grant_links_addresses_case_insensitively():
    grant = make_grant()

    assert grant.links("0xp", "0XD")
    assert not grant.links("0xD", "0xP")
    assert grant.covers(1) and not grant.covers(2)


def test_grant_api_form_adds_expiry_fields():
    data = make_grant("1-day").to_api(now=CREATED + timedelta(days=2))

    assert data["recordIds"] == [1]
    assert data["patientAddress"] == "0xP"
    assert data["expiresAt"].startswith("2024-01-02T12:00:00")
    assert data["isExpired"] is True


def test_record_ownership_and_wire_names():
    record = MedicalRecord(
        id=7,
        title="Lab A",
        record_type="lab-result",
        record_date="2024-01-01",
        patient_address="0xAbC",
        file_path="/tmp/lab.pdf",
        file_hash="ab" * 32,
        transaction_hash="0x" + "cd" * 32,
    )

    assert record.is_owned_by("0xabc")
    assert not record.is_owned_by("0xdef")
    data = record.to_json()
    assert data["recordType"] == "lab-result"
    assert data["transactionHash"].startswith("0x")
    assert isinstance(data["createdAt"], str)


def test_user_accepts_camel_case_payload():
    user = User.model_validate({"id": 1, "address": "0xP", "role": "doctor",
                                "createdAt": "2024-01-01T00:00:00Z"})

    assert user.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert user.to_json()["role"] == "doctor"
