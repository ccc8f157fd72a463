# flask-app/models.py

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from utils import same_address, utcnow


class Role(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"


class AccessDuration(str, Enum):
    """How long a grant stays active after it is created."""

    ONE_DAY = "1-day"
    SEVEN_DAYS = "7-days"
    THIRTY_DAYS = "30-days"
    PERMANENT = "permanent"

    @property
    def lifetime(self) -> Optional[timedelta]:
        """None for permanent grants."""
        return _LIFETIMES[self]


_LIFETIMES = {
    AccessDuration.ONE_DAY: timedelta(days=1),
    AccessDuration.SEVEN_DAYS: timedelta(days=7),
    AccessDuration.THIRTY_DAYS: timedelta(days=30),
    AccessDuration.PERMANENT: None,
}


class StoredModel(BaseModel):
    """Base for persisted entities; camelCase on the wire and on disk."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value):
        # Older data files may carry naive timestamps
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_json(self):
        return self.model_dump(mode="json", by_alias=True)


class User(StoredModel):
    address: str
    role: Role


class MedicalRecord(StoredModel):
    """Record metadata. file_hash and transaction_hash are simulated values."""

    title: str
    record_type: str
    record_date: str
    patient_address: str
    file_path: str
    file_hash: str
    transaction_hash: str

    def is_owned_by(self, address):
        return same_address(self.patient_address, address)


class AccessGrant(StoredModel):
    """Time-boxed visibility for one doctor into a subset of a patient's records."""

    patient_address: str
    doctor_address: str
    record_ids: List[int] = Field(min_length=1)
    duration: AccessDuration

    @field_validator("record_ids")
    @classmethod
    def _unique_ids(cls, value):
        return list(dict.fromkeys(value))

    def expires_at(self) -> Optional[datetime]:
        lifetime = self.duration.lifetime
        if lifetime is None:
            return None
        return self.created_at + lifetime

    def is_expired(self, now=None) -> bool:
        expires_at = self.expires_at()
        if expires_at is None:
            return False
        return (now or utcnow()) >= expires_at

    def links(self, patient_address, doctor_address) -> bool:
        return (same_address(self.patient_address, patient_address)
                and same_address(self.doctor_address, doctor_address))

    def covers(self, record_id) -> bool:
        return record_id in self.record_ids

    def to_api(self, now=None):
        """JSON form plus computed expiry information for display."""
        data = self.to_json()
        expires_at = self.expires_at()
        data["expiresAt"] = expires_at.isoformat() if expires_at else None
        data["isExpired"] = self.is_expired(now)
        return data
