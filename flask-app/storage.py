# flask-app/storage.py

"""In-memory stores for users, medical records and access grants.

One ``Storage`` object is built at start-up and handed to the Flask app. Every
public operation runs under a single re-entrant lock, so ownership checks and
the mutation they guard are never interleaved with another request, and the
JSON document is rewritten after each successful mutation.
"""

import logging
import os
import threading
from contextlib import contextmanager

from errors import Conflict, InvalidInput
from models import AccessDuration, AccessGrant, MedicalRecord, Role, User
from persistence import next_id
from utils import generate_file_hash, generate_transaction_hash, same_address, utcnow

logger = logging.getLogger(__name__)


class Storage:

    def __init__(self, persistence, enforce_expiry=True):
        self.persistence = persistence
        self.enforce_expiry = enforce_expiry
        self._lock = threading.RLock()

        self.users, self.records, self.grants = persistence.load()
        self._user_id = next_id(self.users)
        self._record_id = next_id(self.records)
        self._grant_id = next_id(self.grants)

    @contextmanager
    def transaction(self):
        """Holds the store lock so a route can check access and then mutate without interleaving."""
        with self._lock:
            yield self

    # --- Persistence ---

    def _save(self):
        # In-memory state is kept even when the write fails.
        try:
            self.persistence.save(self.users, self.records, self.grants)
        except OSError:
            logger.exception("Error saving data to %s", self.persistence.data_file)

    # --- Address Registry ---

    def get_user(self, user_id):
        with self._lock:
            return self.users.get(user_id)

    def get_user_by_address(self, address):
        with self._lock:
            return next(
                (user for user in self.users.values() if same_address(user.address, address)),
                None,
            )

    def user_exists(self, address):
        """Role registered for the address, or None."""
        user = self.get_user_by_address(address)
        return user.role if user else None

    def register_user(self, address, role):
        with self._lock:
            if self.get_user_by_address(address):
                raise Conflict("User already exists")
            user = User(id=self._user_id, address=address, role=Role(role), created_at=utcnow())
            self._user_id += 1
            self.users[user.id] = user
            self._save()
        logger.info("Registered %s as %s (user %d)", address, user.role.value, user.id)
        return user

    # --- Record Store ---

    def create_record(self, title, record_type, record_date, patient_address, file_path):
        with self._lock:
            created_at = utcnow()
            record = MedicalRecord(
                id=self._record_id,
                title=title,
                record_type=record_type,
                record_date=record_date,
                patient_address=patient_address,
                file_path=file_path,
                file_hash=generate_file_hash(title, created_at),
                transaction_hash=generate_transaction_hash(),
                created_at=created_at,
            )
            self._record_id += 1
            self.records[record.id] = record
            self._save()
        logger.info("Created record %d for patient %s (tx %s)",
                    record.id, patient_address, record.transaction_hash)
        return record

    def get_record(self, record_id):
        with self._lock:
            return self.records.get(record_id)

    def list_records_by_patient(self, patient_address):
        """Records owned by the patient, in insertion (ascending id) order."""
        with self._lock:
            return [record for record in self.records.values() if record.is_owned_by(patient_address)]

    def delete_record(self, record_id):
        """Removes the file (best-effort), shrinks or drops referencing grants, then the record."""
        with self._lock:
            record = self.records.get(record_id)
            if record is None:
                return False

            self._remove_file(record.file_path)

            for grant_id, grant in list(self.grants.items()):
                if not grant.covers(record_id):
                    continue
                remaining = [rid for rid in grant.record_ids if rid != record_id]
                if remaining:
                    self.grants[grant_id] = grant.model_copy(update={"record_ids": remaining})
                else:
                    del self.grants[grant_id]
                    logger.info("Dropped grant %d, its last record %d was deleted", grant_id, record_id)

            del self.records[record_id]
            self._save()
        logger.info("Deleted record %d", record_id)
        return True

    @staticmethod
    def _remove_file(file_path):
        if not file_path or not os.path.exists(file_path):
            return
        try:
            os.remove(file_path)
        except OSError:
            logger.exception("Error deleting file %s", file_path)

    # --- Access Grant Store ---

    def grant_access(self, patient_address, doctor_address, record_ids, duration):
        if not record_ids:
            raise InvalidInput("At least one record is required")
        try:
            duration = AccessDuration(duration)
        except ValueError:
            raise InvalidInput(f"Unknown access duration: {duration}")

        with self._lock:
            owned = {record.id for record in self.list_records_by_patient(patient_address)}
            invalid = [rid for rid in record_ids if rid not in owned]
            if invalid:
                raise InvalidInput("Some records don't belong to you", invalidRecords=invalid)

            grant = AccessGrant(
                id=self._grant_id,
                patient_address=patient_address,
                doctor_address=doctor_address,
                record_ids=list(record_ids),
                duration=duration,
                created_at=utcnow(),
            )
            self._grant_id += 1
            self.grants[grant.id] = grant
            self._save()
        logger.info("Patient %s granted doctor %s access to records %s for %s",
                    patient_address, doctor_address, grant.record_ids, grant.duration.value)
        return grant

    def get_grant(self, grant_id):
        with self._lock:
            return self.grants.get(grant_id)

    def revoke_access(self, grant_id):
        with self._lock:
            if self.grants.pop(grant_id, None) is None:
                return False
            self._save()
        logger.info("Revoked grant %d", grant_id)
        return True

    def list_grants_by_patient(self, patient_address):
        with self._lock:
            return [grant for grant in self.grants.values()
                    if same_address(grant.patient_address, patient_address)]

    def list_grants_by_doctor(self, doctor_address):
        with self._lock:
            return [grant for grant in self.grants.values()
                    if same_address(grant.doctor_address, doctor_address)]

    # --- Access Evaluator ---

    def _is_active(self, grant, now=None):
        return not (self.enforce_expiry and grant.is_expired(now))

    def accessible_records_for_doctor(self, doctor_address):
        """
        Grants held by the doctor and every record of the patients behind them.

        Records are not filtered by grant expiry or record-id membership here;
        callers intersect with grant.record_ids when rendering or authorizing.
        """
        with self._lock:
            grants = self.list_grants_by_doctor(doctor_address)
            patients = []
            for grant in grants:
                if not any(same_address(grant.patient_address, seen) for seen in patients):
                    patients.append(grant.patient_address)
            records = []
            for patient_address in patients:
                records.extend(self.list_records_by_patient(patient_address))
            return {"grants": grants, "records": records}

    def active_grants(self, doctor_address, patient_address, now=None):
        with self._lock:
            return [grant for grant in self.grants.values()
                    if grant.links(patient_address, doctor_address) and self._is_active(grant, now)]

    def has_access(self, doctor_address, patient_address, record_id, now=None):
        """True iff an active grant for the (doctor, patient) pair contains record_id."""
        return any(grant.covers(record_id)
                   for grant in self.active_grants(doctor_address, patient_address, now))

    def records_visible_to_doctor(self, doctor_address, patient_address, now=None):
        """The patient's records covered by at least one active grant held by the doctor."""
        with self._lock:
            covered = set()
            for grant in self.active_grants(doctor_address, patient_address, now):
                covered.update(grant.record_ids)
            return [record for record in self.list_records_by_patient(patient_address)
                    if record.id in covered]
