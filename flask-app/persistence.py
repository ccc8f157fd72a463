# flask-app/persistence.py

"""Single-file JSON persistence for users, records and access grants.

Document layout::

    {
      "users": {"1": {...}},
      "medicalRecords": {"1": {...}},
      "accessPermissions": {"1": {...}}
    }

The whole document is rewritten after every mutation. There is no journal and
no integrity check: a malformed file is logged and treated as empty.
"""

import json
import logging
import os
import tempfile

from pydantic import ValidationError

from models import AccessGrant, MedicalRecord, User

logger = logging.getLogger(__name__)

COLLECTIONS = (
    ("users", User),
    ("medicalRecords", MedicalRecord),
    ("accessPermissions", AccessGrant),
)


def next_id(entries):
    """Next id for a collection: max(existing ids) + 1, or 1 when empty."""
    return max(entries, default=0) + 1


class JsonPersistence:

    def __init__(self, data_file):
        self.data_file = data_file

    def load(self):
        """Returns (users, records, grants) as id-ordered dicts; empty when the file is absent or unreadable."""
        empty = ({}, {}, {})
        if not os.path.exists(self.data_file):
            logger.info("No data file at %s, starting with empty stores", self.data_file)
            return empty

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError):
            logger.exception("Error loading data from %s", self.data_file)
            return empty

        if not isinstance(document, dict):
            logger.error("Data file %s does not hold a JSON object, ignoring it", self.data_file)
            return empty

        try:
            loaded = tuple(
                self._load_collection(document.get(key) or {}, model)
                for key, model in COLLECTIONS
            )
        except (ValidationError, TypeError, ValueError, AttributeError):
            logger.exception("Error parsing data file %s", self.data_file)
            return empty

        users, records, grants = loaded
        logger.info("Loaded %d users, %d records, %d grants from %s",
                    len(users), len(records), len(grants), self.data_file)
        return loaded

    @staticmethod
    def _load_collection(raw, model):
        # Entries are keyed by their own id; the document key is only a label.
        entries = {}
        for key, value in raw.items():
            entry = model.model_validate(value)
            if entry.id in entries:
                raise ValueError(f"Duplicate {model.__name__} id {entry.id}")
            if str(entry.id) != str(key):
                logger.warning("%s stored under key %r has id %d, using the id",
                               model.__name__, key, entry.id)
            entries[entry.id] = entry
        return dict(sorted(entries.items()))

    def save(self, users, records, grants):
        """Atomically replaces the data file. Raises OSError on failure."""
        document = {
            key: {str(entry_id): entry.to_json() for entry_id, entry in entries.items()}
            for (key, _), entries in zip(COLLECTIONS, (users, records, grants))
        }
        directory = os.path.dirname(os.path.abspath(self.data_file))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=".data-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.data_file)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
