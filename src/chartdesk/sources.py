"""Data sources that produce a PatientRecord for a session.

A source is any zero-argument callable returning a PatientRecord. Every
failure to produce one (missing file, unreadable YAML/JSON, malformed
record) is reported as LoadFailure.
"""

from __future__ import annotations

import logging
import os
from typing import Callable

import yaml

from chartdesk.errors import LoadFailure
from chartdesk.models import PatientRecord
from chartdesk.serialize import record_from_dict

logger = logging.getLogger(__name__)

RecordSource = Callable[[], PatientRecord]


def load_record_file(path: str) -> PatientRecord:
    """Read a YAML or JSON record file.

    YAML is a superset of JSON, so ``yaml.safe_load`` handles both formats.
    """
    if not os.path.isfile(path):
        raise LoadFailure(f"Record file not found: {path}", source=path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise LoadFailure(f"Could not read {path}: {e}", source=path) from e
    return parse_record_data(data, source=path)


def parse_record_data(data, source: str = "") -> PatientRecord:
    """Decode already-parsed data into a record, mapping errors to LoadFailure."""
    if not isinstance(data, dict):
        raise LoadFailure(f"Expected a mapping at the top level of {source or 'input'}", source=source)
    try:
        record = record_from_dict(data)
    except (TypeError, ValueError) as e:
        raise LoadFailure(f"Malformed record in {source or 'input'}: {e}", source=source) from e
    logger.debug("Loaded record for patient %s from %s", record.patient.id, source or "data")
    return record


class FileSource:
    """Loads a record from a YAML/JSON file each time it is called."""

    def __init__(self, path: str):
        self.path = path

    def __call__(self) -> PatientRecord:
        return load_record_file(self.path)

    def __repr__(self):
        return f"FileSource({self.path!r})"


class DatabaseSource:
    """Loads the latest stored snapshot of one patient's record."""

    def __init__(self, db, patient_id: str):
        self.db = db
        self.patient_id = patient_id

    def __call__(self) -> PatientRecord:
        source = f"{self.db.db_path}:{self.patient_id}"
        try:
            record = self.db.load_record(self.patient_id)
        except (TypeError, ValueError) as e:
            raise LoadFailure(f"Stored record for {self.patient_id} is malformed: {e}", source=source) from e
        if record is None:
            raise LoadFailure(f"No record stored for patient {self.patient_id}", source=source)
        return record

    def __repr__(self):
        return f"DatabaseSource({self.db.db_path!r}, {self.patient_id!r})"


class DatabaseSink:
    """Persists every record the session produces as a new snapshot."""

    def __init__(self, db, reason: str = "session"):
        self.db = db
        self.reason = reason

    def __call__(self, record: PatientRecord) -> None:
        self.db.save_record(record, reason=self.reason)
