"""
Idempotent upsert layer.

Every webhook handler and direct operation mutates records through these
helpers, scoped by natural key, so replaying any notification is safe and a
natural key never maps to more than one record.
"""

import logging
from typing import Any, Optional

from .constants import METADATA_PROJECTION
from .store import RecordStore

logger = logging.getLogger(__name__)


def project_metadata(metadata: Any) -> dict:
    """
    Copy the reserved orgId/userId metadata keys into indexed attributes.

    The metadata bag itself is stored untouched; this only returns the
    additional indexed fields. Non-string or empty values are not projected.

    Args:
        metadata: Caller-defined metadata bag

    Returns:
        Dict with any of org_id/user_id that were present
    """
    if not isinstance(metadata, dict):
        return {}

    projected = {}
    for metadata_key, attribute in METADATA_PROJECTION.items():
        value = metadata.get(metadata_key)
        if isinstance(value, str) and value:
            projected[attribute] = value
    return projected


def insert_if_absent(store: RecordStore, entity: str, natural_key: str, fields: dict) -> Optional[str]:
    """Insert a record only when none exists; the first write wins.

    Returns:
        record_id of the new record, or None if one already existed
    """
    record = store.put_if_absent(entity, natural_key, fields)
    if record is None:
        logger.info(f"{entity} {natural_key} already exists, skipping insert")
        return None
    logger.info(f"Inserted {entity} {natural_key}")
    return record["record_id"]


def patch_if_present(store: RecordStore, entity: str, natural_key: str, fields: dict) -> Optional[dict]:
    """
    Partially update an existing record.

    Fields not mentioned are left alone. A None value clears that field.
    Absent records are not created.

    Returns:
        The patched record, or None if no record exists for the key
    """
    set_fields = {k: v for k, v in fields.items() if v is not None}
    remove_fields = [k for k, v in fields.items() if v is None]

    record = store.update(entity, natural_key, set_fields, remove_fields)
    if record is None:
        logger.info(f"No {entity} {natural_key} to patch, skipping")
    return record


def upsert(store: RecordStore, entity: str, natural_key: str, fields: dict) -> str:
    """
    Insert the record if absent, otherwise patch the supplied fields.

    If a concurrent delivery inserts the same key between our lookup and our
    insert, the conditional put fails and we patch the winner's record
    instead of creating a duplicate.

    Returns:
        record_id of the resulting record
    """
    if store.get(entity, natural_key) is None:
        record_id = insert_if_absent(store, entity, natural_key, fields)
        if record_id is not None:
            return record_id

    record = patch_if_present(store, entity, natural_key, fields)
    if record is None:
        # Records are never deleted, so a failed patch after a failed insert
        # means the store is misbehaving.
        raise RuntimeError(f"{entity} {natural_key} vanished during upsert")
    return record["record_id"]


def set_if_unset(store: RecordStore, entity: str, natural_key: str, field: str, value: Any) -> bool:
    """
    Write-once update: set field only if the record exists and field is absent.

    Returns:
        True if the field was written
    """
    record = store.update(entity, natural_key, {field: value}, only_if_unset=(field,))
    if record is None:
        logger.info(f"{entity} {natural_key}: {field} already set or record absent, leaving as is")
        return False
    return True
