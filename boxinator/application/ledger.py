"""Append-only status history per shipment.

The ledger records transitions without judging them; permission and
transition policy belong to the lifecycle service.
"""
from typing import Optional

from boxinator.core.logging_config import get_logger
from boxinator.domain.records import ShipmentStatus, StatusEntryRecord, latest_entry, newest_first
from boxinator.errors import NotFound, ValidationFailed
from boxinator.infrastructure.store import ShipmentStore

logger = get_logger(__name__)


def parse_status(value) -> ShipmentStatus:
    try:
        return ShipmentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ShipmentStatus)
        raise ValidationFailed(f"Invalid status '{value}'. Must be one of: {allowed}")


class StatusLedger:
    def __init__(self, store: ShipmentStore):
        self.store = store

    def append_status(self, shipment_id: int, status, note: Optional[str] = None) -> StatusEntryRecord:
        status = parse_status(status)
        if self.store.find_shipment(shipment_id) is None:
            raise NotFound("Shipment not found")
        entry = self.store.append_status_entry(shipment_id, status, note)
        logger.info(
            f"Shipment {shipment_id} status changed to {status.value}",
            extra={'extra_fields': {'shipment_id': shipment_id, 'status': status.value}},
        )
        return entry

    def history(self, shipment_id: int) -> list[StatusEntryRecord]:
        """All entries, newest first."""
        return newest_first(self.store.list_status_entries(shipment_id))

    def current_status(self, shipment_id: int) -> ShipmentStatus:
        entry = latest_entry(self.store.list_status_entries(shipment_id))
        if entry is None:
            raise NotFound(f"No status history for shipment {shipment_id}")
        return entry.status
