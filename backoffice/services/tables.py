"""
Table Status Projector

Derives the status shown for a table from its persisted status and the
presence of a pending cart. The projection is read-only and recomputed on
every call, so it always reflects the latest cart mutations.

Precedence:
    disabled > pending items (occupied) > persisted status
"""

from dataclasses import dataclass

from backoffice.models import Table, TableStatus
from backoffice.services.cart.store import PendingCartStore

STATUS_LABELS = {
    TableStatus.AVAILABLE: "Available",
    TableStatus.OCCUPIED: "Occupied",
    TableStatus.RESERVED: "Reserved",
    TableStatus.DISABLED: "Disabled",
}


@dataclass(frozen=True)
class TableStatusView:
    """Projected status of a table."""
    status: TableStatus
    label: str

    def to_dict(self) -> dict:
        return {"status": int(self.status), "label": self.label}


def project_table_status(persisted_status: int, has_pending_items: bool) -> TableStatusView:
    """
    Project the display status of a table.

    Args:
        persisted_status: Status code stored by the back-office API
        has_pending_items: Whether the table's pending cart has any line

    Returns:
        TableStatusView: Status code and label to show
    """
    try:
        status = TableStatus(persisted_status)
    except ValueError:
        status = TableStatus.AVAILABLE

    if status != TableStatus.DISABLED and has_pending_items:
        status = TableStatus.OCCUPIED
    return TableStatusView(status=status, label=STATUS_LABELS[status])


class TableStatusProjector:
    """Projects tables against the live cart store."""

    def __init__(self, cart_store: PendingCartStore):
        self.cart_store = cart_store

    def project(self, table: Table) -> TableStatusView:
        return project_table_status(
            table.persisted_status,
            self.cart_store.has_pending_items(table.id),
        )

