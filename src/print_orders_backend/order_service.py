"""
Order intake and management for the print shop.

This module holds the business logic behind the HTTP routes:
- Order submission with attached files
- Public lookup of a single order
- Admin listing, status updates and clearing of all orders
- Locating stored files for download

Authorization is not checked here; the HTTP layer guards the admin-only
operations before calling into the OrderService.
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Callable, List, Optional

from .database import OrderDatabase
from .models import Order, OrderStatus, OrderSubmission
from .uploads import StoredFile, UploadHandler
from .utils import epoch_millis, isoformat_utc, utcnow

logger = logging.getLogger(__name__)

ORDER_ID_PREFIX = "ORD-"


class OrderIdGenerator:
    """
    Produces ``ORD-<epoch-millis>`` identifiers.

    Two orders submitted within the same millisecond would share a
    timestamp, so the counter never hands out a value at or below the last
    one it issued; the second order gets the next millisecond instead.
    Seeding ``last`` with the newest stored id carries this across restarts,
    even when the clock has gone backwards.
    """

    def __init__(self, clock: Callable[[], int] = epoch_millis, last: int = 0) -> None:
        self._clock = clock
        self._last = last
        self._lock = Lock()

    def __call__(self) -> str:
        with self._lock:
            millis = max(self._clock(), self._last + 1)
            self._last = millis
        return f"{ORDER_ID_PREFIX}{millis}"


class OrderService:
    """
    Central coordinator for order lifecycle operations.

    Attributes:
        database: Open OrderDatabase holding orders and their files
        uploads: UploadHandler owning the uploads directory
    """

    def __init__(
        self,
        database: OrderDatabase,
        uploads: UploadHandler,
        id_generator: Optional[Callable[[], str]] = None,
    ) -> None:
        self.database = database
        self.uploads = uploads
        self._next_order_id = id_generator or OrderIdGenerator(last=database.latest_order_millis())

    def submit(self, submission: OrderSubmission, stored_files: List[StoredFile]) -> str:
        """
        Record a new order and its already-stored files.

        The order row and all file rows are written in one transaction. If
        that fails, the files written to disk for this order are removed and
        the error propagates.

        Args:
            submission: Validated form fields
            stored_files: Files already written by the UploadHandler

        Returns:
            The generated order identifier
        """
        order_id = self._next_order_id()
        order_date = isoformat_utc(utcnow())
        order = {
            **submission.model_dump(),
            "order_id": order_id,
            "order_date": order_date,
            "status": OrderStatus.PENDING.value,
        }

        logger.info(f"Creating order {order_id} with {len(stored_files)} file(s)")
        try:
            self.database.insert_order(order, [stored.as_row() for stored in stored_files])
        except Exception:
            logger.exception(f"Failed to save order {order_id}")
            self.uploads.discard(stored_files)
            raise

        logger.info(f"Order {order_id} saved")
        return order_id

    def list_orders(self) -> List[Order]:
        """All orders with their files, newest first."""
        return [Order.model_validate(row) for row in self.database.list_orders()]

    def get_order(self, order_id: str) -> Optional[Order]:
        row = self.database.get_order(order_id)
        return Order.model_validate(row) if row else None

    def update_status(self, order_id: str, status: str) -> bool:
        """
        Overwrite an order's status. Any string is accepted.

        Returns:
            True if the order exists, False otherwise
        """
        updated = self.database.update_order_status(order_id, status)
        if updated:
            logger.info(f"Order {order_id} status set to {status!r}")
        return updated

    def clear_all(self) -> int:
        """
        Delete every stored file, then every file row and order row.

        Missing files are skipped and deletion errors are logged, so disk
        problems never block clearing the database.

        Returns:
            Number of files removed from disk
        """
        removed = sum(1 for path in self.database.list_file_paths() if self.uploads.remove_path(path))
        self.database.delete_all_orders()
        logger.info(f"All orders cleared ({removed} file(s) removed from disk)")
        return removed

    def resolve_file(self, storage_name: str) -> Optional[Path]:
        return self.uploads.resolve(storage_name)
