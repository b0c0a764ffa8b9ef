from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.errors import NotFoundError
from storefront.models.order import ORDER_ABANDONED
from storefront.repositories.order_repo import OrderRepository
from storefront.services.inventory_service import InventoryService
from storefront.utils.log import get_logger

log = get_logger(__name__)


@dataclass
class SweepReport:
    abandoned_orders: List[int] = field(default_factory=list)
    committed_lines: List[int] = field(default_factory=list)
    failed_lines: List[int] = field(default_factory=list)
    given_up_lines: List[int] = field(default_factory=list)


class ReconciliationService:
    """
    Out-of-band cleanup for checkouts that stopped half way.

    - pending orders that never received a payment session within the TTL
      are marked abandoned;
    - order lines whose stock decrement never committed are retried. Each line
      is flagged in the same commit as its decrement, so a retry never takes
      stock twice. Lines whose product no longer exists are flagged as given
      up and skipped from then on.
    """

    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)
        self.inventory = InventoryService(db)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def abandon_stale_orders(self, ttl_seconds: int, now: Optional[datetime] = None) -> List[int]:
        cutoff = (now or self._now()) - timedelta(seconds=ttl_seconds)
        ids = []
        for order in self.orders.stale_unpaid(cutoff):
            self.orders.set_status(order.id, ORDER_ABANDONED)
            ids.append(order.id)
        self.db.commit()
        return ids

    def retry_inventory(self) -> SweepReport:
        report = SweepReport()
        for line in self.orders.uncommitted_lines():
            line_id, product_id, qty = line.id, line.product_id, line.quantity
            try:
                self.inventory.decrement(product_id, qty)
                self.orders.mark_line_committed(line_id)
                self.db.commit()
                report.committed_lines.append(line_id)
            except NotFoundError:
                self.db.rollback()
                self.orders.mark_line_given_up(line_id)
                self.db.commit()
                log.warning("order line %s: product %s no longer exists, giving up", line_id, product_id)
                report.given_up_lines.append(line_id)
            except SQLAlchemyError:
                self.db.rollback()
                log.warning("retry of stock update for order line %s failed", line_id, exc_info=True)
                report.failed_lines.append(line_id)
        return report

    def run(self, pending_ttl_seconds: int, now: Optional[datetime] = None) -> SweepReport:
        report = self.retry_inventory()
        report.abandoned_orders = self.abandon_stale_orders(pending_ttl_seconds, now=now)
        log.info(
            "reconciliation: %d abandoned, %d lines committed, %d lines failed, %d lines given up",
            len(report.abandoned_orders),
            len(report.committed_lines),
            len(report.failed_lines),
            len(report.given_up_lines),
        )
        return report
