"""
Maintenance script: check every holding against a replay of its transactions.

Usage:
    python reconcile.py              # report drift
    python reconcile.py --repair     # report and write the replayed positions
    python reconcile.py --holding 7  # only holding 7
"""

import argparse
import logging
import sys
from typing import List, Optional

from db_engine import init_db
from errors import LedgerError
from logging_setup import setup_logging
from repositories.holding_repository import HoldingRepository
from services.ownership import FunctionGuard
from services.transaction_service import ReconcileReport, TransactionService

logger = logging.getLogger(__name__)

MAINTENANCE_USER = "maintenance"


def reconcile_all(repair: bool = False, holding_ids: Optional[List[int]] = None) -> List[ReconcileReport]:
    """
    Reconcile the given holdings (all of them by default).

    Holdings whose log cannot be replayed are logged and skipped.
    """
    service = TransactionService(guard=FunctionGuard(lambda user_id, portfolio_id: True))
    if holding_ids is None:
        holding_ids = [h.id for h in HoldingRepository.get_all()]

    reports = []
    for holding_id in holding_ids:
        try:
            reports.append(service.reconcile_holding(MAINTENANCE_USER, holding_id, repair=repair))
        except LedgerError as e:
            logger.error(f"Could not reconcile holding {holding_id}: {e}")
    return reports


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile holdings with their transaction log")
    parser.add_argument("--repair", action="store_true", help="write replayed positions on drift")
    parser.add_argument("--holding", type=int, action="append", dest="holdings",
                        help="holding id to check (repeatable)")
    args = parser.parse_args(argv)

    setup_logging()
    init_db()

    reports = reconcile_all(repair=args.repair, holding_ids=args.holdings)
    drifted = [r for r in reports if r.drift]

    print(f"Checked {len(reports)} holdings, {len(drifted)} drifted")
    for r in drifted:
        status = "repaired" if r.repaired else "not repaired"
        print(
            f"  holding {r.holding_id}: stored {r.stored.total_shares} @ {r.stored.average_cost}, "
            f"replayed {r.replayed.total_shares} @ {r.replayed.average_cost} ({status})"
        )

    return 1 if any(not r.repaired for r in drifted) else 0


if __name__ == "__main__":
    sys.exit(main())
