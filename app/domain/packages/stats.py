"""
Package consumption tracking.

Every materialized session occupies a slot whatever its status; only
deleting a session frees one. No-shows count as consumed.
"""

import logging

from ...models import PackageStatus, PaymentStatus, SessionPackage, SessionStatus

logger = logging.getLogger(__name__)

FINALIZED_STATUSES = (SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW)


def compute_package_stats(package: SessionPackage, include_billing: bool = False) -> dict:
    """
    Slot and status counters for a package.

    Returns:
        dict: scheduled, completed, noShow, cancelled, consumed,
        remainingSlots, totalScheduled (plus totalPaid, totalPending,
        amountPaid, amountPending when include_billing is set)
    """
    sessions = list(package.sessions)
    statuses = [s.status for s in sessions]

    completed = statuses.count(SessionStatus.COMPLETED)
    no_show = statuses.count(SessionStatus.NO_SHOW)

    stats = {
        "scheduled": sum(
            1 for st in statuses if st in (SessionStatus.SCHEDULED, SessionStatus.CONFIRMED)
        ),
        "completed": completed,
        "noShow": no_show,
        "cancelled": statuses.count(SessionStatus.CANCELLED),
        "consumed": completed + no_show,
        "remainingSlots": package.total_sessions - len(sessions),
        "totalScheduled": len(sessions),
    }

    if include_billing:
        payments = [s.payment for s in sessions if s.payment is not None]
        paid = [p for p in payments if p.status == PaymentStatus.PAID]
        pending = [p for p in payments if p.status == PaymentStatus.PENDING]
        stats.update(
            {
                "totalPaid": len(paid),
                "totalPending": len(pending),
                "amountPaid": round(sum(float(p.amount or 0) for p in paid), 2),
                "amountPending": round(sum(float(p.amount or 0) for p in pending), 2),
            }
        )

    return stats


def refresh_package_status(package: SessionPackage) -> bool:
    """
    Finalize an active package once every slot holds a finished session.

    Finished means COMPLETED, CANCELLED or NO_SHOW. The package becomes
    COMPLETED when at least one session was completed, CANCELLED otherwise.

    Returns True when the status changed.
    """
    if package.status != PackageStatus.ACTIVE:
        return False

    sessions = list(package.sessions)
    if len(sessions) < package.total_sessions:
        return False

    if not all(s.status in FINALIZED_STATUSES for s in sessions):
        return False

    if any(s.status == SessionStatus.COMPLETED for s in sessions):
        package.status = PackageStatus.COMPLETED
    else:
        package.status = PackageStatus.CANCELLED
    logger.info(
        f"📦 Package {package.id} finalized as {package.status.value} ({len(sessions)} sessions)"
    )
    return True
