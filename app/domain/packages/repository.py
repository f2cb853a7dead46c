"""Package repository - Database operations for session packages"""

from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...models import PackageStatus, PricingPlan, SessionPackage, TherapySession


class PackageRepository:
    """Repository for package database operations"""

    @staticmethod
    def get_package(db: Session, owner_id: int, package_id: int) -> Optional[SessionPackage]:
        """Get a package with its sessions and their payments"""
        return (
            db.query(SessionPackage)
            .options(selectinload(SessionPackage.sessions).joinedload(TherapySession.payment))
            .filter(SessionPackage.id == package_id, SessionPackage.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def list_packages(
        db: Session,
        owner_id: int,
        patient_id: Optional[int] = None,
        status: Optional[PackageStatus] = None,
    ) -> list[SessionPackage]:
        query = (
            db.query(SessionPackage)
            .options(selectinload(SessionPackage.sessions).joinedload(TherapySession.payment))
            .filter(SessionPackage.owner_id == owner_id)
        )

        if patient_id:
            query = query.filter(SessionPackage.patient_id == patient_id)

        if status:
            query = query.filter(SessionPackage.status == status)

        return query.order_by(SessionPackage.created_at.desc(), SessionPackage.id.desc()).all()

    @staticmethod
    def add_package(db: Session, owner_id: int, **package_data) -> SessionPackage:
        package = SessionPackage(owner_id=owner_id, **package_data)
        db.add(package)
        db.flush()
        return package

    @staticmethod
    def delete_package(db: Session, package: SessionPackage) -> None:
        """Remove the package row and the pricing plan created with it"""
        plan_id = package.pricing_plan_id
        db.query(SessionPackage).filter(SessionPackage.id == package.id).delete(
            synchronize_session=False
        )
        if plan_id is not None:
            db.query(PricingPlan).filter(PricingPlan.id == plan_id).delete(
                synchronize_session=False
            )
        db.flush()
