"""Patient repository - Patient ownership and pricing lookups"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Patient, PricingPlan


class PatientRepository:
    """Repository for patient and pricing plan queries"""

    @staticmethod
    def find_owned_patient(db: Session, owner_id: int, patient_id: int) -> Optional[Patient]:
        """Get a patient only if it belongs to the owner"""
        return (
            db.query(Patient)
            .filter(Patient.id == patient_id, Patient.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def find_active_pricing_plan(db: Session, patient_id: int) -> Optional[PricingPlan]:
        """Most recent active pricing plan of a patient"""
        return (
            db.query(PricingPlan)
            .filter(PricingPlan.patient_id == patient_id, PricingPlan.active.is_(True))
            .order_by(PricingPlan.start_date.desc(), PricingPlan.id.desc())
            .first()
        )

    @staticmethod
    def deactivate_pricing_plans(db: Session, patient_id: int) -> int:
        """Mark every active plan of a patient inactive"""
        return (
            db.query(PricingPlan)
            .filter(PricingPlan.patient_id == patient_id, PricingPlan.active.is_(True))
            .update({PricingPlan.active: False}, synchronize_session=False)
        )

    @staticmethod
    def add_pricing_plan(db: Session, patient_id: int, **plan_data) -> PricingPlan:
        plan = PricingPlan(patient_id=patient_id, **plan_data)
        db.add(plan)
        db.flush()
        return plan
