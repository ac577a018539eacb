"""SQLAlchemy persistence for payments and payment methods.

Each call runs in its own short session and returns detached rows.
"""

from typing import Any, Callable

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from merchant_payments.models import Payment, PaymentMethod, utcnow


class PaymentStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def create(self, payment: Payment) -> Payment:
        with self.session_factory() as db:
            db.add(payment)
            db.commit()
            db.refresh(payment)
            return payment

    def find_by_id(self, payment_id: str) -> Payment | None:
        with self.session_factory() as db:
            return db.get(Payment, payment_id)

    def find_by_reference(self, reference: str, merchant_id: str | None = None) -> Payment | None:
        stmt = select(Payment).where(Payment.payment_reference == reference)
        if merchant_id is not None:
            stmt = stmt.where(Payment.merchant_id == merchant_id)
        with self.session_factory() as db:
            return db.execute(stmt).scalars().first()

    def update_by_id(self, payment_id: str, **fields: Any) -> Payment | None:
        fields["updated_at"] = utcnow()
        with self.session_factory() as db:
            db.execute(update(Payment).where(Payment.id == payment_id).values(**fields))
            db.commit()
            return db.get(Payment, payment_id)

    def update_status_if(self, payment_id: str, expected_status: str, **fields: Any) -> bool:
        """Compare-and-swap: apply ``fields`` only while the row still has ``expected_status``.

        Returns False when another writer changed the status first.
        """
        fields["updated_at"] = utcnow()
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == expected_status)
            .values(**fields)
        )
        with self.session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            return result.rowcount == 1

    def find_page(self, merchant_id: str, page: int, limit: int) -> tuple[list[Payment], int]:
        with self.session_factory() as db:
            total = db.execute(
                select(func.count()).select_from(Payment).where(Payment.merchant_id == merchant_id)
            ).scalar_one()
            items = db.execute(
                select(Payment)
                .where(Payment.merchant_id == merchant_id)
                .order_by(Payment.created_at.desc(), Payment.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars().all()
            return list(items), total


class PaymentMethodStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def create(self, method: PaymentMethod) -> PaymentMethod:
        with self.session_factory() as db:
            db.add(method)
            db.commit()
            db.refresh(method)
            return method

    def find_by_id(self, method_id: str, merchant_id: str) -> PaymentMethod | None:
        stmt = select(PaymentMethod).where(
            PaymentMethod.id == method_id,
            PaymentMethod.merchant_id == merchant_id,
        )
        with self.session_factory() as db:
            return db.execute(stmt).scalars().first()

    def find_active_by_id(self, method_id: str, merchant_id: str) -> PaymentMethod | None:
        stmt = select(PaymentMethod).where(
            PaymentMethod.id == method_id,
            PaymentMethod.merchant_id == merchant_id,
            PaymentMethod.is_active.is_(True),
        )
        with self.session_factory() as db:
            return db.execute(stmt).scalars().first()

    def list_active(self, merchant_id: str) -> list[PaymentMethod]:
        stmt = (
            select(PaymentMethod)
            .where(PaymentMethod.merchant_id == merchant_id, PaymentMethod.is_active.is_(True))
            .order_by(PaymentMethod.created_at.desc())
        )
        with self.session_factory() as db:
            return list(db.execute(stmt).scalars().all())

    def update(self, method_id: str, merchant_id: str, **fields: Any) -> PaymentMethod | None:
        with self.session_factory() as db:
            method = db.execute(
                select(PaymentMethod).where(
                    PaymentMethod.id == method_id,
                    PaymentMethod.merchant_id == merchant_id,
                )
            ).scalars().first()
            if method is None:
                return None
            for name, value in fields.items():
                setattr(method, name, value)
            db.commit()
            db.refresh(method)
            return method

    def deactivate(self, method_id: str, merchant_id: str) -> bool:
        return self.update(method_id, merchant_id, is_active=False) is not None
