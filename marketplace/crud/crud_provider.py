from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from marketplace.crud.crud_base import CRUDBase, Page, paginate
from marketplace.models.service_list import ServiceList
from marketplace.models.service_provider import (
    APPROVAL_APPROVED,
    PROVIDER_TYPE_INDIVIDUAL,
    TOTAL_STEPS,
    BankDetails,
    ServiceProvider,
    ServiceProviderAddress,
    ServiceProviderAvailability,
)
from marketplace.models.user import STATUS_ACTIVE, User


class CRUDServiceProvider(CRUDBase[ServiceProvider]):
    def get_by_user_id(self, db: Session, user_id: int) -> Optional[ServiceProvider]:
        return self.query(db).filter(ServiceProvider.user_id == user_id).first()

    def get_or_create(self, db: Session, user_id: int) -> ServiceProvider:
        """Return the user's provider row, staging a new individual profile if absent."""
        provider = self.get_by_user_id(db, user_id)
        if provider:
            return provider
        provider = ServiceProvider(
            user_id=user_id,
            provider_type=PROVIDER_TYPE_INDIVIDUAL,
            step_completed=0,
        )
        db.add(provider)
        db.flush()
        return provider

    def has_service_list(self, db: Session, provider_id: int) -> bool:
        return (
            db.query(ServiceList.id)
            .filter(ServiceList.service_provider_id == provider_id)
            .first()
            is not None
        )

    # Address / bank details are 0..1 rows, written as upserts.

    def get_address(self, db: Session, user_id: int) -> Optional[ServiceProviderAddress]:
        return db.query(ServiceProviderAddress).filter(ServiceProviderAddress.user_id == user_id).first()

    def upsert_address(self, db: Session, user_id: int, **fields) -> ServiceProviderAddress:
        address = self.get_address(db, user_id)
        if address is None:
            address = ServiceProviderAddress(user_id=user_id)
            db.add(address)
        for key, value in fields.items():
            setattr(address, key, value)
        db.flush()
        return address

    def get_bank_details(self, db: Session, provider_id: int) -> Optional[BankDetails]:
        return db.query(BankDetails).filter(BankDetails.service_provider_id == provider_id).first()

    def upsert_bank_details(self, db: Session, provider_id: int, **fields) -> BankDetails:
        details = self.get_bank_details(db, provider_id)
        if details is None:
            details = BankDetails(service_provider_id=provider_id, **fields)
            db.add(details)
        else:
            for key, value in fields.items():
                setattr(details, key, value)
        db.flush()
        return details

    # Availability and service lists are replaced as whole sets, never merged.
    # Both stage a delete + bulk insert in the caller's transaction; the caller
    # commits or rolls back the pair together.

    def get_availability(self, db: Session, provider_id: int) -> List[ServiceProviderAvailability]:
        return (
            db.query(ServiceProviderAvailability)
            .filter(ServiceProviderAvailability.service_provider_id == provider_id)
            .order_by(ServiceProviderAvailability.id.asc())
            .all()
        )

    def replace_availability(
        self, db: Session, provider_id: int, entries: Iterable[dict]
    ) -> List[ServiceProviderAvailability]:
        db.query(ServiceProviderAvailability).filter(
            ServiceProviderAvailability.service_provider_id == provider_id
        ).delete(synchronize_session=False)
        rows = [ServiceProviderAvailability(service_provider_id=provider_id, **entry) for entry in entries]
        db.add_all(rows)
        db.flush()
        return rows

    def get_services(self, db: Session, provider_id: int) -> List[ServiceList]:
        return (
            db.query(ServiceList)
            .filter(ServiceList.service_provider_id == provider_id)
            .order_by(ServiceList.id.asc())
            .all()
        )

    def replace_services(self, db: Session, provider_id: int, entries: Iterable[dict]) -> List[ServiceList]:
        db.query(ServiceList).filter(ServiceList.service_provider_id == provider_id).delete(
            synchronize_session=False
        )
        rows = [ServiceList(service_provider_id=provider_id, **entry) for entry in entries]
        db.add_all(rows)
        db.flush()
        return rows

    # Listings

    def _with_user(self, db: Session) -> Query:
        return (
            self.query(db)
            .join(User, User.id == ServiceProvider.user_id)
            .filter(User.deleted_at.is_(None))
        )

    def _search(self, query: Query, search: Optional[str]) -> Query:
        if not search:
            return query
        pattern = f"%{search.strip()}%"
        return query.filter(
            or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
                User.phone_number.ilike(pattern),
                ServiceProvider.salon_name.ilike(pattern),
            )
        )

    def list_for_admin(
        self,
        db: Session,
        page: int,
        limit: int,
        search: Optional[str] = None,
        is_approved: Optional[int] = None,
        provider_type: Optional[str] = None,
        min_step: Optional[int] = None,
    ) -> Page:
        query = self._search(self._with_user(db), search)
        if is_approved is not None:
            query = query.filter(ServiceProvider.is_approved == is_approved)
        if provider_type:
            query = query.filter(ServiceProvider.provider_type == provider_type)
        if min_step is not None:
            query = query.filter(ServiceProvider.step_completed >= min_step)
        query = query.order_by(ServiceProvider.created_at.desc(), ServiceProvider.id.desc())
        return paginate(query, page, limit)

    def list_directory(
        self,
        db: Session,
        page: int,
        limit: int,
        city_id: Optional[int] = None,
        provider_type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Page:
        """Providers visible to customers: approved, fully onboarded and active."""
        query = self._search(self._with_user(db), search).filter(
            ServiceProvider.is_approved == APPROVAL_APPROVED,
            ServiceProvider.step_completed >= TOTAL_STEPS,
            ServiceProvider.status == 1,
            User.status == STATUS_ACTIVE,
        )
        if provider_type:
            query = query.filter(ServiceProvider.provider_type == provider_type)
        if city_id is not None:
            query = query.join(
                ServiceProviderAddress, ServiceProviderAddress.user_id == ServiceProvider.user_id
            ).filter(ServiceProviderAddress.city_id == city_id)
        query = query.order_by(ServiceProvider.overall_rating.desc(), ServiceProvider.id.asc())
        return paginate(query, page, limit)


service_provider = CRUDServiceProvider(ServiceProvider)
