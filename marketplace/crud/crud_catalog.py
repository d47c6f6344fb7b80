from typing import Optional

from sqlalchemy.orm import Query, Session

from marketplace.crud.crud_base import CRUDBase
from marketplace.models.catalog import (
    BannerImage,
    Category,
    City,
    Country,
    Service,
    ServiceImage,
    SubCategory,
)
from marketplace.models.gallery import Gallery

ACTIVE = 1


class CRUDCatalog(CRUDBase):
    """Reference data: only active, non-deleted rows are ever visible."""

    def query(self, db: Session, include_deleted: bool = False) -> Query:
        query = super().query(db, include_deleted=include_deleted)
        if not include_deleted and hasattr(self.model, "status"):
            query = query.filter(self.model.status == ACTIVE)
        return query


class CRUDCity(CRUDCatalog):
    def get_in_country(self, db: Session, city_id: int, country_id: int) -> Optional[City]:
        return self.query(db).filter(City.id == city_id, City.country_id == country_id).first()


class CRUDSubCategory(CRUDCatalog):
    def get_in_category(self, db: Session, sub_category_id: int, category_id: int) -> Optional[SubCategory]:
        return (
            self.query(db)
            .filter(SubCategory.id == sub_category_id, SubCategory.category_id == category_id)
            .first()
        )


class CRUDGallery(CRUDBase[Gallery]):
    def get_for_provider(self, db: Session, gallery_id: int, provider_id: int) -> Optional[Gallery]:
        return (
            self.query(db)
            .filter(Gallery.id == gallery_id, Gallery.service_provider_id == provider_id)
            .first()
        )


country = CRUDCatalog(Country)
city = CRUDCity(City)
category = CRUDCatalog(Category)
sub_category = CRUDSubCategory(SubCategory)
service = CRUDCatalog(Service)
banner_image = CRUDCatalog(BannerImage)
service_image = CRUDCatalog(ServiceImage)
gallery = CRUDGallery(Gallery)
