from datetime import datetime

from pydantic import BaseModel


class CatalogItem(BaseModel):
    id: int
    status: int

    model_config = {"from_attributes": True}


class CountryOut(CatalogItem):
    name: str
    code: str | None = None
    phone_code: str | None = None


class CityOut(CatalogItem):
    country_id: int
    name: str


class CategoryOut(CatalogItem):
    name: str
    image: str | None = None


class SubCategoryOut(CatalogItem):
    category_id: int
    name: str
    image: str | None = None


class ServiceOut(CatalogItem):
    title: str
    image: str | None = None


class BannerImageOut(CatalogItem):
    title: str | None = None
    image_url: str


class ServiceImageOut(CatalogItem):
    title: str | None = None
    image_url: str
    category_id: int | None = None


class GalleryOut(BaseModel):
    id: int
    image_url: str
    thumbnail_url: str | None = None
    caption: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
