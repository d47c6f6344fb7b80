from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.crud import crud_catalog
from marketplace.database import get_db
from marketplace.schemas.catalog import (
    BannerImageOut,
    CategoryOut,
    CityOut,
    CountryOut,
    ServiceImageOut,
    ServiceOut,
    SubCategoryOut,
)
from marketplace.utils.response import create_response, handle_exception

router = APIRouter(prefix="/catalog", tags=["Catalog"])


def _listing(crud, schema, db: Session, page: int, limit: int, key: str, filters: Optional[dict] = None):
    result = crud.get_multi(db, page=page, limit=limit, filters=filters)
    return result.payload(lambda row: schema.model_validate(row).model_dump(), key=key)


@router.get("/countries")
def list_countries(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        data = _listing(crud_catalog.country, CountryOut, db, page, limit, "countries")
        return create_response(message="Countries fetched successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)


@router.get("/cities")
def list_cities(
    country_id: Optional[int] = Query(None, ge=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        data = _listing(crud_catalog.city, CityOut, db, page, limit, "cities", {"country_id": country_id})
        return create_response(message="Cities fetched successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)


@router.get("/categories")
def list_categories(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        data = _listing(crud_catalog.category, CategoryOut, db, page, limit, "categories")
        return create_response(message="Categories fetched successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)


@router.get("/subcategories")
def list_subcategories(
    category_id: Optional[int] = Query(None, ge=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        data = _listing(
            crud_catalog.sub_category,
            SubCategoryOut,
            db,
            page,
            limit,
            "subcategories",
            {"category_id": category_id},
        )
        return create_response(message="Sub categories fetched successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)


@router.get("/services")
def list_services(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        data = _listing(crud_catalog.service, ServiceOut, db, page, limit, "services")
        return create_response(message="Services fetched successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)


@router.get("/banner-images")
def list_banner_images(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        data = _listing(crud_catalog.banner_image, BannerImageOut, db, page, limit, "banner_images")
        return create_response(message="Banner images fetched successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)


@router.get("/service-images")
def list_service_images(
    category_id: Optional[int] = Query(None, ge=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        data = _listing(
            crud_catalog.service_image,
            ServiceImageOut,
            db,
            page,
            limit,
            "service_images",
            {"category_id": category_id},
        )
        return create_response(message="Service images fetched successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)
