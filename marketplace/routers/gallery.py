import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.crud.crud_catalog import gallery as gallery_crud
from marketplace.database import get_db
from marketplace.models.gallery import Gallery
from marketplace.schemas.catalog import GalleryOut
from marketplace.services import spaces_service
from marketplace.services.auth_middleware import ProviderContext, get_current_provider
from marketplace.services.onboarding_service import UploadBatch, has_file
from marketplace.utils.errors import NotFoundError, ValidationFailed
from marketplace.utils.response import create_response, handle_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/provider/gallery", tags=["Gallery"])

CAPTION_MAX_LENGTH = 255


def _provider_id(context: ProviderContext) -> int:
    if context.provider is None:
        raise NotFoundError("Provider profile not found")
    return context.provider.id


@router.get("")
def list_gallery(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    context: ProviderContext = Depends(get_current_provider),
    db: Session = Depends(get_db),
):
    try:
        result = gallery_crud.get_multi(
            db,
            page=page,
            limit=limit,
            filters={"service_provider_id": _provider_id(context)},
            order_by=Gallery.created_at.desc(),
        )
        return create_response(
            message="Gallery fetched successfully",
            data=result.payload(lambda item: GalleryOut.model_validate(item).model_dump(), key="gallery"),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("")
def add_gallery_image(
    image: UploadFile = File(...),
    caption: Optional[str] = Form(None),
    context: ProviderContext = Depends(get_current_provider),
    db: Session = Depends(get_db),
):
    try:
        provider_id = _provider_id(context)
        if not has_file(image):
            raise ValidationFailed("No file was uploaded")
        if caption and len(caption) > CAPTION_MAX_LENGTH:
            raise ValidationFailed(f"caption must be at most {CAPTION_MAX_LENGTH} characters")

        with UploadBatch(context.user.id) as batch:
            uploaded = batch.add(image, "gallery", "image", thumbnail=True)
            try:
                item = gallery_crud.create(
                    db,
                    {
                        "service_provider_id": provider_id,
                        "image_url": uploaded.main_url,
                        "thumbnail_url": uploaded.thumbnail_url,
                        "caption": caption,
                    },
                )
            except SQLAlchemyError:
                db.rollback()
                raise

        return create_response(
            message="Gallery image added successfully",
            data=GalleryOut.model_validate(item).model_dump(),
            status_code=201,
        )
    except Exception as exc:
        return handle_exception(exc)


@router.delete("/{gallery_id}")
def delete_gallery_image(
    gallery_id: int,
    background_tasks: BackgroundTasks,
    context: ProviderContext = Depends(get_current_provider),
    db: Session = Depends(get_db),
):
    try:
        item = gallery_crud.get_for_provider(db, gallery_id, _provider_id(context))
        if item is None:
            raise NotFoundError("Gallery image not found")

        gallery_crud.soft_delete(db, item)
        background_tasks.add_task(spaces_service.cleanup_images, [item.image_url])
        return create_response(message="Gallery image deleted successfully", data={"id": gallery_id})
    except Exception as exc:
        return handle_exception(exc)
