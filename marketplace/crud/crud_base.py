from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

ModelType = TypeVar("ModelType")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class Page(Generic[ModelType]):
    items: List[ModelType] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    def payload(self, serializer, key: str = "items") -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "count": len(self.items),
            "total": self.total,
            "has_next": self.has_next,
            key: [serializer(item) for item in self.items],
        }


def paginate(query: Query, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Page:
    page = max(page, 1)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, total=total, page=page, limit=limit)


class CRUDBase(Generic[ModelType]):
    """Paginated find/create/update/soft-delete over one table.

    Rows with ``deleted_at`` set are hidden from every default query.
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def query(self, db: Session, include_deleted: bool = False) -> Query:
        query = db.query(self.model)
        if not include_deleted and hasattr(self.model, "deleted_at"):
            query = query.filter(self.model.deleted_at.is_(None))
        return query

    def get(self, db: Session, obj_id: Any) -> Optional[ModelType]:
        return self.query(db).filter(self.model.id == obj_id).first()

    def get_multi(
        self,
        db: Session,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        filters: Optional[dict] = None,
        order_by=None,
    ) -> Page:
        query = self.query(db)
        for column, value in (filters or {}).items():
            if value is None:
                continue
            query = query.filter(getattr(self.model, column) == value)
        query = query.order_by(order_by if order_by is not None else self.model.id.asc())
        return paginate(query, page, limit)

    def create(self, db: Session, data: dict, commit: bool = True) -> ModelType:
        obj = self.model(**data)
        db.add(obj)
        if commit:
            db.commit()
            db.refresh(obj)
        else:
            db.flush()
        return obj

    def update(self, db: Session, obj: ModelType, data: dict, commit: bool = True) -> ModelType:
        for key, value in data.items():
            setattr(obj, key, value)
        if commit:
            db.commit()
            db.refresh(obj)
        return obj

    def soft_delete(self, db: Session, obj: ModelType, commit: bool = True) -> ModelType:
        obj.deleted_at = datetime.utcnow()
        if commit:
            db.commit()
        return obj
