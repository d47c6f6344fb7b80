import logging

from marketplace.config import settings
from marketplace.database import Base, SessionLocal, engine
from marketplace.models.admin import Admin, AdminRole
from marketplace.models.catalog import (
    BannerImage,
    Category,
    City,
    Country,
    Service,
    ServiceImage,
    SubCategory,
)
from marketplace.services.auth_service import get_password_hash

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE = "Super Admin"
ASSET_BASE = f"{settings.SPACES_CDN_URL or 'https://example.com'}/{settings.SPACES_BASE_PATH}/catalog"

DEFAULT_COUNTRIES = [
    {
        "name": "Saudi Arabia",
        "code": "SA",
        "phone_code": "966",
        "cities": ["Riyadh", "Jeddah", "Dammam"],
    },
    {
        "name": "UAE",
        "code": "AE",
        "phone_code": "971",
        "cities": ["Dubai", "Abu Dhabi", "Sharjah"],
    },
]

DEFAULT_CATEGORIES = [
    {"name": "Classic Haircut", "subcategories": ["Bob Cut", "Trimming"]},
    {"name": "Modern Haircut", "subcategories": ["Layered Cut", "Undercut"]},
    {"name": "Kids Haircut", "subcategories": ["Kids Bob Cut"]},
    {"name": "Highlights", "subcategories": ["Balayage", "Babylights"]},
    {"name": "Full Color", "subcategories": ["Permanent Color", "Semi Permanent Color"]},
]

DEFAULT_SERVICES = ["Haircut", "Hair Coloring", "Facial", "Massage", "Nail Services"]

DEFAULT_BANNERS = [
    "Elegant Salon Banner",
    "Modern Beauty Spa",
    "Luxury Hair Salon",
    "Professional Nail Studio",
]

DEFAULT_SERVICE_IMAGES = [
    ("Hair Cut", "Classic Haircut"),
    ("Hair Styling", "Modern Haircut"),
    ("Hair Coloring", "Full Color"),
    ("Facial", None),
]


def _slug(title: str) -> str:
    return title.lower().replace(" ", "-")


def seed_admin(db):
    role = db.query(AdminRole).filter(AdminRole.title == SUPER_ADMIN_ROLE).first()
    if role is None:
        role = AdminRole(title=SUPER_ADMIN_ROLE)
        db.add(role)
        db.flush()
        logger.info("Seeded admin role '%s'", SUPER_ADMIN_ROLE)

    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        logger.warning("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping bootstrap admin")
        db.commit()
        return

    email = settings.ADMIN_EMAIL.lower()
    if db.query(Admin).filter(Admin.email == email).first() is None:
        db.add(
            Admin(
                first_name="Marketplace",
                last_name="Admin",
                full_name="Marketplace Admin",
                email=email,
                password=get_password_hash(settings.ADMIN_PASSWORD),
                role_id=role.id,
                status=1,
            )
        )
        logger.info("Seeded bootstrap admin %s", email)
    db.commit()


def seed_locations(db):
    for config in DEFAULT_COUNTRIES:
        country = db.query(Country).filter(Country.code == config["code"]).first()
        if country is None:
            country = Country(name=config["name"], code=config["code"], phone_code=config["phone_code"])
            db.add(country)
            db.flush()
            logger.info("Seeded country '%s'", country.name)
        for name in config["cities"]:
            exists = db.query(City).filter(City.country_id == country.id, City.name == name).first()
            if exists is None:
                db.add(City(country_id=country.id, name=name))
    db.commit()


def seed_categories(db):
    for config in DEFAULT_CATEGORIES:
        category = db.query(Category).filter(Category.name == config["name"]).first()
        if category is None:
            category = Category(name=config["name"], image=f"{ASSET_BASE}/categories/{_slug(config['name'])}.jpg")
            db.add(category)
            db.flush()
            logger.info("Seeded category '%s'", category.name)
        for name in config["subcategories"]:
            exists = (
                db.query(SubCategory)
                .filter(SubCategory.category_id == category.id, SubCategory.name == name)
                .first()
            )
            if exists is None:
                db.add(SubCategory(category_id=category.id, name=name))
    db.commit()


def seed_services(db):
    for title in DEFAULT_SERVICES:
        if db.query(Service).filter(Service.title == title).first() is None:
            db.add(Service(title=title, image=f"{ASSET_BASE}/services/{_slug(title)}.jpg"))
    db.commit()


def seed_images(db):
    for title in DEFAULT_BANNERS:
        if db.query(BannerImage).filter(BannerImage.title == title).first() is None:
            db.add(BannerImage(title=title, image_url=f"{ASSET_BASE}/banners/{_slug(title)}.jpg"))

    for title, category_name in DEFAULT_SERVICE_IMAGES:
        if db.query(ServiceImage).filter(ServiceImage.title == title).first() is not None:
            continue
        category = None
        if category_name:
            category = db.query(Category).filter(Category.name == category_name).first()
        db.add(
            ServiceImage(
                title=title,
                image_url=f"{ASSET_BASE}/service-images/{_slug(title)}.jpg",
                category_id=category.id if category else None,
            )
        )
    db.commit()


def run_seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_admin(db)
        seed_locations(db)
        seed_categories(db)
        seed_services(db)
        seed_images(db)
        logger.info("Seeding finished")
    except Exception:
        db.rollback()
        logger.exception("Seeding error")
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    run_seed()
