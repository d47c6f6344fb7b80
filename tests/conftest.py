import io
import json
import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Ensure predictable environment variables for tests before importing the app.
BASE_DIR = Path(__file__).resolve().parents[1]
TEST_DB_PATH = BASE_DIR / "test.db"

if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB_PATH}")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("OTP_FIXED_CODE", "1111")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SEED_ON_STARTUP", "false")
os.environ.setdefault("CLEANUP_ENABLED", "false")
os.environ.setdefault("SPACES_REGION", "us-east-1")
os.environ.setdefault("SPACES_NAME", "test-bucket")
os.environ.setdefault("SPACES_CDN_URL", "https://cdn.test")
os.environ.setdefault("SPACES_BASE_PATH", "marketplace")
os.environ.setdefault("SMS_API_TOKEN", "")
os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")
os.environ.setdefault("ADMIN_PASSWORD", "Admin@123")

import marketplace.main as main  # noqa: E402  (import after env vars are set)
from marketplace.database import Base, SessionLocal, engine  # noqa: E402
from marketplace.models.admin import Admin, AdminRole  # noqa: E402
from marketplace.models.catalog import (  # noqa: E402
    BannerImage,
    Category,
    City,
    Country,
    Service,
    ServiceImage,
    SubCategory,
)
from marketplace.services import spaces_service  # noqa: E402
from marketplace.services.rate_limit import limiter  # noqa: E402
from marketplace.services.auth_service import get_password_hash  # noqa: E402

PASSWORD = "Secret@123"
ADMIN_PASSWORD = "Admin@123"
IBAN = "SA0380000000608010167519"


class FakeS3:
    """In-memory stand-in for the boto3 S3 client."""

    def __init__(self):
        self.objects = {}
        self.fail = False

    def put_object(self, Bucket, Key, Body, **kwargs):
        if self.fail:
            from botocore.exceptions import ClientError

            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        self.objects[Key] = Body

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)

    def has_url(self, url):
        return url[len("https://cdn.test/"):] in self.objects


def png_bytes(color=(200, 30, 90), size=(64, 64)):
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format="PNG")
    return out.getvalue()


def png_file(name="image.png", color=(200, 30, 90)):
    return (name, png_bytes(color), "image/png")


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def register_payload(phone_number, **overrides):
    payload = {
        "first_name": "Sara",
        "last_name": "Ali",
        "phone_code": "966",
        "phone_number": phone_number,
        "password": PASSWORD,
        "gender": 2,
        "terms_and_condition": 1,
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_s3(monkeypatch):
    fake = FakeS3()
    monkeypatch.setattr(spaces_service, "s3", fake)
    return fake


@pytest.fixture()
def rate_limited(monkeypatch):
    """Switch the limiter on with empty counters for one test."""
    monkeypatch.setattr(limiter, "enabled", True)
    limiter.reset()
    yield limiter
    limiter.reset()


@pytest.fixture()
def client(monkeypatch, fake_s3):
    """Provide a TestClient with startup seeding patched out for isolation."""
    monkeypatch.setattr(main, "run_seed", lambda: None)

    with TestClient(main.app) as test_client:
        yield test_client


@pytest.fixture()
def catalog(db):
    country = Country(name="Saudi Arabia", code="SA", phone_code="966")
    other_country = Country(name="UAE", code="AE", phone_code="971")
    db.add_all([country, other_country])
    db.flush()

    city = City(country_id=country.id, name="Riyadh")
    other_city = City(country_id=other_country.id, name="Dubai")
    category = Category(name="Classic Haircut")
    other_category = Category(name="Highlights")
    service = Service(title="Haircut")
    db.add_all([city, other_city, category, other_category, service])
    db.flush()

    sub_category = SubCategory(category_id=category.id, name="Bob Cut")
    other_sub_category = SubCategory(category_id=other_category.id, name="Balayage")
    banner = BannerImage(title="Elegant", image_url="https://cdn.test/marketplace/catalog/banners/elegant.jpg")
    service_image = ServiceImage(
        title="Hair Cut",
        image_url="https://cdn.test/marketplace/catalog/service-images/hair-cut.jpg",
        category_id=category.id,
    )
    db.add_all([sub_category, other_sub_category, banner, service_image])
    db.commit()

    return SimpleNamespace(
        country_id=country.id,
        other_country_id=other_country.id,
        city_id=city.id,
        other_city_id=other_city.id,
        category_id=category.id,
        other_category_id=other_category.id,
        sub_category_id=sub_category.id,
        other_sub_category_id=other_sub_category.id,
        service_id=service.id,
        banner_id=banner.id,
        banner_url=banner.image_url,
        service_image_id=service_image.id,
        service_image_url=service_image.image_url,
    )


@pytest.fixture()
def register_user(client):
    def _register(phone_number="500000001", verify=True, **overrides):
        response = client.post("/users/register", json=register_payload(phone_number, **overrides))
        assert response.status_code == 201, response.json()
        user_id = response.json()["data"]["id"]
        if not verify:
            return SimpleNamespace(id=user_id, token=None, phone_number=phone_number)
        verified = client.post("/users/verify-verification-otp", json={"user_id": user_id, "otp": "1111"})
        assert verified.status_code == 200, verified.json()
        return SimpleNamespace(
            id=user_id,
            token=verified.json()["data"]["access_token"],
            phone_number=phone_number,
        )

    return _register


@pytest.fixture()
def register_provider(client):
    def _register(phone_number="555000001", verify=True, **overrides):
        response = client.post("/provider/register", json=register_payload(phone_number, **overrides))
        assert response.status_code == 201, response.json()
        user_id = response.json()["data"]["id"]
        if not verify:
            return SimpleNamespace(id=user_id, token=None, phone_number=phone_number)
        verified = client.post(
            "/provider/verify-verification-otp",
            json={"phone_code": "966", "phone_number": phone_number, "otp": "1111"},
        )
        assert verified.status_code == 200, verified.json()
        return SimpleNamespace(
            id=user_id,
            token=verified.json()["data"]["access_token"],
            phone_number=phone_number,
        )

    return _register


@pytest.fixture()
def onboard(client, catalog):
    """Run onboarding steps 1..upto for a provider token."""

    def _onboard(token, upto=6, provider_type="individual"):
        headers = auth_header(token)
        steps = {
            1: lambda: client.post("/provider/step1-subscription-payment", json={}, headers=headers),
            2: lambda: client.post(
                "/provider/step2-provider-type", json={"provider_type": provider_type}, headers=headers
            ),
            3: lambda: client.post(
                "/provider/step3-salon-details",
                data={
                    "country_id": str(catalog.country_id),
                    "city_id": str(catalog.city_id),
                    "address": "King Fahd Road, Riyadh",
                    "salon_name": "Glow Salon",
                    "banner_image_id": str(catalog.banner_id),
                },
                headers=headers,
            ),
            4: lambda: client.post(
                "/provider/step4-documents-bank",
                data={"account_holder_name": "Sara Ali", "bank_name": "Al Rajhi", "iban": IBAN},
                files={
                    "national_id": png_file("national-id.png"),
                    "commercial_registration": png_file("cr.png", (10, 10, 10)),
                },
                headers=headers,
            ),
            5: lambda: client.post(
                "/provider/step5-working-hours",
                json={"availability": [{"day": "monday", "from_time": "09:00", "to_time": "17:00"}]},
                headers=headers,
            ),
            6: lambda: client.post(
                "/provider/step6-setup-services",
                data={
                    "services": json.dumps(
                        [
                            {
                                "service_id": catalog.service_id,
                                "category_id": catalog.category_id,
                                "sub_category_id": catalog.sub_category_id,
                                "price": 50,
                                "image_id": catalog.service_image_id,
                            }
                        ]
                    )
                },
                headers=headers,
            ),
        }
        for step in range(1, upto + 1):
            response = steps[step]()
            assert response.status_code == 200, (step, response.json())
        return response

    return _onboard


@pytest.fixture()
def admin_token(client, db):
    role = AdminRole(title="Super Admin")
    db.add(role)
    db.flush()
    db.add(
        Admin(
            full_name="Marketplace Admin",
            email="root@example.com",
            password=get_password_hash(ADMIN_PASSWORD),
            role_id=role.id,
            status=1,
        )
    )
    db.commit()

    response = client.post("/admin/login", json={"email": "root@example.com", "password": ADMIN_PASSWORD})
    assert response.status_code == 200, response.json()
    return response.json()["data"]["access_token"]
