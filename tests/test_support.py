import httpx
from conftest import png_bytes
from PIL import Image
from sqlalchemy import create_engine, inspect, text

import seed
from marketplace.config import settings
from marketplace.models.admin import Admin
from marketplace.models.catalog import City, Country, SubCategory
from marketplace.services import sms_service, spaces_service
from marketplace.utils.db_migrations import ensure_provider_review_columns


def test_seed_is_idempotent(db):
    seed.run_seed()
    seed.run_seed()

    assert db.query(Country).count() == 2
    assert db.query(City).count() == 6
    assert db.query(SubCategory).count() == 9
    admin = db.query(Admin).one()
    assert admin.email == "admin@example.com"
    assert admin.role.title == seed.SUPER_ADMIN_ROLE


def test_migration_adds_missing_column(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE service_providers (id INTEGER PRIMARY KEY)"))

    assert ensure_provider_review_columns(engine) == [
        "ALTER TABLE service_providers ADD COLUMN rejection_reason TEXT"
    ]
    assert ensure_provider_review_columns(engine) == []
    columns = {column["name"] for column in inspect(engine).get_columns("service_providers")}
    assert "rejection_reason" in columns


def test_sms_skipped_without_gateway(monkeypatch):
    monkeypatch.setattr(settings, "SMS_API_TOKEN", None)
    assert sms_service.send_otp("966500000001", "1234") is False


def _mock_client(monkeypatch, handler):
    real_client = httpx.Client
    monkeypatch.setattr(
        sms_service.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


def test_sms_dispatch(monkeypatch):
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(200, json={"ok": True})

    monkeypatch.setattr(settings, "SMS_API_TOKEN", "token")
    _mock_client(monkeypatch, handler)

    assert sms_service.send_otp("+966500000001", "1234", "password_reset") is True
    assert sent[0].headers["Authorization"] == "Bearer token"
    assert b"Your password reset code is 1234" in sent[0].content
    assert b'"966500000001"' in sent[0].content


def test_sms_gateway_error_is_reported(monkeypatch):
    monkeypatch.setattr(settings, "SMS_API_TOKEN", "token")
    _mock_client(monkeypatch, lambda request: httpx.Response(500))

    assert sms_service.send_otp("966500000001", "1234") is False


def test_only_uploads_count_as_custom_images():
    assert spaces_service.is_custom_uploaded_image(
        "https://cdn.test/marketplace/uploads/providers/1/banner/abc.png"
    )
    assert not spaces_service.is_custom_uploaded_image("https://cdn.test/marketplace/catalog/banners/a.jpg")
    assert not spaces_service.is_custom_uploaded_image("https://elsewhere.test/marketplace/uploads/a.png")
    assert not spaces_service.is_custom_uploaded_image(None)


def test_cleanup_skips_catalog_assets(fake_s3):
    fake_s3.objects["marketplace/uploads/providers/1/banner/abc.png"] = b"x"
    fake_s3.objects["marketplace/catalog/banners/a.jpg"] = b"x"

    removed = spaces_service.cleanup_images(
        [
            "https://cdn.test/marketplace/uploads/providers/1/banner/abc.png",
            "https://cdn.test/marketplace/uploads/providers/1/banner/abc.png",
            "https://cdn.test/marketplace/catalog/banners/a.jpg",
        ]
    )
    assert removed == 1
    assert list(fake_s3.objects) == ["marketplace/catalog/banners/a.jpg"]


def test_oversized_image_is_rejected_before_upload(monkeypatch, fake_s3):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    result = spaces_service.upload_image(png_bytes(size=(64, 64)), "big.png", "providers/1", "banner")

    assert result.success is False
    assert result.error == "Uploaded file is not a valid image"
    assert fake_s3.objects == {}
