from conftest import auth_header, png_file

from marketplace.models.catalog import Country


def test_catalog_lists_only_active_rows(client, db, catalog):
    db.add(Country(name="Hidden", code="HD", status=0))
    db.commit()

    response = client.get("/catalog/countries")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 2
    assert {row["code"] for row in data["countries"]} == {"SA", "AE"}


def test_catalog_pagination(client, catalog):
    first = client.get("/catalog/countries", params={"limit": 1}).json()["data"]
    assert first["count"] == 1
    assert first["has_next"] is True

    second = client.get("/catalog/countries", params={"limit": 1, "page": 2}).json()["data"]
    assert second["has_next"] is False
    assert second["countries"][0]["id"] != first["countries"][0]["id"]


def test_catalog_filters(client, catalog):
    cities = client.get("/catalog/cities", params={"country_id": catalog.country_id}).json()["data"]
    assert [row["name"] for row in cities["cities"]] == ["Riyadh"]

    subs = client.get("/catalog/subcategories", params={"category_id": catalog.other_category_id}).json()["data"]
    assert [row["name"] for row in subs["subcategories"]] == ["Balayage"]

    images = client.get("/catalog/service-images", params={"category_id": catalog.category_id}).json()["data"]
    assert images["service_images"][0]["image_url"] == catalog.service_image_url

    banners = client.get("/catalog/banner-images").json()["data"]
    assert banners["banner_images"][0]["id"] == catalog.banner_id

    services = client.get("/catalog/services").json()["data"]
    assert services["services"][0]["title"] == "Haircut"

    categories = client.get("/catalog/categories").json()["data"]
    assert categories["total"] == 2


def test_gallery_add_list_delete(client, fake_s3, register_provider, onboard):
    provider = register_provider()
    onboard(provider.token, upto=1)
    headers = auth_header(provider.token)

    added = client.post(
        "/provider/gallery",
        data={"caption": "Bridal styling"},
        files={"image": png_file("look.png")},
        headers=headers,
    )
    assert added.status_code == 201
    item = added.json()["data"]
    assert item["caption"] == "Bridal styling"
    assert item["thumbnail_url"].endswith("_thumb.png")
    assert fake_s3.has_url(item["image_url"])
    assert fake_s3.has_url(item["thumbnail_url"])

    listing = client.get("/provider/gallery", headers=headers).json()["data"]
    assert listing["total"] == 1
    assert listing["gallery"][0]["id"] == item["id"]

    deleted = client.delete(f"/provider/gallery/{item['id']}", headers=headers)
    assert deleted.status_code == 200
    assert not fake_s3.has_url(item["image_url"])
    assert not fake_s3.has_url(item["thumbnail_url"])

    assert client.get("/provider/gallery", headers=headers).json()["data"]["total"] == 0
    assert client.delete(f"/provider/gallery/{item['id']}", headers=headers).status_code == 404


def test_gallery_is_private_to_each_provider(client, register_provider, onboard):
    owner = register_provider("555000030")
    onboard(owner.token, upto=1)
    other = register_provider("555000031")
    onboard(other.token, upto=1)

    item = client.post(
        "/provider/gallery", files={"image": png_file("look.png")}, headers=auth_header(owner.token)
    ).json()["data"]

    response = client.delete(f"/provider/gallery/{item['id']}", headers=auth_header(other.token))
    assert response.status_code == 404


def test_gallery_requires_provider_profile(client, register_provider):
    provider = register_provider()

    response = client.get("/provider/gallery", headers=auth_header(provider.token))
    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Provider profile not found"


def test_gallery_blocked_while_pending_review(client, register_provider, onboard):
    provider = register_provider()
    onboard(provider.token)

    response = client.get("/provider/gallery", headers=auth_header(provider.token))
    assert response.status_code == 403
    assert response.json()["error"]["error_code"] == "PENDING_ADMIN_VERIFICATION"
