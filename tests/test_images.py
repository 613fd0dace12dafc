import pytest

from conftest import CDN, auth_headers, create_vehicle, image_files, register_user
from pontocarro.models.image import Image
from pontocarro.services.images import ImageService, vehicle_folder


FLAGS = "f_auto,q_auto,c_limit,w_1920,h_1920"


@pytest.fixture
def listing(client):
    tokens = register_user(client)
    vehicle = create_vehicle(client, tokens["accessToken"])
    return vehicle, auth_headers(tokens["accessToken"])


def upload(client, vehicle, headers, files):
    return client.post(f"/vehicles/{vehicle['id']}/images", files=files, headers=headers)


def test_upload_stores_files_under_vehicle_folder(client, storage, listing):
    vehicle, headers = listing

    response = upload(client, vehicle, headers, image_files(2))

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Imagens enviadas com sucesso"
    assert len(body["images"]) == len(body["imageIds"]) == 2
    for url in body["images"]:
        assert url.startswith(f"{CDN}/{FLAGS}/vehicles/{vehicle['id']}/")
        assert url.endswith(".jpg")
    assert all(key.startswith(vehicle_folder(vehicle["id"])) for key in storage.objects)


def test_eleventh_image_is_rejected(client, storage, listing):
    vehicle, headers = listing
    assert upload(client, vehicle, headers, image_files(10)).status_code == 201

    response = upload(client, vehicle, headers, image_files(1))

    assert response.status_code == 400
    assert response.json() == {"message": "Não é possível enviar mais de 10 imagens. Você já tem 10 imagens."}
    assert len(storage.objects) == 10


def test_batch_that_would_exceed_limit_is_rejected_whole(client, storage, db_session, listing):
    vehicle, headers = listing
    upload(client, vehicle, headers, image_files(8))

    response = upload(client, vehicle, headers, image_files(3))

    assert response.status_code == 400
    assert db_session.query(Image).count() == 8


def test_upload_without_files_is_400(client, listing):
    vehicle, headers = listing

    response = client.post(f"/vehicles/{vehicle['id']}/images", headers=headers)

    assert response.status_code == 400
    assert response.json() == {"message": "Nenhuma imagem enviada"}


def test_upload_rejects_non_images(client, listing):
    vehicle, headers = listing

    response = upload(client, vehicle, headers, [("images", ("notas.pdf", b"%PDF-1.4", "application/pdf"))])

    assert response.status_code == 400


def test_upload_rejects_empty_file(client, listing):
    vehicle, headers = listing

    response = upload(client, vehicle, headers, [("images", ("vazia.jpg", b"", "image/jpeg"))])

    assert response.status_code == 400


def test_upload_rejects_oversized_file(client, settings, listing):
    vehicle, headers = listing
    too_big = b"x" * (settings.max_image_size_bytes + 1)

    response = upload(client, vehicle, headers, [("images", ("enorme.jpg", too_big, "image/jpeg"))])

    assert response.status_code == 400


def test_non_owner_cannot_upload(client, storage, listing):
    vehicle, _ = listing
    intruder = register_user(client, email="bruno@example.com")

    response = upload(client, vehicle, auth_headers(intruder["accessToken"]), image_files(1))

    assert response.status_code == 404
    assert storage.objects == {}


def test_storage_failure_rolls_back_whole_request(client, storage, db_session, listing):
    vehicle, headers = listing
    storage.fail_saves_after = 1

    response = upload(client, vehicle, headers, image_files(3))

    assert response.status_code == 500
    assert response.json() == {"message": "Erro ao enviar imagens"}
    assert db_session.query(Image).count() == 0
    assert storage.objects == {}


def test_get_images_of_vehicle_in_creation_order(client, listing):
    vehicle, headers = listing
    first = upload(client, vehicle, headers, image_files(1)).json()
    second = upload(client, vehicle, headers, image_files(1)).json()

    response = client.get(f"/images/{vehicle['id']}")

    assert response.status_code == 200
    body = response.json()
    assert [image["id"] for image in body] == first["imageIds"] + second["imageIds"]
    assert set(body[0]) == {"id", "vehicleId", "imageUrl", "createdAt"}


def test_first_image_is_the_cover(client, listing):
    vehicle, headers = listing
    first = upload(client, vehicle, headers, image_files(1)).json()
    upload(client, vehicle, headers, image_files(1))

    response = client.get(f"/images/{vehicle['id']}/first")

    assert response.status_code == 200
    assert response.json()["id"] == first["imageIds"][0]
    assert response.json()["imageUrl"] == first["images"][0]


def test_get_single_image(client, listing):
    vehicle, headers = listing
    uploaded = upload(client, vehicle, headers, image_files(1)).json()

    response = client.get(f"/images/item/{uploaded['imageIds'][0]}")

    assert response.status_code == 200
    assert response.json()["vehicleId"] == vehicle["id"]
    assert "storageKey" not in response.json()


def test_image_lookups_404_when_nothing_found(client, listing):
    vehicle, _ = listing

    assert client.get(f"/images/{vehicle['id']}").status_code == 404
    assert client.get(f"/images/{vehicle['id']}/first").status_code == 404
    assert client.get("/images/item/unknown").status_code == 404


def test_delete_image(client, storage, listing):
    vehicle, headers = listing
    uploaded = upload(client, vehicle, headers, image_files(2)).json()
    image_id = uploaded["imageIds"][0]

    response = client.delete(f"/vehicles/{vehicle['id']}/images/{image_id}", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Imagem excluída com sucesso"}
    assert len(storage.objects) == 1
    assert [image["id"] for image in client.get(f"/images/{vehicle['id']}").json()] == [uploaded["imageIds"][1]]


def test_delete_image_of_another_vehicle_is_404(client, listing):
    vehicle, headers = listing
    token = headers["Authorization"].split()[1]
    other = create_vehicle(client, token, title="Outro carro")
    uploaded = upload(client, other, headers, image_files(1)).json()

    response = client.delete(f"/vehicles/{vehicle['id']}/images/{uploaded['imageIds'][0]}", headers=headers)

    assert response.status_code == 404


def test_delete_image_survives_storage_failure(client, storage, listing):
    vehicle, headers = listing
    uploaded = upload(client, vehicle, headers, image_files(1)).json()
    storage.fail_deletes = True

    response = client.delete(f"/vehicles/{vehicle['id']}/images/{uploaded['imageIds'][0]}", headers=headers)

    assert response.status_code == 200
    assert client.get(f"/images/{vehicle['id']}").status_code == 404


def test_url_without_cdn_falls_back_to_storage_url(settings, storage):
    settings.IMAGE_CDN_BASE_URL = None
    service = ImageService(settings, storage)

    assert service.url_for("vehicles/v1/a.jpg") == "https://bucket.example.com/vehicles/v1/a.jpg"


def test_delivery_flags_follow_max_dimension(settings, storage):
    settings.IMAGE_MAX_DIMENSION = 800
    service = ImageService(settings, storage)

    assert service.url_for("vehicles/v1/a.jpg") == f"{CDN}/f_auto,q_auto,c_limit,w_800,h_800/vehicles/v1/a.jpg"


def test_new_key_keeps_safe_extension_only(settings, storage):
    service = ImageService(settings, storage)

    assert service.new_key("v1", "Foto.PNG", "image/png").endswith(".png")
    assert service.new_key("v1", "foto", "image/jpeg").startswith("vehicles/v1/")
    assert not service.new_key("v1", "x.php?a=b", "image/webp").endswith("php?a=b")
