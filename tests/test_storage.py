from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from pontocarro.core.config import Settings
from pontocarro.services.storage import (
    LocalImageStorage,
    S3ImageStorage,
    StorageError,
    build_storage,
)


@pytest.fixture
def s3_settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        JWT_SECRET_KEY="a",
        JWT_REFRESH_SECRET_KEY="b",
        IMAGE_STORAGE="s3",
        AWS_ACCESS_KEY=' "AKIAEXAMPLE" ',
        AWS_SECRET_KEY="'abc+/=xyz'",
        AWS_BUCKET_NAME="pontocarro-images",
        REGION="sa-east-1",
    )


def test_local_storage_round_trip(tmp_path):
    storage = LocalImageStorage(str(tmp_path), "http://localhost:3001/")

    storage.save("vehicles/v1/a.jpg", b"data", "image/jpeg")

    assert (tmp_path / "vehicles" / "v1" / "a.jpg").read_bytes() == b"data"
    assert storage.object_url("vehicles/v1/a.jpg") == "http://localhost:3001/uploads/vehicles/v1/a.jpg"


def test_local_delete_prefix_counts_files(tmp_path):
    storage = LocalImageStorage(str(tmp_path), "http://localhost:3001")
    for name in ("a.jpg", "b.jpg"):
        storage.save(f"vehicles/v1/{name}", b"data", "image/jpeg")
    storage.save("vehicles/v2/c.jpg", b"data", "image/jpeg")

    assert storage.delete_prefix("vehicles/v1/") == 2
    assert not (tmp_path / "vehicles" / "v1").exists()
    assert (tmp_path / "vehicles" / "v2" / "c.jpg").exists()
    assert storage.delete_prefix("vehicles/v1/") == 0


def test_local_delete_missing_key_is_quiet(tmp_path):
    LocalImageStorage(str(tmp_path), "http://localhost:3001").delete("vehicles/v1/none.jpg")


def test_local_storage_refuses_paths_outside_root(tmp_path):
    storage = LocalImageStorage(str(tmp_path / "media"), "http://localhost:3001")

    with pytest.raises(StorageError):
        storage.save("../escape.jpg", b"data", "image/jpeg")


def test_settings_accept_short_aws_names(s3_settings):
    assert s3_settings.AWS_ACCESS_KEY_ID == "AKIAEXAMPLE"
    assert s3_settings.AWS_SECRET_ACCESS_KEY == "abc+/=xyz"
    assert s3_settings.AWS_S3_BUCKET_NAME == "pontocarro-images"
    assert s3_settings.AWS_S3_REGION == "sa-east-1"


def test_s3_settings_require_credentials():
    with pytest.raises(ValueError):
        Settings(
            _env_file=None,
            DATABASE_URL="sqlite://",
            JWT_SECRET_KEY="a",
            JWT_REFRESH_SECRET_KEY="b",
            IMAGE_STORAGE="s3",
            AWS_S3_BUCKET_NAME="bucket",
        )


def test_s3_save_puts_object(s3_settings):
    client = MagicMock()
    storage = S3ImageStorage(s3_settings, client=client)

    storage.save("vehicles/v1/a.jpg", b"data", "image/jpeg")

    kwargs = client.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "pontocarro-images"
    assert kwargs["Key"] == "vehicles/v1/a.jpg"
    assert kwargs["ContentType"] == "image/jpeg"


def test_s3_client_errors_become_storage_errors(s3_settings):
    client = MagicMock()
    client.put_object.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")

    with pytest.raises(StorageError):
        S3ImageStorage(s3_settings, client=client).save("vehicles/v1/a.jpg", b"data", "image/jpeg")


def test_s3_delete_prefix_batches_keys(s3_settings):
    client = MagicMock()
    pages = [
        {"Contents": [{"Key": f"vehicles/v1/{index}.jpg"} for index in range(1000)]},
        {"Contents": [{"Key": f"vehicles/v1/extra{index}.jpg"} for index in range(5)]},
    ]
    client.get_paginator.return_value.paginate.return_value = pages
    client.delete_objects.return_value = {}

    deleted = S3ImageStorage(s3_settings, client=client).delete_prefix("vehicles/v1/")

    assert deleted == 1005
    assert client.delete_objects.call_count == 2
    client.get_paginator.return_value.paginate.assert_called_once_with(Bucket="pontocarro-images", Prefix="vehicles/v1/")


def test_s3_delete_prefix_of_empty_folder(s3_settings):
    client = MagicMock()
    client.get_paginator.return_value.paginate.return_value = [{"KeyCount": 0}]

    assert S3ImageStorage(s3_settings, client=client).delete_prefix("vehicles/v1/") == 0
    client.delete_objects.assert_not_called()


def test_s3_object_url(s3_settings):
    storage = S3ImageStorage(s3_settings, client=MagicMock())

    assert storage.object_url("vehicles/v1/a.jpg") == "https://pontocarro-images.s3.sa-east-1.amazonaws.com/vehicles/v1/a.jpg"


def test_build_storage_picks_backend(settings, s3_settings):
    assert isinstance(build_storage(settings), LocalImageStorage)
    assert isinstance(build_storage(s3_settings), S3ImageStorage)
