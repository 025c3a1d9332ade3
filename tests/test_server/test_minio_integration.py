"""Integration tests for FileStorage against a real MinIO server.

Run them with MinIO started, e.g. in Docker Compose::

    MINIO_ENDPOINT=http://localhost:9000 pytest -m integration
"""
import os
from typing import Final

import pytest
from botocore.exceptions import ClientError

from server.apps.files.infrastructure.storage import FileStorage

_TEST_BUCKET: Final = 'cloud-drive-integration'
_TEST_FILE_KEY: Final = '1/1-integration-test.txt'
_TEST_FILE_CONTENT: Final = b'Hello from MinIO integration test!'

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        'MINIO_ENDPOINT' not in os.environ,
        reason='MINIO_ENDPOINT is not set',
    ),
]


@pytest.fixture
def storage() -> FileStorage:
    """Create FileStorage for MinIO with the test bucket.

    Returns:
        Storage backend writing to the test bucket.
    """
    minio_storage = FileStorage(
        bucket_name=_TEST_BUCKET,
        endpoint_url=os.environ['MINIO_ENDPOINT'],
        access_key=os.getenv('MINIO_ROOT_USER', 'minioadmin'),
        secret_key=os.getenv('MINIO_ROOT_PASSWORD', 'minioadmin'),
        region_name='us-east-1',
        file_overwrite=True,
    )
    client = minio_storage.connection.meta.client
    try:
        client.head_bucket(Bucket=_TEST_BUCKET)
    except ClientError:
        client.create_bucket(Bucket=_TEST_BUCKET)

    return minio_storage


def test_put_and_exists(storage: FileStorage) -> None:
    """Test uploaded objects are visible to exists and list_prefix.

    Args:
        storage: MinIO backed storage.
    """
    storage.put(_TEST_FILE_KEY, _TEST_FILE_CONTENT, content_type='text/plain')

    assert storage.exists(_TEST_FILE_KEY)
    assert _TEST_FILE_KEY in storage.list_prefix('1/')


def test_presigned_download(storage: FileStorage) -> None:
    """Test presigned URL points to the uploaded object.

    Args:
        storage: MinIO backed storage.
    """
    storage.put(_TEST_FILE_KEY, _TEST_FILE_CONTENT, content_type='text/plain')

    url = storage.presign_get(_TEST_FILE_KEY, ttl_seconds=60)

    assert url.startswith(os.environ['MINIO_ENDPOINT'])
    assert _TEST_FILE_KEY in url


def test_delete_is_idempotent(storage: FileStorage) -> None:
    """Test deleting twice succeeds and removes the object.

    Args:
        storage: MinIO backed storage.
    """
    storage.put(_TEST_FILE_KEY, _TEST_FILE_CONTENT, content_type='text/plain')

    storage.delete(_TEST_FILE_KEY)
    storage.delete(_TEST_FILE_KEY)

    assert not storage.exists(_TEST_FILE_KEY)
