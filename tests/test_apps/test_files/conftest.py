"""Shared fixtures for files app tests."""

import boto3
import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from moto import mock_aws

from server.apps.files.logic.file_operations import create_file
from server.apps.files.models import UserQuota

User = get_user_model()


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture
def bucket_name():
    """Name of the bucket the default storage writes to."""
    return settings.STORAGES['default']['OPTIONS']['bucket_name']


@pytest.fixture
def mock_s3(bucket_name):
    """Mock S3 service with the files bucket.

    Yields:
        boto3 S3 resource with the bucket created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket=bucket_name)
        yield conn


@pytest.fixture
def s3_bucket(mock_s3, bucket_name):
    """Bucket of the mocked S3 service."""
    return mock_s3.Bucket(bucket_name)


@pytest.fixture
def sample_content():
    """Sample file content for testing.

    Returns:
        Bytes of a small text file.
    """
    return b'test file content'


@pytest.fixture
def set_quota(db):
    """Factory setting a user's quota and usage.

    Returns:
        Callable taking user, quota_bytes and used_bytes.
    """
    def factory(user, quota_bytes, used_bytes=0):
        quota, _ = UserQuota.objects.update_or_create(
            user=user,
            defaults={'quota_bytes': quota_bytes, 'used_bytes': used_bytes},
        )
        return quota
    return factory


@pytest.fixture
def make_file(mock_s3, sample_content):
    """Factory uploading a file through the lifecycle service.

    Returns:
        Callable taking user and optional create_file arguments.
    """
    def factory(user, name='report.pdf', content=sample_content, **kwargs):
        kwargs.setdefault('mime_type', 'application/pdf')
        return create_file(
            user.id,
            name=name,
            original_name=kwargs.pop('original_name', name),
            size_bytes=(
                kwargs.pop('size_bytes') if 'size_bytes' in kwargs
                else len(content)
            ),
            content=content,
            **kwargs,
        )
    return factory
