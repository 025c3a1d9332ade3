"""Custom storage backend for S3-compatible storage."""

import logging
from collections.abc import Mapping
from io import BytesIO
from typing import Any, BinaryIO, Final, final
from urllib.parse import quote

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError
from typing_extensions import override
from storages.backends.s3 import S3Storage
from storages.utils import clean_name

from server.apps.files.exceptions import StoreUnavailableError
from server.apps.files.infrastructure.metadata import build_storage_key

logger = logging.getLogger(__name__)

_DEFAULT_URL_TTL: Final = 3600
_MISSING_OBJECT_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound'))

# Everything boto3 raises for transport, auth and service failures
_STORE_ERRORS: Final = (Boto3Error, BotoCoreError, ClientError)


@final
class FileStorage(S3Storage):
    """S3 storage backend for user files.

    Extends django-storages S3Storage with the object store contract
    used by the file lifecycle:
    - put / delete / exists / list by prefix, failing with
      StoreUnavailableError on transport errors
    - presigned GET and PUT URLs
    - unique storage key generation
    - best-effort rollback of uploads for failed DB operations
    """

    def generate_key(self, user_id: int, original_name: str) -> str:
        """Generate a storage key that no other upload will use.

        Args:
            user_id: Owner's user ID.
            original_name: Filename as uploaded.

        Returns:
            New storage key.
        """
        return build_storage_key(user_id, original_name)

    def put(
        self,
        key: str,
        content: bytes | BinaryIO,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        """Upload content under the given key, overwriting existing objects.

        Args:
            key: Storage key.
            content: Raw bytes or a readable binary file-like object.
            content_type: MIME type stored with the object.
            metadata: Optional user metadata stored with the object.

        Raises:
            StoreUnavailableError: If the upload fails.
        """
        if isinstance(content, bytes):
            content = BytesIO(content)
        elif hasattr(content, 'seek'):
            content.seek(0)

        extra_args: dict[str, Any] = {'ContentType': content_type}
        if metadata:
            extra_args['Metadata'] = dict(metadata)

        try:
            logger.info('Uploading object to storage: %s', key)
            self.bucket.Object(self._object_key(key)).upload_fileobj(
                content,
                ExtraArgs=extra_args,
                Config=self.transfer_config,
            )
        except _STORE_ERRORS as error:
            logger.exception('Failed to upload object to storage: %s', key)
            raise StoreUnavailableError('put', key) from error
        logger.info('Successfully uploaded object: %s', key)

    def presign_get(
        self,
        key: str,
        ttl_seconds: int = _DEFAULT_URL_TTL,
        download_name: str | None = None,
    ) -> str:
        """Create a time-limited download URL.

        The object is not checked for existence.

        Args:
            key: Storage key.
            ttl_seconds: Seconds until the URL expires.
            download_name: Filename offered to the browser, if any.

        Returns:
            Presigned GET URL.
        """
        params = {'Bucket': self.bucket_name, 'Key': self._object_key(key)}
        if download_name:
            params['ResponseContentDisposition'] = (
                f"attachment; filename*=UTF-8''{quote(download_name)}"
            )
        return self._presign('get_object', params, ttl_seconds, key)

    def presign_put(
        self,
        key: str,
        ttl_seconds: int = _DEFAULT_URL_TTL,
        content_type: str | None = None,
    ) -> str:
        """Create a time-limited URL for direct uploads from clients.

        Args:
            key: Storage key the client will upload to.
            ttl_seconds: Seconds until the URL expires.
            content_type: Content type the client must send, if any.

        Returns:
            Presigned PUT URL.
        """
        params = {'Bucket': self.bucket_name, 'Key': self._object_key(key)}
        if content_type:
            params['ContentType'] = content_type
        return self._presign('put_object', params, ttl_seconds, key)

    @override
    def delete(self, name: str) -> None:
        """Delete object from S3 with error handling and logging.

        Deleting a missing object succeeds.

        Args:
            name: Storage key of object to delete.

        Raises:
            StoreUnavailableError: If S3 delete fails.
        """
        try:
            logger.info('Deleting object from storage: %s', name)
            self._client.delete_object(
                Bucket=self.bucket_name,
                Key=self._object_key(name),
            )
        except _STORE_ERRORS as error:
            if _is_missing_object(error):
                logger.debug('Object already absent: %s', name)
                return
            logger.exception('Failed to delete object from storage: %s', name)
            raise StoreUnavailableError('delete', name) from error
        logger.info('Successfully deleted object: %s', name)

    @override
    def exists(self, name: str) -> bool:
        """Check whether an object exists.

        Args:
            name: Storage key.

        Returns:
            True if the object exists, False if it is missing.

        Raises:
            StoreUnavailableError: On transport or auth failure.
        """
        try:
            self._client.head_object(
                Bucket=self.bucket_name,
                Key=self._object_key(name),
            )
        except _STORE_ERRORS as error:
            if _is_missing_object(error):
                return False
            logger.exception('Failed to check object in storage: %s', name)
            raise StoreUnavailableError('exists', name) from error
        return True

    def list_prefix(self, prefix: str = '') -> list[str]:
        """List all object keys starting with prefix.

        Args:
            prefix: Key prefix, e.g. '42/' for one user's objects.

        Returns:
            Matching storage keys, relative to the storage location
            like every other key this class accepts.

        Raises:
            StoreUnavailableError: If listing fails.
        """
        location = self.location.strip('/')
        location_prefix = f'{location}/' if location else ''
        paginator = self._client.get_paginator('list_objects_v2')
        keys: list[str] = []
        try:
            for page in paginator.paginate(
                Bucket=self.bucket_name,
                Prefix=self._object_key(prefix) if prefix else location_prefix,
            ):
                keys.extend(
                    item['Key'].removeprefix(location_prefix)
                    for item in page.get('Contents', [])
                )
        except _STORE_ERRORS as error:
            logger.exception('Failed to list storage prefix: %s', prefix)
            raise StoreUnavailableError('list', prefix) from error
        return keys

    def rollback_upload(self, name: str) -> None:
        """Delete uploaded object for DB transaction rollback.

        This method is called when a database transaction fails after
        an object has been successfully uploaded to S3. It attempts to
        delete the object to maintain consistency.

        This is a best-effort operation - if deletion fails, the error
        is logged but not raised, as the DB rollback has already occurred.

        Args:
            name: Storage key of object to delete.
        """
        try:
            logger.warning('Rolling back upload, deleting object: %s', name)
            self.delete(name)
            logger.info('Successfully rolled back upload: %s', name)
        except StoreUnavailableError:
            # The object stays in storage without a DB row,
            # `reconcile_storage` finds and removes it later
            logger.exception(
                'Failed to rollback upload, orphaned object: %s',
                name,
            )

    @property
    def _client(self) -> Any:
        return self.connection.meta.client

    def _object_key(self, name: str) -> str:
        return self._normalize_name(clean_name(name))

    def _presign(
        self,
        client_method: str,
        params: dict[str, str],
        ttl_seconds: int,
        key: str,
    ) -> str:
        try:
            return self._client.generate_presigned_url(
                client_method,
                Params=params,
                ExpiresIn=ttl_seconds,
            )
        except _STORE_ERRORS as error:
            logger.exception('Failed to presign %s: %s', client_method, key)
            raise StoreUnavailableError('presign', key) from error


def _is_missing_object(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    code = error.response.get('Error', {}).get('Code', '')
    return str(code) in _MISSING_OBJECT_CODES
