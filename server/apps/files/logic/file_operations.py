"""Business logic for file operations."""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, BinaryIO, Final
from urllib.parse import quote
from uuid import UUID

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from server.apps.files.exceptions import (
    FolderNotFoundError,
    NotFoundError,
    OwnerNotFoundError,
)
from server.apps.files.infrastructure.metadata import generate_share_token
from server.apps.files.logic.quota_operations import (
    check_quota,
    reserve_quota,
)
from server.apps.files.models import File, Folder

if TYPE_CHECKING:
    from server.apps.files.infrastructure.storage import FileStorage

User = get_user_model()
logger = logging.getLogger(__name__)

_FileId = UUID | str

# Marker for "no folder filter", `None` means root-level files only
ANY_FOLDER: Final = object()

_UPDATABLE_FIELDS: Final = frozenset((
    'name',
    'description',
    'folder_id',
    'is_public',
    'tags',
))


def get_storage() -> 'FileStorage':
    """Get the configured default storage backend.

    Returns:
        FileStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]


def get_owner(user_id: int) -> Any:
    """Load the user owning an operation.

    Args:
        user_id: ID of an already authenticated user.

    Returns:
        User instance.

    Raises:
        OwnerNotFoundError: If the user doesn't exist.
    """
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise OwnerNotFoundError(user_id) from None


def get_owned_file(file_id: _FileId, user_id: int) -> File:
    """Get file owned by user, including files in trash.

    Args:
        file_id: ID of the file.
        user_id: ID of the requesting user.

    Returns:
        File instance.

    Raises:
        NotFoundError: If file is missing or owned by someone else.
    """
    return _scoped_get(File.all_objects.all(), file_id, user_id)


def create_file(  # noqa: WPS211
    user_id: int,
    name: str,
    original_name: str,
    mime_type: str,
    size_bytes: int,
    content: bytes | BinaryIO,
    folder_id: _FileId | None = None,
    is_public: bool = False,
) -> File:
    """Upload file to storage and create database record.

    Transaction safety: Upload to storage first, then reserve quota and
    create DB record in one transaction. If the transaction fails,
    the uploaded object is deleted from storage (rollback).

    Args:
        user_id: Owner of the file.
        name: Display name.
        original_name: Filename as uploaded by the client.
        mime_type: Content type of the upload.
        size_bytes: Size of content in bytes.
        content: Raw bytes or a binary file-like object.
        folder_id: Optional folder to place the file in.
        is_public: Whether to create a share link right away.

    Returns:
        Created File instance.

    Raises:
        OwnerNotFoundError: If the owner doesn't exist.
        ValidationError: If name or size are invalid.
        FolderNotFoundError: If folder isn't owned by the user.
        QuotaExceededError: If the upload doesn't fit in the quota.
        StoreUnavailableError: If the upload to storage fails.
    """
    user = get_owner(user_id)

    if not name or not original_name:
        raise ValidationError('File name cannot be empty')
    if size_bytes < 0:
        raise ValidationError('File size cannot be negative')

    folder = _get_folder(user, folder_id)

    # Fail fast before sending any bytes to storage
    check_quota(user, size_bytes)

    storage = get_storage()
    storage_key = storage.generate_key(user.id, original_name)

    # Step 1: Upload to storage first
    storage.put(
        storage_key,
        content,
        content_type=mime_type,
        metadata={
            'user-id': str(user.id),
            'original-name': quote(original_name),
        },
    )

    share_token = generate_share_token() if is_public else None

    # Step 2: Reserve quota and create database record (in transaction)
    try:
        with transaction.atomic():
            reserve_quota(user, size_bytes)
            file_instance = File.objects.create(
                user=user,
                folder=folder,
                name=name,
                original_name=original_name,
                mime_type=mime_type,
                size_bytes=size_bytes,
                storage_key=storage_key,
                is_public=is_public,
                share_token=share_token,
            )
    except Exception:
        # Rollback: Delete object from storage since DB transaction failed
        logger.exception(
            'Database transaction failed, rolling back storage upload: %s',
            storage_key,
        )
        storage.rollback_upload(storage_key)
        raise

    logger.info(
        'File created: %s (ID: %s, size: %d)',
        storage_key,
        file_instance.id,
        size_bytes,
    )
    return file_instance


def get_file(file_id: _FileId, user_id: int) -> File:
    """Get file owned by user, unless it is in trash.

    Args:
        file_id: ID of the file.
        user_id: ID of the requesting user.

    Returns:
        File instance.

    Raises:
        NotFoundError: If file is missing, trashed or owned by someone else.
    """
    return _scoped_get(File.objects.all(), file_id, user_id)


def get_download_url(file_id: _FileId, user_id: int) -> str:
    """Get a presigned download URL for a file.

    The object itself is not checked, a missing object surfaces
    as a failed download.

    Args:
        file_id: ID of the file.
        user_id: ID of the requesting user.

    Returns:
        Presigned URL valid for FILES_DOWNLOAD_URL_TTL seconds.
    """
    return presign_download(get_file(file_id, user_id))


def presign_download(file_instance: File) -> str:
    """Presign a download of an already resolved file.

    Args:
        file_instance: File to download.

    Returns:
        Presigned URL valid for FILES_DOWNLOAD_URL_TTL seconds.
    """
    return get_storage().presign_get(
        file_instance.storage_key,
        ttl_seconds=settings.FILES_DOWNLOAD_URL_TTL,
        download_name=file_instance.name,
    )


def get_public_file(share_token: str) -> File:
    """Resolve a share token to a public file.

    Args:
        share_token: Token from a share link.

    Returns:
        File instance, regardless of owner.

    Raises:
        NotFoundError: If no public, untrashed, unexpired file has the token.
    """
    if not share_token:
        raise NotFoundError()

    not_expired = (
        Q(share_expires_at__isnull=True) |
        Q(share_expires_at__gt=timezone.now())
    )
    try:
        return File.objects.filter(not_expired).get(
            share_token=share_token,
            is_public=True,
        )
    except File.DoesNotExist:
        raise NotFoundError() from None


def get_public_download_url(share_token: str) -> str:
    """Get a presigned download URL for a shared file.

    Args:
        share_token: Token from a share link.

    Returns:
        Presigned URL valid for FILES_DOWNLOAD_URL_TTL seconds.
    """
    return presign_download(get_public_file(share_token))


def update_file(
    file_id: _FileId,
    user_id: int,
    changes: Mapping[str, Any],
) -> File:
    """Apply a partial metadata update.

    Size, storage key and trash state can't be changed. Making a file
    public doesn't mint a share token, see `create_share_link`.

    Args:
        file_id: ID of the file.
        user_id: ID of the requesting user.
        changes: Subset of name, description, folder_id, is_public, tags.

    Returns:
        Updated File instance.

    Raises:
        ValidationError: If a field is unknown or has a wrong type.
        NotFoundError: If file is missing or owned by someone else.
    """
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            'Fields can not be updated: {0}'.format(
                ', '.join(sorted(unknown)),
            ),
        )

    file_instance = get_owned_file(file_id, user_id)
    update_fields = ['updated_at']

    if 'name' in changes:
        name = changes['name']
        if not isinstance(name, str) or not name:
            raise ValidationError('File name cannot be empty')
        file_instance.name = name
        update_fields.append('name')

    if 'description' in changes:
        description = changes['description']
        if description is not None and not isinstance(description, str):
            raise ValidationError('Description must be a string')
        file_instance.description = description or ''
        update_fields.append('description')

    if 'folder_id' in changes:
        file_instance.folder = _get_folder(
            file_instance.user,
            changes['folder_id'],
        )
        update_fields.append('folder')

    if 'is_public' in changes:
        if not isinstance(changes['is_public'], bool):
            raise ValidationError('is_public must be a boolean')
        file_instance.is_public = changes['is_public']
        update_fields.append('is_public')

    if 'tags' in changes:
        file_instance.tags = _validate_tags(changes['tags'])
        update_fields.append('tags')

    file_instance.save(update_fields=update_fields)
    logger.info(
        'File updated: ID=%s, fields=%s',
        file_instance.id,
        ', '.join(update_fields),
    )
    return file_instance


def list_files(
    user_id: int,
    folder_id: Any = ANY_FOLDER,
    include_trash: bool = False,
) -> QuerySet[File]:
    """List files owned by user.

    Args:
        user_id: Owner of files.
        folder_id: ANY_FOLDER for every folder, None for root-level files
            only, or a folder ID for that folder only.
        include_trash: Whether to include files in trash.

    Returns:
        QuerySet of File objects, newest first.
    """
    manager = File.all_objects if include_trash else File.objects
    files = manager.filter(user_id=user_id)

    if folder_id is None:
        files = files.filter(folder__isnull=True)
    elif folder_id is not ANY_FOLDER:
        files = files.filter(folder_id=folder_id)

    logger.debug(
        'Listing files: user=%s, folder=%s, include_trash=%s',
        user_id,
        'any' if folder_id is ANY_FOLDER else folder_id,
        include_trash,
    )
    return files.select_related('user', 'folder')


def _scoped_get(
    files: QuerySet[File],
    file_id: _FileId,
    user_id: int,
) -> File:
    try:
        return files.get(id=file_id, user_id=user_id)
    except (File.DoesNotExist, ValidationError):
        # Malformed IDs are reported like missing files
        raise NotFoundError() from None


def _get_folder(user: Any, folder_id: _FileId | None) -> Folder | None:
    if folder_id is None:
        return None
    try:
        return Folder.objects.get(id=folder_id, user=user)
    except (Folder.DoesNotExist, ValidationError):
        raise FolderNotFoundError() from None


def _validate_tags(tags: Any) -> list[str]:
    if tags is None:
        return []
    if not isinstance(tags, list) or not all(
        isinstance(tag, str) for tag in tags
    ):
        raise ValidationError('Tags must be a list of strings')
    return tags
