"""Business logic for trash (soft delete) operations."""

import logging

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from server.apps.files.exceptions import NotFoundError
from server.apps.files.logic.file_operations import (
    get_owned_file,
    get_storage,
)
from server.apps.files.logic.quota_operations import release_quota
from server.apps.files.models import File

logger = logging.getLogger(__name__)

_TRASH_FIELDS = ('is_trashed', 'trashed_at', 'updated_at')


def move_to_trash(file_id: str, user_id: int) -> File:
    """Move file to trash (soft delete).

    Quota is NOT decremented - trash files count toward quota.
    Trashing a file twice keeps the first trashed_at, so the
    retention period isn't restarted.

    Args:
        file_id: ID of file to soft delete.
        user_id: ID of the requesting user.

    Returns:
        Updated File instance.

    Raises:
        NotFoundError: If file not found or owned by someone else.
    """
    file_instance = get_owned_file(file_id, user_id)
    if file_instance.is_trashed:
        return file_instance

    file_instance.is_trashed = True
    file_instance.trashed_at = timezone.now()
    file_instance.save(update_fields=list(_TRASH_FIELDS))

    logger.info(
        'File moved to trash: %s (ID: %s)',
        file_instance.storage_key,
        file_instance.id,
    )

    return file_instance


def restore_file(file_id: str, user_id: int) -> File:
    """Restore file from trash.

    Quota is left untouched since trashing never released it.
    A file whose folder was deleted meanwhile comes back at the root.

    Args:
        file_id: ID of file to restore.
        user_id: ID of the requesting user.

    Returns:
        Updated File instance.

    Raises:
        NotFoundError: If file not found or not in trash.
    """
    file_instance = get_owned_file(file_id, user_id)
    if not file_instance.is_trashed:
        raise NotFoundError('File is not in trash')

    file_instance.is_trashed = False
    file_instance.trashed_at = None
    file_instance.save(update_fields=list(_TRASH_FIELDS))

    logger.info(
        'File restored: %s (ID: %s)',
        file_instance.storage_key,
        file_instance.id,
    )

    return file_instance


def permanently_delete_file(file_id: str, user_id: int) -> File:
    """Permanently delete file, trashed or not.

    Removes object from S3 first, then the DB record, and releases quota.
    If the process dies in between, the row points to a missing object,
    which `reconcile_storage` can find, instead of leaving an object
    that nothing references.

    Args:
        file_id: ID of file to permanently delete.
        user_id: ID of the requesting user.

    Returns:
        The deleted File instance (no longer in the database).

    Raises:
        NotFoundError: If file not found or owned by someone else.
        StoreUnavailableError: If the object can't be deleted.
    """
    file_instance = get_owned_file(file_id, user_id)
    return purge_file(file_instance)


def purge_file(file_instance: File) -> File:
    """Delete a file's object, its DB record and release its quota.

    Args:
        file_instance: File to purge.

    Returns:
        The deleted File instance.

    Raises:
        StoreUnavailableError: If the object can't be deleted.
    """
    get_storage().delete(file_instance.storage_key)

    if delete_file_record(file_instance):
        logger.info(
            'File permanently deleted: %s (ID: %s, size: %d)',
            file_instance.storage_key,
            file_instance.pk,
            file_instance.size_bytes,
        )
    return file_instance


def delete_file_record(file_instance: File) -> bool:
    """Delete a file's DB record and release its quota.

    Quota is released only if this call removed the row, so racing
    deletes of the same file release its size once.

    Args:
        file_instance: File whose record to delete.

    Returns:
        True if the row was deleted, False if it was already gone.
    """
    with transaction.atomic():
        deleted, _ = File.all_objects.filter(pk=file_instance.pk).delete()
        if deleted:
            release_quota(file_instance.user, file_instance.size_bytes)

    if not deleted:
        logger.info('File already deleted: ID=%s', file_instance.pk)
    return bool(deleted)


def list_trash(user_id: int) -> QuerySet[File]:
    """List all files in user's trash.

    Args:
        user_id: User whose trash to list.

    Returns:
        QuerySet of trashed files, most recently trashed first.
    """
    return File.all_objects.filter(
        user_id=user_id,
        is_trashed=True,
    ).order_by('-trashed_at')


def empty_trash(user_id: int) -> int:
    """Permanently delete all files in user's trash.

    Args:
        user_id: User whose trash to empty.

    Returns:
        Number of files deleted.
    """
    trash_files = list(list_trash(user_id))
    count = 0

    for file_instance in trash_files:
        try:
            purge_file(file_instance)
            count += 1
        except Exception:
            logger.exception(
                'Failed to permanently delete file: %s',
                file_instance.id,
            )
            raise

    logger.info(
        'Trash emptied for user %s: %d files deleted',
        user_id,
        count,
    )

    return count
