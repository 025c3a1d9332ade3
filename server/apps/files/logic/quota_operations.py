"""Business logic for storage quota operations."""

import logging
from typing import Any

from django.db import transaction
from django.db.models import F, Sum  # noqa: WPS347
from django.db.models.functions import Greatest
from django.utils import timezone

from server.apps.files.exceptions import QuotaExceededError
from server.apps.files.models import File, UserQuota

# User type for Django's dynamic user model
_User = Any

# Field name constants to avoid string literal over-use
_USED_BYTES_FIELD = 'used_bytes'  # noqa: WPS226
_UPDATED_AT_FIELD = 'updated_at'

logger = logging.getLogger(__name__)


def get_or_create_quota(user: _User) -> UserQuota:
    """Get or create quota for user (on-demand creation).

    Args:
        user: User to get quota for.

    Returns:
        UserQuota instance for the user.
    """
    quota, created = UserQuota.objects.get_or_create(user=user)
    if created:
        logger.info(
            'Created quota for user %s: %d bytes',
            user.username,
            quota.quota_bytes,
        )
    return quota


def check_quota(user: _User, size_bytes: int) -> None:
    """Check if user has enough quota for an upload.

    This is a fast pre-check to avoid uploading content that can't be
    stored. The authoritative check is done by `reserve_quota`.

    Args:
        user: User to check quota for.
        size_bytes: Size of the upload in bytes.

    Raises:
        QuotaExceededError: If upload would exceed quota.
    """
    quota = get_or_create_quota(user)

    if not quota.has_space_for(size_bytes):
        logger.warning(
            'Quota exceeded for user %s: need %d, have %d available',
            user.username,
            size_bytes,
            quota.available_bytes(),
        )
        raise QuotaExceededError(
            quota_bytes=quota.quota_bytes,
            used_bytes=quota.used_bytes,
            required_bytes=size_bytes,
        )


def reserve_quota(user: _User, size_bytes: int) -> None:
    """Atomically add size_bytes to usage if it stays within quota.

    The check and the increment are a single conditional UPDATE,
    so concurrent uploads can't push usage over the limit.

    Args:
        user: User to reserve space for.
        size_bytes: Bytes to add to usage.

    Raises:
        QuotaExceededError: If the reservation would exceed quota.
    """
    get_or_create_quota(user)

    updated = UserQuota.objects.filter(
        user=user,
        used_bytes__lte=F('quota_bytes') - size_bytes,
    ).update(
        used_bytes=F(_USED_BYTES_FIELD) + size_bytes,
        updated_at=timezone.now(),
    )

    if updated == 0:
        quota = UserQuota.objects.get(user=user)
        logger.warning(
            'Quota reservation rejected for user %s: need %d, have %d',
            user.username,
            size_bytes,
            quota.available_bytes(),
        )
        raise QuotaExceededError(
            quota_bytes=quota.quota_bytes,
            used_bytes=quota.used_bytes,
            required_bytes=size_bytes,
        )

    logger.debug(
        'Reserved %d bytes for user %s',
        size_bytes,
        user.username,
    )


def release_quota(user: _User, size_bytes: int) -> None:
    """Atomically subtract size_bytes from usage.

    Prevents negative values by clamping to 0, which also absorbs
    double releases from racing deletes.

    Args:
        user: User to release space for.
        size_bytes: Bytes to subtract from usage.
    """
    updated = UserQuota.objects.filter(user=user).update(
        used_bytes=Greatest(F(_USED_BYTES_FIELD) - size_bytes, 0),
        updated_at=timezone.now(),
    )

    if updated == 0:
        # No quota exists, nothing to release
        logger.debug(
            'No quota exists for user %s, skipping release',
            user.username,
        )
        return

    logger.debug(
        'Released %d bytes for user %s',
        size_bytes,
        user.username,
    )


def recalculate_usage(user: _User) -> int:
    """Recalculate user's storage usage from actual files.

    This is useful for fixing inconsistencies or after bulk operations.
    Includes files in trash since they still count against quota.

    Args:
        user: User to recalculate usage for.

    Returns:
        New calculated usage in bytes.
    """
    # Sum all file sizes for this user (including trash)
    total = File.all_objects.filter(user=user).aggregate(
        total=Sum('size_bytes'),
    )['total'] or 0

    # Update quota
    with transaction.atomic():
        quota = get_or_create_quota(user)
        old_usage = quota.used_bytes
        quota.used_bytes = total
        quota.save(update_fields=[_USED_BYTES_FIELD, _UPDATED_AT_FIELD])

    logger.info(
        'Recalculated usage for user %s: %d -> %d bytes',
        user.username,
        old_usage,
        total,
    )

    return total
