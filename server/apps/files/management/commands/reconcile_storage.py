"""Management command to reconcile object storage with file records."""

import logging
from typing import Any

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from server.apps.files.logic.quota_operations import recalculate_usage
from server.apps.files.logic.reconcile_operations import (
    find_dangling_files,
    find_orphaned_objects,
    purge_dangling_file,
    purge_orphaned_object,
)
from server.apps.files.models import File

User = get_user_model()
logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Find files with missing objects and objects without files."""

    help = 'Reconcile object storage with file records'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Remove dangling records and orphaned objects',
        )
        parser.add_argument(
            '--prefix',
            default='',
            help='Only check storage keys under this prefix',
        )
        parser.add_argument(
            '--recalculate-quota',
            action='store_true',
            help='Recompute storage usage of every user from their files',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the reconcile command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        fix = options['fix']
        prefix = options['prefix']

        files = File.all_objects.filter(storage_key__startswith=prefix)
        dangling = find_dangling_files(files)
        for file_instance in dangling:
            self.stdout.write(
                f'Missing object: {file_instance.storage_key} '
                f'(file: {file_instance.id})',
            )
            if fix:
                purge_dangling_file(file_instance)

        orphaned = find_orphaned_objects(prefix)
        for storage_key in orphaned:
            self.stdout.write(f'Orphaned object: {storage_key}')
            if fix:
                purge_orphaned_object(storage_key)

        if options['recalculate_quota']:
            for user in User.objects.all().iterator():
                recalculate_usage(user)
            self.stdout.write('Recalculated storage usage for all users')

        verb = 'Fixed' if fix else 'Found'
        self.stdout.write(
            self.style.SUCCESS(
                f'{verb} {len(dangling)} dangling files, '
                f'{len(orphaned)} orphaned objects',
            ),
        )
