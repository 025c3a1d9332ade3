"""Django admin configuration for files app."""

from typing import Any, Final

from django import forms
from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.html import format_html

from server.apps.files.logic.quota_operations import recalculate_usage
from server.apps.files.logic.trash_operations import purge_file
from server.apps.files.models import File, Folder, UserQuota

_UNITS: Final = ('B', 'KB', 'MB', 'GB', 'TB')
_WARNING_PERCENTAGE: Final = 90


def format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 B').
    """
    size = float(size_bytes)
    for unit in _UNITS[:-1]:
        if size < 1024:
            return f'{size_bytes} B' if unit == 'B' else f'{size:.1f} {unit}'
        size /= 1024
    return f'{size:.1f} {_UNITS[-1]}'


@admin.register(File)
class FileAdmin(admin.ModelAdmin[File]):
    """Admin interface for File model, trashed files included."""

    list_display = [
        'name',
        'user',
        'folder',
        'size_display',
        'mime_type',
        'is_public',
        'is_trashed',
        'created_at',
    ]

    list_filter = [
        'is_trashed',
        'is_public',
        'mime_type',
        'created_at',
    ]

    search_fields = [
        'name',
        'original_name',
        'storage_key',
        'user__username',
    ]

    # Owner, size and key are owned by the upload path, quota depends on them
    readonly_fields = [
        'id',
        'user',
        'storage_key',
        'size_bytes',
        'original_name',
        'mime_type',
        'share_token',
        'trashed_at',
        'created_at',
        'updated_at',
    ]

    fieldsets = (
        ('File Information', {
            'fields': ('id', 'name', 'original_name', 'user', 'folder'),
        }),
        ('Storage', {
            'fields': ('storage_key', 'size_bytes', 'mime_type'),
        }),
        ('Details', {
            'fields': ('description', 'tags'),
        }),
        ('Sharing', {
            'fields': ('is_public', 'share_token', 'share_expires_at'),
        }),
        ('Trash', {
            'fields': ('is_trashed', 'trashed_at'),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
        }),
    )

    @admin.display(description='Size', ordering='size_bytes')
    def size_display(self, obj: File) -> str:
        """Display file size in human-readable format.

        Args:
            obj: File instance.

        Returns:
            Formatted size string.
        """
        return format_bytes(obj.size_bytes)

    def get_queryset(self, request: HttpRequest) -> QuerySet[File]:
        """Show trashed files too.

        Args:
            request: HTTP request.

        Returns:
            QuerySet over every file.
        """
        return File.all_objects.select_related('user', 'folder')

    def has_add_permission(self, request: HttpRequest) -> bool:
        """Files are created by uploads only."""
        return False

    def get_form(
        self,
        request: HttpRequest,
        obj: File | None = None,
        change: bool = False,
        **kwargs: Any,
    ) -> 'type[forms.ModelForm[File]]':
        """Offer only the owner's folders.

        Args:
            request: HTTP request.
            obj: File being edited.
            change: Whether an existing file is edited.
            kwargs: Form factory options.

        Returns:
            Form class.
        """
        form = super().get_form(request, obj, change=change, **kwargs)
        if obj is not None and 'folder' in form.base_fields:
            folder_field = form.base_fields['folder']
            folder_field.queryset = Folder.objects.filter(  # type: ignore[attr-defined]
                user_id=obj.user_id,
            )
        return form

    def delete_model(self, request: HttpRequest, obj: File) -> None:
        """Delete through the lifecycle so quota is released.

        Args:
            request: HTTP request.
            obj: File to delete.
        """
        purge_file(obj)

    def delete_queryset(
        self,
        request: HttpRequest,
        queryset: QuerySet[File],
    ) -> None:
        """Bulk delete through the lifecycle so quota is released.

        Args:
            request: HTTP request.
            queryset: Selected files.
        """
        for file_instance in queryset.select_related('user'):
            purge_file(file_instance)


@admin.register(Folder)
class FolderAdmin(admin.ModelAdmin[Folder]):
    """Admin interface for Folder model."""

    list_display = ['name', 'user', 'parent', 'created_at']
    search_fields = ['name', 'user__username']
    readonly_fields = ['id', 'created_at', 'updated_at']

    def get_queryset(self, request: HttpRequest) -> QuerySet[Folder]:
        return super().get_queryset(request).select_related('user', 'parent')


@admin.register(UserQuota)
class UserQuotaAdmin(admin.ModelAdmin[UserQuota]):
    """Admin interface for UserQuota model."""

    list_display = [
        'user',
        'quota_display',
        'used_display',
        'status_display',
    ]

    search_fields = [
        'user__username',
        'user__email',
    ]

    readonly_fields = [
        'user',
        'used_bytes',
        'updated_at',
    ]

    actions = ['recalculate_selected']

    @admin.display(description='Quota', ordering='quota_bytes')
    def quota_display(self, obj: UserQuota) -> str:
        """Display quota in human-readable format.

        Args:
            obj: UserQuota instance.

        Returns:
            Formatted quota string.
        """
        return format_bytes(obj.quota_bytes)

    @admin.display(description='Used', ordering='used_bytes')
    def used_display(self, obj: UserQuota) -> str:
        """Display used bytes in human-readable format.

        Args:
            obj: UserQuota instance.

        Returns:
            Formatted used bytes string.
        """
        return format_bytes(obj.used_bytes)

    @admin.display(description='Status')
    def status_display(self, obj: UserQuota) -> str:
        """Display percentage of quota used with a status color.

        Args:
            obj: UserQuota instance.

        Returns:
            HTML formatted status indicator.
        """
        percentage = 0.0
        if obj.quota_bytes:
            percentage = (obj.used_bytes / obj.quota_bytes) * 100

        if percentage >= 100:
            color = '#dc3545'  # Red - full
        elif percentage >= _WARNING_PERCENTAGE:
            color = '#ffc107'  # Yellow - warning
        else:
            color = '#28a745'  # Green - ok

        return format_html(
            '<span style="color: {color}; font-weight: bold;">'
            '{percentage}%</span>',
            color=color,
            percentage=f'{percentage:.1f}',
        )

    @admin.action(description='Recalculate usage from files')
    def recalculate_selected(
        self,
        request: HttpRequest,
        queryset: QuerySet[UserQuota],
    ) -> None:
        """Recompute used_bytes of the selected quotas.

        Args:
            request: HTTP request.
            queryset: Selected quotas.
        """
        for quota in queryset.select_related('user'):
            recalculate_usage(quota.user)
        self.message_user(
            request,
            f'Recalculated usage for {queryset.count()} users',
        )

    def get_queryset(self, request: HttpRequest) -> QuerySet[UserQuota]:
        return super().get_queryset(request).select_related('user')
