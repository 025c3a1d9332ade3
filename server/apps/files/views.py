"""JSON endpoints for the file lifecycle.

Views only translate HTTP to calls into `server.apps.files.logic` and back.
The requester is the session user, resolved by Django's auth middleware.
"""

import functools
import json
import logging
from collections.abc import Callable
from datetime import datetime
from http import HTTPStatus
from typing import Any, Final

from django.core.exceptions import ValidationError
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.utils.dateparse import parse_datetime
from django.views.decorators.http import require_http_methods

from server.apps.files.exceptions import (
    NotFoundError,
    OwnerNotFoundError,
    QuotaExceededError,
    StoreUnavailableError,
)
from server.apps.files.infrastructure.metadata import detect_mime_type
from server.apps.files.logic import (
    file_operations,
    quota_operations,
    share_operations,
    trash_operations,
)
from server.apps.files.models import File

logger = logging.getLogger(__name__)

_View = Callable[..., HttpResponse]

_TRUE_VALUES: Final = frozenset(('1', 'true', 'yes', 'on'))
_ROOT_FOLDER: Final = 'null'


def _error(status: HTTPStatus, message: str, **extra: Any) -> JsonResponse:
    return JsonResponse({'error': message, **extra}, status=status)


def json_api(require_login: bool = True) -> Callable[[_View], _View]:
    """Decorate a view with authentication and error translation.

    Errors from the logic layer are mapped to status codes:
    ValidationError 400, NotFoundError 404, QuotaExceededError 507,
    StoreUnavailableError 503.

    Args:
        require_login: Reject anonymous requests with 401.

    Returns:
        View decorator.
    """
    def decorator(view: _View) -> _View:
        @functools.wraps(view)
        def wrapper(
            request: HttpRequest,
            *args: Any,
            **kwargs: Any,
        ) -> HttpResponse:
            if require_login and not request.user.is_authenticated:
                return _error(
                    HTTPStatus.UNAUTHORIZED,
                    'Authentication required',
                )
            try:
                return view(request, *args, **kwargs)
            except ValidationError as exc:
                return _error(HTTPStatus.BAD_REQUEST, '; '.join(exc.messages))
            except (NotFoundError, OwnerNotFoundError) as exc:
                return _error(HTTPStatus.NOT_FOUND, str(exc))
            except QuotaExceededError as exc:
                return _error(
                    HTTPStatus.INSUFFICIENT_STORAGE,
                    'Storage quota exceeded',
                    quota_bytes=exc.quota_bytes,
                    used_bytes=exc.used_bytes,
                    required_bytes=exc.required_bytes,
                )
            except StoreUnavailableError:
                logger.exception('Object store unavailable: %s', request.path)
                return _error(
                    HTTPStatus.SERVICE_UNAVAILABLE,
                    'Storage is temporarily unavailable',
                )
        return wrapper
    return decorator


def serialize_file(file_instance: File) -> dict[str, Any]:
    """Convert a file to its JSON representation.

    Args:
        file_instance: File to serialize.

    Returns:
        JSON-compatible dictionary.
    """
    return {
        'id': str(file_instance.id),
        'name': file_instance.name,
        'original_name': file_instance.original_name,
        'mime_type': file_instance.mime_type,
        'size': file_instance.size_bytes,
        'folder_id': (
            str(file_instance.folder_id) if file_instance.folder_id else None
        ),
        'description': file_instance.description,
        'tags': file_instance.tags,
        'is_public': file_instance.is_public,
        'share_token': file_instance.share_token,
        'share_expires_at': _isoformat(file_instance.share_expires_at),
        'is_trashed': file_instance.is_trashed,
        'trashed_at': _isoformat(file_instance.trashed_at),
        'created_at': _isoformat(file_instance.created_at),
        'updated_at': _isoformat(file_instance.updated_at),
    }


@require_http_methods(['GET'])
@json_api()
def list_files(request: HttpRequest) -> HttpResponse:
    """List the requester's files.

    Query parameters: ``folder_id`` (a folder ID, or ``null`` for
    root-level files only) and ``include_trash``.
    """
    folder_param = request.GET.get('folder_id')
    if folder_param is None or folder_param == '':
        folder_id: Any = file_operations.ANY_FOLDER
    elif folder_param == _ROOT_FOLDER:
        folder_id = None
    else:
        folder_id = folder_param

    files = file_operations.list_files(
        request.user.pk,
        folder_id=folder_id,
        include_trash=_is_true(request.GET.get('include_trash')),
    )
    return JsonResponse({'files': [serialize_file(item) for item in files]})


@require_http_methods(['POST'])
@json_api()
def upload_file(request: HttpRequest) -> HttpResponse:
    """Upload a file from a multipart form (``file`` field)."""
    upload = request.FILES.get('file')
    if upload is None:
        raise ValidationError('No file provided')

    filename = upload.name or ''
    file_instance = file_operations.create_file(
        request.user.pk,
        name=request.POST.get('name') or filename,
        original_name=filename,
        mime_type=upload.content_type or detect_mime_type(filename),
        size_bytes=upload.size,
        content=upload,
        folder_id=request.POST.get('folder_id') or None,
        is_public=_is_true(request.POST.get('is_public')),
    )
    return JsonResponse(
        {'file': serialize_file(file_instance)},
        status=HTTPStatus.CREATED,
    )


@require_http_methods(['GET', 'PATCH', 'DELETE'])
@json_api()
def file_detail(request: HttpRequest, file_id: str) -> HttpResponse:
    """Get, update or delete a file.

    DELETE moves the file to trash, ``?permanent=true`` deletes it
    for good.
    """
    user_id = request.user.pk

    if request.method == 'PATCH':
        file_instance = file_operations.update_file(
            file_id,
            user_id,
            _json_body(request),
        )
        return JsonResponse({'file': serialize_file(file_instance)})

    if request.method == 'DELETE':
        if _is_true(request.GET.get('permanent')):
            trash_operations.permanently_delete_file(file_id, user_id)
            return JsonResponse({'message': 'File permanently deleted'})
        trash_operations.move_to_trash(file_id, user_id)
        return JsonResponse({'message': 'File moved to trash'})

    file_instance = file_operations.get_file(file_id, user_id)
    return JsonResponse({'file': serialize_file(file_instance)})


@require_http_methods(['GET'])
@json_api()
def download_file(request: HttpRequest, file_id: str) -> HttpResponse:
    """Return a time-limited download URL."""
    url = file_operations.get_download_url(file_id, request.user.pk)
    return JsonResponse({'download_url': url})


@require_http_methods(['POST'])
@json_api()
def restore_file(request: HttpRequest, file_id: str) -> HttpResponse:
    """Restore a file from trash."""
    file_instance = trash_operations.restore_file(file_id, request.user.pk)
    return JsonResponse({'file': serialize_file(file_instance)})


@require_http_methods(['GET'])
@json_api()
def list_trash(request: HttpRequest) -> HttpResponse:
    """List files in the requester's trash."""
    files = trash_operations.list_trash(request.user.pk)
    return JsonResponse({'files': [serialize_file(item) for item in files]})


@require_http_methods(['POST', 'DELETE'])
@json_api()
def share_file(request: HttpRequest, file_id: str) -> HttpResponse:
    """Create (POST) or revoke (DELETE) a share link.

    POST accepts an optional ISO 8601 ``expires_at`` in the JSON body.
    """
    if request.method == 'DELETE':
        file_instance = share_operations.revoke_share_link(
            file_id,
            request.user.pk,
        )
    else:
        file_instance = share_operations.create_share_link(
            file_id,
            request.user.pk,
            expires_at=_parse_expiry(_json_body(request).get('expires_at')),
        )
    return JsonResponse({'file': serialize_file(file_instance)})


@require_http_methods(['GET'])
@json_api(require_login=False)
def shared_file(request: HttpRequest, share_token: str) -> HttpResponse:
    """Resolve a share link, no authentication needed."""
    file_instance = file_operations.get_public_file(share_token)
    url = file_operations.presign_download(file_instance)
    return JsonResponse({
        'file': {
            'name': file_instance.name,
            'mime_type': file_instance.mime_type,
            'size': file_instance.size_bytes,
        },
        'download_url': url,
    })


@require_http_methods(['GET'])
@json_api()
def storage_quota(request: HttpRequest) -> HttpResponse:
    """Return the requester's quota and usage."""
    owner = file_operations.get_owner(request.user.pk)
    quota = quota_operations.get_or_create_quota(owner)
    return JsonResponse({
        'quota_bytes': quota.quota_bytes,
        'used_bytes': quota.used_bytes,
        'available_bytes': quota.available_bytes(),
    })


def _json_body(request: HttpRequest) -> dict[str, Any]:
    if not request.body:
        return {}
    try:
        body = json.loads(request.body)
    except ValueError as exc:
        raise ValidationError('Request body must be valid JSON') from exc
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return body


def _parse_expiry(raw_value: Any) -> datetime | None:
    if raw_value is None:
        return None
    try:
        expires_at = parse_datetime(str(raw_value))
    except ValueError:
        expires_at = None
    if expires_at is None or expires_at.tzinfo is None:
        raise ValidationError(
            'expires_at must be an ISO 8601 datetime with timezone',
        )
    return expires_at


def _is_true(raw_value: str | None) -> bool:
    return (raw_value or '').lower() in _TRUE_VALUES


def _isoformat(moment: datetime | None) -> str | None:
    return moment.isoformat() if moment else None
