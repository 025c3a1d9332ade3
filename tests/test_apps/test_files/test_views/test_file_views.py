"""Tests for files JSON API views."""

import json
import uuid
from datetime import timedelta
from http import HTTPStatus
from unittest import mock

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse
from django.utils import timezone

from server.apps.files.logic import file_operations
from server.apps.files.logic.trash_operations import move_to_trash
from server.apps.files.models import File, Folder


def _detail_url(file_instance, name='files:detail'):
    return reverse(name, kwargs={'file_id': file_instance.id})


@pytest.fixture
def auth_client(client, user):
    """Django test client logged in as the test user."""
    client.force_login(user)
    return client


@pytest.mark.django_db
class TestAuthentication:
    """Tests for session authentication."""

    @pytest.mark.parametrize('url_name', [
        'files:list',
        'files:trash',
        'files:quota',
    ])
    def test_anonymous_rejected(self, client, url_name):
        """Test anonymous requests get 401."""
        response = client.get(reverse(url_name))

        assert response.status_code == HTTPStatus.UNAUTHORIZED
        assert response.json() == {'error': 'Authentication required'}

    def test_wrong_method(self, auth_client):
        """Test unsupported methods get 405."""
        response = auth_client.get(reverse('files:upload'))

        assert response.status_code == HTTPStatus.METHOD_NOT_ALLOWED


@pytest.mark.django_db
class TestUploadView:
    """Tests for upload endpoint."""

    def test_upload(self, auth_client, user, s3_bucket):
        """Test multipart upload creates a file."""
        upload = SimpleUploadedFile(
            'report.pdf',
            b'%PDF-1.4 content',
            content_type='application/pdf',
        )

        response = auth_client.post(reverse('files:upload'), {'file': upload})

        assert response.status_code == HTTPStatus.CREATED
        body = response.json()['file']
        assert body['name'] == 'report.pdf'
        assert body['size'] == 16
        assert body['mime_type'] == 'application/pdf'
        assert body['folder_id'] is None
        file_instance = File.objects.get(id=body['id'])
        assert file_instance.user == user
        s3_object = s3_bucket.Object(file_instance.storage_key).get()
        assert s3_object['Body'].read() == b'%PDF-1.4 content'

    def test_upload_into_folder_as_public(self, auth_client, user, mock_s3):
        """Test optional folder and public flag."""
        folder = Folder.objects.create(user=user, name='Documents')
        upload = SimpleUploadedFile('notes.txt', b'notes')

        response = auth_client.post(reverse('files:upload'), {
            'file': upload,
            'name': 'Meeting notes',
            'folder_id': str(folder.id),
            'is_public': 'true',
        })

        assert response.status_code == HTTPStatus.CREATED
        body = response.json()['file']
        assert body['name'] == 'Meeting notes'
        assert body['folder_id'] == str(folder.id)
        assert body['is_public'] is True
        assert body['share_token']

    def test_upload_without_file(self, auth_client, mock_s3):
        """Test missing file field gets 400."""
        response = auth_client.post(reverse('files:upload'), {})

        assert response.status_code == HTTPStatus.BAD_REQUEST
        assert response.json() == {'error': 'No file provided'}

    def test_upload_quota_exceeded(self, auth_client, user, set_quota,
                                   s3_bucket):
        """Test upload over quota gets 507 with quota details."""
        set_quota(user, quota_bytes=1000, used_bytes=900)
        upload = SimpleUploadedFile('big.bin', b'x' * 200)

        response = auth_client.post(reverse('files:upload'), {'file': upload})

        assert response.status_code == HTTPStatus.INSUFFICIENT_STORAGE
        assert response.json() == {
            'error': 'Storage quota exceeded',
            'quota_bytes': 1000,
            'used_bytes': 900,
            'required_bytes': 200,
        }
        assert list(s3_bucket.objects.all()) == []

    def test_upload_into_foreign_folder(self, auth_client, other_user,
                                        mock_s3):
        """Test folder of another user gets 404."""
        folder = Folder.objects.create(user=other_user, name='Private')
        upload = SimpleUploadedFile('notes.txt', b'notes')

        response = auth_client.post(reverse('files:upload'), {
            'file': upload,
            'folder_id': str(folder.id),
        })

        assert response.status_code == HTTPStatus.NOT_FOUND
        assert response.json() == {'error': 'Folder not found'}

    def test_upload_storage_down(self, auth_client, mock_s3, bucket_name):
        """Test storage errors get 503."""
        mock_s3.Bucket(bucket_name).delete()
        upload = SimpleUploadedFile('notes.txt', b'notes')

        response = auth_client.post(reverse('files:upload'), {'file': upload})

        assert response.status_code == HTTPStatus.SERVICE_UNAVAILABLE
        assert File.all_objects.count() == 0


@pytest.mark.django_db
class TestListViews:
    """Tests for listing endpoints."""

    def test_list_files(self, auth_client, user, other_user, make_file):
        """Test listing returns only the requester's active files."""
        own = make_file(user)
        make_file(other_user)
        move_to_trash(make_file(user, name='old.txt').id, user.id)

        response = auth_client.get(reverse('files:list'))

        assert response.status_code == HTTPStatus.OK
        assert [item['id'] for item in response.json()['files']] == [
            str(own.id),
        ]

    def test_list_files_include_trash(self, auth_client, user, make_file):
        """Test include_trash lists trashed files as well."""
        make_file(user)
        move_to_trash(make_file(user, name='old.txt').id, user.id)

        response = auth_client.get(
            reverse('files:list'),
            {'include_trash': 'true'},
        )

        assert len(response.json()['files']) == 2

    def test_list_files_folder_filter(self, auth_client, user, make_file):
        """Test folder_id selects a folder, null selects the root."""
        folder = Folder.objects.create(user=user, name='Documents')
        root_file = make_file(user, name='root.txt')
        nested = make_file(user, name='nested.txt', folder_id=folder.id)

        root_response = auth_client.get(
            reverse('files:list'),
            {'folder_id': 'null'},
        )
        folder_response = auth_client.get(
            reverse('files:list'),
            {'folder_id': str(folder.id)},
        )

        assert [item['id'] for item in root_response.json()['files']] == [
            str(root_file.id),
        ]
        assert [item['id'] for item in folder_response.json()['files']] == [
            str(nested.id),
        ]

    def test_list_trash(self, auth_client, user, make_file):
        """Test trash endpoint lists trashed files."""
        make_file(user)
        trashed = make_file(user, name='old.txt')
        move_to_trash(trashed.id, user.id)

        response = auth_client.get(reverse('files:trash'))

        body = response.json()['files']
        assert [item['id'] for item in body] == [str(trashed.id)]
        assert body[0]['is_trashed'] is True
        assert body[0]['trashed_at'] is not None

    def test_quota(self, auth_client, user, set_quota):
        """Test quota endpoint reports usage."""
        set_quota(user, quota_bytes=1000, used_bytes=250)

        response = auth_client.get(reverse('files:quota'))

        assert response.json() == {
            'quota_bytes': 1000,
            'used_bytes': 250,
            'available_bytes': 750,
        }


@pytest.mark.django_db
class TestFileDetailView:
    """Tests for single file endpoints."""

    def test_get(self, auth_client, user, make_file):
        """Test owner can get file metadata."""
        file_instance = make_file(user)

        response = auth_client.get(_detail_url(file_instance))

        assert response.status_code == HTTPStatus.OK
        assert response.json()['file']['id'] == str(file_instance.id)

    def test_get_other_owner(self, auth_client, other_user, make_file):
        """Test files of other users get 404."""
        file_instance = make_file(other_user)

        response = auth_client.get(_detail_url(file_instance))

        assert response.status_code == HTTPStatus.NOT_FOUND

    def test_get_unknown(self, auth_client):
        """Test unknown IDs get 404."""
        response = auth_client.get(
            reverse('files:detail', kwargs={'file_id': uuid.uuid4()}),
        )

        assert response.status_code == HTTPStatus.NOT_FOUND
        assert response.json() == {'error': 'File not found'}

    def test_patch(self, auth_client, user, make_file):
        """Test partial update through JSON body."""
        file_instance = make_file(user)

        response = auth_client.patch(
            _detail_url(file_instance),
            data=json.dumps({'name': 'renamed.pdf', 'tags': ['work']}),
            content_type='application/json',
        )

        assert response.status_code == HTTPStatus.OK
        body = response.json()['file']
        assert body['name'] == 'renamed.pdf'
        assert body['tags'] == ['work']

    @pytest.mark.parametrize('payload', [
        '{"size_bytes": 1}',
        '{"name": ""}',
        'not json',
        '["name"]',
    ])
    def test_patch_invalid(self, auth_client, user, make_file, payload):
        """Test invalid updates get 400."""
        file_instance = make_file(user)

        response = auth_client.patch(
            _detail_url(file_instance),
            data=payload,
            content_type='application/json',
        )

        assert response.status_code == HTTPStatus.BAD_REQUEST
        assert response.json()['error']

    def test_delete_moves_to_trash(self, auth_client, user, make_file):
        """Test DELETE without flags is a soft delete."""
        file_instance = make_file(user)

        response = auth_client.delete(_detail_url(file_instance))

        assert response.status_code == HTTPStatus.OK
        file_instance.refresh_from_db()
        assert file_instance.is_trashed is True

    def test_delete_permanent(self, auth_client, user, s3_bucket, make_file):
        """Test DELETE with permanent=true removes the file."""
        file_instance = make_file(user)

        response = auth_client.delete(
            f'{_detail_url(file_instance)}?permanent=true',
        )

        assert response.status_code == HTTPStatus.OK
        assert response.json() == {'message': 'File permanently deleted'}
        assert File.all_objects.count() == 0
        assert list(s3_bucket.objects.all()) == []

    def test_download(self, auth_client, user, make_file):
        """Test download endpoint returns a presigned URL."""
        file_instance = make_file(user)

        response = auth_client.get(
            _detail_url(file_instance, 'files:download'),
        )

        assert response.status_code == HTTPStatus.OK
        assert file_instance.storage_key in response.json()['download_url']

    def test_restore(self, auth_client, user, make_file):
        """Test restore endpoint brings the file back."""
        file_instance = make_file(user)
        move_to_trash(file_instance.id, user.id)

        response = auth_client.post(
            _detail_url(file_instance, 'files:restore'),
        )

        assert response.status_code == HTTPStatus.OK
        assert response.json()['file']['is_trashed'] is False

    def test_restore_active_file(self, auth_client, user, make_file):
        """Test restoring a file outside trash gets 404."""
        file_instance = make_file(user)

        response = auth_client.post(
            _detail_url(file_instance, 'files:restore'),
        )

        assert response.status_code == HTTPStatus.NOT_FOUND


@pytest.mark.django_db
class TestShareViews:
    """Tests for share link endpoints."""

    def test_share_and_open_link(self, auth_client, client, user, make_file):
        """Test a created link works without authentication."""
        file_instance = make_file(user, name='report.pdf')

        response = auth_client.post(
            _detail_url(file_instance, 'files:share'),
            data=json.dumps({}),
            content_type='application/json',
        )
        share_token = response.json()['file']['share_token']
        auth_client.logout()

        shared = client.get(
            reverse('files:shared', kwargs={'share_token': share_token}),
        )

        assert shared.status_code == HTTPStatus.OK
        body = shared.json()
        assert body['file'] == {
            'name': 'report.pdf',
            'mime_type': 'application/pdf',
            'size': file_instance.size_bytes,
        }
        assert file_instance.storage_key in body['download_url']

    def test_share_with_expiry(self, auth_client, user, make_file):
        """Test expires_at is parsed from the JSON body."""
        file_instance = make_file(user)
        expires_at = timezone.now() + timedelta(days=1)

        response = auth_client.post(
            _detail_url(file_instance, 'files:share'),
            data=json.dumps({'expires_at': expires_at.isoformat()}),
            content_type='application/json',
        )

        assert response.status_code == HTTPStatus.OK
        assert response.json()['file']['share_expires_at'] == (
            expires_at.isoformat()
        )

    @pytest.mark.parametrize('expires_at', [
        'tomorrow',
        '2030-01-01T00:00:00',
        '2000-01-01T00:00:00+00:00',
    ])
    def test_share_invalid_expiry(self, auth_client, user, make_file,
                                  expires_at):
        """Test malformed, naive and past expiry dates get 400."""
        file_instance = make_file(user)

        response = auth_client.post(
            _detail_url(file_instance, 'files:share'),
            data=json.dumps({'expires_at': expires_at}),
            content_type='application/json',
        )

        assert response.status_code == HTTPStatus.BAD_REQUEST

    def test_revoke(self, auth_client, client, user, make_file):
        """Test revoked links get 404."""
        file_instance = make_file(user, is_public=True)

        response = auth_client.delete(
            _detail_url(file_instance, 'files:share'),
        )
        auth_client.logout()

        assert response.json()['file']['is_public'] is False
        shared = client.get(reverse(
            'files:shared',
            kwargs={'share_token': file_instance.share_token},
        ))
        assert shared.status_code == HTTPStatus.NOT_FOUND

    def test_shared_link_resolves_token_once(self, client, user, make_file):
        """Test the link endpoint presigns the row it resolved."""
        file_instance = make_file(user, is_public=True)

        with mock.patch.object(
            file_operations,
            'get_public_file',
            wraps=file_operations.get_public_file,
        ) as resolve:
            response = client.get(reverse(
                'files:shared',
                kwargs={'share_token': file_instance.share_token},
            ))

        assert response.status_code == HTTPStatus.OK
        resolve.assert_called_once_with(file_instance.share_token)
        assert file_instance.storage_key in response.json()['download_url']

    def test_unknown_token(self, client, db):
        """Test unknown tokens get 404 without authentication."""
        response = client.get(
            reverse('files:shared', kwargs={'share_token': 'nope'}),
        )

        assert response.status_code == HTTPStatus.NOT_FOUND
