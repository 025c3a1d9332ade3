"""URL configuration for the files API."""

from django.urls import path

from server.apps.files import views

app_name = 'files'

urlpatterns = [
    # File listing and upload
    path('', views.list_files, name='list'),
    path('upload/', views.upload_file, name='upload'),
    path('trash/', views.list_trash, name='trash'),
    path('quota/', views.storage_quota, name='quota'),

    # Individual file operations
    path('<uuid:file_id>/', views.file_detail, name='detail'),
    path('<uuid:file_id>/download/', views.download_file, name='download'),
    path('<uuid:file_id>/restore/', views.restore_file, name='restore'),
    path('<uuid:file_id>/share/', views.share_file, name='share'),

    # Public share links
    path('shared/<str:share_token>/', views.shared_file, name='shared'),
]
