from django.urls import path
from . import views

app_name = 'websocket_chat'

urlpatterns = [
    path('uploads/', views.MediaUploadView.as_view(), name='media_upload'),
]
