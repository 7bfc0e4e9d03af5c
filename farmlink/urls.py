"""
URL configuration for farmlink project.

Messaging endpoints live under their app prefixes; ``/ping/`` is the
unauthenticated health check.
"""
from django.contrib import admin
from django.urls import path, include
from . import views
from django.conf import settings
from django.conf.urls.static import static

urlpatterns = [
    path('admin/', admin.site.urls),
    path('ping/', views.PingView.as_view(), name='ping'),
    path('messages/', include('dmessages.urls')),
    path('conversations/', include('conversations.urls')),
    path('chat/', include('websocket_chat.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
