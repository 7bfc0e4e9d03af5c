from django.urls import path
from . import views

app_name = 'conversations'

urlpatterns = [
    path('', views.ConversationListView.as_view(), name='conversation-list'),
    path('unread/', views.UnreadCountView.as_view(), name='conversation-unread'),
    path('search/', views.SearchMessagesView.as_view(), name='message-search'),
    path('<str:conversation_key>/messages/', views.ConversationMessagesView.as_view(), name='conversation-messages'),
    path('<str:conversation_key>/read/', views.MarkReadView.as_view(), name='conversation-read'),
    path('<str:conversation_key>/archive/', views.ArchiveConversationView.as_view(), name='conversation-archive'),
]
