from datetime import timezone as dt_timezone

from django.utils.dateparse import parse_datetime
from django.utils import timezone
from rest_framework.response import Response
from rest_framework.views import APIView

from dmessages.serializers import MessageSerializer
from farmlink.exceptions import ValidationError
from farmlink.permissions import HasCapability, READ_CONVERSATION
from .serializers import ConversationSummarySerializer
from .services import ConversationService, ReadStateService


def parse_since(value):
    if not value:
        return None
    try:
        since = parse_datetime(value)
    except ValueError:
        since = None
    if since is None:
        raise ValidationError("since must be an ISO 8601 timestamp.", code='invalid_since')
    if timezone.is_naive(since):
        since = timezone.make_aware(since, dt_timezone.utc)
    return since


def parse_flag(value):
    return (value or '').lower() in ('1', 'true', 'yes')


class ConversationListView(APIView):
    """List the caller's conversations, most recent activity first"""
    permission_classes = [HasCapability]
    required_capability = READ_CONVERSATION

    def get(self, request):
        viewer_id = request.user.participant_id
        page = ConversationService.list_conversations(
            viewer_id,
            page=request.GET.get('page'),
            page_size=request.GET.get('page_size'),
            archived=parse_flag(request.GET.get('archived')),
        )

        return Response({
            'participant_id': viewer_id,
            'results': ConversationSummarySerializer(page.results, many=True).data,
            'next_page': page.next_page,
            'total_count': page.total_count,
        })


class UnreadCountView(APIView):
    """Total unread messages for the caller, for badges"""
    permission_classes = [HasCapability]
    required_capability = READ_CONVERSATION

    def get(self, request):
        return Response({
            'participant_id': request.user.participant_id,
            'unread_total': ConversationService.unread_total(request.user.participant_id),
        })


class ConversationMessagesView(APIView):
    """Messages of one conversation, oldest to newest. Does not mark anything read."""
    permission_classes = [HasCapability]
    required_capability = READ_CONVERSATION

    def get(self, request, conversation_key):
        page = ConversationService.list_messages(
            request.user.participant_id,
            conversation_key,
            since=parse_since(request.GET.get('since')),
            page=request.GET.get('page'),
            page_size=request.GET.get('page_size'),
            role=request.user.role,
        )

        return Response({
            'conversation_key': page.conversation_key,
            'results': MessageSerializer(page.results, many=True).data,
            'next_page': page.next_page,
            'total_count': page.total_count,
        })


class MarkReadView(APIView):
    """Mark everything addressed to the caller in a conversation as read"""
    permission_classes = [HasCapability]
    required_capability = READ_CONVERSATION

    def post(self, request, conversation_key):
        marked = ReadStateService.mark_read(request.user.participant_id, conversation_key)
        return Response({
            'conversation_key': conversation_key,
            'marked': marked,
        })


class SearchMessagesView(APIView):
    """Search the caller's own messages, newest first"""
    permission_classes = [HasCapability]
    required_capability = READ_CONVERSATION

    def get(self, request):
        query = request.GET.get('q', '')
        messages = ConversationService.search_messages(
            request.user.participant_id,
            query,
            limit=request.GET.get('limit'),
        )

        return Response({
            'query': query.strip(),
            'results': MessageSerializer(messages, many=True).data,
        })


class ArchiveConversationView(APIView):
    """POST archives a conversation for the caller, DELETE brings it back"""
    permission_classes = [HasCapability]
    required_capability = READ_CONVERSATION

    def post(self, request, conversation_key):
        archive = ConversationService.archive(request.user.participant_id, conversation_key)
        return Response({
            'conversation_key': archive.conversation_key,
            'archived': True,
            'archived_at': archive.archived_at,
        })

    def delete(self, request, conversation_key):
        ConversationService.unarchive(request.user.participant_id, conversation_key)
        return Response({
            'conversation_key': conversation_key,
            'archived': False,
        })
