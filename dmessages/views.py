from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from farmlink.permissions import HasCapability, SEND_MESSAGE
from .serializers import MessageSerializer, SendMessageSerializer
from .services import MessageService


class SendMessageView(APIView):
    """
    Send a direct message.

    Returns 201 with the stored message, or 200 with the already stored
    message when the idempotency token was seen before for this sender.
    """
    permission_classes = [HasCapability]
    required_capability = SEND_MESSAGE

    def post(self, request):
        serializer = SendMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = MessageService.send(
            sender_id=request.user.participant_id,
            recipient_id=data['recipient_id'],
            content=data.get('content', ''),
            media_ref=data.get('media_ref'),
            context_id=data.get('context_id'),
            idempotency_token=data.get('idempotency_token'),
            attachment_type=data.get('attachment_type'),
        )

        return Response(
            MessageSerializer(result.message).data,
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )
