import logging
import os
import uuid

from django.conf import settings
from django.core.files.storage import default_storage
from rest_framework import status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from dmessages.services import classify_attachment
from farmlink.exceptions import ValidationError
from farmlink.permissions import HasCapability, UPLOAD_MEDIA

logger = logging.getLogger(__name__)


class MediaUploadView(APIView):
    """
    Store an attachment before sending it.

    Files are too large for WebSocket frames, so they go through HTTP first
    and the returned ``media_ref`` is passed to the send pipeline.
    """
    permission_classes = [HasCapability]
    required_capability = UPLOAD_MEDIA
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request):
        file_obj = request.FILES.get('file')
        if file_obj is None:
            raise ValidationError('No file provided.', code='missing_file')

        if file_obj.size > settings.MEDIA_MAX_UPLOAD_SIZE:
            max_mb = settings.MEDIA_MAX_UPLOAD_SIZE // (1024 * 1024)
            raise ValidationError(f'File too large. Maximum size is {max_mb}MB.', code='file_too_large')

        if file_obj.content_type not in settings.MEDIA_ALLOWED_TYPES:
            raise ValidationError('File type not allowed.', code='file_type_not_allowed')

        participant_id = request.user.participant_id
        file_extension = os.path.splitext(file_obj.name)[1]
        file_path = f"message_attachments/{participant_id}/{uuid.uuid4()}{file_extension}"
        media_ref = default_storage.save(file_path, file_obj)
        logger.info(f"{participant_id} uploaded {media_ref} ({file_obj.size} bytes)")

        return Response({
            'media_ref': media_ref,
            'attachment_type': classify_attachment(media_ref),
            'filename': file_obj.name,
            'file_size': file_obj.size,
            'content_type': file_obj.content_type,
        }, status=status.HTTP_201_CREATED)
