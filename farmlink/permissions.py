from rest_framework.permissions import BasePermission


SEND_MESSAGE = 'message:send'
READ_CONVERSATION = 'conversation:read'
OBSERVE_CONVERSATION = 'conversation:observe'
UPLOAD_MEDIA = 'media:upload'

ROLE_CAPABILITIES = {
    'farmer': [SEND_MESSAGE, READ_CONVERSATION, UPLOAD_MEDIA],
    'adopter': [SEND_MESSAGE, READ_CONVERSATION, UPLOAD_MEDIA],
    'expert': [SEND_MESSAGE, READ_CONVERSATION, UPLOAD_MEDIA],
    'admin': [SEND_MESSAGE, READ_CONVERSATION, UPLOAD_MEDIA, OBSERVE_CONVERSATION],
}


def has_capability(role, capability):
    return capability in ROLE_CAPABILITIES.get(role, [])


class HasCapability(BasePermission):
    """Grant access when the caller's role carries ``view.required_capability``."""

    message = 'Your role does not allow this action.'

    def has_permission(self, request, view):
        user = request.user
        if not user or not getattr(user, 'is_authenticated', False):
            return False

        required = getattr(view, 'required_capability', None)
        if required is None:
            return True
        return has_capability(getattr(user, 'role', None), required)
