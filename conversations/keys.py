"""
Conversation identity.

A conversation is never stored as a row: its key is derived from the two
participant ids (sorted, so it does not matter who wrote first) plus the
optional business context, e.g. an adoption relationship.
"""

from typing import NamedTuple, Optional

from farmlink.exceptions import InvalidParticipants

KEY_SEPARATOR = ':'
MAX_ID_LENGTH = 100


class ConversationKey(NamedTuple):
    participant_a: str
    participant_b: str
    context_id: Optional[str] = None

    def __str__(self):
        parts = [self.participant_a, self.participant_b]
        if self.context_id:
            parts.append(self.context_id)
        return KEY_SEPARATOR.join(parts)

    @property
    def participants(self):
        return (self.participant_a, self.participant_b)

    def includes(self, participant_id):
        return participant_id in self.participants

    def counterpart_of(self, participant_id):
        if participant_id == self.participant_a:
            return self.participant_b
        if participant_id == self.participant_b:
            return self.participant_a
        raise InvalidParticipants(f"{participant_id} is not part of conversation {self}.")


def _check_id(value, label):
    if not isinstance(value, str) or not value.strip():
        raise InvalidParticipants(f"{label} must be a non-empty string.")
    if KEY_SEPARATOR in value:
        raise InvalidParticipants(f"{label} must not contain '{KEY_SEPARATOR}'.")
    if len(value) > MAX_ID_LENGTH:
        raise InvalidParticipants(f"{label} cannot exceed {MAX_ID_LENGTH} characters.")


def conversation_key(participant_a, participant_b, context_id=None) -> ConversationKey:
    """Validated, ordered ConversationKey for a pair (and optional context)."""
    _check_id(participant_a, 'Participant id')
    _check_id(participant_b, 'Participant id')
    if participant_a == participant_b:
        raise InvalidParticipants('A conversation needs two distinct participants.')
    if context_id in ('', None):
        context_id = None
    else:
        _check_id(context_id, 'Context id')

    low, high = sorted((participant_a, participant_b))
    return ConversationKey(low, high, context_id)


def resolve_key(participant_a, participant_b, context_id=None) -> str:
    """
    Stable, order-independent key for the conversation between two participants.

    resolve_key(a, b, c) == resolve_key(b, a, c) for any distinct a and b.

    Raises:
        InvalidParticipants: empty or equal ids, or ids containing the separator.
    """
    return str(conversation_key(participant_a, participant_b, context_id))


def parse_key(key) -> ConversationKey:
    """Split a key produced by resolve_key back into its parts."""
    if not isinstance(key, str):
        raise InvalidParticipants('Conversation key must be a string.')
    parts = key.split(KEY_SEPARATOR)
    if len(parts) not in (2, 3):
        raise InvalidParticipants(f"Malformed conversation key: {key}")

    parsed = conversation_key(*parts)
    # Only canonical (sorted) keys identify a conversation.
    if str(parsed) != key:
        raise InvalidParticipants(f"Malformed conversation key: {key}")
    return parsed
