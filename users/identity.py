"""
Participant lookups for the messaging core.

The identity service owns profiles. Lookups go cache -> local mirror
(kept current by the event bus consumers) -> remote identity service.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Optional

from django.conf import settings
from django.core.cache import cache

from farmlink.exceptions import IdentityUnavailable, ParticipantNotFound
from farmlink.identity_client import IdentityServiceUnavailable, get_identity_client
from .models import Participant

logger = logging.getLogger(__name__)

UNKNOWN_ROLE = 'unknown'


@dataclass(frozen=True)
class ParticipantSnapshot:
    participant_id: str
    display_name: str
    role: str
    avatar_ref: Optional[str] = None

    @classmethod
    def placeholder(cls, participant_id):
        return cls(participant_id=participant_id, display_name='Unknown', role=UNKNOWN_ROLE)

    @classmethod
    def from_participant(cls, participant):
        return cls(
            participant_id=participant.participant_id,
            display_name=participant.display_name,
            role=participant.role,
            avatar_ref=participant.avatar_url,
        )

    @classmethod
    def from_profile(cls, profile):
        return cls(
            participant_id=str(profile.get('id') or profile.get('participant_id')),
            display_name=profile.get('full_name') or profile.get('display_name') or 'Unknown',
            role=profile.get('role') or UNKNOWN_ROLE,
            avatar_ref=profile.get('avatar_url'),
        )

    @property
    def is_placeholder(self):
        return self.role == UNKNOWN_ROLE

    def to_dict(self):
        return asdict(self)


class IdentityProvider:
    cache_prefix = 'participant'

    def __init__(self, client=None):
        self.client = client or get_identity_client()

    def _cache_key(self, participant_id):
        return f"{self.cache_prefix}:{participant_id}"

    def _safe_cache_get(self, key):
        """Safely get from cache, return None if the cache backend is unavailable"""
        try:
            return cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def _safe_cache_set(self, key, value):
        try:
            cache.set(key, value, settings.IDENTITY_CACHE_TTL)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def invalidate(self, participant_id):
        try:
            cache.delete(self._cache_key(participant_id))
        except Exception as e:
            logger.warning(f"Cache delete failed for {participant_id}: {e}")

    def resolve_participant(self, participant_id) -> ParticipantSnapshot:
        """
        Resolve a participant id to display metadata and role.

        Raises:
            ParticipantNotFound: the id is unknown, deleted or deactivated.
            IdentityUnavailable: the id is not mirrored locally and the
                identity service cannot currently answer for it.
        """
        if not participant_id:
            raise ParticipantNotFound()

        cached = self._safe_cache_get(self._cache_key(participant_id))
        if cached:
            return ParticipantSnapshot(**cached)

        snapshot = self._lookup(participant_id)
        if snapshot is None:
            raise ParticipantNotFound(f"Participant {participant_id} not found.")

        self._safe_cache_set(self._cache_key(participant_id), snapshot.to_dict())
        return snapshot

    def resolve_or_placeholder(self, participant_id) -> ParticipantSnapshot:
        try:
            return self.resolve_participant(participant_id)
        except (ParticipantNotFound, IdentityUnavailable):
            return ParticipantSnapshot.placeholder(participant_id)

    def resolve_many(self, participant_ids: Iterable[str]) -> Dict[str, ParticipantSnapshot]:
        """Resolve several ids at once; ids that cannot be resolved are left out."""
        wanted = [pid for pid in dict.fromkeys(participant_ids) if pid]
        resolved = {}
        missing = []

        for pid in wanted:
            cached = self._safe_cache_get(self._cache_key(pid))
            if cached:
                resolved[pid] = ParticipantSnapshot(**cached)
            else:
                missing.append(pid)

        if missing:
            local = Participant._default_manager.filter(participant_id__in=missing)
            for participant in local:
                if participant.is_active:
                    resolved[participant.participant_id] = ParticipantSnapshot.from_participant(participant)
            known_locally = {p.participant_id for p in local}
            remote_ids = [pid for pid in missing if pid not in known_locally]

            if remote_ids and self.client.is_configured:
                try:
                    for profile in self.client.get_profiles(remote_ids):
                        snapshot = ParticipantSnapshot.from_profile(profile)
                        if snapshot.participant_id in remote_ids:
                            resolved[snapshot.participant_id] = snapshot
                except IdentityServiceUnavailable as e:
                    logger.warning(f"Identity service unavailable for bulk lookup: {e}")

            for pid in missing:
                if pid in resolved:
                    self._safe_cache_set(self._cache_key(pid), resolved[pid].to_dict())

        return resolved

    def _lookup(self, participant_id) -> Optional[ParticipantSnapshot]:
        try:
            participant = Participant._default_manager.get(participant_id=participant_id)
        except Participant.DoesNotExist:
            participant = None

        if participant is not None:
            # A deactivated mirror row means the account was deleted upstream.
            if not participant.is_active:
                return None
            return ParticipantSnapshot.from_participant(participant)

        if not self.client.is_configured:
            return None

        try:
            profile = self.client.get_profile(participant_id)
        except IdentityServiceUnavailable as e:
            logger.warning(f"Identity service unavailable for {participant_id}: {e}")
            raise IdentityUnavailable() from e

        return ParticipantSnapshot.from_profile(profile) if profile else None


_identity_provider = None


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider is None:
        _identity_provider = IdentityProvider()
    return _identity_provider
