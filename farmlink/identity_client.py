import logging
from typing import Optional, Dict, List

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class IdentityServiceUnavailable(Exception):
    """The remote identity service could not be reached or answered with an error."""


class IdentityClient:
    """Client for the remote identity service that owns participant profiles"""

    def __init__(self, base_url=None, service_token=None, timeout=None):
        self.base_url = (base_url or getattr(settings, 'IDENTITY_PROVIDER_URL', '') or '').rstrip('/')
        self.service_token = service_token or getattr(settings, 'IDENTITY_SERVICE_TOKEN', None)
        self.timeout = timeout or getattr(settings, 'IDENTITY_REQUEST_TIMEOUT', 3)
        self.session = requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for identity service requests"""
        headers = {'Content-Type': 'application/json'}
        if self.service_token:
            headers['X-API-Key'] = self.service_token
        return headers

    def get_profile(self, participant_id: str) -> Optional[Dict]:
        """
        Fetch one profile.

        Returns the profile dict, or None when the identity service does not
        know the participant. Raises IdentityServiceUnavailable for anything
        that is not a clean answer.
        """
        try:
            response = self.session.get(
                f"{self.base_url}/profiles/{participant_id}",
                headers=self._get_headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IdentityServiceUnavailable(str(e)) from e

        if response.status_code == 200:
            return response.json()
        if response.status_code in (404, 410):
            return None

        raise IdentityServiceUnavailable(f"Identity service returned {response.status_code}")

    def get_profiles(self, participant_ids: List[str]) -> List[Dict]:
        """Fetch several profiles in one call; unknown ids are simply absent."""
        if not participant_ids:
            return []
        try:
            response = self.session.get(
                f"{self.base_url}/profiles",
                headers=self._get_headers(),
                params={'ids': ','.join(participant_ids)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IdentityServiceUnavailable(str(e)) from e

        if response.status_code == 200:
            data = response.json()
            return data.get('profiles', []) if isinstance(data, dict) else data

        raise IdentityServiceUnavailable(f"Identity service returned {response.status_code}")


_identity_client = None


def get_identity_client() -> IdentityClient:
    """Get global identity client instance"""
    global _identity_client
    if _identity_client is None:
        _identity_client = IdentityClient()
    return _identity_client
