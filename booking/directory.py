"""Client for the external staff directory."""
import logging
from dataclasses import dataclass

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    pass


class DirectoryUserNotFound(DirectoryError):
    pass


class DirectoryUnreachable(DirectoryError):
    pass


@dataclass(frozen=True)
class DirectoryUser:
    userid: str
    name: str
    department: str = ''
    position: str = ''


class DirectoryClient:
    """Resolve staff ids to name/department/position over HTTP."""

    def __init__(self, base_url=None, token=None, timeout=None, transport=None):
        self.base_url = (base_url if base_url is not None else settings.DIRECTORY_BASE_URL).rstrip('/')
        self.token = token if token is not None else settings.DIRECTORY_API_TOKEN
        self.timeout = timeout if timeout is not None else settings.DIRECTORY_TIMEOUT
        self.transport = transport

    def _post(self, path, payload):
        headers = {'token': self.token, 'Accept': 'application/json'}
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            return client.post(f"{self.base_url}{path}", json=payload, headers=headers)

    def lookup_user(self, userid):
        try:
            response = self._post('/getuser', {'userid': userid})
        except httpx.TimeoutException as exc:
            logger.warning("Directory lookup timed out for userid=%s", userid)
            raise DirectoryUnreachable('Connection timeout. Please try again.') from exc
        except httpx.HTTPError as exc:
            logger.warning("Directory lookup failed for userid=%s: %s", userid, exc)
            raise DirectoryUnreachable('Cannot reach user service') from exc

        if response.status_code >= 500:
            logger.warning("Directory returned %s for userid=%s", response.status_code, userid)
            raise DirectoryUnreachable('Cannot reach user service')

        try:
            data = response.json()
        except ValueError as exc:
            raise DirectoryUnreachable('Invalid response from user service') from exc

        if isinstance(data, dict) and str(data.get('status')) == '1' and isinstance(data.get('user'), dict):
            user = data['user']
            return DirectoryUser(
                userid=userid,
                name=user.get('name') or userid,
                department=user.get('department') or '',
                position=user.get('position') or '',
            )

        message = data.get('message') if isinstance(data, dict) else None
        raise DirectoryUserNotFound(message or 'User not found')


def get_directory_client():
    return DirectoryClient()
