import time
import requests
from typing import Dict, List, Optional
from requests.exceptions import ConnectionError, Timeout, RequestException
from urllib3.exceptions import ProtocolError

from tribu.logging_config import get_logger

logger = get_logger(__name__)


class PeopleAPIError(Exception):
    """A People API call failed (HTTP error, or connection retries exhausted)."""

    def __init__(self, message, status_code=None, response_text=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class PeopleAuthError(PeopleAPIError):
    """No usable access token: OAuth misconfigured, token grant failed, or still 401 after a refresh."""


class PeopleAPI:
    """Google People API connection layer utilizing a requests session."""
    BASE_URL = "https://people.googleapis.com/v1"

    def __init__(self, token_provider, timeout: int = 30, session: Optional[requests.Session] = None):
        """
        Args:
            token_provider: callable(force_refresh=False) -> access token
            timeout: per-request timeout in seconds
            session: optional pre-built session (tests)
        """
        if token_provider is None:
            raise ValueError("Missing People API token provider")
        self.token_provider = token_provider
        self.timeout = timeout
        self.session = session or requests.Session()

    def _update_auth_header(self, force_refresh: bool = False):
        '''Adds the Authorization header to the session'''
        try:
            token = self.token_provider(force_refresh=force_refresh)
        except Exception as e:
            raise PeopleAuthError(f"Could not obtain a People API access token: {e}") from e
        if not token:
            raise PeopleAuthError("People API token provider returned an empty token")
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json"
        })

    def _request(self, method: str, path: str, max_retries: int = 3, retry_delay: float = 1.0, **kwargs):
        """
        Make a request with retry logic for connection errors.

        Args:
            method: HTTP method
            path: resource path below BASE_URL
            max_retries: Maximum number of tries for connection errors
            retry_delay: Initial delay between retries (exponential backoff)
            **kwargs: Additional arguments for requests

        Raises:
            PeopleAPIError: on HTTP errors or when connection retries run out
        """
        self._update_auth_header()
        url = f"{self.BASE_URL}/{path.lstrip('/')}"

        for attempt in range(max_retries):
            try:
                r = self.session.request(method, url, timeout=self.timeout, **kwargs)

                if r.status_code == 401:
                    # Token expired or revoked, force refresh once
                    self._update_auth_header(force_refresh=True)
                    r = self.session.request(method, url, timeout=self.timeout, **kwargs)
                    if r.status_code == 401:
                        raise PeopleAuthError(
                            f"401 from People API on {method} {path} after token refresh",
                            status_code=401,
                            response_text=r.text,
                        )

                if r.status_code >= 400:
                    raise PeopleAPIError(
                        f"{r.status_code} from People API on {method} {path}: {r.text[:300]}",
                        status_code=r.status_code,
                        response_text=r.text,
                    )
                return r.json() if r.text else None

            except (ConnectionError, ProtocolError, Timeout) as e:
                if attempt < max_retries - 1:
                    time.sleep(retry_delay * (2 ** attempt))
                    continue
                raise PeopleAPIError(f"Connection error after {max_retries} attempts: {e}") from e
            except PeopleAPIError:
                raise
            except RequestException as e:
                raise PeopleAPIError(f"People API request failed: {e}") from e

    # -------------------------
    # People
    # -------------------------
    def get_person(self, resource_name: str, person_fields: str) -> Dict:
        return self._request("GET", resource_name, params={"personFields": person_fields}) or {}

    def update_contact(self, resource_name: str, person: Dict, update_person_fields: str) -> Dict:
        """PATCH a contact. Fails with 400 FAILED_PRECONDITION when person['etag'] is stale."""
        return self._request(
            "PATCH",
            f"{resource_name}:updateContact",
            params={"updatePersonFields": update_person_fields},
            json=person,
        )

    # -------------------------
    # Contact groups
    # -------------------------
    def modify_group_members(self, group_resource_name: str, add: Optional[List[str]] = None,
                             remove: Optional[List[str]] = None) -> Dict:
        body = {}
        if add:
            body["resourceNamesToAdd"] = list(add)
        if remove:
            body["resourceNamesToRemove"] = list(remove)
        return self._request("POST", f"{group_resource_name}/members:modify", json=body)
