from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import requests

from . import __version__
from .errors import TransportError
from .retry import RetryConfig, TransientHTTPError, is_transient, run_with_retries

SEARCH_PATH = "/rest/api/2/search"
USER_AGENT = f"jiradetails/{__version__}"
HTTP_BAD_REQUEST = 400
DEFAULT_TIMEOUT = 30.0


@dataclass
class JiraRestClient:
    """Minimal Jira REST client: one search endpoint behind basic auth.

    HTTP 400 answers that carry ``errorMessages`` are returned to the caller
    as payloads because Jira reports unknown or invalid keys that way. Every
    other failure becomes a :class:`TransportError`.
    """

    base_url: str
    user: str
    password: str
    verify_tls: bool = True
    timeout: float = DEFAULT_TIMEOUT
    retry: RetryConfig | None = None
    session: requests.Session | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.auth = (self.user, self.password)
        self._session.headers.setdefault("Accept", "application/json")
        self._session.headers.setdefault("Content-Type", "application/json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def _request(self, method: str, path: str, *, json_body: Any | None = None) -> Any:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

        def _run() -> requests.Response:
            response = self._session.request(
                method,
                url,
                json=json_body,
                headers=self._session.headers,
                timeout=self.timeout,
                verify=self.verify_tls,
            )
            if is_transient(response.status_code):
                raise TransientHTTPError(
                    response.status_code,
                    retry_after=response.headers.get("Retry-After"),
                    body=response.text,
                )
            return response

        try:
            response = run_with_retries(_run, cfg=self.retry)
        except TransientHTTPError as exc:
            raise TransportError(
                f"Jira API {method} {url} kept failing with {exc.status}",
                status=exc.status,
                response_text=exc.body,
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Jira API {method} {url} failed: {exc}") from exc

        data = self._decode(response)
        if response.status_code >= HTTP_BAD_REQUEST:
            if (
                response.status_code == HTTP_BAD_REQUEST
                and isinstance(data, dict)
                and isinstance(data.get("errorMessages"), list)
                and data["errorMessages"]
            ):
                return data
            raise TransportError(
                f"Jira API {method} {url} failed with {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        return data

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def search(
        self, jql: str, *, fields: Sequence[str] = ("id", "key", "summary"), max_results: int = 50
    ) -> Any:
        payload = {"jql": jql, "fields": list(fields), "maxResults": max_results}
        return self._request("POST", SEARCH_PATH, json_body=payload)


__all__ = ["JiraRestClient", "SEARCH_PATH", "DEFAULT_TIMEOUT"]
