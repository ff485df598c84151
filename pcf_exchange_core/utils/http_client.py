"""
HTTP capability used for partner action calls.

Wraps a requests Session so that transport failures surface as NetworkError
while any HTTP status, including errors, is returned to the caller to
interpret per action.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

import requests
from requests.utils import parse_header_links

from ..config import HttpConfig, get_config
from ..exceptions import NetworkError
from .logger import get_logger


@dataclass
class HttpResponse:
    """Decoded response of one action call."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def links(self) -> Dict[str, str]:
        """Link header targets keyed by rel."""
        header = self.headers.get("Link") or self.headers.get("link")
        if not header:
            return {}
        result = {}
        for link in parse_header_links(header):
            rel = link.get("rel")
            if rel and "url" in link:
                result[rel] = link["url"]
        return result


class HttpClient:
    """Thin requests-based client with per-request timeouts."""

    def __init__(self, config: Optional[HttpConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or get_config().http
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", self.config.user_agent)
        self.logger = get_logger()

    def request(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        form: Optional[Dict[str, str]] = None,
        auth: Optional[Tuple[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Perform one request.

        Args:
            url: Absolute URL
            method: HTTP method
            body: JSON body, if any
            headers: Extra request headers
            params: Query parameters
            form: Form-encoded body (exclusive with body)
            auth: Basic credentials
            timeout: Override of the configured per-request timeout

        Returns:
            HttpResponse with the JSON body decoded when the content type says so

        Raises:
            NetworkError: On timeout or connection failure
        """
        try:
            response = self.session.request(
                method.upper(),
                url,
                json=body if form is None else None,
                data=form,
                headers=headers,
                params=params,
                auth=auth,
                timeout=timeout or self.config.request_timeout,
                verify=self.config.verify_ssl,
            )
        except requests.Timeout as e:
            raise NetworkError(f"Request to {url} timed out", method=method, url=url, cause=e)
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed", method=method, url=url, cause=e)

        self.logger.debug(
            "Partner call completed",
            extra={"method": method.upper(), "url": url, "status": response.status_code},
        )
        return HttpResponse(
            status=response.status_code,
            headers=response.headers,
            body=self._decode(response),
            text=response.text,
        )

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        content_type = response.headers.get("Content-Type", "")
        if "json" not in content_type or not response.content:
            return None
        try:
            return response.json(parse_float=Decimal)
        except ValueError:
            return None

    def close(self) -> None:
        self.session.close()
