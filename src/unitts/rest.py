"""
HTTP plumbing shared by the REST-based adapters.

Transport and status failures are mapped onto the `ProviderError` family so
every adapter surfaces the same exception types with its backend name
attached. Nothing here retries.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import requests

from .errors import (
    ProviderAuthError,
    ProviderConnectionError,
    ProviderError,
    ProviderNetworkError,
    ProviderRateLimitError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class RestClient:
    """Thin `requests.Session` wrapper bound to one backend."""

    def __init__(
        self,
        provider: str,
        base_url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._session_owner = False
        self._headers = dict(headers or {})

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session_owner = True
        return self._session

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request and return the response, raising on any failure."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {**self._headers, **kwargs.pop("headers", {})}
        kwargs.setdefault("timeout", self.timeout)

        try:
            response = self.session.request(method, url, headers=headers, **kwargs)
        except requests.exceptions.ConnectTimeout as exc:  # pragma: no cover - depends on network
            raise ProviderConnectionError(
                "Timed out connecting.", provider=self.provider
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise ProviderConnectionError("Unable to connect.", provider=self.provider) from exc
        except requests.exceptions.Timeout as exc:  # pragma: no cover
            raise ProviderNetworkError(
                "Timed out waiting for response.", provider=self.provider
            ) from exc
        except requests.RequestException as exc:  # pragma: no cover
            raise ProviderNetworkError(str(exc), provider=self.provider) from exc

        self._raise_for_status(response)
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    def get(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", path, **kwargs)

    def close(self) -> None:
        if self._session is not None and self._session_owner:
            self._session.close()
        self._session = None
        self._session_owner = False

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        if status in (401, 403):
            response.close()
            raise ProviderAuthError("Invalid credentials.", provider=self.provider)
        if status == 429:
            retry_after = _parse_retry_after(response.headers.get("retry-after"))
            response.close()
            raise ProviderRateLimitError(provider=self.provider, retry_after=retry_after)
        if 500 <= status < 600:
            response.close()
            raise ProviderNetworkError(
                f"Upstream error (status {status}).", provider=self.provider
            )

        detail = response.text[:256]
        response.close()
        raise ProviderError(f"Request failed ({status}): {detail}", provider=self.provider)


def _parse_retry_after(value: str | None) -> float | None:
    # Only the delay-seconds form is honoured; HTTP-dates yield None.
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.debug("Ignoring non-numeric Retry-After header %r", value)
        return None
