"""
odata_bridge.core.session - OData v4 HTTP Session Management
=============================================================

Low-level transport for OData v4 services with:
- Anonymous, Basic and Bearer token authentication
- Optional urllib3 retry for idempotent reads (off by default)
- Optional CSRF token handling for write operations
- An awaitable ``send`` for the asynchronous data-service API
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


@dataclass
class HttpResponse:
    """
    Transport-agnostic view of one HTTP response.

    Also used for the individual parts of a decoded batch response.
    """
    status_code: Optional[int]
    status_text: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    url: Optional[str] = None

    def json(self) -> Any:
        if not self.body:
            return None
        return json.loads(self.body)

    @classmethod
    def from_requests(cls, r: Response) -> "HttpResponse":
        return cls(
            status_code=r.status_code,
            status_text=r.reason,
            headers=dict(r.headers),
            body=r.text,
            url=r.url,
        )


class ODataUpstreamError(RuntimeError):
    """
    Exception raised when the OData service returns an error status.

    Attributes
    ----------
    status : int
        HTTP status code
    body : str
        Response body
    url : str
        The URL that was called
    headers : dict
        Response headers
    response : HttpResponse
        The full response, consumed by the error normalizer
    """

    def __init__(self, response: HttpResponse, url: str) -> None:
        snippet = (response.body or "")[:1200]
        super().__init__(f"OData upstream error {response.status_code} for {url}: {snippet}")
        self.response = response
        self.status = response.status_code
        self.body = response.body or ""
        self.url = url
        self.headers = response.headers


@dataclass
class ODataAuth:
    """
    Authentication configuration.

    Parameters
    ----------
    kind : str
        "none", "basic" or "bearer"
    value : tuple or str, optional
        For basic: (username, password) tuple
        For bearer: access token string

    Examples
    --------
    >>> auth = ODataAuth("basic", ("USER", "PASSWORD"))
    >>> auth = ODataAuth("bearer", "eyJ...")
    """
    kind: str = "none"  # "none" | "basic" | "bearer"
    value: Union[Tuple[str, str], str, None] = None


@dataclass
class ODataConfig:
    """
    Connection configuration for an OData v4 service.

    Parameters
    ----------
    base_url : str
        Service root, e.g. "https://host/odata/v4/catalog/"
    auth : ODataAuth
        Authentication configuration
    lang : str
        Accept-Language value (default: "en")
    timeout : float
        Request timeout in seconds (default: 60.0)
    retries : int
        Retry attempts for idempotent reads (default: 0, failures are reported)
    backoff : float
        Backoff factor for retries (default: 0.5)
    verify : bool or str
        SSL verification (True, False, or path to CA bundle)
    user_agent : str
        User-Agent header value
    fetch_csrf : bool
        Fetch and send an X-CSRF-Token for modifying requests

    Examples
    --------
    >>> cfg = ODataConfig(
    ...     base_url="https://services.example.com/odata/",
    ...     auth=ODataAuth("bearer", "token"),
    ... )
    """
    base_url: str
    auth: ODataAuth = field(default_factory=ODataAuth)
    lang: str = "en"
    timeout: float = 60.0
    retries: int = 0
    backoff: float = 0.5
    verify: Union[bool, str] = True
    user_agent: str = "odata-bridge/0.1"
    fetch_csrf: bool = False


class ODataSession:
    """
    HTTP session bound to one OData v4 service root.

    Use as a context manager for automatic cleanup.

    Parameters
    ----------
    cfg : ODataConfig
        Connection configuration

    Examples
    --------
    >>> with ODataSession(cfg) as sess:
    ...     r = sess.request("GET", sess.base + "Customers")
    """

    def __init__(self, cfg: ODataConfig) -> None:
        self.cfg = cfg
        self.base = cfg.base_url.rstrip("/") + "/"
        self.timeout = float(cfg.timeout)
        self.verify = cfg.verify
        self.logger = logging.getLogger("odata_bridge.http")

        self.session = self._build_session()

        self._csrf_token: Optional[str] = None
        self._csrf_lock = threading.Lock()

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self) -> "ODataSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- auth/session ----------------

    def _build_session(self) -> Session:
        sess = requests.Session()

        if self.cfg.auth.kind == "basic":
            sess.auth = self.cfg.auth.value  # type: ignore[assignment]
        elif self.cfg.auth.kind == "bearer":
            sess.headers.update({"Authorization": f"Bearer {self.cfg.auth.value}"})
        elif self.cfg.auth.kind != "none":
            raise ValueError("auth.kind must be 'none', 'basic' or 'bearer'")

        sess.headers.update({
            "Accept": "application/json",
            "Accept-Language": self.cfg.lang.lower(),
            "OData-Version": "4.0",
            "OData-MaxVersion": "4.0",
            "User-Agent": self.cfg.user_agent,
        })

        retry = Retry(
            total=self.cfg.retries,
            backoff_factor=self.cfg.backoff,
            status_forcelist=(429, 502, 503, 504),
            allowed_methods=frozenset({"GET", "HEAD", "OPTIONS"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=20)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        return sess

    # ---------------- helpers ----------------

    def _raise_for_error(self, r: HttpResponse, url: str) -> None:
        if r.status_code is None or r.status_code >= 400:
            raise ODataUpstreamError(r, url)

    def _ensure_csrf(self) -> Optional[str]:
        if self._csrf_token:
            return self._csrf_token

        with self._csrf_lock:
            if self._csrf_token:
                return self._csrf_token

            r = self._request("HEAD", self.base, headers={"X-CSRF-Token": "Fetch"})
            token = r.headers.get("x-csrf-token") or r.headers.get("X-CSRF-Token")
            if not token:
                raise ODataUpstreamError(
                    HttpResponse(400, "Bad Request", r.headers, "Failed to obtain CSRF token", self.base),
                    self.base,
                )
            self._csrf_token = token
            return token

    def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[Union[str, bytes]] = None,
    ) -> HttpResponse:
        t0 = time.perf_counter()
        r = self.session.request(
            method=method,
            url=url,
            headers=headers,
            data=data,
            timeout=self.timeout,
            verify=self.verify,
        )
        resp = HttpResponse.from_requests(r)
        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("%s %s %sms", method.upper(), url, round(dt, 1))
        self._raise_for_error(resp, url)
        return resp

    # ---------------- public ops ----------------

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        data: Any = None,
    ) -> HttpResponse:
        """
        Execute one HTTP request against the service.

        Parameters
        ----------
        method : str
            HTTP verb
        url : str
            Absolute URL
        headers : dict, optional
            Additional HTTP headers
        data : str, bytes or JSON-serializable, optional
            Request body; dicts and lists are JSON encoded

        Returns
        -------
        HttpResponse
            The response (status < 400)

        Raises
        ------
        ODataUpstreamError
            Status >= 400
        requests.RequestException
            Connection level failures
        """
        hdrs: Dict[str, str] = dict(headers or {})
        if data is not None and not isinstance(data, (str, bytes)):
            data = json.dumps(data, separators=(",", ":"))
            hdrs.setdefault("Content-Type", "application/json;IEEE754Compatible=true")

        if self.cfg.fetch_csrf and method.upper() not in ("GET", "HEAD", "OPTIONS"):
            hdrs["X-CSRF-Token"] = self._ensure_csrf() or ""

        return self._request(method, url, headers=hdrs, data=data)

    async def send(self, descriptor: Any) -> HttpResponse:
        """
        Awaitable variant of ``request`` taking a request descriptor.

        The descriptor needs ``method``, ``uri``, ``headers`` and ``data``.
        The blocking call runs in a worker thread.
        """
        return await asyncio.to_thread(
            self.request,
            descriptor.method,
            descriptor.uri,
            headers=descriptor.headers,
            data=descriptor.data,
        )
