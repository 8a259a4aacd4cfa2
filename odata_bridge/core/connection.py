"""
odata_bridge.core.connection - High-level connection management
=================================================================

Environment-driven connection context that hands out data services.
"""

from __future__ import annotations

import os
from typing import Any, Optional, TYPE_CHECKING

from odata_bridge.core.session import ODataAuth, ODataConfig, ODataSession

if TYPE_CHECKING:
    from odata_bridge.odata.service import OData4DataService


class ConnectionContext:
    """
    High-level connection manager for one OData v4 service root.

    Parameters
    ----------
    base_url : str, optional
        Service root URL. Falls back to ODATA_BASE_URL env var.
    user : str, optional
        Username for basic auth. Falls back to ODATA_USER env var.
    password : str, optional
        Password for basic auth. Falls back to ODATA_PASS env var.
    bearer_token : str, optional
        Bearer token for OAuth. Falls back to ODATA_BEARER_TOKEN env var.
    verify : bool, optional
        SSL verification. Falls back to ODATA_VERIFY_TLS env var.
    timeout : float, optional
        Request timeout in seconds. Falls back to ODATA_TIMEOUT env var.
    fetch_csrf : bool
        Send an X-CSRF-Token with modifying requests.

    Examples
    --------
    >>> with ConnectionContext(base_url="https://host/odata/") as conn:
    ...     svc = conn.get_data_service()
    ...     await svc.fetch_metadata()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        verify: Optional[bool] = None,
        timeout: Optional[float] = None,
        fetch_csrf: bool = False,
    ) -> None:
        self._base_url = (base_url or os.environ.get("ODATA_BASE_URL", "")).rstrip("/") + "/"
        self._user = user or os.environ.get("ODATA_USER", "")
        self._password = password or os.environ.get("ODATA_PASS", "")
        self._bearer_token = bearer_token or os.environ.get("ODATA_BEARER_TOKEN", "")

        if verify is not None:
            self._verify = verify
        else:
            self._verify = os.environ.get("ODATA_VERIFY_TLS", "true").lower() != "false"

        self._timeout = float(timeout if timeout is not None else os.environ.get("ODATA_TIMEOUT", "60"))
        self._fetch_csrf = fetch_csrf

        if not self._base_url or self._base_url == "/":
            raise ValueError(
                "Missing base_url. Set ODATA_BASE_URL environment variable "
                "or pass base_url parameter."
            )

        if bool(self._user) != bool(self._password):
            raise ValueError(
                "Missing credentials. Set both ODATA_USER and ODATA_PASS "
                "or pass both user and password parameters."
            )

        self._session: Optional[ODataSession] = None

    @property
    def session(self) -> ODataSession:
        """Get or create the underlying OData session."""
        if self._session is None:
            self._session = self._build_session()
        return self._session

    def _build_session(self) -> ODataSession:
        if self._bearer_token:
            auth = ODataAuth("bearer", self._bearer_token)
        elif self._user:
            auth = ODataAuth("basic", (self._user, self._password))
        else:
            auth = ODataAuth("none")

        cfg = ODataConfig(
            base_url=self._base_url,
            auth=auth,
            verify=self._verify,
            timeout=self._timeout,
            fetch_csrf=self._fetch_csrf,
        )
        return ODataSession(cfg)

    def close(self) -> None:
        """Close the connection."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "ConnectionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_data_service(self, **kwargs: Any) -> "OData4DataService":
        """
        Create an OData v4 data service bound to this connection.

        Keyword arguments are passed to ``OData4DataService``.
        """
        # Import here to avoid circular imports
        from odata_bridge.odata.service import OData4DataService
        return OData4DataService(self.session, **kwargs)

    @property
    def base_url(self) -> str:
        """The configured service root."""
        return self._base_url
