"""
odata_bridge.core.errors - Error taxonomy and normalization
============================================================

Every failure leaving this package is an ``ODataError``:

- FormatError: a value cannot be encoded for its declared EDM type
- MetadataResolutionError: a type or operation name cannot be matched
- TransportError: no structured response was received
- ProtocolError: the service answered with a failure status

``normalize_error`` turns a raw failure (a transport exception, an upstream
HTTP error or a failed batch part) into one of the last two.
"""

from __future__ import annotations

import json
from typing import Any, Optional


NO_CONNECTION_MESSAGE = (
    "HTTP response status 0 and no message. "
    "Likely did not or could not reach server. Is the server running?"
)


class ODataError(Exception):
    """
    Normalized error raised by the OData adapter.

    Attributes
    ----------
    message : str
        Human readable message, possibly built from nested error bodies
    status : int, optional
        HTTP status code (unset for pure transport failures)
    status_text : str, optional
        HTTP reason phrase
    url : str, optional
        The URL that was called
    body : Any
        Parsed JSON error body, or the raw body when it is not JSON
    """

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        status_text: Optional[str] = None,
        url: Optional[str] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.status_text = status_text
        self.url = url
        self.body = body

    def __str__(self) -> str:
        name = type(self).__name__
        if self.message:
            return f"{name}: {self.message}"
        return name


class FormatError(ODataError, ValueError):
    """A value cannot be rendered in the wire format of its EDM type."""

    def __init__(self, message: str, *, data_type: Any = None, value: Any = None) -> None:
        super().__init__(message)
        self.data_type = data_type
        self.value = value


class MetadataResolutionError(ODataError, LookupError):
    """A type, resource or operation name is not present in the catalog."""

    def __init__(self, message: str, *, name: Optional[str] = None, url: Optional[str] = None) -> None:
        super().__init__(message, url=url)
        self.name = name


class TransportError(ODataError):
    """The request failed before a structured response was available."""


class ProtocolError(ODataError):
    """The service returned a structured failure response."""

    def __init__(self, *args: Any, content_id: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.content_id = content_id


def _message_of(body: Any) -> str:
    msg = body.get("message") or body.get("Message") or ""
    if isinstance(msg, dict):
        # OData v2 style: {"message": {"lang": "en", "value": "..."}}
        msg = msg.get("value") or ""
    return msg if isinstance(msg, str) else str(msg)


def extract_error_message(body: Any) -> str:
    """
    Collect the messages of a (possibly deeply nested) OData error body.

    Descends through ``error``, ``innererror`` and ``internalexception``
    fields, appending each level's ``message`` followed by ``"; "``.

    Examples
    --------
    >>> extract_error_message({"error": {"message": "A", "innererror": {"message": "B"}}})
    'A; B; '
    """
    if not isinstance(body, dict):
        return ""

    # OData v3 envelope
    if isinstance(body.get("odata.error"), dict):
        body = body["odata.error"]

    msg = ""
    while isinstance(body, dict):
        text = _message_of(body)
        if text:
            msg += text + "; "
        nxt = body.get("error") or body.get("innererror") or body.get("internalexception")
        if not isinstance(nxt, dict):
            break
        body = nxt
    return msg


def catch_no_connection_error(err: ODataError) -> ODataError:
    """Give status-less, message-less failures a connectivity message."""
    if not err.status and not err.message:
        err.message = NO_CONNECTION_MESSAGE
    return err


def normalize_error(
    failure: Any,
    url: Optional[str] = None,
    *,
    content_id: Optional[int] = None,
) -> ODataError:
    """
    Convert a raw failure into a single ``ODataError``.

    Parameters
    ----------
    failure : Any
        An exception or response-like object. If it has a ``response``
        attribute that is used; objects with a ``status_code`` are treated
        as the response themselves.
    url : str, optional
        The originating URL, recorded on the error
    content_id : int, optional
        Batch position of the failed part

    Returns
    -------
    ODataError
        ``TransportError`` if no response is available, ``ProtocolError``
        otherwise. Never raises.
    """
    if isinstance(failure, ODataError):
        return failure

    response = getattr(failure, "response", None)
    if response is None and hasattr(failure, "status_code"):
        response = failure
    if response is None or getattr(response, "status_code", None) is None:
        text = str(failure) if failure is not None else None
        err: ODataError = TransportError(text, status_text=text, url=url)
        return catch_no_connection_error(err)

    status_text = getattr(response, "status_text", None)
    try:
        status: Optional[int] = int(response.status_code)
    except (TypeError, ValueError):
        status = None

    raw = getattr(response, "body", None)
    err = ProtocolError(
        status_text,
        status=status,
        status_text=status_text,
        url=url,
        body=raw,
        content_id=content_id,
    )

    if raw:
        try:
            parsed = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        except ValueError:
            parsed = None
        if parsed is not None:
            err.body = parsed
            msg = extract_error_message(parsed)
            if msg:
                err.message = msg
                err.args = (msg,)

    return catch_no_connection_error(err)
