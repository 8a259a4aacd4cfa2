"""
odata_bridge.core - Transport, configuration and errors
========================================================

- ODataAuth / ODataConfig: connection configuration
- ODataSession: HTTP session bound to a service root
- ConnectionContext: environment-driven connection manager
- ODataError and subclasses: the normalized error taxonomy

"""

from odata_bridge.core.errors import (
    FormatError,
    MetadataResolutionError,
    ODataError,
    ProtocolError,
    TransportError,
    normalize_error,
)

from odata_bridge.core.session import (
    HttpResponse,
    ODataAuth,
    ODataConfig,
    ODataSession,
    ODataUpstreamError,
)

from odata_bridge.core.connection import ConnectionContext

__all__ = [
    "ODataError",
    "FormatError",
    "MetadataResolutionError",
    "TransportError",
    "ProtocolError",
    "normalize_error",
    "HttpResponse",
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "ODataUpstreamError",
    "ConnectionContext",
]
