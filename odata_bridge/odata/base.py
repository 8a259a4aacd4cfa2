"""
odata_bridge.odata.base - Shared data-service behaviour
========================================================

``WebApiDataService`` holds the protocol-neutral pieces that the OData v4
data service forwards to instead of re-implementing: URL qualification,
connectivity classification of errors and the change-request interceptor
hook.
"""

from __future__ import annotations

from typing import Any, List, Optional, Type, TYPE_CHECKING

from odata_bridge.core.errors import ODataError, catch_no_connection_error

if TYPE_CHECKING:
    from odata_bridge.odata.store import Entity


class ChangeRequestInterceptor:
    """
    Hook called for every change request before batch assembly.

    Subclass and override ``get_request`` to add headers or rewrite a
    request; ``done`` sees the final list.

    Parameters
    ----------
    save_context : dict
        Per-save values (route prefix, data service)
    entities : list of Entity
        Entities handed to the save, in caller order
    """

    def __init__(self, save_context: dict, entities: List["Entity"]) -> None:
        self.save_context = save_context
        self.entities = entities

    def get_request(self, request: Any, entity: "Entity", index: int) -> Any:
        return request

    def done(self, requests: List[Any]) -> None:
        return None


class WebApiDataService:
    """
    Base data service capabilities.

    Parameters
    ----------
    service_root : str
        Absolute service root URL, e.g. "https://host/odata/"
    interceptor_class : type, optional
        ``ChangeRequestInterceptor`` subclass used for saves
    """

    name = "WebApi"

    def __init__(
        self,
        service_root: str,
        *,
        interceptor_class: Optional[Type[ChangeRequestInterceptor]] = None,
    ) -> None:
        self.service_root = service_root.rstrip("/") + "/"
        self.interceptor_class = interceptor_class or ChangeRequestInterceptor

    def get_absolute_url(self, url: str) -> str:
        """Prefix the service root unless ``url`` is absolute or already prefixed."""
        if url.startswith(self.service_root) or "//" in url.split("?", 1)[0]:
            return url
        return self.service_root + url.lstrip("/")

    def catch_no_connection_error(self, err: ODataError) -> ODataError:
        return catch_no_connection_error(err)

    def create_change_request_interceptor(
        self,
        save_context: dict,
        entities: List["Entity"],
    ) -> ChangeRequestInterceptor:
        return self.interceptor_class(save_context, entities)
