"""
odata_bridge.api.gateway - FastAPI OData Gateway
================================================

Optional REST API gateway exposing metadata, query and save operations of
one OData v4 service.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from odata_bridge import __version__
from odata_bridge.core.errors import FormatError, MetadataResolutionError, ODataError
from odata_bridge.core.session import ODataAuth, ODataConfig, ODataSession
from odata_bridge.odata.metadata import MetadataStore
from odata_bridge.odata.request_builder import EntityQuery
from odata_bridge.odata.service import OData4DataService
from odata_bridge.odata.store import Entity, EntityState, EntityStore
from odata_bridge.api.models import (
    ChangeItem,
    KeyMappingModel,
    MetadataResponse,
    QueryRequest,
    QueryResponse,
    SaveRequest,
    SaveResponse,
)

logger = logging.getLogger("odata_bridge.api")

_SAVE_STATES = {s.value: s for s in (EntityState.ADDED, EntityState.MODIFIED, EntityState.DELETED)}

# Stand-in original value: differs from anything a client can send
_UNSET = object()


class ODataGateway:
    """
    Configuration, session factory and catalog cache for the API gateway.

    Reads configuration from environment variables by default.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        service: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        verify_tls: Optional[bool] = None,
        api_key: Optional[str] = None,
    ):
        base = (base_url or os.environ.get("ODATA_BASE_URL", "")).rstrip("/") + "/"
        service = service if service is not None else os.environ.get("ODATA_SERVICE", "")
        self.base_url = base + service.strip("/") + "/" if service else base
        self.user = user or os.environ.get("ODATA_USER", "")
        self.password = password or os.environ.get("ODATA_PASS", "")
        self.bearer_token = bearer_token or os.environ.get("ODATA_BEARER_TOKEN", "")

        if verify_tls is not None:
            self.verify_tls = verify_tls
        else:
            self.verify_tls = os.environ.get("ODATA_VERIFY_TLS", "true").lower() != "false"

        self.api_key = api_key or os.environ.get("ODATA_API_KEY", "")

        # Catalog cache, filled by the first request
        self.metadata_store = MetadataStore()

    def validate(self) -> None:
        """Validate configuration. Raises RuntimeError if invalid."""
        if not self.base_url or self.base_url == "/":
            raise RuntimeError("Missing ODATA_BASE_URL environment variable")
        if bool(self.user) != bool(self.password):
            raise RuntimeError("Set both ODATA_USER and ODATA_PASS, or neither")
        if not self.api_key:
            raise RuntimeError("Missing ODATA_API_KEY - required for security")

    def build_session(self) -> ODataSession:
        """Create a new OData session."""
        if self.bearer_token:
            auth = ODataAuth("bearer", self.bearer_token)
        elif self.user:
            auth = ODataAuth("basic", (self.user, self.password))
        else:
            auth = ODataAuth("none")

        cfg = ODataConfig(
            base_url=self.base_url,
            auth=auth,
            verify=self.verify_tls,
            timeout=float(os.environ.get("ODATA_TIMEOUT", "60")),
        )
        return ODataSession(cfg)

    async def data_service(self, sess: Any) -> OData4DataService:
        """Data service over ``sess`` sharing the cached catalog."""
        svc = OData4DataService(sess, metadata_store=self.metadata_store)
        if not self.metadata_store.has_metadata_for(svc.service_name):
            await svc.fetch_metadata()
        return svc


# Global gateway instance (lazy init)
_gateway: Optional[ODataGateway] = None


def get_gateway() -> ODataGateway:
    """Get or create the global gateway instance."""
    global _gateway
    if _gateway is None:
        _gateway = ODataGateway()
    return _gateway


def error_to_http(e: ODataError) -> HTTPException:
    """Map a normalized error onto an HTTP error response."""
    if isinstance(e, FormatError):
        return HTTPException(status_code=400, detail={"message": e.message, "value": str(e.value)})
    if isinstance(e, MetadataResolutionError):
        return HTTPException(status_code=404, detail={"message": e.message, "name": e.name})
    return HTTPException(
        status_code=502,
        detail={
            "upstream_status": e.status,
            "status_text": e.status_text,
            "url": e.url,
            "message": e.message,
        },
    )


def _track(store: EntityStore, item: ChangeItem) -> Entity:
    state = _SAVE_STATES.get(item.state.capitalize())
    if state is None:
        raise HTTPException(status_code=400, detail=f"Unsupported entity state: {item.state}")

    if state is EntityState.ADDED:
        return store.add(item.entity_type, item.values)

    entity = store.attach(item.entity_type, item.values, state=state, etag=item.etag)
    if state is EntityState.MODIFIED:
        if item.original_values is not None:
            entity.original_values = dict(item.original_values)
        else:
            keys = entity.entity_type.key_names
            entity.original_values = {n: _UNSET for n in item.values if n not in keys}
    return entity


def create_app(
    gateway: Optional[ODataGateway] = None,
    validate_on_startup: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application.

    Parameters
    ----------
    gateway : ODataGateway, optional
        Custom gateway configuration. If None, reads from environment.
    validate_on_startup : bool
        If True, validate configuration on startup and log problems.

    Returns
    -------
    FastAPI
        Configured FastAPI application
    """
    global _gateway

    if gateway:
        _gateway = gateway
    else:
        _gateway = ODataGateway()

    if validate_on_startup:
        try:
            _gateway.validate()
        except RuntimeError as e:
            # app creation stays possible without configuration (tests, docs)
            logger.warning("Gateway configuration incomplete: %s", e)

    app = FastAPI(
        title="OData v4 Bridge Gateway",
        description="""
## OData v4 Bridge

A REST gateway in front of one OData v4 service.

- **/metadata** lists entity types, entity sets and operations
- **/query** runs one query, including custom actions and functions
- **/save** sends a list of changes as one atomic `$batch`

### Authentication
Include your API key in the `x-api-key` header.
        """,
        version=__version__,
        openapi_tags=[
            {"name": "Discovery", "description": "Catalog of the upstream service"},
            {"name": "Data", "description": "Queries and atomic saves"},
        ],
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def require_api_key(x_api_key: str = Header(...)) -> None:
        gw = get_gateway()
        if gw.api_key and x_api_key != gw.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        """Health check endpoint."""
        return {"ok": True, "version": __version__}

    @app.get("/metadata", tags=["Discovery"], response_model=MetadataResponse)
    async def metadata(_: None = Depends(require_api_key)) -> MetadataResponse:
        """Summarize the upstream catalog."""
        gw = get_gateway()
        try:
            with gw.build_session() as sess:
                svc = await gw.data_service(sess)
        except ODataError as e:
            raise error_to_http(e)

        catalog = svc.metadata_store
        return MetadataResponse(
            service=svc.service_name,
            entity_types=[t.full_name for t in catalog.entity_types],
            complex_types=[t.full_name for t in catalog.complex_types],
            entity_sets=catalog.entity_sets,
            **svc.invokables.as_dict(),
        )

    @app.post("/query", tags=["Data"], response_model=QueryResponse)
    async def query(req: QueryRequest, _: None = Depends(require_api_key)) -> QueryResponse:
        """Run one query against the upstream service."""
        gw = get_gateway()
        q = EntityQuery(req.resource_name, dict(req.query_options), req.parameters)
        try:
            with gw.build_session() as sess:
                svc = await gw.data_service(sess)
                result = await svc.execute_query(q)
        except ODataError as e:
            raise error_to_http(e)

        return QueryResponse(
            resource_name=req.resource_name,
            results=result.results,
            inline_count=result.inline_count,
        )

    @app.post("/save", tags=["Data"], response_model=SaveResponse)
    async def save(req: SaveRequest, _: None = Depends(require_api_key)) -> SaveResponse:
        """Save all changes atomically."""
        gw = get_gateway()
        try:
            with gw.build_session() as sess:
                svc = await gw.data_service(sess)
                store = svc.entity_store
                entities: List[Entity] = [_track(store, item) for item in req.changes]
                result = await svc.save_changes(entities)
        except ODataError as e:
            raise error_to_http(e)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=str(e))

        logger.info("Saved %d change(s), %d key mapping(s)", len(entities), len(result.key_mappings))
        return SaveResponse(
            entities=[
                store.unwrap_instance(e) if isinstance(e, Entity) else e
                for e in result.entities
            ],
            key_mappings=[
                KeyMappingModel(
                    entity_type_name=m.entity_type_name,
                    temp_value=m.temp_value,
                    real_value=m.real_value,
                )
                for m in result.key_mappings
            ],
        )

    return app
