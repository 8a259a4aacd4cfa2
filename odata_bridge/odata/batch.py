"""
odata_bridge.odata.batch - $batch envelope assembly and response correlation
=============================================================================

One save is one atomic changeset inside one ``multipart/mixed`` batch
request. Parts are numbered 1..N (``Content-ID`` 0 is never used) and
responses are matched back to requests by position only: Content-ID
headers echoed by intermediaries are not relied upon.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from email.parser import Parser
from typing import Any, Dict, List, Optional, Tuple

from odata_bridge.core.errors import ProtocolError, normalize_error
from odata_bridge.core.session import HttpResponse
from odata_bridge.odata.metadata import AutoGeneratedKeyType, EntityType
from odata_bridge.odata.request_builder import RequestDescriptor
from odata_bridge.odata.resolver import MetadataResolver
from odata_bridge.odata.store import Entity, EntityStore

logger = logging.getLogger("odata_bridge.odata")


@dataclass(frozen=True)
class KeyMapping:
    """Client temporary key -> server assigned key for one Added entity."""
    entity_type_name: str
    temp_value: Any
    real_value: Any


@dataclass
class TempKey:
    entity_type: EntityType
    values: Tuple[Any, ...]


@dataclass
class BatchEnvelope:
    """
    Ordered change requests of one save attempt.

    ``content_keys`` and ``temp_keys`` are indexed by 1-based position.
    """
    requests: List[RequestDescriptor] = field(default_factory=list)
    content_keys: Dict[int, Entity] = field(default_factory=dict)
    temp_keys: Dict[int, TempKey] = field(default_factory=dict)
    boundary: str = field(default_factory=lambda: f"batch_{uuid.uuid4()}")
    changeset_boundary: str = field(default_factory=lambda: f"changeset_{uuid.uuid4()}")

    def __len__(self) -> int:
        return len(self.requests)

    @property
    def content_type(self) -> str:
        return f"multipart/mixed;boundary={self.boundary}"


@dataclass
class SaveResult:
    entities: List[Any] = field(default_factory=list)
    key_mappings: List[KeyMapping] = field(default_factory=list)
    http_response: Optional[HttpResponse] = None


class BatchAssembler:
    """Collects change requests into one envelope, numbering them from 1."""

    def __init__(self, entity_store: EntityStore) -> None:
        self.entity_store = entity_store
        self.envelope = BatchEnvelope()

    def add(self, request: RequestDescriptor, entity: Entity) -> RequestDescriptor:
        content_id = len(self.envelope.requests) + 1
        request.headers["Content-ID"] = str(content_id)
        self.envelope.requests.append(request)
        self.envelope.content_keys[content_id] = entity
        if request.method == "POST":
            self.envelope.temp_keys[content_id] = TempKey(
                entity.entity_type, self.entity_store.get_key(entity)
            )
        return request

    def assemble(self) -> BatchEnvelope:
        logger.debug("Assembled batch %s with %d part(s)", self.envelope.boundary, len(self.envelope))
        return self.envelope


def encode_batch(envelope: BatchEnvelope) -> str:
    """Encode an envelope as a multipart/mixed body with a single changeset."""
    cs = envelope.changeset_boundary
    lines: List[str] = [
        f"--{envelope.boundary}",
        f"Content-Type: multipart/mixed;boundary={cs}",
        "",
    ]

    for req in envelope.requests:
        lines.extend((
            f"--{cs}",
            "Content-Type: application/http",
            "Content-Transfer-Encoding: binary",
            f"Content-ID: {req.headers.get('Content-ID', '')}",
            "",
            f"{req.method} {req.uri} HTTP/1.1",
        ))
        for hdr, val in req.headers.items():
            if hdr == "Content-ID":
                continue
            lines.append(f"{hdr}: {val}")
        lines.append("")
        if req.data is not None:
            lines.append(json.dumps(req.data, separators=(",", ":"), default=str))
        else:
            # an empty line stands for the empty body
            lines.append("")

    lines.append(f"--{cs}--")
    lines.append(f"--{envelope.boundary}--")
    lines.append("")
    return "\r\n".join(lines)


def parse_http_part(text: str) -> HttpResponse:
    """
    Parse an embedded ``application/http`` response.

    Examples
    --------
    >>> parse_http_part("HTTP/1.1 204 No Content\\r\\n\\r\\n").status_code
    204
    """
    text = text.lstrip("\r\n")
    status_line, _, rest = text.partition("\n")
    parts = status_line.strip().split(" ", 2)
    status: Optional[int] = None
    reason = None
    if len(parts) >= 2 and parts[0].upper().startswith("HTTP/"):
        try:
            status = int(parts[1])
        except ValueError:
            status = None
        reason = parts[2] if len(parts) > 2 else None

    msg = Parser().parsestr(rest)
    body = msg.get_payload()
    if isinstance(body, str):
        body = body.strip("\r\n") or None
    else:
        body = None
    return HttpResponse(
        status_code=status,
        status_text=reason,
        headers={k: v for k, v in msg.items()},
        body=body,
    )


def decode_batch_response(body: str, content_type: str) -> List[HttpResponse]:
    """
    Decode a multipart batch response into its part responses, in order.

    Nested changeset multiparts are flattened.
    """
    parsed = Parser().parsestr(f"Content-Type: {content_type}\r\n\r\n" + body)

    out: List[HttpResponse] = []

    def walk(message: Any) -> None:
        if message.is_multipart():
            for sub in message.get_payload():
                walk(sub)
            return
        payload = message.get_payload()
        if isinstance(payload, str) and payload.strip():
            out.append(parse_http_part(payload))

    walk(parsed)
    return out


def _etag_of(part: HttpResponse, data: Any) -> Optional[str]:
    etag = None
    for k, v in part.headers.items():
        if k.lower() == "etag":
            etag = v
    if isinstance(data, dict) and data.get("@odata.etag"):
        etag = data["@odata.etag"]
    return etag


class BatchDisassembler:
    """
    Correlates batch response parts with the envelope by position.

    Parameters
    ----------
    resolver : MetadataResolver
        Used to read real keys out of returned payloads
    entity_store : EntityStore
        Receives concurrency tokens once the whole batch succeeded
    """

    def __init__(self, resolver: MetadataResolver, entity_store: EntityStore) -> None:
        self.resolver = resolver
        self.entity_store = entity_store

    def disassemble(
        self,
        envelope: BatchEnvelope,
        parts: List[HttpResponse],
        url: str,
    ) -> SaveResult:
        """
        Saved entities in envelope order plus key mappings.

        Raises
        ------
        ProtocolError
            For the first part that failed (or is missing); nothing else is
            surfaced in that case.
        """
        result = SaveResult()
        etags: List[Tuple[Entity, str]] = []

        for content_id in range(1, len(envelope) + 1):
            part = parts[content_id - 1] if content_id <= len(parts) else None
            status = part.status_code if part is not None else None

            if status is None or int(status) >= 400:
                logger.warning("Batch part %d failed with status %s", content_id, status)
                if status is None:
                    raise ProtocolError(
                        f"Batch response has no status for change {content_id}",
                        url=url,
                        body=part.body if part is not None else None,
                        content_id=content_id,
                    )
                raise normalize_error(part, url, content_id=content_id)

            try:
                raw = part.json()
            except ValueError:
                raw = None

            entity = envelope.content_keys[content_id]
            etag = _etag_of(part, raw)
            if etag:
                etags.append((entity, etag))

            if isinstance(raw, dict) and raw:
                temp_key = envelope.temp_keys.get(content_id)
                if temp_key is not None:
                    et = temp_key.entity_type
                    if et.auto_generated_key_type is not AutoGeneratedKeyType.NONE:
                        real_key = self.resolver.key_from_raw(et, raw)
                        result.key_mappings.append(KeyMapping(
                            entity_type_name=et.name,
                            temp_value=temp_key.values[0],
                            real_value=real_key[0],
                        ))
                result.entities.append(raw)
            else:
                result.entities.append(entity)

        for entity, etag in etags:
            self.entity_store.remember_etag(entity, etag)
        return result
