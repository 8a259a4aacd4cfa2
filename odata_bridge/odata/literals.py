"""
odata_bridge.odata.literals - EDM primitive value formatting
=============================================================

Encoders between Python values and the OData v4 wire forms:

- ``format_value``: normalized wire value (JSON body / key values)
- ``to_uri_literal``: literal text for key predicates in resource paths
- ``to_json_value``: body value, stringifying IEEE754-sensitive numbers
- ``parse_value``: wire value back into a Python value
"""

from __future__ import annotations

import base64
import re
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from odata_bridge.core.errors import FormatError


class DataType(str, Enum):
    """EDM primitive type tags, valued by their qualified EDM names."""

    STRING = "Edm.String"
    BOOLEAN = "Edm.Boolean"
    BYTE = "Edm.Byte"
    SBYTE = "Edm.SByte"
    INT16 = "Edm.Int16"
    INT32 = "Edm.Int32"
    INT64 = "Edm.Int64"
    SINGLE = "Edm.Single"
    DOUBLE = "Edm.Double"
    DECIMAL = "Edm.Decimal"
    DATE = "Edm.Date"
    DATETIME = "Edm.DateTime"
    DATETIME_OFFSET = "Edm.DateTimeOffset"
    TIME = "Edm.Time"
    TIME_OF_DAY = "Edm.TimeOfDay"
    DURATION = "Edm.Duration"
    GUID = "Edm.Guid"
    BINARY = "Edm.Binary"
    UNDEFINED = "Edm.Untyped"

    @property
    def quote_json(self) -> bool:
        """Serialized as JSON strings under IEEE754Compatible=true."""
        return self in (DataType.INT64, DataType.DECIMAL)

    @classmethod
    def from_edm(cls, type_name: Optional[str]) -> "DataType":
        """Map an ``Edm.*`` name to a tag; unknown names are UNDEFINED."""
        try:
            return cls(type_name)
        except ValueError:
            return cls.UNDEFINED


# Sentinel returned by ``transform_value`` for properties that never go on the wire.
OMIT = object()

_GUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_DURATION_RE = re.compile(
    r"^-?P(?=\d|T\d)(?:\d+Y)?(?:\d+M)?(?:\d+W)?(?:\d+D)?"
    r"(?:T(?=\d)(?:\d+H)?(?:\d+M)?(?:\d+(?:\.\d+)?S)?)?$"
)
_TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d(\.\d{1,12})?)?$")
_FRACTION_RE = re.compile(r"(\d\d:\d\d:\d\d)\.(\d+)")

_INTEGER_TYPES = (DataType.BYTE, DataType.SBYTE, DataType.INT16, DataType.INT32, DataType.INT64)
_FLOAT_TYPES = (DataType.SINGLE, DataType.DOUBLE)


def is_guid(value: Any) -> bool:
    return isinstance(value, str) and bool(_GUID_RE.match(value))


def is_duration(value: Any) -> bool:
    return isinstance(value, str) and bool(_DURATION_RE.match(value))


def _fail(msg: str, data_type: DataType, value: Any) -> FormatError:
    return FormatError(f"'{value}' is not a valid {msg}", data_type=data_type, value=value)


def _to_number(data_type: DataType, value: Any) -> Any:
    if isinstance(value, bool):
        raise _fail(data_type.value, data_type, value)
    try:
        if data_type in _INTEGER_TYPES:
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(value)
            return int(value) if not isinstance(value, str) else int(value.strip())
        if data_type == DataType.DECIMAL:
            return Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
        return float(value)
    except (TypeError, ValueError, InvalidOperation):
        raise _fail(data_type.value, data_type, value) from None


def _six_digit_fraction(text: str) -> str:
    """Pad or truncate fractional seconds to microseconds for ``fromisoformat``."""
    return _FRACTION_RE.sub(lambda m: m.group(1) + "." + m.group(2)[:6].ljust(6, "0"), text, count=1)


def _to_utc(data_type: DataType, value: Any) -> datetime:
    label = "dateTime" if data_type == DataType.DATETIME else "dateTimeOffset"
    dt: Optional[datetime] = None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(_six_digit_fraction(text))
        except ValueError:
            dt = None
    if dt is None:
        raise _fail(label, data_type, value)
    if dt.tzinfo is None:
        # naive values are taken to be UTC already
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso_instant(dt: datetime) -> str:
    precision = "milliseconds" if dt.microsecond % 1000 == 0 else "microseconds"
    return dt.isoformat(timespec=precision).replace("+00:00", "Z")


def duration_from_timedelta(td: timedelta) -> str:
    """
    Render a ``timedelta`` as an ISO 8601 duration.

    Examples
    --------
    >>> duration_from_timedelta(timedelta(days=1, hours=2, seconds=3.5))
    'P1DT2H3.5S'
    """
    sign = "-" if td < timedelta(0) else ""
    td = abs(td)
    days = td.days
    secs = td.seconds
    hours, secs = divmod(secs, 3600)
    minutes, secs = divmod(secs, 60)
    seconds = f"{secs}.{td.microseconds:06d}".rstrip("0").rstrip(".") if td.microseconds else str(secs)

    out = f"{sign}P"
    if days:
        out += f"{days}D"
    clock = ""
    if hours:
        clock += f"{hours}H"
    if minutes:
        clock += f"{minutes}M"
    if seconds != "0":
        clock += f"{seconds}S"
    if clock or not days:
        out += "T" + (clock or "0S")
    return out


def format_value(data_type: DataType, value: Any) -> Any:
    """
    Normalize ``value`` to the wire value of ``data_type``.

    Parameters
    ----------
    data_type : DataType
        Declared EDM type
    value : Any
        Client-side value

    Returns
    -------
    Any
        ``None`` when the value is absent, otherwise the wire value

    Raises
    ------
    FormatError
        When the value cannot be represented in the declared type
    """
    if value is None:
        return None

    if data_type in _INTEGER_TYPES or data_type in _FLOAT_TYPES or data_type == DataType.DECIMAL:
        if isinstance(value, str) and not value.strip():
            return None
        return _to_number(data_type, value)

    if data_type == DataType.BOOLEAN:
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        if isinstance(value, bool):
            return value
        raise _fail("boolean", data_type, value)

    if data_type in (DataType.DATETIME, DataType.DATETIME_OFFSET):
        if value == "":
            return None
        return _iso_instant(_to_utc(data_type, value))

    if data_type == DataType.DATE:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        try:
            return date.fromisoformat(str(value)).isoformat()
        except ValueError:
            raise _fail("date", data_type, value) from None

    if data_type in (DataType.TIME, DataType.DURATION):
        if value == "":
            return None
        if isinstance(value, timedelta):
            return duration_from_timedelta(value)
        if not is_duration(value):
            raise _fail("ISO 8601 duration", data_type, value)
        return value

    if data_type == DataType.TIME_OF_DAY:
        if isinstance(value, time):
            return value.isoformat()
        if not (isinstance(value, str) and _TIME_OF_DAY_RE.match(value)):
            raise _fail("timeOfDay", data_type, value)
        return value

    if data_type == DataType.GUID:
        if value == "":
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        if not is_guid(value):
            raise _fail("guid", data_type, value)
        return value

    if data_type == DataType.BINARY:
        if isinstance(value, (bytes, bytearray)):
            return base64.urlsafe_b64encode(bytes(value)).decode("ascii")
        return str(value)

    if data_type == DataType.STRING:
        return value if isinstance(value, str) else str(value)

    return value


def to_uri_literal(data_type: DataType, value: Any) -> str:
    """
    Render ``value`` as an OData v4 URL literal (key predicates).

    Examples
    --------
    >>> to_uri_literal(DataType.STRING, "O'Brien")
    "'O''Brien'"
    >>> to_uri_literal(DataType.INT32, "42")
    '42'
    """
    wire = format_value(data_type, value)
    if wire is None:
        return "null"
    if data_type in (DataType.STRING, DataType.UNDEFINED):
        return "'" + str(wire).replace("'", "''") + "'"
    if data_type == DataType.BOOLEAN:
        return "true" if wire else "false"
    if data_type in (DataType.TIME, DataType.DURATION):
        return f"duration'{wire}'"
    if data_type == DataType.BINARY:
        return f"binary'{wire}'"
    return str(wire)


def to_json_value(data_type: DataType, value: Any) -> Any:
    """Body value; Int64 and Decimal are stringified for IEEE754 compatibility."""
    wire = format_value(data_type, value)
    if wire is not None and data_type.quote_json:
        return str(wire)
    return wire


def transform_value(prop: Any, value: Any) -> Any:
    """
    Serialize one property value for a request body.

    Returns ``OMIT`` for unmapped (client-only) properties.
    """
    if getattr(prop, "is_unmapped", False):
        return OMIT
    data_type = getattr(prop, "data_type", None)
    if not isinstance(data_type, DataType):
        return value
    return to_json_value(data_type, value)


def parse_value(data_type: DataType, raw: Any) -> Any:
    """
    Convert a wire value from the server into a Python value.

    Instants come back as timezone-aware UTC datetimes, Int64 as ``int``,
    Decimal as ``Decimal``; durations, GUIDs and strings stay text.
    """
    if raw is None:
        return None
    if data_type in _INTEGER_TYPES or data_type in _FLOAT_TYPES or data_type == DataType.DECIMAL:
        return _to_number(data_type, raw)
    if data_type == DataType.BOOLEAN:
        return format_value(data_type, raw)
    if data_type in (DataType.DATETIME, DataType.DATETIME_OFFSET):
        return _to_utc(data_type, raw)
    if data_type == DataType.DATE:
        return date.fromisoformat(str(raw))
    if data_type == DataType.TIME_OF_DAY:
        return time.fromisoformat(_six_digit_fraction(str(raw)))
    if data_type == DataType.BINARY and isinstance(raw, str):
        return base64.urlsafe_b64decode(raw.encode("ascii"))
    return raw
