"""Wire protocol between the host and the rendering client.

Every message is a small dataclass tagged by its ``command`` name. Frames
travel as JSON text so nothing is shared between the two sides; decoding
checks the fields each command needs and raises ``ChannelError`` for
anything malformed.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from .exceptions import ChannelError
from .query_builder import Filter, SortColumn
from .view_state import SortSpec, normalize_direction

logger = logging.getLogger(__name__)


# Client -> host

@dataclass(frozen=True)
class Ready:
    COMMAND: ClassVar[str] = "ready"


@dataclass(frozen=True)
class Refresh:
    COMMAND: ClassVar[str] = "refresh"
    page: Optional[int] = None
    page_size: Optional[int] = None


@dataclass(frozen=True)
class Navigate:
    COMMAND: ClassVar[str] = "navigate"
    page: int = 1
    page_size: Optional[int] = None


@dataclass(frozen=True)
class Sort:
    """Single column sort, or a column list with optionally bundled filters."""
    COMMAND: ClassVar[str] = "sort"
    spec: SortSpec = field(default_factory=SortSpec)
    filters: Optional[Tuple[Filter, ...]] = None


@dataclass(frozen=True)
class ApplyFilters:
    COMMAND: ClassVar[str] = "filter"
    filters: Tuple[Filter, ...] = ()
    sort: Optional[SortSpec] = None


@dataclass(frozen=True)
class ClearFilters:
    COMMAND: ClassVar[str] = "clearFilters"


@dataclass(frozen=True)
class ExecuteQuery:
    COMMAND: ClassVar[str] = "executeQuery"
    query: str = ""


@dataclass(frozen=True)
class Export:
    COMMAND: ClassVar[str] = "export"
    format: str = "csv"
    selected_only: bool = False


@dataclass(frozen=True)
class CopyToClipboard:
    COMMAND: ClassVar[str] = "copyToClipboard"
    text: str = ""


Command = Union[Ready, Refresh, Navigate, Sort, ApplyFilters, ClearFilters,
                ExecuteQuery, Export, CopyToClipboard]


# Host -> client

@dataclass(frozen=True)
class UpdateData:
    """A complete page plus the view's column list.

    ``columns`` is always present so headers render even for zero rows.
    """
    COMMAND: ClassVar[str] = "updateData"
    data: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    row_count: int = 0
    page: int = 1
    page_size: int = 100
    primary_key: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ShowError:
    COMMAND: ClassVar[str] = "showError"
    message: str = ""


@dataclass(frozen=True)
class ShowSuccess:
    COMMAND: ClassVar[str] = "showSuccess"
    message: str = ""


HostMessage = Union[UpdateData, ShowError, ShowSuccess]


def json_default(obj: Any) -> Any:
    """Encode database values JSON has no native form for."""
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes(obj).hex()
    elif isinstance(obj, (set, frozenset)):
        return list(obj)
    return str(obj)


def to_payload(message) -> Dict[str, Any]:
    """Convert a message dataclass to its wire dictionary."""
    name = message.COMMAND
    if isinstance(message, UpdateData):
        return {
            "command": name,
            "data": {
                "data": message.data,
                "columns": message.columns,
                "rowCount": message.row_count,
                "page": message.page,
                "pageSize": message.page_size,
                "primaryKey": message.primary_key,
            },
        }
    if isinstance(message, (ShowError, ShowSuccess)):
        return {"command": name, "message": message.message}
    if isinstance(message, (Refresh, Navigate)):
        payload = {"command": name, "page": message.page}
        if message.page_size:
            payload["pageSize"] = message.page_size
        if payload["page"] is None:
            del payload["page"]
        return payload
    if isinstance(message, Sort):
        if message.spec.columns:
            payload = {"command": name, "sortColumns": [s.to_dict() for s in message.spec.columns]}
            if message.filters is not None:
                payload["filters"] = [f.to_dict() for f in message.filters]
            return payload
        return {"command": name, "column": message.spec.column, "direction": message.spec.direction}
    if isinstance(message, ApplyFilters):
        payload = {"command": name, "filters": [f.to_dict() for f in message.filters]}
        if message.sort is not None and message.sort.columns:
            payload["sortColumns"] = [s.to_dict() for s in message.sort.columns]
        elif message.sort is not None and message.sort.column:
            payload["sortColumn"] = message.sort.column
            payload["sortDirection"] = message.sort.direction
        return payload
    if isinstance(message, ExecuteQuery):
        return {"command": name, "query": message.query}
    if isinstance(message, Export):
        return {"command": name, "format": message.format, "selectedOnly": message.selected_only}
    if isinstance(message, CopyToClipboard):
        return {"command": name, "text": message.text}
    return {"command": name}


def encode(message) -> str:
    """Serialize a message to a JSON frame."""
    return json.dumps(to_payload(message), default=json_default, ensure_ascii=False)


def _loads(frame: str) -> Dict[str, Any]:
    try:
        payload = json.loads(frame)
    except (TypeError, ValueError) as e:
        raise ChannelError(f"Frame is not valid JSON: {e}")
    if not isinstance(payload, dict) or not isinstance(payload.get("command"), str):
        raise ChannelError("Frame has no command name")
    return payload


def _int_field(payload: Dict[str, Any], key: str, required: bool = False,
               minimum: int = 1) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        if required:
            raise ChannelError(f"'{payload['command']}' requires '{key}'")
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ChannelError(f"'{key}' must be an integer >= {minimum}, got {value!r}")
    return value


def _str_field(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ChannelError(f"'{payload['command']}' requires string '{key}'")
    return value


def parse_filters(raw: Any) -> Tuple[Filter, ...]:
    """Decode a list of filter dictionaries."""
    if not isinstance(raw, list):
        raise ChannelError("'filters' must be a list")
    filters = []
    for item in raw:
        if not isinstance(item, dict):
            raise ChannelError(f"Filter must be an object, got {item!r}")
        column = item.get("column")
        operator = item.get("operator")
        if not isinstance(column, str) or not column or not isinstance(operator, str) or not operator:
            raise ChannelError(f"Filter needs a column and an operator: {item!r}")
        value = item.get("value")
        filters.append(Filter(column, operator, "" if value is None else str(value)))
    return tuple(filters)


def parse_sort_columns(raw: Any) -> Tuple[SortColumn, ...]:
    """Decode a list of ``{column, direction}`` dictionaries."""
    if not isinstance(raw, list):
        raise ChannelError("'sortColumns' must be a list")
    columns = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("column"), str) or not item["column"]:
            raise ChannelError(f"Sort entry needs a column: {item!r}")
        columns.append(SortColumn(item["column"], normalize_direction(item.get("direction"))))
    return tuple(columns)


def _sort_spec(payload: Dict[str, Any], column_key: str, direction_key: str) -> Optional[SortSpec]:
    if payload.get("sortColumns"):
        return SortSpec.multi(parse_sort_columns(payload["sortColumns"]))
    column = payload.get(column_key)
    if column:
        if not isinstance(column, str):
            raise ChannelError(f"'{column_key}' must be a string")
        return SortSpec.single(column, payload.get(direction_key))
    return None


def _decode_sort(payload: Dict[str, Any]) -> Sort:
    spec = _sort_spec(payload, "column", "direction") or _sort_spec(payload, "sortColumn", "sortDirection")
    if spec is None:
        raise ChannelError("'sort' requires 'column' or 'sortColumns'")
    filters = parse_filters(payload["filters"]) if payload.get("filters") is not None else None
    return Sort(spec=spec, filters=filters)


def _decode_filter(payload: Dict[str, Any]) -> ApplyFilters:
    if "filters" not in payload:
        raise ChannelError("'filter' requires 'filters'")
    return ApplyFilters(
        filters=parse_filters(payload["filters"]),
        sort=_sort_spec(payload, "sortColumn", "sortDirection"),
    )


def _decode_export(payload: Dict[str, Any]) -> Export:
    selected_only = payload.get("selectedOnly", False)
    if not isinstance(selected_only, bool):
        raise ChannelError("'selectedOnly' must be a boolean")
    return Export(format=_str_field(payload, "format").lower(), selected_only=selected_only)


def _decode_execute(payload: Dict[str, Any]) -> ExecuteQuery:
    query = _str_field(payload, "query")
    if not query.strip():
        raise ChannelError("'executeQuery' requires a non-empty query")
    return ExecuteQuery(query=query)


_COMMAND_DECODERS = {
    Ready.COMMAND: lambda p: Ready(),
    Refresh.COMMAND: lambda p: Refresh(page=_int_field(p, "page"), page_size=_int_field(p, "pageSize")),
    Navigate.COMMAND: lambda p: Navigate(page=_int_field(p, "page", required=True),
                                         page_size=_int_field(p, "pageSize")),
    Sort.COMMAND: _decode_sort,
    ApplyFilters.COMMAND: _decode_filter,
    ClearFilters.COMMAND: lambda p: ClearFilters(),
    ExecuteQuery.COMMAND: _decode_execute,
    Export.COMMAND: _decode_export,
    CopyToClipboard.COMMAND: lambda p: CopyToClipboard(text=_str_field(p, "text")),
}


def decode_command(frame: str) -> Command:
    """Decode a client frame into a command."""
    payload = _loads(frame)
    decoder = _COMMAND_DECODERS.get(payload["command"])
    if decoder is None:
        raise ChannelError(f"Unknown command: {payload['command']}")
    return decoder(payload)


def _decode_update(payload: Dict[str, Any]) -> UpdateData:
    body = payload.get("data")
    if not isinstance(body, dict):
        raise ChannelError("'updateData' requires a 'data' object")
    rows = body.get("data")
    columns = body.get("columns")
    if not isinstance(rows, list) or not isinstance(columns, list):
        raise ChannelError("'updateData' requires 'data' rows and 'columns'")
    row_count = body.get("rowCount", len(rows))
    if isinstance(row_count, bool) or not isinstance(row_count, int) or row_count < 0:
        raise ChannelError(f"'rowCount' must be a non-negative integer, got {row_count!r}")
    return UpdateData(
        data=rows,
        columns=[str(c) for c in columns],
        row_count=row_count,
        page=_int_field(body, "page") or 1,
        page_size=_int_field(body, "pageSize") or 100,
        primary_key=list(body.get("primaryKey") or []),
    )


_HOST_DECODERS = {
    UpdateData.COMMAND: _decode_update,
    ShowError.COMMAND: lambda p: ShowError(message=str(p.get("message", ""))),
    ShowSuccess.COMMAND: lambda p: ShowSuccess(message=str(p.get("message", ""))),
}


def decode_host_message(frame: str) -> HostMessage:
    """Decode a host frame into a host message."""
    payload = _loads(frame)
    decoder = _HOST_DECODERS.get(payload["command"])
    if decoder is None:
        raise ChannelError(f"Unknown host message: {payload['command']}")
    return decoder(payload)
