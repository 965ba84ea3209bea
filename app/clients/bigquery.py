"""BigQuery REST client authenticated with a self-signed service-account token."""

from __future__ import annotations

import json
import logging
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple, Type

import httpx

from app.clients.google_auth import (
    ServiceAccountTokenSigner,
    WarehouseError,
)
from app.models.warehouse import BearerToken, QueryRequest

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class WarehouseQueryError(WarehouseError):
    """Raised when the query endpoint answers with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WarehouseInsertError(WarehouseError):
    """Raised when the streaming insert endpoint rejects a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PartialInsertError(WarehouseInsertError):
    """Raised when insertAll succeeds at the HTTP level but reports row errors."""

    def __init__(self, errors: List[Dict[str, Any]]) -> None:
        super().__init__(json.dumps(errors), status_code=200)
        self.errors = errors


class MalformedResponseError(WarehouseError):
    """Raised when schema or row data does not have the expected shape."""


def infer_parameter_type(value: Any) -> str:
    """Return the wire type used when the caller did not declare one."""
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, (int, float)):
        return "INT64"
    return "STRING"


def encode_parameter_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a ``parameterValue`` object."""
    if value is None:
        return {}
    if isinstance(value, bool):
        return {"value": "true" if value else "false"}
    if isinstance(value, (datetime, date)):
        return {"value": value.isoformat()}
    return {"value": str(value)}


def build_query_parameters(
    params: Mapping[str, Any], types: Mapping[str, str] | None = None
) -> List[Dict[str, Any]]:
    """Build the NAMED ``queryParameters`` list; declared types always win."""
    declared = types or {}
    parameters = []
    for name, value in params.items():
        param_type = declared.get(name) or infer_parameter_type(value)
        parameters.append(
            {
                "name": name,
                "parameterType": {"type": param_type},
                "parameterValue": encode_parameter_value(value),
            }
        )
    return parameters


def decode_rows(payload: Mapping[str, Any]) -> List[Row]:
    """Project the column-major ``schema`` + ``rows[].f[].v`` format into dicts."""
    raw_rows = payload.get("rows") or []
    if not raw_rows:
        return []

    schema = payload.get("schema") or {}
    fields = schema.get("fields") if isinstance(schema, Mapping) else None
    if not isinstance(fields, list):
        raise MalformedResponseError("Query response has rows but no schema fields.")

    names: List[str] = []
    for index, field in enumerate(fields):
        name = field.get("name") if isinstance(field, Mapping) else None
        if not name:
            raise MalformedResponseError(f"Schema field {index} has no name.")
        names.append(name)

    rows: List[Row] = []
    for row_index, raw_row in enumerate(raw_rows):
        cells = raw_row.get("f") if isinstance(raw_row, Mapping) else None
        if not isinstance(cells, list):
            raise MalformedResponseError(f"Row {row_index} has no cell list.")
        if len(cells) != len(names):
            raise MalformedResponseError(
                f"Row {row_index} has {len(cells)} cells for {len(names)} schema fields."
            )
        record: Row = {}
        for name, cell in zip(names, cells):
            if not isinstance(cell, Mapping):
                raise MalformedResponseError(
                    f"Row {row_index} cell {name!r} is not an object."
                )
            record[name] = cell.get("v")
        rows.append(record)
    return rows


class BigQueryRestClient:
    """Run parameterized queries and streaming inserts over the REST API.

    The bearer token is owned by the instance and refreshed when it is absent
    or within ``TOKEN_REFRESH_LEEWAY`` seconds of expiry. Concurrent refreshes
    are not coordinated; the last exchange to finish wins the cache.
    """

    API_BASE_URL = "https://bigquery.googleapis.com/bigquery/v2"
    TOKEN_REFRESH_LEEWAY = 60.0
    INSERT_ALL_KIND = "bigquery#tableDataInsertAllRequest"

    def __init__(
        self,
        *,
        project_id: str,
        signer: ServiceAccountTokenSigner,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        default_location: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.project_id = project_id
        self._signer = signer
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=None)
        self._base_url = (base_url or self.API_BASE_URL).rstrip("/")
        self._default_location = default_location
        self._clock = clock
        self._token: BearerToken | None = None

    async def get_token(self) -> str:
        """Return a usable access token, signing a new assertion if needed."""
        token = self._token
        if token is not None and token.is_usable(self._clock(), self.TOKEN_REFRESH_LEEWAY):
            return token.access_token

        logger.info("Refreshing warehouse access token for project %s", self.project_id)
        token = await self._signer.fetch_token()
        self._token = token
        return token.access_token

    def table_ref(self, dataset_id: str, table_id: str) -> str:
        """Return a quoted ``project.dataset.table`` identifier for SQL text."""
        return f"`{self.project_id}.{dataset_id}.{table_id}`"

    async def _post(
        self,
        url: str,
        body: Dict[str, Any],
        error_cls: Type[WarehouseQueryError] | Type[WarehouseInsertError],
    ) -> httpx.Response:
        token = await self.get_token()
        try:
            return await self._http.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.error("BigQuery request to %s failed: %r", url, exc)
            raise error_cls(f"BigQuery request failed: {exc!r}") from exc

    async def query(
        self,
        query: str | QueryRequest,
        params: Mapping[str, Any] | None = None,
        types: Mapping[str, str] | None = None,
        location: str | None = None,
    ) -> Tuple[List[Row], Dict[str, Any]]:
        """Run a query and return ``(rows, raw_response)``."""
        if isinstance(query, QueryRequest):
            request = query
        else:
            request = QueryRequest(
                query=query,
                params=dict(params or {}),
                types=dict(types or {}),
                location=location,
            )

        body: Dict[str, Any] = {
            "query": request.query,
            "useLegacySql": False,
            "parameterMode": "NAMED",
        }
        if request.params:
            body["queryParameters"] = build_query_parameters(request.params, request.types)
        resolved_location = request.location or self._default_location
        if resolved_location:
            body["location"] = resolved_location

        url = f"{self._base_url}/projects/{self.project_id}/queries"
        response = await self._post(url, body, WarehouseQueryError)

        if not response.is_success:
            logger.error(
                "BigQuery query failed with status %s", response.status_code
            )
            raise WarehouseQueryError(
                f"BigQuery Query Failed: {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Query response is not valid JSON: {response.text}"
            ) from exc
        if not isinstance(data, dict):
            raise MalformedResponseError("Query response is not a JSON object.")

        return decode_rows(data), data

    async def insert(
        self,
        dataset_id: str,
        table_id: str,
        rows: Sequence[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        """Stream ``rows`` into a table in a single insertAll request."""
        body = {
            "kind": self.INSERT_ALL_KIND,
            "rows": [{"json": dict(row)} for row in rows],
        }
        url = (
            f"{self._base_url}/projects/{self.project_id}"
            f"/datasets/{dataset_id}/tables/{table_id}/insertAll"
        )
        response = await self._post(url, body, WarehouseInsertError)

        if not response.is_success:
            logger.error(
                "BigQuery insert into %s.%s failed with status %s",
                dataset_id,
                table_id,
                response.status_code,
            )
            raise WarehouseInsertError(
                f"BigQuery Insert Failed: {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Insert response is not valid JSON: {response.text}"
            ) from exc

        insert_errors = data.get("insertErrors") if isinstance(data, dict) else None
        if insert_errors:
            logger.error(
                "BigQuery insert into %s.%s reported %d row errors",
                dataset_id,
                table_id,
                len(insert_errors),
            )
            raise PartialInsertError(insert_errors)
        return data

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()


__all__ = [
    "BigQueryRestClient",
    "MalformedResponseError",
    "PartialInsertError",
    "Row",
    "WarehouseInsertError",
    "WarehouseQueryError",
    "build_query_parameters",
    "decode_rows",
    "encode_parameter_value",
    "infer_parameter_type",
]
