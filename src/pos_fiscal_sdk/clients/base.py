from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import InvalidResponseError
from ..http_client import HttpClient

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class BaseClient:
    http: HttpClient
    access_token: str | None = None
    device_id: str | None = None

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.device_id:
            headers["X-Device-ID"] = self.device_id
        return headers

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        merged = {**self._auth_headers(), **headers}
        return self.http.request(method, path, headers=merged, **kwargs)


def unwrap(data: Any) -> Any:
    """Strip the backend's {"success": ..., "data": ...} envelope when present."""
    if isinstance(data, dict) and "data" in data and ("success" in data or len(data) == 1):
        return data["data"]
    return data


def parse_model(model: type[ModelT], body: Any) -> ModelT:
    """Validate a success body; a shape mismatch is an API failure, not a crash."""
    try:
        return model.model_validate(body)
    except PydanticValidationError as exc:
        raise InvalidResponseError(
            code="INVALID_RESPONSE",
            message=f"Unexpected {model.__name__} response shape",
            details=[{"field": ".".join(str(part) for part in error["loc"]), "reason": error["msg"]} for error in exc.errors()],
            raw_payload=body,
        ) from exc
