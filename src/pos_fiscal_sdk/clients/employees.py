from __future__ import annotations

from ..exceptions import InvalidResponseError
from ..models import EmployeeIdentity
from .base import BaseClient, parse_model, unwrap


class EmployeesClient(BaseClient):
    def list_employees(self) -> list[EmployeeIdentity]:
        data = self._request("GET", "/employees", module="employees", operation="list")
        rows = unwrap(data)
        if not isinstance(rows, list):
            raise InvalidResponseError(
                code="INVALID_RESPONSE",
                message="Expected employees response to be a JSON array",
                raw_payload=data,
            )
        return [parse_model(EmployeeIdentity, row) for row in rows]
