from __future__ import annotations

import hmac
import logging
import threading
from typing import Callable, Iterable

from .models import EmployeeIdentity
from .validation import validate_pin

logger = logging.getLogger(__name__)

EmployeeLoader = Callable[[], Iterable[EmployeeIdentity]]


class EmployeePinVerifier:
    """Identifies the cashier at a shared terminal by PIN.

    Independent of the session: verifying a PIN neither creates nor
    touches the terminal's back-office session. The PIN itself is never
    logged.
    """

    def __init__(self, loader: EmployeeLoader, *, pin_length: int = 4) -> None:
        self._loader = loader
        self._pin_length = pin_length
        self._directory: list[EmployeeIdentity] | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_employees(cls, employees: Iterable[EmployeeIdentity], *, pin_length: int = 4) -> "EmployeePinVerifier":
        snapshot = list(employees)
        return cls(lambda: snapshot, pin_length=pin_length)

    def refresh(self) -> int:
        employees = list(self._loader())
        with self._lock:
            self._directory = employees
        logger.info("pin_directory_loaded", extra={"count": len(employees)})
        return len(employees)

    def verify(self, pin: str | int) -> EmployeeIdentity | None:
        candidate = validate_pin(pin, self._pin_length)
        if self._directory is None:
            self.refresh()
        with self._lock:
            directory = list(self._directory or [])
        match: EmployeeIdentity | None = None
        # Compare against every entry so timing does not reveal the position of a match.
        for employee in directory:
            if employee.pin and hmac.compare_digest(employee.pin.encode("utf-8"), candidate.encode("utf-8")):
                if match is None or (employee.is_active and not match.is_active):
                    match = employee
        if match is None:
            logger.info("pin_verification_no_match")
            return None
        if not match.is_active:
            logger.info("pin_verification_inactive", extra={"employee_id": match.id})
            return None
        logger.info("pin_verification_success", extra={"employee_id": match.id})
        return match
