from .auth import AuthClient
from .employees import EmployeesClient
from .fiscal import FiscalClient

__all__ = [
    "AuthClient",
    "EmployeesClient",
    "FiscalClient",
]
