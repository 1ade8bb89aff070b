from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Protocol

from .access_control import ProtectedAction, require
from .error_mapper import to_fiscal_error
from .exceptions import (
    ApiError,
    ConflictError,
    ConflictingOperation,
    ConnectivityFailure,
    EncodingError,
    FiscalError,
    InvoiceStateError,
    RejectedByAuthority,
    UnauthorizedError,
    UnknownFailure,
)
from .invoice_state import can_transition
from .invoice_store import InvoiceStore
from .models import (
    FailureInfo,
    FiscalResponse,
    Invoice,
    InvoiceStatus,
    LineItem,
    ReceiverDocType,
    Session,
    VoucherType,
)
from .qr_payload import encode as encode_qr
from .sales_ledger import SalesLedger
from .session import SessionManager
from .telemetry import TelemetryLogger
from .validation import validate_invoice_lines, validate_receiver

logger = logging.getLogger(__name__)


class FiscalGateway(Protocol):
    def submit_invoice(self, invoice: Invoice) -> FiscalResponse: ...

    def find_invoice(self, invoice: Invoice) -> FiscalResponse | None: ...


FiscalGatewayFactory = Callable[[str], FiscalGateway]


@dataclass(frozen=True)
class InvoiceState:
    invoice: Invoice | None = None
    last_error: Exception | None = None

    @property
    def status(self) -> InvoiceStatus | None:
        return self.invoice.status if self.invoice is not None else None


InvoiceListener = Callable[[InvoiceState], None]


class InvoiceIssuanceCoordinator:
    """Drives the sale in progress from DRAFT to an issued fiscal invoice.

    Every attempt for an invoice reuses its id, so a resubmission after a
    lost response is deduplicated by the fiscal gateway and by the
    ledger. The invoice is written to the store as SUBMITTING before the
    gateway is called; ``reconcile`` resolves anything left in that state
    by a previous process.

    Retries are never automatic. ``retry`` is the caller's decision.
    """

    def __init__(
        self,
        fiscal_client_factory: FiscalGatewayFactory,
        session_manager: SessionManager,
        invoice_store: InvoiceStore,
        ledger: SalesLedger,
        *,
        point_of_sale: int = 1,
        qr_encoder: Callable[[FiscalResponse], str] = encode_qr,
        telemetry: TelemetryLogger | None = None,
    ) -> None:
        self._fiscal_client_factory = fiscal_client_factory
        self._sessions = session_manager
        self._store = invoice_store
        self._ledger = ledger
        self._point_of_sale = point_of_sale
        self._qr_encoder = qr_encoder
        self._telemetry = telemetry
        self._lock = threading.RLock()
        self._state = InvoiceState()
        self._listeners: list[InvoiceListener] = []

    @property
    def state(self) -> InvoiceState:
        return self._state

    def subscribe(self, listener: InvoiceListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def start(
        self,
        items: Iterable[LineItem | dict],
        *,
        employee_id: str | None = None,
        voucher_type: VoucherType | str = VoucherType.FACTURA_B,
        receiver_doc_type: ReceiverDocType | int = ReceiverDocType.CONSUMIDOR_FINAL,
        receiver_doc_number: str | int | None = None,
    ) -> Invoice:
        """Open the DRAFT invoice for the sale being finalized."""
        session = self._authorize()
        lines = validate_invoice_lines(list(items))
        voucher, doc_type, doc_number = validate_receiver(voucher_type, receiver_doc_type, receiver_doc_number)
        with self._lock:
            current = self._state.invoice
            if current is not None and current.status != InvoiceStatus.ISSUED:
                raise ConflictingOperation(
                    code="INVOICE_IN_PROGRESS",
                    message="Finish or cancel the current invoice before starting another",
                    details={"invoice_id": current.id, "status": current.status.value},
                )
            invoice = Invoice(
                items=lines,
                employee_id=employee_id or session.user.id,
                voucher_type=voucher,
                point_of_sale=self._point_of_sale,
                receiver_doc_type=doc_type,
                receiver_doc_number=doc_number,
            )
            self._store.save(invoice)
            self._update(invoice=invoice, last_error=None)
        logger.info("invoice_started", extra={"invoice_id": invoice.id, "line_count": len(lines)})
        return invoice

    def resume(self, invoice_id: str) -> Invoice:
        """Make a persisted invoice the current one, e.g. a FAILED invoice after restart."""
        invoice = self._store.get(invoice_id)
        if invoice is None:
            raise InvoiceStateError(code="INVOICE_NOT_FOUND", message=f"No stored invoice {invoice_id}")
        with self._lock:
            current = self._state.invoice
            if current is not None and current.id != invoice.id and current.status != InvoiceStatus.ISSUED:
                raise ConflictingOperation(
                    code="INVOICE_IN_PROGRESS",
                    message="Finish or cancel the current invoice before resuming another",
                    details={"invoice_id": current.id, "status": current.status.value},
                )
            self._update(invoice=invoice, last_error=None)
        return invoice

    def submit(self, invoice: Invoice | None = None) -> Invoice:
        """Submit the current invoice, or the one given.

        An invoice without an employee is attributed to the session user.
        """
        session = self._authorize()
        with self._lock:
            if invoice is None:
                invoice = self._state.invoice
            if invoice is None:
                raise InvoiceStateError(code="NO_INVOICE", message="There is no invoice to submit")
            if not self._store.claim(invoice.id):
                raise ConflictingOperation(
                    code="SUBMISSION_IN_FLIGHT",
                    message="This invoice is already being submitted",
                    details={"invoice_id": invoice.id},
                )
        try:
            with self._lock:
                persisted = self._store.get(invoice.id) or invoice
                if persisted.status == InvoiceStatus.ISSUED:
                    return self._already_issued(persisted)
                if persisted.status == InvoiceStatus.SUBMITTING:
                    raise InvoiceStateError(
                        code="RECONCILE_REQUIRED",
                        message="A previous submission of this invoice has no recorded outcome; reconcile first",
                        details={"invoice_id": invoice.id},
                    )
                submitting = self._transition(
                    persisted,
                    InvoiceStatus.SUBMITTING,
                    employee_id=persisted.employee_id or session.user.id,
                    attempt_count=persisted.attempt_count + 1,
                    last_failure=None,
                )
                self._store.save(submitting)
                self._update(invoice=submitting, last_error=None)

            logger.info(
                "invoice_submit_attempt",
                extra={"invoice_id": submitting.id, "attempt": submitting.attempt_count},
            )
            try:
                response = self._send(session, submitting)
            except FiscalError as failure:
                self._record_failure(submitting, failure)
                raise
            return self._complete(submitting, response)
        finally:
            self._store.release(invoice.id)

    def retry(self) -> Invoice:
        """Resubmit the current FAILED invoice under the same identity."""
        invoice = self._state.invoice
        if invoice is None or invoice.status != InvoiceStatus.FAILED:
            raise InvoiceStateError(
                code="RETRY_NOT_ALLOWED",
                message="Only a failed invoice can be retried",
                details={"status": invoice.status.value if invoice else None},
            )
        return self.submit(invoice)

    def cancel(self) -> None:
        """Discard the current invoice. Never touches the ledger."""
        with self._lock:
            invoice = self._state.invoice
            if invoice is None:
                return
            if invoice.status not in {InvoiceStatus.DRAFT, InvoiceStatus.FAILED} or self._store.is_claimed(invoice.id):
                raise InvoiceStateError(
                    code="CANCEL_NOT_ALLOWED",
                    message="Only a draft or failed invoice can be cancelled",
                    details={"invoice_id": invoice.id, "status": invoice.status.value},
                )
            self._store.remove(invoice.id)
            self._update(invoice=None, last_error=None)
        logger.info("invoice_cancelled", extra={"invoice_id": invoice.id, "attempt": invoice.attempt_count})
        self._emit("cancel", invoice, success=True)

    def reconcile(self) -> list[Invoice]:
        """Resolve invoices a previous process left without a recorded outcome.

        SUBMITTING invoices are looked up on the fiscal gateway by id:
        found means ISSUED, a recorded rejection means FAILED and final,
        not found means FAILED and retryable. A lookup that itself fails
        leaves the invoice in SUBMITTING. Stored ISSUED invoices are
        re-recorded in the ledger, which is a no-op unless the process
        died between the two writes. An entry that cannot be resolved is
        logged and skipped so the others still are.
        """
        session = self._authorize()
        resolved: list[Invoice] = []
        for invoice in self._store.list_by_status(InvoiceStatus.SUBMITTING, InvoiceStatus.ISSUED):
            if not self._store.claim(invoice.id):
                continue
            try:
                outcome = self._reconcile_one(session, invoice)
            except ApiError as exc:
                logger.warning(
                    "invoice_reconcile_entry_failed",
                    extra={"invoice_id": invoice.id, "error_code": exc.code, "trace_id": exc.trace_id},
                )
                continue
            finally:
                self._store.release(invoice.id)
            if outcome is not None:
                resolved.append(outcome)
        logger.info("invoice_reconcile_done", extra={"resolved": len(resolved)})
        return resolved

    def _reconcile_one(self, session: Session, invoice: Invoice) -> Invoice | None:
        if invoice.status == InvoiceStatus.ISSUED:
            self._record_sale(invoice)
            return None
        try:
            response = self._fiscal_client_factory(session.token).find_invoice(invoice)
        except RejectedByAuthority as rejection:
            return self._record_failure(invoice, rejection, adopt=False)
        except ApiError as exc:
            logger.warning(
                "invoice_reconcile_lookup_failed",
                extra={"invoice_id": invoice.id, "error_code": exc.code, "trace_id": exc.trace_id},
            )
            return None
        if response is None:
            failure = ConnectivityFailure(
                code="SUBMISSION_NOT_FOUND",
                message="The fiscal gateway has no record of this invoice; it can be retried",
            )
            return self._record_failure(invoice, failure, adopt=False)
        return self._complete(invoice, response, adopt=False)

    def _authorize(self) -> Session:
        return require(
            self._sessions.current_session(),
            ProtectedAction.ISSUE_INVOICE,
            loading=self._sessions.state.is_loading,
        )

    def _send(self, session: Session, invoice: Invoice) -> FiscalResponse:
        gateway = self._fiscal_client_factory(session.token)
        try:
            return gateway.submit_invoice(invoice)
        except ConflictError as exc:
            # 409: the gateway already holds this invoice id; read back its outcome.
            logger.info("invoice_submit_conflict", extra={"invoice_id": invoice.id, "trace_id": exc.trace_id})
            try:
                found = gateway.find_invoice(invoice)
            except FiscalError:
                raise
            except ApiError as lookup_error:
                raise to_fiscal_error(lookup_error) from lookup_error
            if found is None:
                raise UnknownFailure(
                    code=exc.code,
                    message=exc.message,
                    trace_id=exc.trace_id,
                    status_code=exc.status_code,
                    raw_payload=exc.raw_payload,
                ) from exc
            return found
        except UnauthorizedError as exc:
            self._sessions.invalidate("token_rejected")
            raise to_fiscal_error(exc) from exc
        except FiscalError:
            raise
        except (ApiError, ValueError) as exc:
            raise to_fiscal_error(exc) from exc

    def _complete(self, invoice: Invoice, response: FiscalResponse, *, adopt: bool = True) -> Invoice:
        qr_error: EncodingError | None = None
        try:
            payload: str | None = self._qr_encoder(response)
        except EncodingError as exc:
            payload = None
            qr_error = exc
            logger.warning("invoice_qr_encoding_failed", extra={"invoice_id": invoice.id, "error_code": exc.code})
        issued = self._transition(
            invoice,
            InvoiceStatus.ISSUED,
            fiscal_response=response.model_copy(update={"qr_payload": payload}),
            last_failure=None,
        )
        with self._lock:
            self._store.save(issued)
            self._record_sale(issued)
            if adopt or self._is_current(issued):
                self._update(invoice=issued, last_error=qr_error)
        logger.info(
            "invoice_issued",
            extra={"invoice_id": issued.id, "attempt": issued.attempt_count, "fiscal_number": response.fiscal_number},
        )
        self._emit("issue", issued, success=True)
        return issued

    def _already_issued(self, invoice: Invoice) -> Invoice:
        self._record_sale(invoice)
        self._update(invoice=invoice, last_error=None)
        logger.info("invoice_already_issued", extra={"invoice_id": invoice.id})
        return invoice

    def _record_failure(
        self,
        invoice: Invoice,
        failure: FiscalError,
        *,
        adopt: bool = True,
    ) -> Invoice:
        info = FailureInfo(
            kind=failure.kind,
            code=failure.code,
            message=failure.message,
            trace_id=failure.trace_id,
            retryable=failure.retryable,
        )
        failed = self._transition(invoice, InvoiceStatus.FAILED, last_failure=info)
        with self._lock:
            self._store.save(failed)
            if adopt or self._is_current(failed):
                self._update(invoice=failed, last_error=failure)
        logger.warning(
            "invoice_submit_failure",
            extra={
                "invoice_id": failed.id,
                "attempt": failed.attempt_count,
                "failure_kind": info.kind,
                "error_code": info.code,
                "trace_id": info.trace_id,
            },
        )
        self._emit("submit", failed, success=False, error_code=info.code, trace_id=info.trace_id)
        return failed

    def _record_sale(self, invoice: Invoice) -> None:
        response = invoice.fiscal_response
        if response is None or invoice.employee_id is None:
            raise InvoiceStateError(code="INCOMPLETE_INVOICE", message="Issued invoice has no fiscal data or employee")
        self._ledger.record(invoice.id, invoice.employee_id, invoice.total, response.issued_on)

    def _transition(self, invoice: Invoice, target: InvoiceStatus, **changes: object) -> Invoice:
        if not can_transition(invoice.status, target):
            raise InvoiceStateError(
                code="INVALID_TRANSITION",
                message=f"Invoice cannot move from {invoice.status.value} to {target.value}",
                details={"invoice_id": invoice.id},
            )
        return invoice.model_copy(update={"status": target, **changes})

    def _is_current(self, invoice: Invoice) -> bool:
        current = self._state.invoice
        return current is not None and current.id == invoice.id

    def _update(self, **changes: object) -> None:
        with self._lock:
            self._state = replace(self._state, **changes)
            snapshot = self._state
            for listener in list(self._listeners):
                listener(snapshot)

    def _emit(self, action: str, invoice: Invoice, **kwargs: object) -> None:
        if self._telemetry is None:
            return
        self._telemetry.record(
            category="invoice",
            name=f"invoice.{action}",
            action=action,
            context={"invoice_id": invoice.id, "attempt": invoice.attempt_count, "status": invoice.status.value},
            **kwargs,
        )
