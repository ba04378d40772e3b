"""HTTP server for pricing, numbering and rendering invoices."""

from __future__ import annotations

import atexit
import base64
import errno
import json
import multiprocessing as mp
import re
import threading
from concurrent.futures import Future, ProcessPoolExecutor, TimeoutError as FutureTimeoutError
from concurrent.futures.process import BrokenProcessPool
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from .config import (
    DB_PATH,
    LISTEN_BACKLOG,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    MAX_CONCURRENT_RENDERS,
    MAX_INFLIGHT_RENDERS,
    MAX_PAGES as MAX_PAGES_CONFIG,
    RENDER_QUEUE_TIMEOUT_MS,
    RENDER_TIMEOUT_MS,
)
from .log import configure_logging, get_logger, is_configured
from .models import Invoice, quote_to_dict
from .pricing import price_all
from .store import InvoiceNumberCollision, InvoiceStore, StoreError
from .validation import validate_invoice_payload

logger = get_logger(__name__)

RENDER_INFLIGHT_SEMAPHORE = threading.BoundedSemaphore(MAX_INFLIGHT_RENDERS)
RENDER_EXECUTOR_LOCK = threading.Lock()
RENDER_EXECUTOR: Optional[ProcessPoolExecutor] = None

HEALTH_PATHS = ("/", "/health", "/healthz", "/ready")
GENERATE_PATHS = ("/api/invoice/generate", "/invoice", "/generate")
QUOTE_PATH = "/api/invoice/quote"
INVOICES_PATH = "/api/invoices"
INVOICE_PATH_RE = re.compile(r"^/api/invoices/(?P<number>[^/]+)(?P<pdf>/pdf)?$")

DISCONNECT_ERRNOS = {
    errno.EPIPE,
    errno.ECONNRESET,
    errno.ETIMEDOUT,
}


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def load_render_invoice():
    try:
        from .rendering import render_invoice
    except ModuleNotFoundError as exc:
        if exc.name == "fpdf":
            raise DependencyError(
                "Missing dependency 'fpdf2'. Install the project with 'pip install -e .'."
            ) from exc
        raise
    return render_invoice


def create_render_executor() -> ProcessPoolExecutor:
    return ProcessPoolExecutor(
        max_workers=MAX_CONCURRENT_RENDERS,
        mp_context=mp.get_context("spawn"),
    )


def get_render_executor() -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def restart_render_executor(previous: ProcessPoolExecutor) -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is previous:
            previous.shutdown(wait=False, cancel_futures=True)
            RENDER_EXECUTOR = create_render_executor()
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def submit_render_job(invoice: Invoice) -> "Future[bytes]":
    render_invoice = load_render_invoice()
    executor = get_render_executor()
    try:
        return executor.submit(render_invoice, invoice)
    except BrokenProcessPool:
        return restart_render_executor(executor).submit(render_invoice, invoice)


def shutdown_render_executor() -> None:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        executor = RENDER_EXECUTOR
        RENDER_EXECUTOR = None
    if executor is not None:
        executor.shutdown(wait=False, cancel_futures=True)


atexit.register(shutdown_render_executor)


def pdf_filename(invoice: Invoice) -> str:
    return f"invoice-{invoice.number}.pdf"


def parse_paging(query: str) -> Tuple[Optional[Tuple[Optional[int], int]], Optional[str]]:
    params = parse_qs(query)
    values: Dict[str, Optional[int]] = {"limit": None, "offset": 0}
    for key in values:
        raw = params.get(key)
        if not raw:
            continue
        try:
            value = int(raw[-1])
        except ValueError:
            return None, f"'{key}' must be an integer."
        if value < 0:
            return None, f"'{key}' must not be negative."
        values[key] = value
    return (values["limit"], values["offset"] or 0), None


class InvoiceHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG
    MAX_PAGES = MAX_PAGES_CONFIG

    server: "InvoiceHTTPServer"

    @property
    def store(self) -> InvoiceStore:
        return self.server.store

    def _write_response(
        self,
        status: int,
        content_type: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.end_headers()
            self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload).encode("utf-8")
        return self._write_response(status, "application/json", body)

    def _send_not_found(self, detail: str = "Unsupported endpoint.") -> None:
        self._send_json(404, {"error": "not_found", "detail": detail})

    def _send_pdf(self, invoice: Invoice, pdf_bytes: bytes) -> None:
        self._write_response(
            200,
            "application/pdf",
            pdf_bytes,
            headers={"Content-Disposition": f'attachment; filename="{pdf_filename(invoice)}"'},
        )

    def _wants_pdf(self) -> bool:
        return "application/pdf" in (self.headers.get("Accept") or "")

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(
                411,
                {
                    "error": "missing_content_length",
                    "detail": "Content-Length header is required.",
                },
            )
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {
                    "error": "invalid_content_length",
                    "detail": "Content-Length must be an integer.",
                },
            )
            return None

        if content_length <= 0:
            self._send_json(400, {"error": "empty_body", "detail": "Request body cannot be empty."})
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(
                413,
                {
                    "error": "payload_too_large",
                    "detail": f"Body exceeds {self.MAX_BODY_BYTES} bytes.",
                },
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _render(self, invoice: Invoice) -> Optional[bytes]:
        """Render ``invoice`` in the worker pool, answering the request on failure."""
        context = {"invoiceNumber": invoice.number}

        acquired = RENDER_INFLIGHT_SEMAPHORE.acquire(timeout=RENDER_QUEUE_TIMEOUT_MS / 1000.0)
        if not acquired:
            retry_after_seconds = max(1, (RENDER_QUEUE_TIMEOUT_MS + 999) // 1000)
            self._send_json(
                503,
                {
                    "error": "server_busy",
                    "detail": "Render queue is full; retry shortly.",
                    "retry_after_ms": RENDER_QUEUE_TIMEOUT_MS,
                    "retry_after_seconds": retry_after_seconds,
                    "max_concurrent_renders": MAX_CONCURRENT_RENDERS,
                    "max_inflight_renders": MAX_INFLIGHT_RENDERS,
                    **context,
                },
            )
            return None

        future = None
        try:
            future = submit_render_job(invoice)
            return future.result(timeout=RENDER_TIMEOUT_MS / 1000.0)
        except FutureTimeoutError:
            if future is not None:
                future.cancel()
            logger.warning("render_timeout", invoice_number=invoice.number, timeout_ms=RENDER_TIMEOUT_MS)
            self._send_json(
                504,
                {
                    "error": "render_timeout",
                    "detail": f"Render exceeded timeout of {RENDER_TIMEOUT_MS} ms.",
                    **context,
                },
            )
            return None
        except BrokenProcessPool:
            restart_render_executor(get_render_executor())
            self._send_json(
                503,
                {
                    "error": "render_pool_restarting",
                    "detail": "Render worker pool restarted; retry shortly.",
                    **context,
                },
            )
            return None
        except Exception as exc:
            logger.exception("render_failed", invoice_number=invoice.number)
            self._send_json(500, {"error": "render_failed", "detail": str(exc), **context})
            return None
        finally:
            RENDER_INFLIGHT_SEMAPHORE.release()

    def _handle_quote(self) -> None:
        body = self._read_body()
        if body is None:
            return

        request, validation_error = validate_invoice_payload(body, self.MAX_PAGES)
        if validation_error is not None:
            status, payload_body = validation_error
            self._send_json(status, payload_body)
            return

        products = tuple(price_all(request.products))
        self._send_json(200, quote_to_dict(products, request.currency))

    def _handle_generate(self) -> None:
        body = self._read_body()
        if body is None:
            return

        request, validation_error = validate_invoice_payload(body, self.MAX_PAGES)
        if validation_error is not None:
            status, payload_body = validation_error
            self._send_json(status, payload_body)
            return

        try:
            invoice = self.store.create_invoice(
                price_all(request.products),
                customer=request.customer,
                currency=request.currency,
            )
        except InvoiceNumberCollision as exc:
            self._send_json(
                503,
                {
                    "error": "invoice_number_collision",
                    "detail": f"{exc} Retry the request.",
                },
            )
            return
        except StoreError as exc:
            logger.exception("storage_failed")
            self._send_json(500, {"error": "storage_failed", "detail": str(exc)})
            return

        pdf_bytes = self._render(invoice)
        if pdf_bytes is None:
            return

        if self._wants_pdf():
            self._send_pdf(invoice, pdf_bytes)
            return
        self._send_json(
            201,
            {
                "message": "Invoice generated successfully",
                "invoice": invoice.to_dict(),
                "filename": pdf_filename(invoice),
                "pdfBase64": base64.b64encode(pdf_bytes).decode("ascii"),
            },
        )

    def _handle_list(self, query: str) -> None:
        paging, error = parse_paging(query)
        if error is not None:
            self._send_json(400, {"error": "invalid_query", "detail": error})
            return
        limit, offset = paging
        try:
            invoices = self.store.list_invoices(limit=limit, offset=offset)
            total = self.store.count_invoices()
        except StoreError as exc:
            logger.exception("storage_failed")
            self._send_json(500, {"error": "storage_failed", "detail": str(exc)})
            return
        self._send_json(
            200,
            {
                "invoices": [invoice.to_dict() for invoice in invoices],
                "count": total,
            },
        )

    def _handle_invoice(self, number: str, as_pdf: bool) -> None:
        try:
            invoice = self.store.get_invoice(number)
        except StoreError as exc:
            logger.exception("storage_failed")
            self._send_json(500, {"error": "storage_failed", "detail": str(exc)})
            return
        if invoice is None:
            self._send_not_found(f"Invoice {number} does not exist.")
            return

        if not as_pdf:
            self._send_json(200, {"invoice": invoice.to_dict()})
            return

        pdf_bytes = self._render(invoice)
        if pdf_bytes is not None:
            self._send_pdf(invoice, pdf_bytes)

    def do_POST(self) -> None:
        path = urlsplit(self.path).path
        if path == QUOTE_PATH:
            self._handle_quote()
        elif path in GENERATE_PATHS:
            self._handle_generate()
        else:
            self._send_not_found()

    def do_GET(self) -> None:
        parts = urlsplit(self.path)
        if parts.path in HEALTH_PATHS:
            self._send_json(200, {"status": "ok"})
            return
        if parts.path == INVOICES_PATH:
            self._handle_list(parts.query)
            return
        match = INVOICE_PATH_RE.match(parts.path)
        if match is not None:
            self._handle_invoice(match.group("number"), as_pdf=bool(match.group("pdf")))
            return
        self._send_not_found()

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("http_request", client=self.address_string(), request=format % args)


class InvoiceHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG

    def __init__(self, server_address: Tuple[str, int], store: InvoiceStore) -> None:
        super().__init__(server_address, InvoiceHandler)
        self.store = store


def run(host: str = "0.0.0.0", port: int = 8080, db_path: str = DB_PATH) -> None:
    if not is_configured():
        configure_logging()
    load_render_invoice()
    get_render_executor()
    store = InvoiceStore(db_path)
    server = InvoiceHTTPServer((host, port), store)
    logger.info(
        "server_started",
        url=f"http://{host}:{server.server_port}",
        db_path=str(store.db_path),
        invoices=store.count_invoices(),
    )
    try:
        server.serve_forever()
    finally:
        server.server_close()
