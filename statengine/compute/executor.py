# Statify Engine - Compute Executor
# Request/response execution of procedures in isolated worker units

from __future__ import annotations

import asyncio
import multiprocessing
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from statengine.compute.operators.base import OperatorContext, build_frame
from statengine.compute.registry import OperatorRegistry, default_registry
from statengine.compute.schemas import GENERIC_FAILURE_MESSAGE, ProcedureRequest, ProcedureResponse
from statengine.core.config import IsolationMode, settings
from statengine.core.exceptions import (
    BaseApplicationException,
    ComputeCancelledException,
    ComputeException,
    ComputeTimeoutException,
    RequestInFlightException,
    ValidationException,
)
from statengine.core.logging import (
    LogContext,
    clear_request_context,
    generate_request_id,
    get_logger,
    set_request_context,
)
from statengine.stats.data_model import as_variable

logger = get_logger(__name__)

POLL_INTERVAL_SECONDS = 0.05


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def build_context(request: ProcedureRequest) -> OperatorContext:
    variables = [as_variable(v) for v in request.variables]
    grouping = as_variable(request.grouping_variable) if request.grouping_variable else None
    return OperatorContext(
        request_id=request.request_id,
        variables=variables,
        df=build_frame(request.data),
        weights=list(request.weights) if request.weights is not None else None,
        grouping_variable=grouping,
        pairs=[tuple(p) for p in request.pairs],
    )


def run_request(payload: dict[str, Any], registry: Optional[OperatorRegistry] = None) -> dict[str, Any]:
    """
    Execute one request and return the response envelope as a dict.

    Never raises: precondition failures keep their message, anything
    unexpected becomes the generic worker failure.
    """
    started = time.perf_counter()
    request_id = payload.get("request_id") if isinstance(payload, dict) else None
    procedure = payload.get("procedure") if isinstance(payload, dict) else None

    try:
        request = ProcedureRequest.model_validate(payload)
        request_id, procedure = request.request_id, request.procedure
        set_request_context(request_id=request_id, procedure=procedure)

        op = (registry or default_registry()).get(request.procedure)
        result = op.run(build_context(request), request.options)
        response = ProcedureResponse.from_result(result, request_id=request_id, duration_ms=_elapsed_ms(started))
    except ValidationError as e:
        error = ValidationException(
            "Invalid analysis request",
            field_errors={".".join(str(p) for p in err["loc"]): [err["msg"]] for err in e.errors()},
        )
        response = ProcedureResponse.failure(error, request_id, procedure, _elapsed_ms(started))
    except BaseApplicationException as e:
        logger.debug("Procedure rejected", procedure=procedure, error_code=e.error_code.value, error=e.message)
        response = ProcedureResponse.failure(e, request_id, procedure, _elapsed_ms(started))
    except Exception as e:
        logger.exception("Procedure failed", procedure=procedure, error=str(e))
        response = ProcedureResponse.failure(e, request_id, procedure, _elapsed_ms(started))
    finally:
        clear_request_context()

    return response.model_dump()


def _worker_main(payload: dict[str, Any], conn: Any, registry: Optional[OperatorRegistry] = None) -> None:
    try:
        conn.send(run_request(payload, registry))
    finally:
        conn.close()


# ============================================================================
# Cancellation and Request Handles
# ============================================================================

class CancellationToken:
    """Set once; waiting worker units are terminated when it fires."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()


class RequestHandle:
    """At most one computation in flight per handle."""

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name or "default"
        self._lock = threading.Lock()
        self._token: Optional[CancellationToken] = None

    @property
    def busy(self) -> bool:
        return self._token is not None

    def begin(self) -> CancellationToken:
        with self._lock:
            if self._token is not None:
                raise RequestInFlightException(self.name)
            self._token = CancellationToken()
            return self._token

    def finish(self) -> None:
        with self._lock:
            self._token = None

    def cancel(self) -> bool:
        with self._lock:
            token = self._token
        if token is None:
            return False
        token.cancel()
        return True


# ============================================================================
# Executor
# ============================================================================

class ComputeExecutor:
    """
    Runs procedure requests in worker units with a caller-side timeout.

    ``process`` isolation starts one worker process per request and
    terminates it on timeout or cancel. ``thread`` isolation uses a shared
    pool; a timed-out thread is abandoned. A custom ``registry`` is pickled
    into each worker process, so its operators must be module-level objects.
    """

    def __init__(
        self,
        *,
        isolation: Optional[Union[IsolationMode, str]] = None,
        timeout_seconds: Optional[float] = None,
        max_workers: Optional[int] = None,
        registry: Optional[OperatorRegistry] = None,
    ) -> None:
        cfg = settings.compute
        self.isolation = IsolationMode(isolation) if isolation else cfg.isolation
        self.timeout_seconds = timeout_seconds or cfg.timeout_seconds
        self.max_workers = max_workers or cfg.max_workers
        self._registry = registry
        self._slots = threading.BoundedSemaphore(self.max_workers)
        self._pool: Optional[ThreadPoolExecutor] = None
        self._pool_lock = threading.Lock()

    def __enter__(self) -> "ComputeExecutor":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.shutdown(wait=False, cancel_futures=True)
                self._pool = None

    def _thread_pool(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="statengine")
            return self._pool

    @staticmethod
    def _payload(request: Union[ProcedureRequest, dict[str, Any]]) -> dict[str, Any]:
        if isinstance(request, ProcedureRequest):
            return request.model_dump()
        payload = dict(request)
        payload.setdefault("request_id", generate_request_id())
        return payload

    # ------------------------------------------------------------------
    # Worker units
    # ------------------------------------------------------------------

    def _run_in_process(self, payload: dict[str, Any], timeout: float, token: CancellationToken) -> dict[str, Any]:
        mp = multiprocessing.get_context(settings.compute.start_method)
        receiver, sender = mp.Pipe(duplex=False)
        process = mp.Process(target=_worker_main, args=(payload, sender, self._registry), daemon=True)
        process.start()
        sender.close()
        token.add_callback(process.terminate)

        deadline = time.monotonic() + timeout
        try:
            while True:
                if token.cancelled:
                    raise ComputeCancelledException()
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ComputeTimeoutException(timeout)
                if receiver.poll(min(POLL_INTERVAL_SECONDS, remaining)):
                    try:
                        return receiver.recv()
                    except EOFError as e:
                        raise ComputeException(GENERIC_FAILURE_MESSAGE, cause=e) from e
                if not process.is_alive() and not receiver.poll():
                    raise ComputeException(
                        GENERIC_FAILURE_MESSAGE,
                        recovery_hint=f"Worker exited with code {process.exitcode}",
                    )
        finally:
            if process.is_alive():
                process.terminate()
            process.join(timeout=1)
            receiver.close()

    def _run_in_thread(self, payload: dict[str, Any], timeout: float, token: CancellationToken) -> dict[str, Any]:
        future = self._thread_pool().submit(run_request, payload, self._registry)
        deadline = time.monotonic() + timeout
        while True:
            if token.cancelled:
                future.cancel()
                raise ComputeCancelledException()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise ComputeTimeoutException(timeout)
            done, _ = wait([future], timeout=min(POLL_INTERVAL_SECONDS, remaining), return_when=FIRST_COMPLETED)
            if done:
                return future.result()

    def _execute(self, payload: dict[str, Any], timeout: float, token: CancellationToken) -> dict[str, Any]:
        with self._slots:
            if self.isolation == IsolationMode.PROCESS:
                return self._run_in_process(payload, timeout, token)
            return self._run_in_thread(payload, timeout, token)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(
        self,
        request: Union[ProcedureRequest, dict[str, Any]],
        timeout: Optional[float] = None,
        handle: Optional[RequestHandle] = None,
    ) -> ProcedureResponse:
        """
        Run one request and wait for its reply.

        Raises ``RequestInFlightException`` when ``handle`` is busy; every
        other failure is reported once in the response envelope.
        """
        payload = self._payload(request)
        timeout = timeout or self.timeout_seconds
        token = handle.begin() if handle is not None else CancellationToken()
        context = LogContext(
            component="ComputeExecutor",
            operation="submit",
            request_id=payload.get("request_id"),
            procedure=payload.get("procedure"),
        )
        started = time.perf_counter()
        logger.info("Analysis submitted", context=context, isolation=self.isolation.value, timeout=timeout)

        try:
            reply = await asyncio.to_thread(self._execute, payload, timeout, token)
            response = ProcedureResponse.model_validate(reply)
        except ComputeTimeoutException as e:
            logger.warning("Analysis timed out", context=context, timeout=timeout)
            response = ProcedureResponse.failure(e, payload.get("request_id"), payload.get("procedure"), _elapsed_ms(started))
        except ComputeException as e:
            logger.error("Analysis did not complete", context=context, error=e.message)
            response = ProcedureResponse.failure(e, payload.get("request_id"), payload.get("procedure"), _elapsed_ms(started))
        finally:
            if handle is not None:
                handle.finish()

        log = logger.info if response.success else logger.warning
        log(
            "Analysis completed" if response.success else "Analysis failed",
            context=context,
            duration_ms=_elapsed_ms(started),
            error_code=response.error_code,
        )
        return response

    def run(
        self,
        request: Union[ProcedureRequest, dict[str, Any]],
        timeout: Optional[float] = None,
        handle: Optional[RequestHandle] = None,
    ) -> ProcedureResponse:
        """Blocking wrapper around ``submit`` for callers without an event loop."""
        return asyncio.run(self.submit(request, timeout=timeout, handle=handle))
