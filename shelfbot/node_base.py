"""Synchronous request/response calls to named services."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ServiceError(RuntimeError):
    """A service call could not be completed or reported failure."""


class ServiceClient:
    """A client for a named service backed by a handler callable."""

    def __init__(self, name: str, handler: Callable[[Any], Any] | None = None):
        self.name = name
        self._handler = handler
        self._ready = threading.Event()
        if handler is not None:
            self._ready.set()

    def bind(self, handler: Callable[[Any], Any]) -> None:
        """Attach the handler that serves this client's requests."""
        self._handler = handler
        self._ready.set()

    def wait_for_service(self, timeout: float) -> bool:
        return self._ready.wait(timeout)

    def call(self, request: Any, timeout: float) -> Any:
        """Run the handler on the request; raise TimeoutError if it is too slow."""
        handler = self._handler
        if handler is None:
            raise ServiceError(f"service {self.name} is not available")

        outcome: dict[str, Any] = {}
        done = threading.Event()

        def run() -> None:
            try:
                outcome["value"] = handler(request)
            except BaseException as exc:  # handed back to the caller
                outcome["error"] = exc
            finally:
                done.set()

        threading.Thread(target=run, name=f"srv-{self.name}", daemon=True).start()
        if not done.wait(timeout):
            raise TimeoutError(f"service {self.name} did not answer within {timeout}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["value"]


class ServiceCaller:
    """Waits for services and sends requests to them synchronously."""

    MAX_RETRIES = 5
    WAIT_TIMEOUT = 0.1
    REQUEST_TIMEOUT = 3.0

    def __init__(
        self,
        *,
        max_retries: int | None = None,
        wait_timeout: float | None = None,
        request_timeout: float | None = None,
    ):
        self.max_retries = self.MAX_RETRIES if max_retries is None else max_retries
        self.wait_timeout = self.WAIT_TIMEOUT if wait_timeout is None else wait_timeout
        self.request_timeout = (
            self.REQUEST_TIMEOUT if request_timeout is None else request_timeout
        )
        self._shutdown = threading.Event()

    @property
    def ok(self) -> bool:
        return not self._shutdown.is_set()

    def shutdown(self) -> None:
        self._shutdown.set()

    def cli_wait_for_srv(self, client: ServiceClient, srv_name: str = "") -> bool:
        """Wait for the service, retrying a bounded number of times."""
        retry = 0
        while self.ok and not client.wait_for_service(self.wait_timeout):
            if retry >= self.max_retries:
                logger.debug("Interrupted while waiting for the service. Exiting.")
                return False
            logger.debug("%s service not available, waiting again...", srv_name)
            retry += 1
        return True

    def send_sync_req(self, client: ServiceClient, request: Any, srv_name: str = "") -> Any:
        """Send a request and return the response; raise ServiceError on failure."""
        if not self.cli_wait_for_srv(client, srv_name):
            raise ServiceError(f"Failed to wait service {srv_name}")

        try:
            response = client.call(request, self.request_timeout)
        except TimeoutError as exc:
            raise ServiceError(f"Failed to call service {srv_name}, status: timeout") from exc
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(f"Failed to call service {srv_name}: {exc}") from exc

        logger.debug("call service %s successfully", srv_name)
        if not response.success:
            raise ServiceError(
                f"Service {srv_name} call failed with error: {{{response.message}}}"
            )
        return response