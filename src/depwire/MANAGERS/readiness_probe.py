"""
Waiting for dependencies to satisfy their dependency condition before a dependent starts.
"""
import logging
import time
from typing import Callable, Optional

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, wait_exponential

from ..MODELS.service_definition import DependencyCondition
from ..RUNTIMES.base_runtime import ContainerRuntime
from ..exceptions import DependencyFailedError, ReadinessTimeoutError

logger = logging.getLogger(__name__)


class ReadinessProbe:
    """
    Polls the runtime with exponential backoff until a dependency is ready.

    A launched container is not assumed to be ready: `service_healthy` waits for
    a passing health check and `service_completed_successfully` for exit code 0.
    """
    def __init__(self,
                 runtime: ContainerRuntime,
                 timeout: float = 60.0,
                 initial_wait: float = 0.5,
                 max_wait: float = 5.0,
                 sleep: Callable[[float], None] = time.sleep):
        """
        :param runtime: Runtime to query.
        :param timeout: Seconds to wait for one dependency.
        :param initial_wait: First backoff interval in seconds.
        :param max_wait: Upper bound of the backoff interval.
        :param sleep: Sleep function, replaceable in tests.
        """
        self.runtime = runtime
        self.timeout = timeout
        self.initial_wait = initial_wait
        self.max_wait = max_wait
        self.sleep = sleep

    def wait_for(self, service: str, dependency: str, container: str,
                 condition: DependencyCondition) -> None:
        """
        Blocks until `container` (the dependency's container) satisfies `condition`.

        :raises ReadinessTimeoutError: If the condition is not met within the timeout.
        :raises DependencyFailedError: If the condition can never be met.
        """
        if condition == DependencyCondition.SERVICE_STARTED:
            if not self.runtime.is_running(container) and self.runtime.exit_code(container) is None:
                raise DependencyFailedError(service, dependency, "container was not started")
            return

        check = self._healthy if condition == DependencyCondition.SERVICE_HEALTHY else self._completed
        logger.info("Waiting for %s to be %s before starting %s", dependency, condition.value, service)

        retrying = Retrying(
            stop=stop_after_delay(self.timeout),
            wait=wait_exponential(multiplier=self.initial_wait, max=self.max_wait),
            retry=retry_if_result(lambda ready: not ready),
            before_sleep=self._log_attempt(dependency),
            sleep=self.sleep,
            reraise=True,
        )
        try:
            retrying(check, service, dependency, container)
        except RetryError:
            raise ReadinessTimeoutError(service, dependency, condition.value, self.timeout)

    def _healthy(self, service: str, dependency: str, container: str) -> bool:
        exit_code = self.runtime.exit_code(container)
        if exit_code is not None:
            raise DependencyFailedError(service, dependency, f"exited with code {exit_code}")
        healthy: Optional[bool] = self.runtime.is_healthy(container)
        if healthy is None:
            raise DependencyFailedError(service, dependency, "has no health check configured")
        return healthy

    def _completed(self, service: str, dependency: str, container: str) -> bool:
        exit_code = self.runtime.exit_code(container)
        if exit_code is None:
            return False
        if exit_code != 0:
            raise DependencyFailedError(service, dependency, f"exited with code {exit_code}")
        return True

    @staticmethod
    def _log_attempt(dependency: str):
        def before_sleep(retry_state):
            logger.debug("%s not ready yet (attempt %d), retrying in %.1fs",
                         dependency, retry_state.attempt_number, retry_state.next_action.sleep)
        return before_sleep
