#!/usr/bin/env python3
"""
Trigger the registry's own garbage collection inside the registry pod.

This executes:
    bin/registry garbage-collect --delete-untagged /etc/docker/registry/config.yml

in a fixed pod through the pod exec subresource. Two transports are built
for the same target: the WebSocket channel protocol spoken by the Kubernetes
Python client, and the legacy SPDY stream-multiplexing protocol spoken by
kubectl. WebSocket is tried first; only a failed connection upgrade or an
HTTPS proxy failure moves the attempt over to SPDY.
"""

import io
import json
import os
import shutil
import subprocess
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional

import websocket
from kubernetes.client.rest import ApiException

from reggc.utils.error_utils import (
    CommandFailedError,
    RemoteExecRunError,
    RemoteExecSetupError,
    create_kubernetes_error,
)
from reggc.utils.logging_utils import get_logger

logger = get_logger(__name__)

ERROR_CHANNEL = 3

# Messages for a proxy URL with the https scheme, which the WebSocket client rejects
HTTPS_PROXY_MARKERS = (
    "unknown scheme: https",
    "only http, socks4, socks5 proxy protocols are supported",
)


class GCState(Enum):
    WEBSOCKET_ATTEMPT = "websocket_attempt"
    LEGACY_FALLBACK = "legacy_fallback"
    SUCCESS = "success"
    FAILURE = "failure"


def _exception_chain(error: BaseException) -> Iterator[BaseException]:
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.extend([current.__cause__, current.__context__])


def _handshake_reason(error: BaseException) -> str:
    # The Kubernetes client reports websocket setup failures as ApiException(status=0)
    if isinstance(error, ApiException) and not error.status:
        return str(error.reason or "").lower()
    return ""


def is_upgrade_failure(error: BaseException) -> bool:
    """True when the WebSocket upgrade handshake was rejected."""
    for current in _exception_chain(error):
        if isinstance(current, websocket.WebSocketBadStatusException):
            return True
        if "handshake status" in _handshake_reason(current):
            return True
    return False


def is_https_proxy_error(error: BaseException) -> bool:
    """True when the configured proxy is an https:// proxy the client cannot use.

    A refused CONNECT or a 407 from a plain HTTP proxy does not qualify.
    """
    for current in _exception_chain(error):
        if isinstance(current, websocket.WebSocketProxyException):
            text = str(current).lower()
        else:
            text = _handshake_reason(current)
        if any(marker in text for marker in HTTPS_PROXY_MARKERS):
            return True
    return False


def should_fall_back(error: BaseException) -> bool:
    return is_upgrade_failure(error) or is_https_proxy_error(error)


class WebSocketExecutor:
    """Runs the command over the Kubernetes WebSocket exec protocol."""

    protocol = "websocket"

    def __init__(self, core_v1: Any, pod: str, namespace: str, command: List[str]):
        try:
            from kubernetes.stream import stream
        except ImportError as e:
            raise RemoteExecSetupError("create websocket executor", f"{namespace}/{pod}", cause=e) from e
        if not hasattr(core_v1, "connect_get_namespaced_pod_exec"):
            raise RemoteExecSetupError(
                "create websocket executor", f"{namespace}/{pod}", cause=TypeError("not a CoreV1Api client")
            )
        self._stream = stream
        self.core_v1 = core_v1
        self.pod = pod
        self.namespace = namespace
        self.command = command

    def stream(self, output: io.StringIO) -> None:
        resp = self._stream(
            self.core_v1.connect_get_namespaced_pod_exec,
            self.pod,
            self.namespace,
            command=self.command,
            stderr=True,
            stdout=True,
            stdin=False,
            tty=False,
            _preload_content=False,
        )
        try:
            while resp.is_open():
                resp.update(timeout=1)
                self._drain(resp, output)
            self._drain(resp, output)
        finally:
            resp.close()

        status = resp.read_channel(ERROR_CHANNEL)
        if status:
            self._check_status(json.loads(status))

    @staticmethod
    def _drain(resp: Any, output: io.StringIO) -> None:
        if resp.peek_stdout():
            output.write(resp.read_stdout())
        if resp.peek_stderr():
            output.write(resp.read_stderr())

    @staticmethod
    def _check_status(status: dict) -> None:
        """Raise unless the exec status object on the error channel reports success."""
        if status.get("status") == "Success":
            return
        exit_code = None
        for cause in (status.get("details") or {}).get("causes") or []:
            if cause.get("reason") == "ExitCode":
                try:
                    exit_code = int(cause.get("message"))
                except (TypeError, ValueError):
                    exit_code = None
        raise CommandFailedError(exit_code, status.get("message", ""))


class LegacyExecutor:
    """Runs the command through kubectl exec pinned to the SPDY protocol."""

    protocol = "spdy"

    def __init__(self, pod: str, namespace: str, command: List[str], kubectl: str = "kubectl"):
        path = shutil.which(kubectl)
        if path is None:
            raise RemoteExecSetupError(
                "create spdy executor", f"{namespace}/{pod}", cause=FileNotFoundError(f"{kubectl} not found on PATH")
            )
        self.kubectl = path
        self.pod = pod
        self.namespace = namespace
        self.command = command

    def stream(self, output: io.StringIO) -> None:
        cmd = [self.kubectl, "exec", "--namespace", self.namespace, self.pod, "--"] + list(self.command)
        env = dict(os.environ, KUBECTL_REMOTE_COMMAND_WEBSOCKETS="false")
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            env=env,
            check=False,
        )
        output.write(result.stdout or "")
        if result.returncode != 0:
            raise CommandFailedError(result.returncode)


def build_executors(core_v1: Any, pod: str, namespace: str, command: List[str],
                    kubectl: str = "kubectl") -> tuple:
    """Build the WebSocket and legacy executors for the same exec target.

    Raises:
        RemoteExecSetupError: if either executor cannot be built
    """
    websocket_executor = WebSocketExecutor(core_v1, pod, namespace, command)
    legacy_executor = LegacyExecutor(pod, namespace, command, kubectl=kubectl)
    return websocket_executor, legacy_executor


class GarbageCollector:
    """Runs the GC command, falling back from WebSocket to SPDY on upgrade failures.

    Each run walks WEBSOCKET_ATTEMPT -> SUCCESS | FAILURE | LEGACY_FALLBACK,
    and LEGACY_FALLBACK -> SUCCESS | FAILURE. The visited states of the last
    run are kept in `states`.
    """

    def __init__(self, websocket_executor: Any, legacy_executor: Any,
                 fallback_predicate: Optional[Callable[[BaseException], bool]] = None,
                 target: str = ""):
        self.websocket_executor = websocket_executor
        self.legacy_executor = legacy_executor
        self.fallback_predicate = fallback_predicate or should_fall_back
        self.target = target
        self.states: List[GCState] = []

    def _enter(self, state: GCState) -> None:
        logger.debug("gc state %s", state.value)
        self.states.append(state)

    def _fail(self, error: BaseException, output: io.StringIO) -> RemoteExecRunError:
        self._enter(GCState.FAILURE)
        if isinstance(error, ApiException):
            return create_kubernetes_error(
                RemoteExecRunError, "exec registry garbage-collect in", self.target or None, error,
                output=output.getvalue(),
            )
        return RemoteExecRunError(
            "exec registry garbage-collect in", self.target or None, cause=error, output=output.getvalue()
        )

    def run(self) -> None:
        """Run garbage collection once.

        Raises:
            RemoteExecRunError: if the command fails on the transport that ran it
        """
        self.states = []
        output = io.StringIO()

        self._enter(GCState.WEBSOCKET_ATTEMPT)
        try:
            self.websocket_executor.stream(output)
        except Exception as e:
            if not self.fallback_predicate(e):
                raise self._fail(e, output) from e
            logger.warning("websocket exec upgrade failed (%s); falling back to spdy", e)
            self._enter(GCState.LEGACY_FALLBACK)
            try:
                self.legacy_executor.stream(output)
            except Exception as legacy_error:
                raise self._fail(legacy_error, output) from legacy_error

        self._enter(GCState.SUCCESS)
        if output.getvalue():
            logger.debug("registry garbage-collect output:\n%s", output.getvalue())
        logger.info("gc completed")


def trigger_gc(core_v1: Any, pod: str, namespace: str, command: List[str], kubectl: str = "kubectl") -> None:
    """Build both executors for pod and run the garbage collection command once."""
    websocket_executor, legacy_executor = build_executors(core_v1, pod, namespace, command, kubectl=kubectl)
    GarbageCollector(websocket_executor, legacy_executor, target=f"{namespace}/{pod}").run()
