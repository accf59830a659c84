"""
Error types and message utilities for providing actionable guidance.

Every failure inside a reconciliation cycle is raised as a subclass of
ReggcError carrying the operation that failed and the subject it failed on,
so the scheduler can log one meaningful line and move on to the next tick.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    RESOURCE = "resource"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """An error plus a category and hints for the operator.

    str() renders hints and details too; `message` holds the message alone.
    """

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.category = category
        self.suggestions = list(suggestions or [])
        self.details = dict(details or {})

    def __str__(self) -> str:
        return self.format_message()

    def format_message(self) -> str:
        parts = [self.message]
        parts.extend(f"  hint {n}: {hint}" for n, hint in enumerate(self.suggestions, 1))
        parts.extend(f"  {key}={value}" for key, value in sorted(self.details.items()))
        return "\n".join(parts)


class ReggcError(ActionableError):
    """Base class for failures of a reconciliation cycle.

    Args:
        operation: What was being attempted, e.g. "list tags"
        subject: What it was attempted on, e.g. a repository or image
        cause: The underlying exception, if any
    """

    default_category = ErrorCategory.UNKNOWN

    def __init__(self, operation: str, subject: Optional[str] = None, cause: Optional[BaseException] = None,
                 category: Optional[ErrorCategory] = None, suggestions: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.subject = subject
        self.cause = cause
        super().__init__(
            self._build_message(),
            category=category or self.default_category,
            suggestions=suggestions,
            details=details,
        )

    def _build_message(self) -> str:
        message = f"could not {self.operation}"
        if self.subject:
            message += f" {self.subject!r}"
        if self.cause is not None:
            message += f": {self.cause}"
        return message


class ImageReferenceError(ReggcError, ValueError):
    """Raised when an image string is not of the form host/repository:tag"""
    default_category = ErrorCategory.VALIDATION


class InventoryFetchError(ReggcError):
    """Listing images failed; the cycle aborts before any deletion."""
    default_category = ErrorCategory.CONNECTION


class RegistryListError(InventoryFetchError):
    """Listing repositories or tags in the registry failed."""


class WorkloadListError(InventoryFetchError):
    """Listing pods in the cluster failed."""


class DeletionError(ReggcError):
    """A single image could not be deleted; the rest of the cycle is skipped."""
    default_category = ErrorCategory.RESOURCE


class RemoteExecSetupError(ReggcError):
    """A remote-command executor could not be constructed."""
    default_category = ErrorCategory.CONFIGURATION


class RemoteExecRunError(ReggcError):
    """The remote command failed, or every transport failed."""
    default_category = ErrorCategory.TRANSPORT

    def __init__(self, operation: str, subject: Optional[str] = None, cause: Optional[BaseException] = None,
                 output: str = "", **kwargs):
        # Captured command output is appended for diagnostics
        self.output = output
        super().__init__(operation, subject, cause, **kwargs)

    def _build_message(self) -> str:
        message = super()._build_message()
        if self.output:
            message += f"\n---\n{self.output}"
        return message


class CommandFailedError(Exception):
    """The remote command ran but exited unsuccessfully."""

    def __init__(self, exit_code: Optional[int], reason: str = ""):
        self.exit_code = exit_code
        self.reason = reason
        message = f"command terminated with exit code {exit_code}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


def _kubernetes_suggestions(error: BaseException) -> List[str]:
    error_str = str(error).lower()

    suggestions = [
        "Verify Kubernetes cluster access (kubectl cluster-info)",
        "Check if running in-cluster or using kubeconfig",
        "Verify RBAC permissions for the operation",
    ]

    if "403" in error_str or "forbidden" in error_str:
        suggestions.insert(0, "Check Kubernetes RBAC permissions")
        suggestions.insert(1, "Verify the service account may list pods and create pods/exec")

    if "404" in error_str or "not found" in error_str:
        suggestions.insert(0, "Verify the resource exists in the namespace")
        suggestions.insert(1, "Check if the namespace name is correct")

    return suggestions


def create_kubernetes_error(error_class: type, operation: str, subject: Optional[str],
                            error: BaseException, **kwargs) -> ReggcError:
    """Create actionable error for Kubernetes API failures

    Extra keyword arguments are passed through to error_class.
    """
    error_str = str(error).lower()
    category = ErrorCategory.PERMISSION if "403" in error_str or "forbidden" in error_str else None
    return error_class(
        operation,
        subject,
        cause=error,
        category=category,
        suggestions=_kubernetes_suggestions(error),
        details={"error_type": type(error).__name__},
        **kwargs,
    )


def create_registry_error(error_class: type, operation: str, subject: Optional[str], registry_url: str,
                          error: BaseException) -> ReggcError:
    """Create actionable error for registry API failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the registry URL is correct: {registry_url}",
        "Check network connectivity to the registry",
        "Check if the registry service is running",
    ]

    if "405" in error_str or "unsupported" in error_str:
        suggestions.insert(0, "Enable deletion in the registry (REGISTRY_STORAGE_DELETE_ENABLED=true)")

    if "timeout" in error_str or "timed out" in error_str:
        suggestions.insert(1, "Check if the registry is experiencing high load")

    if "name resolution" in error_str or "dns" in error_str:
        suggestions.insert(1, "Verify DNS resolution for the registry hostname")

    return error_class(
        operation,
        subject,
        cause=error,
        suggestions=suggestions,
        details={"registry_url": registry_url, "error_type": type(error).__name__},
    )
