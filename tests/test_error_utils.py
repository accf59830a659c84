"""
Tests for reggc/utils/error_utils.py
"""

from kubernetes.client.rest import ApiException

from reggc.utils.error_utils import (
    CommandFailedError,
    DeletionError,
    ErrorCategory,
    RegistryListError,
    RemoteExecRunError,
    WorkloadListError,
    create_kubernetes_error,
    create_registry_error,
)


class TestMessages:
    def test_operation_subject_and_cause(self):
        error = DeletionError("delete image", "ctr.lesiw.dev/app:old", cause=RuntimeError("500 Internal Server Error"))

        assert error.message == "could not delete image 'ctr.lesiw.dev/app:old': 500 Internal Server Error"
        assert error.category == ErrorCategory.RESOURCE

    def test_without_subject(self):
        error = RegistryListError("get repository list", cause=ConnectionError("refused"))
        assert error.message == "could not get repository list: refused"

    def test_exec_error_appends_output(self):
        error = RemoteExecRunError(
            "exec registry garbage-collect in", "default/registry-0", cause=CommandFailedError(1), output="boom\n"
        )

        assert error.message.startswith("could not exec registry garbage-collect in 'default/registry-0'")
        assert "exit code 1" in error.message
        assert error.message.endswith("\n---\nboom\n")

    def test_format_message_lists_suggestions(self):
        error = DeletionError("delete image", "x/y:z", suggestions=["Enable deletion"])
        assert "hint 1: Enable deletion" in error.format_message()


class TestFactories:
    def test_forbidden_is_permission_error(self):
        error = create_kubernetes_error(
            WorkloadListError, "list pods in all namespaces", None, ApiException(status=403, reason="Forbidden")
        )

        assert isinstance(error, WorkloadListError)
        assert error.category == ErrorCategory.PERMISSION
        assert any("RBAC" in s for s in error.suggestions)

    def test_other_kubernetes_errors_keep_default_category(self):
        error = create_kubernetes_error(WorkloadListError, "list pods", None, ApiException(status=500, reason="boom"))
        assert error.category == ErrorCategory.CONNECTION

    def test_registry_unsupported_suggests_enabling_delete(self):
        error = create_registry_error(
            DeletionError, "delete image", "ctr.lesiw.dev/app:old", "registry:5000",
            RuntimeError("405 Method Not Allowed: UNSUPPORTED"),
        )

        assert error.suggestions[0].startswith("Enable deletion")
        assert error.details["registry_url"] == "registry:5000"
