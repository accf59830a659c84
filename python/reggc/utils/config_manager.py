#!/usr/bin/env python3
"""
Configuration Manager for the registry garbage collector

This module handles loading and managing configuration from config.yaml
and environment variables, and loading the Kubernetes client configuration.
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional

import yaml


DEFAULT_GC_COMMAND = [
    "bin/registry",
    "garbage-collect",
    "--delete-untagged",
    "/etc/docker/registry/config.yml",
]


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


def load_kubernetes_config() -> None:
    """Helper function to load Kubernetes configuration.

    Tries in-cluster config first, then falls back to local kubeconfig.

    Raises:
        Exception if both methods fail
    """
    from kubernetes import config as k8s_config

    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()


def get_core_v1_api() -> Any:
    """Build a CoreV1Api client from freshly loaded configuration.

    Returns:
        kubernetes.client.CoreV1Api
    """
    from kubernetes import client as k8s_client

    load_kubernetes_config()
    return k8s_client.CoreV1Api()


def _parse_bool(value: Any) -> bool:
    # YAML may hand back a quoted "false"
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class ConfigManager:
    """Manages configuration for the registry garbage collector"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        # Allow override via environment variable for containerized deployments
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()
        self._dry_run_override: Optional[bool] = None

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "registry": {
                "url": "registry:5000",
                "public_host": "ctr.lesiw.dev",
                "tls": False,
                "timeout": None,
            },
            "gc": {
                "pod": "registry-0",
                "namespace": "default",
                "command": list(DEFAULT_GC_COMMAND),
                "kubectl": "kubectl",
            },
            "schedule": {"interval_seconds": 3600},
            "security": {"dry_run": False},
        }

        if not os.path.exists(self.config_file):
            logging.info(f"Config file {self.config_file} not found, using defaults")
            return default_config

        try:
            with open(self.config_file, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigValidationError(f"Error loading config file {self.config_file}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigValidationError(f"Config file {self.config_file} must contain a mapping")
        return self._merge_config(default_config, user_config)

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    # Registry configuration
    def get_registry_url(self) -> str:
        """Get registry API address (host[:port]) from environment or config"""
        return os.environ.get("REGISTRY_URL") or self.config["registry"]["url"]

    def get_registry_public_host(self) -> str:
        """Get the host prefix workloads use to pull from the registry"""
        return os.environ.get("REGISTRY_PUBLIC_HOST") or self.config["registry"]["public_host"]

    def get_registry_tls(self) -> bool:
        env = os.environ.get("REGISTRY_TLS")
        if env is not None:
            return _parse_bool(env)
        return _parse_bool(self.config["registry"]["tls"])

    def get_registry_timeout(self) -> Optional[float]:
        """HTTP timeout for registry calls; None leaves requests' default (no timeout)"""
        return self.config["registry"].get("timeout")

    # Garbage collection target
    def get_gc_pod(self) -> str:
        return os.environ.get("GC_POD") or self.config["gc"]["pod"]

    def get_gc_namespace(self) -> str:
        return os.environ.get("GC_NAMESPACE") or self.config["gc"]["namespace"]

    def get_gc_command(self) -> List[str]:
        return list(self.config["gc"]["command"])

    def get_kubectl_path(self) -> str:
        return self.config["gc"]["kubectl"]

    # Scheduling
    def get_interval_seconds(self) -> float:
        env = os.environ.get("RECONCILE_INTERVAL")
        if env:
            try:
                return float(env)
            except ValueError:
                raise ConfigValidationError(f"RECONCILE_INTERVAL must be a number, got: {env}")
        return self.config["schedule"]["interval_seconds"]

    def enable_dry_run(self) -> None:
        """Force dry-run mode regardless of file or environment settings"""
        self._dry_run_override = True

    def is_dry_run(self) -> bool:
        if self._dry_run_override is not None:
            return self._dry_run_override
        env = os.environ.get("DRY_RUN")
        if env is not None:
            return _parse_bool(env)
        return _parse_bool(self.config["security"]["dry_run"])

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        registry_url = self.get_registry_url()
        if not registry_url or not str(registry_url).strip():
            errors.append("Registry URL is required and cannot be empty")
        elif not self._is_valid_host(str(registry_url)):
            errors.append(f"Registry URL '{registry_url}' is invalid (expected format: hostname[:port])")

        public_host = self.get_registry_public_host()
        if not public_host or not str(public_host).strip():
            errors.append("Registry public host is required and cannot be empty")
        elif not self._is_valid_host(str(public_host)):
            errors.append(f"Registry public host '{public_host}' is invalid (expected format: hostname[:port])")

        timeout = self.get_registry_timeout()
        if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
            errors.append(f"registry.timeout must be a positive number of seconds, got: {timeout}")

        for field, value in (("gc.pod", self.get_gc_pod()), ("gc.namespace", self.get_gc_namespace())):
            if not value or not self._is_valid_k8s_name(str(value)):
                errors.append(f"{field} '{value}' is not a valid Kubernetes name")

        command = self.config["gc"]["command"]
        if not isinstance(command, list) or not command or not all(isinstance(c, str) for c in command):
            errors.append(f"gc.command must be a non-empty list of strings, got: {command}")

        interval = self.get_interval_seconds()
        if not isinstance(interval, (int, float)) or interval <= 0:
            errors.append(f"schedule.interval_seconds must be a positive number, got: {interval}")
        elif interval < 60:
            warnings.append(f"interval is very short ({interval}s), cycles may run back to back")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def _is_valid_host(self, url: str) -> bool:
        """Validate hostname[:port] format"""
        pattern = r"^[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?(:[0-9]{1,5})?$"
        return bool(re.match(pattern, url))

    def _is_valid_k8s_name(self, name: str) -> bool:
        """Validate Kubernetes resource name format"""
        pattern = r"^[a-z0-9]([a-z0-9\-\.]*[a-z0-9])?$"
        return bool(re.match(pattern, name)) and len(name) <= 253

    def describe(self) -> List[str]:
        """Summary lines of the effective configuration, for startup logging"""
        return [
            f"Registry URL: {self.get_registry_url()} (TLS {'on' if self.get_registry_tls() else 'off'})",
            f"Registry public host: {self.get_registry_public_host()}",
            f"GC target: pod {self.get_gc_pod()} in namespace {self.get_gc_namespace()}",
            f"GC command: {' '.join(self.get_gc_command())}",
            f"Interval: {self.get_interval_seconds()}s",
            f"Dry run: {self.is_dry_run()}",
        ]
