"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and keeps the caller's environment from leaking into configuration.
"""
import sys
from pathlib import Path

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

_CONFIG_ENV_VARS = [
    "CONFIG_FILE",
    "REGISTRY_URL",
    "REGISTRY_PUBLIC_HOST",
    "REGISTRY_TLS",
    "GC_POD",
    "GC_NAMESPACE",
    "RECONCILE_INTERVAL",
    "DRY_RUN",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove configuration overrides that may be set in the calling shell"""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
