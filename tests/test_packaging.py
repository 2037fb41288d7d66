"""Tests for the declared dependencies."""

import tomllib
from pathlib import Path

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


class TestDependencies:
    """Tests for pyproject.toml."""

    def test_socketio_async_client_extra(self) -> None:
        """python-socketio should be pulled in with its asyncio-client extra."""
        with PYPROJECT.open("rb") as f:
            project = tomllib.load(f)["project"]

        socketio_deps = [dep for dep in project["dependencies"] if dep.startswith("python-socketio")]

        assert socketio_deps == ["python-socketio[asyncio-client]>=5.10"]
