"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from mailplane.core.config.settings import Settings
from mailplane.core.context import build_context
from tests.fake_system import FakeSystem

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing every path at a scratch directory."""
    root = tmp_path / "root"
    root.mkdir()
    return Settings(
        system_root=str(root),
        state_dir=str(tmp_path / "state"),
        lock_dir=str(tmp_path / "locks"),
        admin_token=ADMIN_TOKEN,
    )


@pytest.fixture
def fake(settings: Settings) -> FakeSystem:
    """A host with mariadb running and nothing else installed."""
    system = FakeSystem(Path(settings.system_root), settings)
    system.unit("mariadb", enabled=True, active=True)
    return system


@pytest.fixture
def nginx_host(fake: FakeSystem) -> FakeSystem:
    fake.install("nginx")
    fake.unit("nginx", enabled=True, active=True)
    return fake


@pytest.fixture
def apache_host(fake: FakeSystem) -> FakeSystem:
    fake.install("apache2")
    fake.unit("apache2", enabled=True, active=True)
    return fake


@pytest.fixture
def ctx(settings: Settings, fake: FakeSystem):
    return build_context(settings, fake.runner)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
