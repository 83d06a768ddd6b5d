import sys
import pytest



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")



@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    """Point the app data dir (settings, temp downloads, game logs) at a per-test directory."""
    home = tmp_path / "modman-home"
    monkeypatch.setenv("MODMAN_HOME", str(home))
    return home
