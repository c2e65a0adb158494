import sys
import pytest



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")
