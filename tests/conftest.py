import pytest
import verboselogs


@pytest.fixture(autouse=True, scope="session")
def install_verboselogs_for_tests():
    """
    Ensures that verboselogs is installed (monkeypatches logging)
    once for the entire test session.
    """
    verboselogs.install()
