import pytest

from relayshell.models.enums import LogLevel
from relayshell.utils.logger import configure_logging


@pytest.fixture(autouse=True)
def _logging():
    # Some tests swap sys.stderr (CliRunner); rebind the sink every test
    configure_logging(LogLevel.DEBUG)
    yield
