import pytest

from tango import log


@pytest.fixture(autouse=True)
def logger():
    log.configure(level='debug')
