import sys

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def quiet_logs():
    # Sólo advertencias en consola mientras corren las pruebas
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
    yield
    logger.remove()
