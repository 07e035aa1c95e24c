import logging

from ena_uncertainty.core.errors import InfeasibleError
from ena_uncertainty.logging_utils import configure_logging, get_user_message, log_exception


def test_configure_logging_sets_level():
    logger = configure_logging(logging.DEBUG, force=True)
    assert logger.name == "ena_uncertainty"
    assert logger.level == logging.DEBUG


def test_log_exception_uses_user_message(caplog):
    logger = logging.getLogger("ena_uncertainty.test")
    exc = InfeasibleError("internal detail", user_message="bounds are inconsistent", context={"variables": [1]})
    with caplog.at_level(logging.ERROR, logger="ena_uncertainty.test"):
        msg = log_exception(logger, exc)
    assert msg == "bounds are inconsistent"
    assert "bounds are inconsistent" in caplog.text
    assert get_user_message(ValueError("x")) == "Unexpected error: x"
