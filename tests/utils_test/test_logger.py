# tests/utils_test/test_logger.py
import pytest
from loguru import logger

from batchscore import logs
from batchscore.utils.errors import UserInputError


def _capture():
    captured = []
    sink_id = logger.add(lambda msg: captured.append(msg.record), level="DEBUG")
    return captured, sink_id


def test_catch_reraises_and_logs_traceback():
    @logs.catch(msg="boom")
    def fail():
        raise ValueError("bad")

    captured, sink_id = _capture()
    with pytest.raises(ValueError):
        fail()
    logger.remove(sink_id)

    errors = [r for r in captured if r["level"].name == "ERROR"]
    assert errors and errors[0]["exception"] is not None


def test_catch_quiet_exceptions_have_no_traceback():
    @logs.catch(msg="bad input", quiet=(UserInputError,))
    def fail():
        raise UserInputError("no such file")

    captured, sink_id = _capture()
    with pytest.raises(UserInputError):
        fail()
    logger.remove(sink_id)

    errors = [r for r in captured if r["level"].name == "ERROR"]
    assert errors[0]["exception"] is None
    assert "no such file" in errors[0]["message"]


def test_catch_returns_value():
    @logs.catch(log_time=False)
    def ok(x):
        return x + 1

    assert ok(1) == 2


def test_file_sink(tmp_path):
    from batchscore.utils.logger import Logging

    log = Logging(log_level="INFO")
    log.setup(log_dir=str(tmp_path / "logs"), level="INFO")
    log.info("[Test] hello")
    logger.complete()

    assert list((tmp_path / "logs").glob("*.log"))
