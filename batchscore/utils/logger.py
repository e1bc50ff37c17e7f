#!filepath: batchscore/utils/logger.py
import os
import sys
import json
from functools import wraps
from time import perf_counter
from loguru import logger
from typing import Callable, Tuple, Type


class Logging:
    """
    Process-wide logging facade over loguru
    ---------------------------------------
    - stderr sink always on
    - optional rotated file sink (setup)
    - function-level catch / timing decorator
    ---------------------------------------
    """

    def __init__(self, log_level: str = "INFO"):
        self.level = log_level
        self.log_dir: str | None = None
        self._file_sink_id: int | None = None
        self._configure()

    def _configure(self) -> None:
        logger.remove()

        logger.add(
            sink=sys.stderr,
            level=self.level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
            backtrace=False,
            diagnose=False,
        )

    def setup(
        self,
        log_dir: str = "logs",
        rotation: str = "1 day",
        retention: str = "30 days",
        level: str = "INFO",
    ) -> None:
        """
        Add the rotated file sink. Called once per process by the workflow;
        calling again replaces the previous file sink.
        """
        if self._file_sink_id is not None:
            logger.remove(self._file_sink_id)
            self._file_sink_id = None

        self.level = level
        self.log_dir = log_dir
        os.makedirs(log_dir, exist_ok=True)

        self._file_sink_id = logger.add(
            sink=f"{log_dir}/{{time:YYYY-MM-DD}}.log",
            rotation=rotation,
            retention=retention,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {process} | {message}",
            enqueue=True,  # worker processes write through a queue
            backtrace=True,
            diagnose=False,
        )
        logger.info(f"[Logging] file sink ready dir={log_dir} level={level}")

    # ----------- log methods -----------
    def debug(self, msg: str, *args, **kwargs):
        logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        logger.exception(msg, *args, **kwargs)

    # ---------- decorator ----------
    def catch(
        self,
        msg: str = "Exception occurred",
        log_inputs: bool = False,
        log_outputs: bool = False,
        log_time: bool = True,
        quiet: Tuple[Type[BaseException], ...] = (),
    ) -> Callable:
        """
        Log entry / failure / elapsed time of the wrapped call.
        Exceptions are always re-raised; those listed in `quiet` are
        logged as a single error line without traceback.
        """

        def decorator(func: Callable):
            @wraps(func)
            def wrapper(*args, **kwargs):

                if log_inputs:
                    logger.info(
                        f"[CALL] {func.__name__} args={args}, "
                        f"kwargs={json.dumps(kwargs, ensure_ascii=False, default=str)}"
                    )

                start = perf_counter()

                try:
                    result = func(*args, **kwargs)
                except quiet as e:
                    logger.error(f"[ERROR] {func.__name__}: {msg}: {e}")
                    raise
                except Exception:
                    logger.exception(f"[ERROR] {func.__name__}: {msg}")
                    raise

                if log_outputs:
                    logger.info(f"[RETURN] {func.__name__} result={result}")

                if log_time:
                    cost = perf_counter() - start
                    logger.info(f"[TIME] {func.__name__} took {cost:.4f}s")

                return result

            return wrapper

        return decorator


logs = Logging()
