#!filepath: batchscore/config/app_config.py
import os

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from .log_config import LogConfig
from .scoring_config import ScoringConfig
from batchscore import logs

ENV_LOG_LEVEL = "BATCHSCORE_LOG_LEVEL"


def package_root() -> str:
    """
    batchscore/config/app_config.py -> batchscore/config -> batchscore
    """
    return os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def default_config_path() -> str:
    return os.path.join(package_root(), "config", "base.yml")


class AppConfig(BaseModel):
    log: LogConfig = LogConfig()
    scoring: ScoringConfig

    @classmethod
    def load(cls, path: str | None = None, env_file: str | None = ".env") -> "AppConfig":
        """
        Load YAML config + .env

        - default: batchscore/config/base.yml
        - .env is resolved against the current working directory
        - BATCHSCORE_LOG_LEVEL overrides log.level
        """
        if env_file is not None:
            load_dotenv(env_file)

        if path is None:
            path = default_config_path()

        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        level = os.getenv(ENV_LOG_LEVEL)
        if level:
            raw.setdefault("log", {})
            raw["log"]["level"] = level

        logs.debug(f"[AppConfig] loaded {path}")
        return cls(**raw)
