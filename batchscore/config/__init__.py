#!filepath: batchscore/config/__init__.py
from .app_config import AppConfig
from .log_config import LogConfig
from .scoring_config import ScoringConfig

__all__ = ["AppConfig", "LogConfig", "ScoringConfig"]
