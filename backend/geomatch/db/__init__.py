from .base import Base
from .session import create_engine_from_settings, create_sessionmaker, init_models

__all__ = ["Base", "create_engine_from_settings", "create_sessionmaker", "init_models"]
