# postock/db/__init__.py
from postock.db.base import Base, init_models

__all__ = ["Base", "init_models"]
