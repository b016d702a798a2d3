# virtconn/core/__init__.py
from .secret import Secret

__all__ = ["Secret"]
