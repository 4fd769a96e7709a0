from .logger import setup_logging, InterceptHandler

__all__ = ["setup_logging", "InterceptHandler"]
