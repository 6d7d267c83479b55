from .runner import WikiConsole

__all__ = ["WikiConsole"]
