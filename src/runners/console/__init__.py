"""Console runner - executes playbook commands on the local machine."""

from .runner import Console

__all__ = ["Console"]
