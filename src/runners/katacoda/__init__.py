"""Katacoda runner - renders playbooks into Katacoda tutorials."""

from .runner import Katacoda

__all__ = ["Katacoda"]
