# Main integrations package
from . import adapters, base, core
from .manager import IntegrationManager

__all__ = ["adapters", "base", "core", "IntegrationManager"]
