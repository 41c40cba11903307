"""Core provisioning engine"""

from .orchestrator import Orchestrator
from .config import Config

__all__ = ["Orchestrator", "Config"]
