"""
Configuration loading: engine settings and the field permission matrix.
"""

from .permissions import FieldPermissionLoader, parse_permissions
from .settings import EngineSettings, load_settings

__all__ = ["EngineSettings", "load_settings", "FieldPermissionLoader", "parse_permissions"]
