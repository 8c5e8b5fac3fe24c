"""
Ingestion rule engine and its configuration loaders.
"""

from .rule_config import RuleConfigBuilder, RuleConfigLoader
from .rule_engine import RuleEngine

__all__ = ["RuleEngine", "RuleConfigLoader", "RuleConfigBuilder"]
