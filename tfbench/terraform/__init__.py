"""Interaction with the terraform binary and workspace files."""

from .rewrite import ConfigurationRewriter, ExpressionEvaluator, provider_prefix
from .state import ResourceTypeGroup, StateAccessor, filter_state
from .version import Capabilities, TerraformVersion, detect_version

__all__ = [
    "Capabilities",
    "ConfigurationRewriter",
    "ExpressionEvaluator",
    "ResourceTypeGroup",
    "StateAccessor",
    "TerraformVersion",
    "detect_version",
    "filter_state",
    "provider_prefix",
]
