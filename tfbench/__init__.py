"""
tfbench - Terraform refresh benchmarks

Measures how long `terraform refresh` takes per resource type in a
workspace and reports the most expensive types first.
"""

__version__ = "development-build"

__all__ = ["__version__"]
