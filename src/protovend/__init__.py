"""
Protovend - vendor protobuf schema files from upstream git repositories.

Protovend reconciles a declared set of upstream repositories into a
reproducible, auditable copy of their ``.proto`` files for code generation.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
