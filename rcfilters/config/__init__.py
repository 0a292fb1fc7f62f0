"""
Configuration loading: global settings and the filter taxonomy.
"""

from .loader import load_global_config, load_taxonomy

__all__ = ["load_global_config", "load_taxonomy"]
