"""Version information for the Reflection search engine.

Single source of truth for version number.
Follows PEP 440 and semantic versioning principles.
"""

__version__ = "0.3.0"
__version_info__ = tuple(int(part) for part in __version__.split("."))

# Version history:
# 0.3.0 - Lexical fallback enumerates every conversation collection
# 0.2.0 - Additive time decay applied before threshold filtering
# 0.1.0 - Initial multi-collection search
