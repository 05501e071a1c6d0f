"""
file_access: resolve local, HTTP, S3 and platform (dx://) addresses into file
sources, list remote folders, and localize remote files without name collisions.
"""
from .disambiguator import LocalizationDisambiguator, localize_all
from .sources.resolver import FileSourceResolver, create_resolver

__version__ = "0.1.0"

__all__ = ['FileSourceResolver', 'LocalizationDisambiguator', 'create_resolver', 'localize_all']
