"""
Platform API layer.

Contains the object models, dx:// URI handling, the wire transport, bulk
describe with its cache, and paginated find queries.
"""
from .api import DxApi
from .cache import DxFileDescCache
from .models import DxFile, DxFileDescribe, Field
from .query import DxFindDataObjects, DxFindDataObjectsConstraints, QueryCursor, QueryPage
from .transport import DxTransport, HttpDxTransport

__all__ = [
    'DxApi',
    'DxFile',
    'DxFileDescCache',
    'DxFileDescribe',
    'DxFindDataObjects',
    'DxFindDataObjectsConstraints',
    'DxTransport',
    'Field',
    'HttpDxTransport',
    'QueryCursor',
    'QueryPage',
]
