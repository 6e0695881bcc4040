"""Server binary domain: version registry, downloads, validation, updates.

Structure:
    versions.py     VersionRegistry - persisted records + release index lookups
    download.py     DownloadEngine - redirect-following, progress-reporting GET
    manager.py      BinaryManager - resolve, download, validate, prune
    updates.py      ServerUpdateManager - update prompts and binary selection
"""

from npl_lsm.binary.download import DownloadEngine
from npl_lsm.binary.manager import BinaryManager, validate_server_binary
from npl_lsm.binary.updates import ServerUpdateManager
from npl_lsm.binary.versions import VersionRegistry, binary_name_for_platform, download_base_url

__all__ = [
    "BinaryManager",
    "DownloadEngine",
    "ServerUpdateManager",
    "VersionRegistry",
    "binary_name_for_platform",
    "download_base_url",
    "validate_server_binary",
]
