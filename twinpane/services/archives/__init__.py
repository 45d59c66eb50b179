"""
Archive providers: zip and tar families, selected by file extension.
"""

from twinpane.services.archives.base import ArchiveEntry, ArchiveProvider
from twinpane.services.archives.manager import ArchiveManager
from twinpane.services.archives.tar_provider import TarProvider
from twinpane.services.archives.zip_provider import ZipProvider

__all__ = ["ArchiveEntry", "ArchiveManager", "ArchiveProvider", "TarProvider", "ZipProvider"]
