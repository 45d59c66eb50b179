"""Extension-keyed registry of archive providers."""

from __future__ import annotations

import logging
from pathlib import Path

from twinpane.core.errors import UnsupportedArchiveError
from twinpane.services.archives.base import ArchiveEntry, ArchiveProvider

log = logging.getLogger(__name__)


class ArchiveManager:
    def __init__(self, providers: list[ArchiveProvider] | None = None) -> None:
        self._by_ext: dict[str, ArchiveProvider] = {}
        for p in providers or []:
            self.register_provider(p)

    @classmethod
    def with_defaults(cls, buffer_size: int = 1024 * 1024) -> ArchiveManager:
        from twinpane.services.archives.tar_provider import TarProvider
        from twinpane.services.archives.zip_provider import ZipProvider

        return cls([ZipProvider(buffer_size), TarProvider(buffer_size)])

    def register_provider(self, provider: ArchiveProvider) -> None:
        """Later registrations win for the extensions they share."""
        for ext in provider.supported_extensions():
            ext = ext.lower()
            if ext in self._by_ext:
                log.debug("Archive extension %s re-registered to %s", ext, provider.get_id())
            self._by_ext[ext] = provider

    def supported_extensions(self) -> list[str]:
        return sorted(self._by_ext)

    def _match(self, path: Path) -> ArchiveProvider | None:
        name = path.name.lower()
        best: tuple[int, ArchiveProvider] | None = None
        for ext, provider in self._by_ext.items():
            if name.endswith(ext) and (best is None or len(ext) > best[0]):
                best = (len(ext), provider)
        return best[1] if best else None

    def is_archive(self, path: Path | str) -> bool:
        return self._match(Path(path)) is not None

    def provider_for(self, path: Path | str) -> ArchiveProvider:
        provider = self._match(Path(path))
        if provider is None:
            raise UnsupportedArchiveError(f"Unsupported archive format: {Path(path).name}")
        return provider

    def list_contents(self, archive: Path | str) -> list[ArchiveEntry]:
        return self.provider_for(archive).list(Path(archive))
