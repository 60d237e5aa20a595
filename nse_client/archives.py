"""Historical report downloads from the NSE archive host (bhavcopies)."""

from __future__ import annotations

import asyncio
import logging
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Mapping

import httpx

from .config import Settings, default_headers, get_settings
from .errors import DecodeError, InvalidArgumentError, TransportError, UpstreamHttpError

logger = logging.getLogger(__name__)


def resolve_folder(folder: str | Path) -> Path:
    """Absolute folder path, created if missing."""

    path = Path(folder).expanduser().resolve()
    if path.exists() and not path.is_dir():
        raise InvalidArgumentError(f"{path}: must be a folder")
    path.mkdir(parents=True, exist_ok=True)
    return path


def _unzip(file: Path, folder: Path) -> Path:
    try:
        with zipfile.ZipFile(file) as archive:
            archive.extractall(folder)
    except zipfile.BadZipFile as exc:
        raise DecodeError(f"{file.name}: not a zip archive") from exc
    file.unlink()
    return folder


class BhavcopyArchive:
    """Download daily bhavcopy reports into a local folder."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        folder: str | Path | None = None,
        *,
        settings: Settings | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._client = client
        self._headers = dict(headers) if headers is not None else default_headers(settings)
        self._timeout = settings.request_timeout_seconds
        self.archive_url = settings.nse_archive_url
        self.dir = resolve_folder(folder or settings.download_dir)

    def _folder(self, folder: str | Path | None) -> Path:
        return resolve_folder(folder) if folder else self.dir

    async def download(self, url: str, folder: str | Path) -> Path:
        """Stream ``url`` into ``folder`` and return the written file."""

        target = Path(folder) / httpx.URL(url).path.rsplit("/", 1)[-1]
        try:
            async with self._client.stream("GET", url, headers=self._headers, timeout=self._timeout) as response:
                if response.status_code != 200:
                    raise UpstreamHttpError(response.status_code, url=url)
                with target.open("wb") as handle:
                    async for chunk in response.aiter_bytes():
                        handle.write(chunk)
        except httpx.HTTPError as exc:
            target.unlink(missing_ok=True)
            logger.warning("Archive download of %s failed: %s", url, exc)
            raise TransportError(exc, url=url) from exc
        logger.info("Downloaded %s", target.name, extra={"url": url})
        return target

    async def unzip(self, file: str | Path, folder: str | Path) -> Path:
        """Extract ``file`` into ``folder`` and delete the archive."""

        return await asyncio.to_thread(_unzip, Path(file), Path(folder))

    async def equity_bhavcopy(self, day: date | datetime, folder: str | Path | None = None) -> Path:
        url = f"{self.archive_url}/content/cm/BhavCopy_NSE_CM_0_0_0_{day:%Y%m%d}_F_0000.csv.zip"
        file = await self.download(url, self._folder(folder))
        return await self.unzip(file, file.parent)

    async def fno_bhavcopy(self, day: date | datetime, folder: str | Path | None = None) -> Path:
        url = f"{self.archive_url}/content/fo/BhavCopy_NSE_FO_0_0_0_{day:%Y%m%d}_F_0000.csv.zip"
        file = await self.download(url, self._folder(folder))
        return await self.unzip(file, file.parent)

    async def pr_bhavcopy(self, day: date | datetime, folder: str | Path | None = None) -> Path:
        """PR (price report) bundle; returned still zipped."""
        url = f"{self.archive_url}/archives/equities/bhavcopy/pr/PR{day:%d%m%y}.zip"
        return await self.download(url, self._folder(folder))

    async def delivery_bhavcopy(self, day: date | datetime, folder: str | Path | None = None) -> Path:
        url = f"{self.archive_url}/products/content/sec_bhavdata_full_{day:%d%m%Y}.csv"
        return await self.download(url, self._folder(folder))


__all__ = ["BhavcopyArchive", "resolve_folder"]
