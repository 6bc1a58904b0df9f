"""
Streamed artifact downloads with progress reporting and cooperative cancellation.
"""

import time
from pathlib import Path
from typing import Callable, Optional

import requests
from loguru import logger

from launcher_core.models.transfer import CancelToken, TransferSession
from launcher_core.utils.constants import (
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_CONNECT_TIMEOUT,
    DOWNLOAD_DEADLINE_SECONDS,
    USER_AGENT,
)
from launcher_core.utils.exception import (
    NetworkError,
    TransferCancelled,
    TransferTimeoutError,
)
from launcher_core.utils.generic import format_file_size

ProgressCallback = Callable[[int, str], None]


class TransferManager:
    """
    Streams a remote artifact to disk.

    The whole transfer, connection included, shares one deadline.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
        deadline_seconds: float = DOWNLOAD_DEADLINE_SECONDS,
        user_agent: str = USER_AGENT,
    ) -> None:
        self._session = session or requests.Session()
        self.chunk_size = chunk_size
        self.deadline_seconds = deadline_seconds
        self.user_agent = user_agent

    def download(
        self,
        url: str,
        destination: Path,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> TransferSession:
        """
        Download `url` into `destination`.

        Args:
            url: Artifact URL
            destination: File to write, replaced if it exists
            on_progress: Called with (percent, "done / total") when the size is known
            cancel_token: Checked between chunks

        Returns:
            The finished TransferSession

        Raises:
            TransferCancelled: If the token was cancelled. The partial file is left
                in place for the caller to remove.
            TransferTimeoutError: If the deadline passed before the transfer finished
            NetworkError: On transport failure or a non-success status
        """
        session = TransferSession(url=url, cancel_token=cancel_token or CancelToken())
        start = time.monotonic()
        deadline = start + self.deadline_seconds
        destination.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Starting download from URL: {url}")
        self._check_cancelled(session)
        try:
            with self._session.get(
                url,
                headers={"User-Agent": self.user_agent},
                stream=True,
                timeout=(
                    min(DOWNLOAD_CONNECT_TIMEOUT, self.deadline_seconds),
                    self.deadline_seconds,
                ),
            ) as response:
                response.raise_for_status()
                session.total_bytes = int(response.headers.get("content-length") or 0)
                if session.size_known:
                    logger.info(f"File size: {format_file_size(session.total_bytes)}")

                with open(destination, "wb") as out_file:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        self._check_cancelled(session)
                        if time.monotonic() > deadline:
                            raise TransferTimeoutError(
                                f"Download exceeded {self.deadline_seconds:.0f} seconds"
                            )
                        if not chunk:
                            continue
                        out_file.write(chunk)
                        session.bytes_read += len(chunk)
                        self._report(session, on_progress)
        except requests.Timeout as e:
            logger.error(f"Download timed out: {e}")
            raise TransferTimeoutError(f"Download timed out: {e}") from e
        except requests.RequestException as e:
            logger.error(f"Download failed: {e}")
            raise NetworkError(f"Failed to download {url}: {e}") from e
        except OSError as e:
            logger.error(f"Failed to write {destination}: {e}")
            raise NetworkError(f"Failed to write download to {destination}: {e}") from e

        logger.debug(
            f"Downloaded {session.bytes_read} bytes to {destination} in "
            f"{time.monotonic() - start:.2f}s"
        )
        return session

    @staticmethod
    def _check_cancelled(session: TransferSession) -> None:
        if session.cancel_token.is_cancelled:
            logger.info(f"Download cancelled after {session.bytes_read} bytes")
            raise TransferCancelled(session.bytes_read)

    @staticmethod
    def _report(
        session: TransferSession, on_progress: Optional[ProgressCallback]
    ) -> None:
        if on_progress is None or not session.size_known:
            return
        counters = (
            f"{format_file_size(session.bytes_read)} / "
            f"{format_file_size(session.total_bytes)}"
        )
        on_progress(int(session.progress_percent), counters)
