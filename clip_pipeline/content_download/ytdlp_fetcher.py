"""
yt-dlp Fetcher
==============
Downloads clip videos by running the yt-dlp executable.
"""
import asyncio
from pathlib import Path

from loguru import logger

from clip_pipeline.exceptions import DownloadFailedError
from clip_pipeline.interfaces import VideoFetcher

DEFAULT_FORMAT = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"


class YtDlpFetcher(VideoFetcher):
    """
    Runs ``yt-dlp --format <fmt> -o <dest> --no-playlist <url>``.

    The process is killed when it exceeds the timeout.
    """

    def __init__(self, executable: str = "yt-dlp", video_format: str = DEFAULT_FORMAT):
        self.executable = executable
        self.video_format = video_format

    def build_command(self, url: str, dest_path: Path) -> list:
        return [
            self.executable,
            "--format", self.video_format,
            "-o", str(dest_path),
            "--no-playlist",
            url,
        ]

    async def fetch_to_file(self, url: str, dest_path: Path, timeout: float) -> bool:
        cmd = self.build_command(url, dest_path)
        logger.debug(f"yt-dlp command: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise DownloadFailedError(f"Could not start {self.executable}: {e}", url=url) from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise DownloadFailedError(f"Download timed out after {timeout}s", url=url, timeout=timeout)
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            error_msg = stderr.decode(errors="replace").strip() if stderr else "Unknown error"
            raise DownloadFailedError(
                f"yt-dlp exited with code {process.returncode}: {error_msg[-500:]}",
                url=url,
                exit_code=process.returncode,
            )

        return True
