"""
Content Download
================
Download stage and the yt-dlp fetcher it drives.
"""
from .clip_downloader import ClipDownloader, DownloadBatch, clip_filename, sanitize_filename
from .ytdlp_fetcher import YtDlpFetcher

__all__ = ["ClipDownloader", "DownloadBatch", "clip_filename", "sanitize_filename", "YtDlpFetcher"]
