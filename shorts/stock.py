"""Stock footage stage: background clips and images for a topic."""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager, nullcontext
from pathlib import Path
from typing import Any

import httpx

from core.config import settings
from core.utils import ensure_dir
from shorts.models import Dimensions, StockMedia, Topic

logger = logging.getLogger(__name__)

PEXELS_VIDEO_SEARCH_URL = "https://api.pexels.com/videos/search"
PEXELS_PHOTO_SEARCH_URL = "https://api.pexels.com/v1/search"
UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
MIN_CLIP_WIDTH = 720


def search_query(keywords: str, title: str) -> str:
    """First comma-separated keyword, or the first words of the title."""
    first = keywords.split(",")[0].strip() if keywords else ""
    return first or " ".join(title.lower().split()[:3])


def orientation_for(dims: Dimensions) -> str:
    return "portrait" if dims.is_portrait else "landscape"


def pick_video_file(video: dict[str, Any], dims: Dimensions) -> str | None:
    """Download link of the HD rendition matching the frame orientation."""
    files = [f for f in video.get("video_files") or [] if f.get("link")]
    if not files:
        return None
    for f in files:
        width, height = f.get("width") or 0, f.get("height") or 0
        if f.get("quality") == "hd" and (width < height) == dims.is_portrait and width >= MIN_CLIP_WIDTH:
            return f["link"]
    return files[0]["link"]


class StockMediaClient:
    """
    Fetches background footage from Pexels and Unsplash.

    Clips come from Pexels videos searched with the topic's video keywords.
    Without clips, images are searched with the image keywords, Unsplash
    first and Pexels second. Missing API keys or failed requests yield
    fewer (or no) files; the video stage then renders a plain frame.
    """

    def __init__(self, http: httpx.AsyncClient | None = None) -> None:
        self._http = http

    def _client(self) -> AbstractAsyncContextManager[httpx.AsyncClient]:
        if self._http is not None:
            return nullcontext(self._http)
        return httpx.AsyncClient(timeout=settings.stock_timeout_seconds)

    async def fetch(self, topic: Topic, output_dir: Path, dims: Dimensions) -> StockMedia:
        if not settings.pexels_api_key and not settings.unsplash_access_key:
            logger.info("No stock media keys configured, rendering without footage")
            return StockMedia()

        media_dir = ensure_dir(output_dir / "media")
        async with self._client() as client:
            clips = await self._fetch_clips(client, topic, media_dir, dims)
            if clips:
                return StockMedia(clips=tuple(clips))
            images = await self._fetch_images(client, topic, media_dir, dims)
        return StockMedia(images=tuple(images))

    async def _fetch_clips(
        self, client: httpx.AsyncClient, topic: Topic, media_dir: Path, dims: Dimensions
    ) -> list[Path]:
        if not settings.pexels_api_key:
            return []

        query = search_query(topic.video_keywords, topic.title)
        logger.info("Searching Pexels videos for %r", query)
        data = await self._search(
            client,
            PEXELS_VIDEO_SEARCH_URL,
            params={
                "query": query,
                "per_page": settings.stock_clip_count,
                "orientation": orientation_for(dims),
            },
            headers={"Authorization": settings.pexels_api_key},
        )
        links = [pick_video_file(v, dims) for v in data.get("videos") or []]
        urls = [link for link in links if link]
        return await self._download_all(client, urls, media_dir, "clip", ".mp4")

    async def _fetch_images(
        self, client: httpx.AsyncClient, topic: Topic, media_dir: Path, dims: Dimensions
    ) -> list[Path]:
        query = search_query(topic.image_keywords, topic.title)
        orientation = orientation_for(dims)
        count = settings.stock_image_count

        if settings.unsplash_access_key:
            logger.info("Searching Unsplash images for %r", query)
            data = await self._search(
                client,
                UNSPLASH_SEARCH_URL,
                params={"query": query, "per_page": count, "orientation": orientation},
                headers={"Authorization": f"Client-ID {settings.unsplash_access_key}"},
            )
            urls = [(r.get("urls") or {}).get("regular") for r in data.get("results") or []]
            images = await self._download_all(client, [u for u in urls if u], media_dir, "image", ".jpg")
            if images:
                return images

        if settings.pexels_api_key:
            logger.info("Searching Pexels images for %r", query)
            data = await self._search(
                client,
                PEXELS_PHOTO_SEARCH_URL,
                params={"query": query, "per_page": count, "orientation": orientation},
                headers={"Authorization": settings.pexels_api_key},
            )
            urls = [
                (p.get("src") or {}).get(orientation) or (p.get("src") or {}).get("large")
                for p in data.get("photos") or []
            ]
            return await self._download_all(client, [u for u in urls if u], media_dir, "image", ".jpg")
        return []

    async def _search(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        try:
            response = await client.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Stock search failed (%s): %s", url, e)
            return {}

    async def _download_all(
        self,
        client: httpx.AsyncClient,
        urls: list[str],
        media_dir: Path,
        prefix: str,
        suffix: str,
    ) -> list[Path]:
        paths = []
        for i, url in enumerate(urls, start=1):
            path = media_dir / f"{prefix}_{i}{suffix}"
            if path.exists():
                paths.append(path)
                continue
            try:
                response = await client.get(url, follow_redirects=True)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning("Download %d/%d failed: %s", i, len(urls), e)
                continue
            path.write_bytes(response.content)
            paths.append(path)
        logger.info("Downloaded %d/%d %s files", len(paths), len(urls), prefix)
        return paths
