"""Tests for the stock footage stage."""

import asyncio

import httpx
import pytest

from shorts.models import Dimensions, Topic
from shorts.stock import StockMediaClient, pick_video_file, search_query

PORTRAIT = Dimensions(1080, 1920)
LANDSCAPE = Dimensions(1920, 1080)
TOPIC = Topic(
    id="octopus-hearts",
    title="Why Octopuses Have Three Hearts",
    description="Hearts",
    image_keywords="octopus, ocean",
    video_keywords="octopus swimming, reef",
)


def make_client(handler) -> StockMediaClient:
    return StockMediaClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.fixture
def keys(override_settings):
    override_settings(pexels_api_key="pexels-key", unsplash_access_key="unsplash-key")


def pexels_video(link: str, width: int = 1080, height: int = 1920) -> dict:
    return {"video_files": [{"quality": "hd", "width": width, "height": height, "link": link}]}


class TestHelpers:
    def test_search_query_uses_first_keyword(self):
        assert search_query("octopus swimming, reef", "Title") == "octopus swimming"

    def test_search_query_falls_back_to_title(self):
        assert search_query("", "Why Octopuses Have Three Hearts") == "why octopuses have"

    def test_pick_matching_orientation(self):
        video = {
            "video_files": [
                {"quality": "hd", "width": 1920, "height": 1080, "link": "landscape"},
                {"quality": "sd", "width": 540, "height": 960, "link": "small"},
                {"quality": "hd", "width": 1080, "height": 1920, "link": "portrait"},
            ]
        }

        assert pick_video_file(video, PORTRAIT) == "portrait"
        assert pick_video_file(video, LANDSCAPE) == "landscape"

    def test_pick_falls_back_to_first(self):
        video = {"video_files": [{"quality": "sd", "width": 540, "height": 960, "link": "small"}]}

        assert pick_video_file(video, PORTRAIT) == "small"
        assert pick_video_file({"video_files": []}, PORTRAIT) is None


class TestFetch:
    def test_clips_from_pexels(self, keys, tmp_path):
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.path == "/videos/search":
                assert request.headers["Authorization"] == "pexels-key"
                assert request.url.params["query"] == "octopus swimming"
                assert request.url.params["orientation"] == "portrait"
                videos = [pexels_video("https://cdn.test/a.mp4"), pexels_video("https://cdn.test/b.mp4")]
                return httpx.Response(200, json={"videos": videos})
            return httpx.Response(200, content=b"clip-bytes")

        media = asyncio.run(make_client(handler).fetch(TOPIC, tmp_path, PORTRAIT))

        assert [p.name for p in media.clips] == ["clip_1.mp4", "clip_2.mp4"]
        assert media.images == ()
        assert media.clips[0].read_bytes() == b"clip-bytes"
        assert all(r.url.host != "api.unsplash.com" for r in requests)

    def test_images_when_no_clips(self, keys, tmp_path):
        def handler(request):
            if request.url.path == "/videos/search":
                return httpx.Response(200, json={"videos": []})
            if request.url.host == "api.unsplash.com":
                assert request.headers["Authorization"] == "Client-ID unsplash-key"
                assert request.url.params["query"] == "octopus"
                return httpx.Response(200, json={"results": [{"urls": {"regular": "https://img.test/1.jpg"}}]})
            return httpx.Response(200, content=b"jpeg")

        media = asyncio.run(make_client(handler).fetch(TOPIC, tmp_path, PORTRAIT))

        assert media.clips == ()
        assert [p.name for p in media.images] == ["image_1.jpg"]

    def test_pexels_images_after_unsplash_failure(self, keys, tmp_path):
        def handler(request):
            if request.url.path == "/videos/search":
                return httpx.Response(500)
            if request.url.host == "api.unsplash.com":
                return httpx.Response(403, json={"errors": ["Rate Limit Exceeded"]})
            if request.url.path == "/v1/search":
                assert request.url.params["orientation"] == "landscape"
                return httpx.Response(
                    200, json={"photos": [{"src": {"landscape": "https://img.test/l.jpg", "large": "x"}}]}
                )
            assert str(request.url) == "https://img.test/l.jpg"
            return httpx.Response(200, content=b"jpeg")

        media = asyncio.run(make_client(handler).fetch(TOPIC, tmp_path, LANDSCAPE))

        assert [p.name for p in media.images] == ["image_1.jpg"]

    def test_failed_download_skipped(self, keys, tmp_path):
        def handler(request):
            if request.url.path == "/videos/search":
                videos = [pexels_video("https://cdn.test/gone.mp4"), pexels_video("https://cdn.test/ok.mp4")]
                return httpx.Response(200, json={"videos": videos})
            if request.url.path == "/gone.mp4":
                return httpx.Response(404)
            return httpx.Response(200, content=b"clip")

        media = asyncio.run(make_client(handler).fetch(TOPIC, tmp_path, PORTRAIT))

        assert [p.name for p in media.clips] == ["clip_2.mp4"]

    def test_no_keys_no_requests(self, override_settings, tmp_path):
        override_settings(pexels_api_key="", unsplash_access_key="")

        def handler(request):
            raise AssertionError(f"unexpected request to {request.url}")

        media = asyncio.run(make_client(handler).fetch(TOPIC, tmp_path, PORTRAIT))

        assert media.is_empty
        assert not (tmp_path / "media").exists()
