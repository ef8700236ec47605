# youtube.py
import json
import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
from core.errors import ImportFailedError, IntegrationError, RequestFailedError

from integrations.base import BaseAdapter
from integrations.core import (
    ImportBatch,
    IntegrationCapabilities,
    ItemType,
    NormalizedItem,
    Provider,
    RateLimits,
)
from integrations.core.models import parse_datetime

logger = logging.getLogger(__name__)

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch"

VIDEO_ID_PATTERN = re.compile(
    r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)([^&\n?#/]+)"
)
CAPTION_TRACKS_PATTERN = re.compile(r'"captionTracks":(\[.*?\])')
DURATION_PATTERN = re.compile(r"P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")

BULK_IMPORT_MESSAGE = "YouTube integration is used for individual video transcript imports"


def extract_video_id(url: str) -> Optional[str]:
    match = VIDEO_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


def parse_duration(duration: Optional[str]) -> int:
    """ISO-8601 duration such as ``PT1H4M13S`` to seconds."""
    match = DURATION_PATTERN.fullmatch(duration or "")
    if not match:
        return 0
    days, hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def format_timestamp(seconds: float) -> str:
    whole = int(seconds)
    return f"{whole // 60}:{whole % 60:02d}"


def parse_transcript_xml(xml: str) -> List[Dict[str, Any]]:
    soup = BeautifulSoup(xml, "html.parser")
    segments = []
    for node in soup.find_all("text"):
        text = node.get_text().strip()
        if not text:
            continue
        segments.append(
            {
                "text": text,
                "start": float(node.get("start", 0)),
                "duration": float(node.get("dur", 0)),
            }
        )
    return segments


def choose_caption_track(tracks: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Manual English first, then any English, then whatever comes first."""
    if not tracks:
        return None
    for track in tracks:
        if track.get("languageCode") == "en" and track.get("kind") != "asr":
            return track
    for track in tracks:
        if track.get("languageCode") == "en":
            return track
    return tracks[0]


class YouTubeAdapter(BaseAdapter):
    """Video metadata and transcripts. The API key comes from settings and is
    sent as a query parameter, never as a header."""

    provider = Provider.YOUTUBE
    capabilities = IntegrationCapabilities(
        can_import=True,
        can_export=False,
        can_sync=False,
        supported_item_types=[ItemType.NOTE],
        max_batch_size=50,
        rate_limits=RateLimits(
            requests_per_minute=100,
            requests_per_hour=10000,
            requests_per_day=1000000,
        ),
    )

    async def load_credentials(self) -> None:
        self.set_tokens(self.settings.youtube_api_key or None)

    def auth_headers(self) -> Dict[str, str]:
        return {}

    def _params(self, **params: Any) -> Dict[str, Any]:
        return {**params, "key": self.access_token}

    async def probe(self) -> None:
        data = await self.request_json(
            "GET",
            f"{YOUTUBE_API_URL}/search",
            params=self._params(part="snippet", maxResults=1),
        )
        if data.get("kind") != "youtube#searchListResponse":
            raise RequestFailedError(
                f"Unexpected YouTube response kind: {data.get('kind')}",
                provider=self.provider.value,
            )

    async def refresh_access_token(self) -> None:
        await self._verify_static_credential("YouTube API key is no longer valid")

    async def import_data(self, category_id: Optional[str] = None) -> ImportBatch:
        return ImportBatch(errors=[BULK_IMPORT_MESSAGE])

    async def get_video_metadata(self, video_id: str) -> Dict[str, Any]:
        data = await self.request_json(
            "GET",
            f"{YOUTUBE_API_URL}/videos",
            params=self._params(part="snippet,contentDetails,statistics", id=video_id),
        )
        if not data.get("items"):
            raise ImportFailedError(
                f"Video not found: {video_id}", provider=self.provider.value
            )
        video = data["items"][0]
        snippet = video.get("snippet") or {}
        return {
            "title": snippet.get("title", ""),
            "description": snippet.get("description", ""),
            "channelTitle": snippet.get("channelTitle", ""),
            "publishedAt": snippet.get("publishedAt"),
            "duration": parse_duration((video.get("contentDetails") or {}).get("duration")),
            "viewCount": int((video.get("statistics") or {}).get("viewCount") or 0),
        }

    async def get_transcript(self, video_id: str) -> List[Dict[str, Any]]:
        """Caption segments scraped from the watch page; empty when none are published."""
        try:
            page = await self.authenticated_request(
                "GET", YOUTUBE_WATCH_URL, params={"v": video_id}
            )
            match = CAPTION_TRACKS_PATTERN.search(page.text)
            if not match:
                return []
            track = choose_caption_track(json.loads(match.group(1)))
            if track is None or not track.get("baseUrl"):
                return []
            transcript = await self.authenticated_request("GET", track["baseUrl"])
        except (IntegrationError, ValueError) as err:
            logger.warning(f"Transcript unavailable for {video_id}: {err}")
            return []
        return parse_transcript_xml(transcript.text)

    async def import_video_transcript(
        self, video_url: str, category_id: Optional[str] = None
    ) -> NormalizedItem:
        video_id = extract_video_id(video_url)
        if not video_id:
            raise ImportFailedError(
                f"Invalid YouTube video URL: {video_url}", provider=self.provider.value
            )

        video = await self.get_video_metadata(video_id)
        segments = await self.get_transcript(video_id)
        url = f"{YOUTUBE_WATCH_URL}?v={video_id}"
        return self.make_item(
            video_id,
            f"YouTube: {video['title']}",
            ItemType.NOTE,
            category_id or self.default_category.id,
            text=self._render_note(video, segments, url),
            description=f"Go to {url} to watch this video",
            tags=["youtube", "video", "imported"],
            videoId=video_id,
            url=url,
            publishedAt=video["publishedAt"],
            viewCount=video["viewCount"],
            channelTitle=video["channelTitle"],
            duration=video["duration"],
            hasTranscript=bool(segments),
        )

    @staticmethod
    def _render_note(video: Dict[str, Any], segments: List[Dict[str, Any]], url: str) -> str:
        published = parse_datetime(video.get("publishedAt"))
        lines = [
            "📺 **Video imported from YouTube**",
            "",
            f"**Title:** {video['title']}",
            f"**Channel:** {video['channelTitle']}",
            f"**Duration:** {format_timestamp(video['duration'])}",
            f"**Views:** {video['viewCount']:,}",
            f"**Published:** {published.date().isoformat() if published else 'unknown'}",
            "",
            "**Description:**",
            video["description"] or "No description available",
            "",
        ]
        if segments:
            lines.append("## 📝 Full Transcript")
            lines.append("")
            lines.extend(
                f"[{format_timestamp(segment['start'])}] {segment['text']}"
                for segment in segments
            )
        else:
            lines.append(
                "⚠️ **Transcript not available:** captions are disabled for this video or could not be read."
            )
        lines.extend(["", f"🔗 **Watch:** {url}"])
        return "\n".join(lines)

    async def import_multiple_videos(
        self, video_urls: List[str], category_id: Optional[str] = None
    ) -> ImportBatch:
        batch = ImportBatch(total_items=len(video_urls))
        for url in video_urls:
            try:
                batch.items.append(await self.import_video_transcript(url, category_id))
            except IntegrationError as err:
                batch.errors.append(f"Failed to import {url}: {err.message}")
        return batch

    async def search_videos(self, query: str, max_results: int = 10) -> List[Dict[str, Any]]:
        data = await self.request_json(
            "GET",
            f"{YOUTUBE_API_URL}/search",
            params=self._params(part="snippet", q=query, type="video", maxResults=max_results),
        )
        return [
            {
                "videoId": (item.get("id") or {}).get("videoId"),
                "title": item["snippet"].get("title"),
                "description": item["snippet"].get("description"),
                "channelTitle": item["snippet"].get("channelTitle"),
                "publishedAt": item["snippet"].get("publishedAt"),
                "thumbnails": item["snippet"].get("thumbnails"),
            }
            for item in data.get("items", [])
        ]
