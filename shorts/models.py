"""Data models passed between pipeline stages."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class Topic:
    """Generated subject shared by every channel of a group."""

    id: str
    title: str
    description: str
    image_keywords: str
    video_keywords: str
    tokens_used: int = 0


@dataclass(frozen=True, slots=True)
class Script:
    """Narration for one topic in one language."""

    topic: Topic
    language: str
    title: str
    narrative: str
    description: str
    tags: tuple[str, ...] = ()
    estimated_duration: int = 0
    tokens_used: int = 0

    @property
    def word_count(self) -> int:
        return len(self.narrative.split())


@dataclass(frozen=True, slots=True)
class VoiceConfig:
    voice: str
    rate: str = "+0%"
    pitch: str = "+0Hz"


@dataclass(frozen=True, slots=True)
class Dimensions:
    width: int
    height: int

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width


@dataclass(frozen=True, slots=True)
class TTSResult:
    audio_path: Path
    duration: float


@dataclass(frozen=True, slots=True)
class StockMedia:
    """Downloaded background footage. Clips take precedence over images."""

    clips: tuple[Path, ...] = ()
    images: tuple[Path, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.clips and not self.images


@dataclass(frozen=True, slots=True)
class VideoResult:
    video_path: Path
    width: int
    height: int
    duration: float


@dataclass(frozen=True, slots=True)
class OAuthTokens:
    """OAuth2 token bundle. ``expiry`` is epoch milliseconds."""

    access_token: str
    refresh_token: str | None = None
    expiry: int | None = None
    token_type: str = "Bearer"
    scope: str | None = None


@dataclass(frozen=True, slots=True)
class ChannelCredentials:
    """OAuth client and tokens used to publish on one channel."""

    channel_id: str
    client_id: str
    client_secret: str
    redirect_uri: str
    tokens: OAuthTokens


@dataclass(frozen=True, slots=True)
class UploadResult:
    remote_id: str
    url: str
    title: str
    refreshed_tokens: OAuthTokens | None = None


@dataclass(slots=True)
class GroupUsage:
    """Resource totals accumulated while processing one group."""

    tokens: int = 0
    storage_mb: float = 0.0
    videos: int = 0
