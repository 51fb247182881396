"""
Typed records for AI DJ and the schemas used to validate Spotify payloads.

Raw* models describe what the Spotify Web API sends back and are only used at
the catalog boundary. Everything else in the app works with the frozen records
below.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

USER_ROLE = 'user'
ASSISTANT_ROLE = 'assistant'
Role = Literal['user', 'assistant']

BlockKind = Literal['paragraph', 'bullet_list', 'ordered_list']


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# ─── Records ─────────────────────────────────────────────────────────────────

class Credential(_Record):
    """Bearer token for the Spotify Web API, scoped to one browser session."""

    access_token: str = Field(min_length=1)
    expires_at: Optional[int] = None


class UserProfile(_Record):
    id: str
    display_name: str = ''
    image_url: Optional[str] = None


class Playlist(_Record):
    id: str = Field(min_length=1)
    name: str = ''
    images: tuple[str, ...] = ()
    track_count: Optional[int] = None


class PlaylistPage(_Record):
    """First page of the user's playlists. has_more means Spotify had more."""

    items: tuple[Playlist, ...] = ()
    has_more: bool = False
    total: Optional[int] = None


class AudioFeatures(_Record):
    tempo: Optional[float] = None
    key: Optional[int] = None
    mode: Optional[int] = None
    energy: Optional[float] = None
    danceability: Optional[float] = None


class Track(_Record):
    """One playlist entry. All fields are None for a removed/unavailable track."""

    id: Optional[str] = None
    name: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    features: Optional[AudioFeatures] = None

    def with_features(self, features):
        return self.model_copy(update={'features': features})


class Message(_Record):
    role: Role
    content: str


class Block(_Record):
    """A rendered chunk of an assistant reply. Paragraphs have one item."""

    kind: BlockKind
    items: tuple[str, ...]


# ─── Spotify payload schemas ─────────────────────────────────────────────────

class _Raw(BaseModel):
    model_config = ConfigDict(extra='ignore')


class RawImage(_Raw):
    url: Optional[str] = None


class RawTracksRef(_Raw):
    total: Optional[int] = None


class RawPlaylist(_Raw):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    images: Optional[list[Optional[RawImage]]] = None
    tracks: Optional[RawTracksRef] = None


class RawPlaylistPage(_Raw):
    items: list[Optional[RawPlaylist]]
    next: Optional[str] = None
    total: Optional[int] = None


class RawArtist(_Raw):
    name: Optional[str] = None


class RawAlbum(_Raw):
    name: Optional[str] = None


class RawTrack(_Raw):
    id: Optional[str] = None
    name: Optional[str] = None
    artists: Optional[list[Optional[RawArtist]]] = None
    album: Optional[RawAlbum] = None


class RawTrackItem(_Raw):
    track: Optional[RawTrack] = None


class RawTrackPage(_Raw):
    # entries are validated one by one so a bad one cannot sink the page
    items: list[Any]
    next: Optional[str] = None
    total: Optional[int] = None


class RawAudioFeatures(_Raw):
    id: str
    tempo: Optional[float] = None
    key: Optional[int] = None
    mode: Optional[int] = None
    energy: Optional[float] = None
    danceability: Optional[float] = None


class RawUser(_Raw):
    id: str
    display_name: Optional[str] = None
    images: Optional[list[Optional[RawImage]]] = None
