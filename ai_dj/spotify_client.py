"""
Spotify API client wrapper.
Reads the signed-in user's playlists and a playlist's tracks.

The client holds no session state: every call takes the Credential of the
browser session that made the request.
"""

import logging

import requests
import spotipy
from pydantic import ValidationError
from spotipy import SpotifyException

from .errors import AuthError, MalformedResponseError, TransportError
from .models import (
    AudioFeatures,
    Playlist,
    PlaylistPage,
    RawAudioFeatures,
    RawPlaylistPage,
    RawTrackItem,
    RawTrackPage,
    RawUser,
    Track,
    UserProfile,
)

log = logging.getLogger(__name__)

# Only the first page of each listing is requested.
PLAYLIST_PAGE_SIZE = 50
TRACK_PAGE_SIZE = 100
AUDIO_FEATURES_BATCH = 100

TRACK_FIELDS = 'items(track(id,name,artists(name),album(name))),next,total'


def _error_message(exc):
    """Spotify's {error: {message}} text, without the URL spotipy prepends."""
    msg = exc.msg or ''
    if '\n' in msg:
        msg = msg.split('\n', 1)[1]
    return msg.strip() or 'Unknown error'


def _validate(schema, payload, what):
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        log.error(f'Spotify {what} payload failed validation: {e}')
        raise MalformedResponseError(
            f'Unexpected {what} response from Spotify') from e


class SpotifyClient:
    def __init__(self, requests_timeout=30, market=None):
        self.requests_timeout = requests_timeout
        self.market = market

    def _sp(self, credential):
        if credential is None:
            raise AuthError('Not signed in to Spotify')
        return spotipy.Spotify(auth=credential.access_token,
                               requests_timeout=self.requests_timeout)

    def _call(self, what, fn, *args, **kwargs):
        """Run a spotipy call, converting its failures to our error kinds."""
        try:
            return fn(*args, **kwargs)
        except SpotifyException as e:
            message = _error_message(e)
            if e.http_status == 401:
                raise AuthError(
                    f'Spotify rejected the session token: {message}') from e
            raise TransportError(
                f'Failed to fetch {what}: {message}') from e
        except requests.RequestException as e:
            raise TransportError(f'Failed to fetch {what}: {e}') from e

    # ─── Profile ──────────────────────────────────────────────────────────

    def current_user(self, credential):
        """Get the current user's display name and avatar."""
        payload = self._call('user profile',
                             self._sp(credential).current_user)
        raw = _validate(RawUser, payload, 'user profile')
        images = [i.url for i in raw.images or [] if i and i.url]
        return UserProfile(
            id=raw.id,
            display_name=raw.display_name or raw.id,
            image_url=images[0] if images else None,
        )

    # ─── Playlists ────────────────────────────────────────────────────────

    def list_playlists(self, credential):
        """Get the first page (up to 50) of the current user's playlists."""
        payload = self._call('playlists',
                             self._sp(credential).current_user_playlists,
                             limit=PLAYLIST_PAGE_SIZE)
        page = _validate(RawPlaylistPage, payload, 'playlists')

        playlists = tuple(self._format_playlist(p) for p in page.items if p)
        has_more = bool(page.next)
        if has_more:
            log.warning(f'User has {page.total} playlists, only the first '
                        f'{len(playlists)} are listed')
        return PlaylistPage(items=playlists, has_more=has_more,
                            total=page.total)

    def list_tracks(self, credential, playlist_id):
        """
        Get the first page of a playlist's tracks.
        A removed or unreadable entry becomes an empty Track instead of
        failing the whole listing.
        """
        payload = self._call('playlist tracks',
                             self._sp(credential).playlist_items,
                             playlist_id, fields=TRACK_FIELDS,
                             limit=TRACK_PAGE_SIZE, market=self.market)
        page = _validate(RawTrackPage, payload, 'playlist tracks')

        tracks = []
        for item in page.items:
            try:
                raw = RawTrackItem.model_validate(item) if item else None
            except ValidationError as e:
                log.warning(f'Skipping unreadable entry in {playlist_id}: {e}')
                raw = None
            tracks.append(self._format_track(raw.track if raw else None))

        if page.next:
            log.warning(f'Playlist {playlist_id} has {page.total} tracks, '
                        f'only the first {len(tracks)} are used')
        return tracks

    def audio_features(self, credential, track_ids):
        """Fetch tempo/key/energy for tracks, keyed by track id."""
        ids = [t for t in dict.fromkeys(track_ids) if t]
        if not ids:
            return {}
        sp = self._sp(credential)
        features = {}
        for i in range(0, len(ids), AUDIO_FEATURES_BATCH):
            chunk = ids[i:i + AUDIO_FEATURES_BATCH]
            results = self._call('audio features', sp.audio_features,
                                 chunk) or []
            for entry in results:
                if not entry:
                    continue
                try:
                    raw = RawAudioFeatures.model_validate(entry)
                except ValidationError as e:
                    log.warning(f'Ignoring unreadable audio features: {e}')
                    continue
                features[raw.id] = AudioFeatures(
                    **raw.model_dump(exclude={'id'}))
        return features

    # ─── Formatting ───────────────────────────────────────────────────────

    def _format_playlist(self, p):
        return Playlist(
            id=p.id,
            name=p.name or '',
            images=tuple(i.url for i in p.images or [] if i and i.url),
            track_count=p.tracks.total if p.tracks else None,
        )

    def _format_track(self, t):
        """Format a Spotify track object into our Track record."""
        if t is None:
            return Track()
        artists = [a for a in t.artists or [] if a]
        return Track(
            id=t.id,
            name=t.name,
            artist=artists[0].name if artists else None,
            album=t.album.name if t.album else None,
        )
