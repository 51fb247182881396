"""
Shared fakes and fixtures.
"""

import pytest

from ai_dj.models import Credential, Playlist, PlaylistPage, Track, UserProfile


class FakeCatalog:
    """Stands in for SpotifyClient; records calls in order."""

    def __init__(self):
        self.playlists = [
            Playlist(id='pl-1', name='Road Trip', images=('https://i.scdn.co/a.jpg',)),
            Playlist(id='pl-2', name='Focus'),
        ]
        self.has_more = False
        self.tracks = [
            Track(id='t1', name='Song A', artist='Artist X', album='Alb'),
            Track(id='t2', name='Song B', artist='Artist Y', album=None),
        ]
        self.features = {}
        self.playlists_error = None
        self.tracks_error = None
        self.features_error = None
        self.user_error = None
        self.calls = []

    def list_playlists(self, credential):
        self.calls.append(('list_playlists', credential))
        if self.playlists_error:
            raise self.playlists_error
        return PlaylistPage(items=tuple(self.playlists), has_more=self.has_more,
                            total=len(self.playlists))

    def list_tracks(self, credential, playlist_id):
        self.calls.append(('list_tracks', credential, playlist_id))
        if self.tracks_error:
            raise self.tracks_error
        return list(self.tracks)

    def audio_features(self, credential, track_ids):
        self.calls.append(('audio_features', credential, list(track_ids)))
        if self.features_error:
            raise self.features_error
        return dict(self.features)

    def current_user(self, credential):
        self.calls.append(('current_user', credential))
        if self.user_error:
            raise self.user_error
        return UserProfile(id='dj', display_name='DJ Test',
                           image_url='https://i.scdn.co/me.jpg')


class FakeAI:
    """Stands in for AIClient."""

    def __init__(self, catalog=None):
        self.catalog = catalog
        self.reply = '- Slow it down to 75 BPM\n- Add vinyl crackle'
        self.error = None
        self.on_generate = None
        self.prompts = []
        self.models = [{'id': 'gemini-2.5-flash', 'name': 'Gemini 2.5 Flash',
                        'provider': 'gemini', 'description': ''}]

    def generate(self, prompt, model=None):
        self.prompts.append((prompt, model))
        if self.catalog is not None:
            self.catalog.calls.append(('generate', model))
        if self.on_generate:
            self.on_generate()
        if self.error:
            raise self.error
        return self.reply

    def get_available_models(self):
        return list(self.models)


@pytest.fixture
def credential():
    return Credential(access_token='test-token', expires_at=1999999999)


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def fake_ai(catalog):
    return FakeAI(catalog)
