"""
Spotify sign-in for one browser session.

Token info lives in the signed Flask session cookie (spotipy's
FlaskSessionCacheHandler) and nowhere else, so it is gone when the session
ends. Refreshing an expired token is left to spotipy.
"""

import logging

import requests
from spotipy.cache_handler import FlaskSessionCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from .errors import AuthError
from .models import Credential

log = logging.getLogger(__name__)

SCOPE = (
    'playlist-read-private '
    'playlist-read-collaborative '
    'user-read-email '
    'user-read-private'
)

TOKEN_KEY = 'token_info'


class SessionTokenProvider:
    """Issues and reads the Spotify credential of one browser session."""

    def __init__(self, client_id, client_secret, redirect_uri, session,
                 requests_timeout=30):
        self.session = session
        self.cache_handler = FlaskSessionCacheHandler(session)
        self.auth_manager = SpotifyOAuth(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scope=SCOPE,
            cache_handler=self.cache_handler,
            requests_timeout=requests_timeout,
            show_dialog=True,
            open_browser=False,
        )

    def authorize_url(self):
        """Get the Spotify authorization URL."""
        return self.auth_manager.get_authorize_url()

    def complete_sign_in(self, code):
        """Exchange the authorization code for a token and keep it in the session."""
        try:
            token_info = self.auth_manager.get_access_token(
                code, as_dict=True, check_cache=False)
        except (SpotifyOauthError, requests.RequestException) as e:
            raise AuthError(f'Spotify sign-in failed: {e}') from e
        if not token_info or not token_info.get('access_token'):
            raise AuthError('Spotify sign-in returned no access token')
        return self._credential(token_info)

    def current_token(self):
        """The session's credential, refreshed if needed, or None."""
        try:
            token_info = self.auth_manager.validate_token(
                self.cache_handler.get_cached_token())
        except (SpotifyOauthError, requests.RequestException) as e:
            log.warning(f'Spotify token refresh failed: {e}')
            return None
        if not token_info or not token_info.get('access_token'):
            return None
        return self._credential(token_info)

    def sign_out(self):
        """Drop the token from the session."""
        self.session.pop(TOKEN_KEY, None)

    @staticmethod
    def _credential(token_info):
        return Credential(access_token=token_info['access_token'],
                          expires_at=token_info.get('expires_at'))
