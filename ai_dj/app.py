"""
AI DJ — Flask Backend
Serves the page and the JSON API behind it.

The page holds no logic of its own: it renders the conversation snapshot
returned by every /api/conversation call. Each browser session owns one
Conversation (created on activation, dropped on sign-out) and its Spotify
credential lives only in the signed session cookie.
"""

import logging
import os

from flask import Blueprint, Flask, current_app, jsonify, redirect, request, session

from . import config_manager
from .ai_client import AIClient
from .conversation import Conversation, ConversationRegistry
from .errors import AuthError, RemixError
from .session_provider import TOKEN_KEY, SessionTokenProvider
from .spotify_client import SpotifyClient

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

CONVERSATION_KEY = 'conversation_id'

bp = Blueprint('ai_dj', __name__)


class Services:
    """Clients shared by all requests of one app, plus the live conversations."""

    def __init__(self, catalog, ai, token_provider_factory, model=None,
                 include_audio_features=False, max_conversations=100,
                 conversation_idle_timeout=3600):
        self.catalog = catalog
        self.ai = ai
        self.token_provider_factory = token_provider_factory
        self.model = model
        self.include_audio_features = include_audio_features
        self.registry = ConversationRegistry(
            self.new_conversation, max_size=max_conversations,
            max_idle=conversation_idle_timeout)

    def new_conversation(self):
        return Conversation(self.catalog, self.ai, model=self.model,
                            include_audio_features=self.include_audio_features)


def _build_ai(timeout):
    return AIClient(
        gemini_api_key=config_manager.get_config_value('gemini_api_key'),
        openai_api_key=config_manager.get_config_value('openai_api_key'),
        default_model=config_manager.get_config_value('preferred_model'),
        timeout=timeout,
    )


def _session_token_provider(sess):
    """Token provider for the request's session, or None if Spotify is not set up."""
    if not config_manager.is_configured():
        return None
    return SessionTokenProvider(
        client_id=config_manager.get_config_value('spotify_client_id'),
        client_secret=config_manager.get_config_value('spotify_client_secret'),
        redirect_uri=config_manager.get_config_value('spotify_redirect_uri'),
        session=sess,
        requests_timeout=config_manager.get_timeout(),
    )


def init_clients():
    """Initialize Spotify and AI clients from saved config."""
    timeout = config_manager.get_timeout()
    return Services(
        catalog=SpotifyClient(requests_timeout=timeout),
        ai=_build_ai(timeout),
        token_provider_factory=_session_token_provider,
        model=config_manager.get_config_value('preferred_model'),
        include_audio_features=config_manager.get_flag(
            'include_audio_features'),
        max_conversations=int(config_manager.get_number('max_conversations')),
        conversation_idle_timeout=config_manager.get_number(
            'conversation_idle_timeout'),
    )


def create_app(test_config=None, services=None):
    """Application factory."""
    app = Flask(__name__, static_folder='static', static_url_path='')
    app.secret_key = (config_manager.get_config_value('flask_secret_key')
                      or os.urandom(24))
    if test_config:
        app.config.update(test_config)
    app.extensions['ai_dj'] = services or init_clients()
    app.register_blueprint(bp)
    return app


# ─── Request helpers ────────────────────────────────────────────────────────

def _services():
    return current_app.extensions['ai_dj']


def _token_provider():
    return _services().token_provider_factory(session)


def _credential():
    provider = _token_provider()
    return provider.current_token() if provider else None


def _conversation():
    return _services().registry.get(session.get(CONVERSATION_KEY))


def _json_body():
    """The request's JSON object, or an empty dict for anything else."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _snapshot(conversation, status=200):
    return jsonify(conversation.snapshot()), status


def _not_authenticated():
    return jsonify({'error': 'Not authenticated'}), 401


def _no_conversation():
    return jsonify({'error': 'No active conversation'}), 404


# ─── Page, status and auth ──────────────────────────────────────────────────

@bp.route('/')
def index():
    return current_app.send_static_file('index.html')


@bp.route('/api/status')
def api_status():
    """Check if app is configured and user is authenticated."""
    services = _services()
    credential = _credential()
    user = None

    if credential:
        try:
            u = services.catalog.current_user(credential)
            user = {'display_name': u.display_name, 'id': u.id,
                    'image': u.image_url}
        except AuthError as e:
            log.warning(f'Auth check failed: {e}')
            credential = None
        except RemixError as e:
            log.warning(f'Could not load user profile: {e}')

    return jsonify({
        'configured': config_manager.is_configured(),
        'ai_configured': bool(services.ai.get_available_models()),
        'authenticated': credential is not None,
        'user': user,
        'preferred_model': services.model,
    })


@bp.route('/api/auth/login')
def api_login():
    """Get Spotify authorization URL."""
    provider = _token_provider()
    if not provider:
        return jsonify({'error': 'Spotify not configured'}), 400
    return jsonify({'auth_url': provider.authorize_url()})


@bp.route('/callback')
def callback():
    """Handle Spotify OAuth callback."""
    code = request.args.get('code')
    error = request.args.get('error')
    if error:
        return redirect('/?error=auth_denied')
    provider = _token_provider()
    if code and provider:
        try:
            provider.complete_sign_in(code)
        except AuthError as e:
            log.error(f'OAuth callback error: {e}')
            return redirect('/?error=auth_failed')
    return redirect('/')


@bp.route('/api/auth/logout', methods=['POST'])
def api_logout():
    """Forget the Spotify token and the conversation of this session."""
    provider = _token_provider()
    if provider:
        provider.sign_out()
    else:
        session.pop(TOKEN_KEY, None)
    _services().registry.discard(session.pop(CONVERSATION_KEY, None))
    return jsonify({'success': True})


# ─── Settings ───────────────────────────────────────────────────────────────

@bp.route('/api/models')
def api_models():
    """Get available AI models (filtered by configured providers)."""
    services = _services()
    return jsonify({'models': services.ai.get_available_models(),
                    'preferred_model': services.model})


@bp.route('/api/settings', methods=['POST'])
def api_settings():
    """Update app settings (model, keys). Applies to new conversations."""
    data = _json_body()
    config = config_manager.load_config()
    for key in ('preferred_model', 'gemini_api_key', 'openai_api_key',
                'spotify_client_id', 'spotify_client_secret'):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            config[key] = value.strip()
    if 'include_audio_features' in data:
        config['include_audio_features'] = config_manager.parse_flag(
            data['include_audio_features'])
    config_manager.save_config(config)

    services = _services()
    timeout = config_manager.get_timeout()
    services.ai = _build_ai(timeout)
    services.model = config_manager.get_config_value('preferred_model')
    services.include_audio_features = config_manager.get_flag(
        'include_audio_features')
    return jsonify({'success': True})


# ─── Conversation ───────────────────────────────────────────────────────────

@bp.route('/api/conversation', methods=['POST'])
def api_start_conversation():
    """Start a fresh conversation for this session and load playlists."""
    credential = _credential()
    if credential is None:
        return _not_authenticated()
    key, conversation = _services().registry.start(
        session.get(CONVERSATION_KEY))
    session[CONVERSATION_KEY] = key
    conversation.load_playlists(credential)
    return _snapshot(conversation, 401 if conversation.needs_reauth else 200)


@bp.route('/api/conversation')
def api_get_conversation():
    conversation = _conversation()
    if not conversation:
        return _no_conversation()
    return _snapshot(conversation)


@bp.route('/api/conversation/playlists', methods=['POST'])
def api_reload_playlists():
    """Retry loading playlists after a failure."""
    credential = _credential()
    if credential is None:
        return _not_authenticated()
    conversation = _conversation()
    if not conversation:
        return _no_conversation()
    if not conversation.load_playlists(credential):
        return jsonify({'error': 'Request already in progress'}), 409
    return _snapshot(conversation, 401 if conversation.needs_reauth else 200)


@bp.route('/api/conversation/select', methods=['POST'])
def api_select_playlist():
    conversation = _conversation()
    if not conversation:
        return _no_conversation()
    playlist_id = _json_body().get('playlist_id')
    if not isinstance(playlist_id, str):
        return jsonify({'error': 'Unknown playlist'}), 400
    if not conversation.select_playlist(playlist_id):
        if conversation.needs_reauth:
            return _not_authenticated()
        if conversation.pending:
            return jsonify({'error': 'Request already in progress'}), 409
        return jsonify({'error': 'Unknown playlist'}), 400
    return _snapshot(conversation)


@bp.route('/api/conversation/messages', methods=['POST'])
def api_submit_message():
    """Ask for remix suggestions for the selected playlist."""
    credential = _credential()
    if credential is None:
        return _not_authenticated()
    conversation = _conversation()
    if not conversation:
        return _no_conversation()

    text = _json_body().get('message') or ''
    if not isinstance(text, str) or not text.strip():
        return jsonify({'error': 'Message is empty'}), 400
    if not conversation.selected_playlist_id:
        return jsonify({'error': 'Select a playlist first'}), 400
    if conversation.needs_reauth:
        return _not_authenticated()

    if not conversation.submit(text, credential):
        if conversation.pending:
            return jsonify({'error': 'Request already in progress'}), 409
        return jsonify({'error': 'Conversation is not ready'}), 400
    return _snapshot(conversation)
