"""
Configuration manager for AI DJ.
Handles loading/saving API keys and preferences to a local config.json file.
"""

import os
import json

from dotenv import load_dotenv

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

load_dotenv(os.path.join(_PROJECT_ROOT, '.env'))


# Environment variables win over config.json so secrets can stay out of it.
ENV_MAP = {
    'spotify_client_id': 'SPOTIFY_CLIENT_ID',
    'spotify_client_secret': 'SPOTIFY_CLIENT_SECRET',
    'spotify_redirect_uri': 'SPOTIFY_REDIRECT_URI',
    'gemini_api_key': 'GEMINI_API_KEY',
    'openai_api_key': 'OPENAI_API_KEY',
    'preferred_model': 'AI_DJ_MODEL',
    'request_timeout': 'REQUEST_TIMEOUT',
    'include_audio_features': 'INCLUDE_AUDIO_FEATURES',
    'max_conversations': 'MAX_CONVERSATIONS',
    'conversation_idle_timeout': 'CONVERSATION_IDLE_TIMEOUT',
    'flask_secret_key': 'FLASK_SECRET_KEY',
}

DEFAULTS = {
    'spotify_redirect_uri': 'http://127.0.0.1:5000/callback',
    'preferred_model': 'gemini-2.5-flash',
    'request_timeout': 30,
    'include_audio_features': False,
    'max_conversations': 100,
    'conversation_idle_timeout': 3600,
}

CONFIG_FILE = os.path.join(_PROJECT_ROOT, 'config.json')


def load_config():
    """Load configuration from config.json."""
    if os.path.exists(CONFIG_FILE):
        try:
            with open(CONFIG_FILE, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            return {}
    return {}


def save_config(config):
    """Save configuration to config.json."""
    with open(CONFIG_FILE, 'w') as f:
        json.dump(config, f, indent=2)


def get_config_value(key, default=None):
    """Get a single config value."""
    env_key = ENV_MAP.get(key)
    if env_key and os.environ.get(env_key):
        return os.environ.get(env_key)
    if default is None:
        default = DEFAULTS.get(key)
    return load_config().get(key, default)


def get_timeout():
    """Request timeout in seconds for Spotify and the AI providers."""
    return get_number('request_timeout')


def get_number(key):
    """Numeric setting, falling back to its default when unparseable."""
    try:
        return float(get_config_value(key))
    except (TypeError, ValueError):
        return float(DEFAULTS[key])


def parse_flag(value):
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def get_flag(key):
    return parse_flag(get_config_value(key))


def is_configured():
    """Spotify credentials are required; AI keys are checked when generating."""
    return bool(get_config_value('spotify_client_id')
                and get_config_value('spotify_client_secret'))
