"""
AI Client — text generation for remix suggestions.

Gemini  → google-genai SDK   (default provider)
OpenAI  → Responses API

The provider is picked from the model id. A provider without an API key has
no SDK client at all, so a missing key is reported as ConfigError before any
request is made.
"""

import logging

import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from openai import OpenAI
from pydantic import ValidationError

from .errors import ConfigError, EmptyResponseError, ProviderError, TransportError

log = logging.getLogger(__name__)

# ─── Available models ────────────────────────────────────────────────────────

GEMINI_MODELS = [
    {
        'id': 'gemini-2.5-flash',
        'name': 'Gemini 2.5 Flash',
        'provider': 'gemini',
        'description': 'Fast and affordable'
    },
    {
        'id': 'gemini-2.5-pro',
        'name': 'Gemini 2.5 Pro',
        'provider': 'gemini',
        'description': 'Best for long playlists'
    },
    {
        'id': 'gemini-3-flash-preview',
        'name': 'Gemini 3 Flash',
        'provider': 'gemini',
        'description': 'Fast & efficient with built-in thinking'
    },
]

OPENAI_MODELS = [
    {
        'id': 'gpt-5-mini',
        'name': 'GPT-5 Mini',
        'provider': 'openai',
        'description': 'Fast, cost-efficient version'
    },
    {
        'id': 'gpt-5-nano',
        'name': 'GPT-5 Nano',
        'provider': 'openai',
        'description': 'Fastest & cheapest variant'
    },
]

DEFAULT_MODEL = 'gemini-2.5-flash'

PROVIDER_NAMES = {'gemini': 'Gemini', 'openai': 'OpenAI'}


class AIClient:
    """Sends one prompt to the configured provider and returns its text."""

    def __init__(self, gemini_api_key=None, openai_api_key=None,
                 default_model=DEFAULT_MODEL, timeout=30):
        self.gemini_client = None
        self.openai_client = None
        self.default_model = default_model or DEFAULT_MODEL

        if gemini_api_key:
            # HttpOptions.timeout is in milliseconds
            self.gemini_client = genai.Client(
                api_key=gemini_api_key,
                http_options=types.HttpOptions(timeout=int(timeout * 1000)),
            )
        if openai_api_key:
            self.openai_client = OpenAI(api_key=openai_api_key,
                                        timeout=timeout)

    # ─── Provider detection ──────────────────────────────────────────────

    def _get_provider(self, model):
        """Determine provider from model ID."""
        if model.startswith('gemini'):
            return 'gemini'
        return 'openai'

    def get_available_models(self):
        """Return models for configured providers only."""
        models = []
        if self.gemini_client:
            models.extend(dict(m) for m in GEMINI_MODELS)
        if self.openai_client:
            models.extend(dict(m) for m in OPENAI_MODELS)
        return models

    # ─── Generation ──────────────────────────────────────────────────────

    def generate(self, prompt, model=None):
        """Generate a plain-text reply for a prompt.

        Raises:
            ConfigError: no API key for the model's provider
            EmptyResponseError: the reply carried no text
            ProviderError: the provider reported an error
            TransportError: the provider could not be reached in time
        """
        model = model or self.default_model
        provider = self._get_provider(model)
        name = PROVIDER_NAMES[provider]

        if provider == 'gemini':
            if not self.gemini_client:
                raise ConfigError('Gemini API key is not configured')
            text = self._call_gemini(prompt, model)
        else:
            if not self.openai_client:
                raise ConfigError('OpenAI API key is not configured')
            text = self._call_openai(prompt, model)

        if not text or not text.strip():
            raise EmptyResponseError(f'Empty response from {name} API')
        return text.strip()

    def _call_gemini(self, prompt, model):
        """Call Google Gemini API using the google-genai SDK."""
        try:
            response = self.gemini_client.models.generate_content(
                model=model, contents=prompt)
        except genai_errors.APIError as e:
            raise ProviderError(
                f'Gemini API error ({e.code}): {e.message or e}') from e
        except httpx.HTTPError as e:
            raise TransportError(f'Could not reach Gemini API: {e}') from e
        except ValidationError as e:
            raise ProviderError('Gemini returned a malformed response') from e

        if not getattr(response, 'candidates', None):
            feedback = getattr(response, 'prompt_feedback', None)
            reason = getattr(feedback, 'block_reason', None)
            if reason:
                raise ProviderError(f'Gemini blocked the request: {reason}')
            raise EmptyResponseError('No response from Gemini API')

        usage = getattr(response, 'usage_metadata', None)
        if usage:
            log.info(f'Token usage: in={usage.prompt_token_count}, '
                     f'out={usage.candidates_token_count}, '
                     f'total={usage.total_token_count}')
        return response.text

    def _call_openai(self, prompt, model):
        """Call OpenAI Responses API."""
        try:
            response = self.openai_client.responses.create(
                model=model, input=prompt)
        except openai.APIConnectionError as e:
            raise TransportError(f'Could not reach OpenAI API: {e}') from e
        except openai.APIStatusError as e:
            raise ProviderError(
                f'OpenAI API error ({e.status_code}): {e.message}') from e
        except openai.APIError as e:
            raise ProviderError(f'OpenAI API error: {e.message}') from e

        usage = getattr(response, 'usage', None)
        if usage:
            log.info(f'Token usage: in={usage.input_tokens}, '
                     f'out={usage.output_tokens}, '
                     f'total={usage.total_tokens}')
        return response.output_text
