"""
Conversation state for the remix screen.

One Conversation per browser session: the loaded playlists, the selection,
the message log and the pending/error flags. It drives the catalog client,
the prompt builder and the AI client for each submission and is the only
place where their failures become assistant messages.

    idle ──load──▶ playlists_loading ──ok──▶ ready ◀──────┐
                          │                   │            │
                          └──fail──▶ error    └──submit──▶ submitting
"""

import logging
import threading
import time
import uuid
from collections import OrderedDict
from enum import Enum

from .errors import AuthError, RemixError, TransportError
from .models import ASSISTANT_ROLE, USER_ROLE, Message
from .prompt_builder import build_prompt
from .renderer import render, to_html

log = logging.getLogger(__name__)

APOLOGY = ('I apologize, but I encountered an error: {error}. '
           'Please try again or rephrase your request.')
FAILURE = 'Failed to process your request: {error}'
PLAYLISTS_FAILURE = 'Failed to load playlists: {error}'


class Status(str, Enum):
    IDLE = 'idle'
    PLAYLISTS_LOADING = 'playlists_loading'
    READY = 'ready'
    SUBMITTING = 'submitting'
    ERROR = 'error'


class Conversation:
    def __init__(self, catalog, ai, model=None, include_audio_features=False):
        self.catalog = catalog
        self.ai = ai
        self.model = model
        self.include_audio_features = include_audio_features

        self.status = Status.IDLE
        self.playlists = ()
        self.playlists_truncated = False
        self.playlists_error = None
        self.selected_playlist_id = None
        self.messages = []
        self.error = None
        self.needs_reauth = False
        # Guards state transitions only; network calls run outside it.
        self._lock = threading.Lock()

    @property
    def pending(self):
        return self.status is Status.SUBMITTING

    # ─── Playlists ────────────────────────────────────────────────────────

    def load_playlists(self, credential):
        """Fetch the user's playlists. Returns False if the load was not started."""
        if credential is None:
            return False
        with self._lock:
            if self.status in (Status.PLAYLISTS_LOADING, Status.SUBMITTING):
                return False
            self.status = Status.PLAYLISTS_LOADING
            self.playlists_error = None

        try:
            page = self.catalog.list_playlists(credential)
        except RemixError as e:
            log.error(f'Failed to load playlists: {e}')
            self._playlists_failed(e.message, auth=isinstance(e, AuthError))
        except Exception as e:
            log.exception('Unexpected failure while loading playlists')
            self._playlists_failed(str(e) or type(e).__name__)
        else:
            with self._lock:
                self.playlists = page.items
                self.playlists_truncated = page.has_more
                self.needs_reauth = False
                if self.selected_playlist_id not in self._playlist_ids():
                    self.selected_playlist_id = None
                self.status = Status.READY
        return True

    def _playlists_failed(self, error, auth=False):
        with self._lock:
            self.playlists = ()
            self.playlists_truncated = False
            self.selected_playlist_id = None
            self.playlists_error = PLAYLISTS_FAILURE.format(
                error=error.rstrip('.'))
            if auth:
                self.needs_reauth = True
            self.status = Status.ERROR

    def _playlist_ids(self):
        return {p.id for p in self.playlists}

    def select_playlist(self, playlist_id):
        """Select one of the loaded playlists. No network call is made."""
        with self._lock:
            if self.needs_reauth or self.status is not Status.READY:
                return False
            if playlist_id not in self._playlist_ids():
                return False
            self.selected_playlist_id = playlist_id
            return True

    # ─── Submissions ──────────────────────────────────────────────────────

    def submit(self, text, credential):
        """
        Ask for remix suggestions for the selected playlist.

        Returns False without touching any state when the request cannot be
        made: blank text, no selection, no credential, or a submission
        already in flight. Otherwise appends the user message, runs the
        request to completion and appends exactly one assistant message.
        """
        text = text or ''
        with self._lock:
            if (not text.strip() or credential is None or self.needs_reauth
                    or self.status is not Status.READY
                    or not self.selected_playlist_id):
                return False
            playlist_id = self.selected_playlist_id
            self.messages.append(Message(role=USER_ROLE, content=text))
            self.status = Status.SUBMITTING
            self.error = None

        try:
            reply = self._remix(text, playlist_id, credential)
        except RemixError as e:
            log.error(f'Remix request failed: {e}')
            self._finish(error=e.message, auth=isinstance(e, AuthError))
        except Exception as e:
            log.exception('Unexpected failure while processing remix request')
            self._finish(error=str(e) or type(e).__name__)
        else:
            self._finish(reply=reply)
        return True

    def _remix(self, text, playlist_id, credential):
        tracks = self.catalog.list_tracks(credential, playlist_id)
        if self.include_audio_features:
            tracks = self._with_audio_features(credential, tracks)
        prompt = build_prompt(text, tracks)
        log.info(f'Requesting remix suggestions for playlist {playlist_id} '
                 f'({len(tracks)} tracks)')
        return self.ai.generate(prompt, model=self.model)

    def _with_audio_features(self, credential, tracks):
        try:
            features = self.catalog.audio_features(
                credential, [t.id for t in tracks])
        except TransportError as e:
            log.warning(f'Audio features unavailable, continuing without: {e}')
            return tracks
        return [t.with_features(features[t.id]) if t.id in features else t
                for t in tracks]

    def _finish(self, reply=None, error=None, auth=False):
        with self._lock:
            if error is None:
                self.messages.append(
                    Message(role=ASSISTANT_ROLE, content=reply))
                self.error = None
            else:
                error = error.rstrip('.')
                self.messages.append(Message(
                    role=ASSISTANT_ROLE, content=APOLOGY.format(error=error)))
                self.error = FAILURE.format(error=error)
                if auth:
                    self.needs_reauth = True
            self.status = Status.READY

    # ─── View ─────────────────────────────────────────────────────────────

    def snapshot(self):
        """JSON-ready view of the conversation for the page."""
        with self._lock:
            return {
                'status': self.status.value,
                'pending': self.pending,
                'playlists': [p.model_dump(mode='json')
                              for p in self.playlists],
                'playlists_truncated': self.playlists_truncated,
                'playlists_error': self.playlists_error,
                'selected_playlist_id': self.selected_playlist_id,
                'messages': [_message_view(m) for m in self.messages],
                'error': self.error,
                'needs_reauth': self.needs_reauth,
            }


def _message_view(message):
    view = {'role': message.role, 'content': message.content}
    if message.role == ASSISTANT_ROLE:
        blocks = render(message.content)
        view['blocks'] = [b.model_dump(mode='json') for b in blocks]
        view['html'] = str(to_html(blocks))
    return view


class ConversationRegistry:
    """Owns the live Conversation of each browser session.

    Holds at most ``max_size`` conversations and forgets any that has not
    been touched for ``max_idle`` seconds. When full, the least recently
    used conversation is evicted. A session whose conversation was dropped
    gets a 404 and starts a new one.
    """

    def __init__(self, factory, max_size=100, max_idle=3600,
                 clock=time.monotonic):
        self._factory = factory
        self._max_size = max(1, int(max_size))
        self._max_idle = max_idle
        self._clock = clock
        self._conversations = OrderedDict()
        self._lock = threading.Lock()

    def start(self, key=None):
        """Create a fresh conversation, replacing any previous one for key."""
        key = key or uuid.uuid4().hex
        conversation = self._factory()
        with self._lock:
            now = self._clock()
            self._conversations.pop(key, None)
            self._sweep(now)
            while len(self._conversations) >= self._max_size:
                evicted, _ = self._conversations.popitem(last=False)
                log.info('Evicted conversation %s, registry is full', evicted)
            self._conversations[key] = (conversation, now)
        return key, conversation

    def get(self, key):
        if not key:
            return None
        with self._lock:
            now = self._clock()
            self._sweep(now)
            entry = self._conversations.get(key)
            if entry is None:
                return None
            self._conversations[key] = (entry[0], now)
            self._conversations.move_to_end(key)
            return entry[0]

    def discard(self, key):
        with self._lock:
            self._conversations.pop(key, None)

    def _sweep(self, now):
        # entries are ordered by last use, so the stale ones are at the front
        while self._conversations:
            key, (_, touched) = next(iter(self._conversations.items()))
            if now - touched <= self._max_idle:
                break
            del self._conversations[key]
            log.info('Dropped conversation %s after %.0fs idle', key,
                     now - touched)

    def __len__(self):
        with self._lock:
            return len(self._conversations)
