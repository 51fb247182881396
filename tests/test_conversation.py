import pytest

from ai_dj.conversation import Conversation, ConversationRegistry, Status
from ai_dj.errors import AuthError, ConfigError, EmptyResponseError, TransportError
from ai_dj.models import AudioFeatures


@pytest.fixture
def conversation(catalog, fake_ai):
    return Conversation(catalog, fake_ai, model='gemini-2.5-flash')


@pytest.fixture
def ready(conversation, credential):
    conversation.load_playlists(credential)
    assert conversation.select_playlist('pl-1')
    return conversation


class TestPlaylists:
    def test_starts_idle(self, conversation):
        assert conversation.status is Status.IDLE
        assert conversation.messages == []
        assert not conversation.pending

    def test_load_success(self, conversation, catalog, credential):
        assert conversation.load_playlists(credential)

        assert conversation.status is Status.READY
        assert [p.id for p in conversation.playlists] == ['pl-1', 'pl-2']
        assert conversation.selected_playlist_id is None
        assert catalog.calls == [('list_playlists', credential)]

    def test_load_without_credential_is_not_attempted(self, conversation, catalog):
        assert not conversation.load_playlists(None)
        assert conversation.status is Status.IDLE
        assert catalog.calls == []

    def test_truncated_listing_is_reported(self, conversation, catalog, credential):
        catalog.has_more = True
        conversation.load_playlists(credential)
        assert conversation.snapshot()['playlists_truncated'] is True

    def test_load_failure_is_kept_out_of_the_chat(self, conversation, catalog,
                                                  credential):
        catalog.playlists_error = TransportError('Failed to fetch playlists: boom')

        conversation.load_playlists(credential)

        assert conversation.status is Status.ERROR
        assert conversation.playlists == ()
        assert conversation.playlists_error == (
            'Failed to load playlists: Failed to fetch playlists: boom')
        assert conversation.messages == []
        assert not conversation.needs_reauth

    def test_auth_failure_blocks_selection_until_reload(self, conversation,
                                                        catalog, credential):
        catalog.playlists_error = AuthError('Spotify rejected the session token')
        conversation.load_playlists(credential)

        assert conversation.needs_reauth
        assert not conversation.select_playlist('pl-1')

        catalog.playlists_error = None
        conversation.load_playlists(credential)
        assert not conversation.needs_reauth
        assert conversation.select_playlist('pl-1')

    def test_reload_keeps_selection_that_still_exists(self, ready, catalog,
                                                      credential):
        ready.load_playlists(credential)
        assert ready.selected_playlist_id == 'pl-1'

        catalog.playlists = catalog.playlists[1:]
        ready.load_playlists(credential)
        assert ready.selected_playlist_id is None

    def test_select_requires_loaded_playlist(self, conversation, catalog,
                                             credential):
        assert not conversation.select_playlist('pl-1')
        conversation.load_playlists(credential)
        assert not conversation.select_playlist('does-not-exist')
        assert conversation.select_playlist('pl-2')
        assert conversation.selected_playlist_id == 'pl-2'
        # selection alone never reaches the catalog
        assert catalog.calls == [('list_playlists', credential)]


class TestSubmit:
    def test_success_appends_user_then_assistant(self, ready, catalog, fake_ai,
                                                 credential):
        assert ready.submit('make it lofi', credential)

        assert [m.role for m in ready.messages] == ['user', 'assistant']
        assert ready.messages[0].content == 'make it lofi'
        assert ready.messages[1].content == fake_ai.reply
        assert ready.status is Status.READY
        assert ready.error is None

        prompt, model = fake_ai.prompts[0]
        assert 'make it lofi' in prompt
        assert 'Song A' in prompt and 'Song B' in prompt
        assert model == 'gemini-2.5-flash'
        assert catalog.calls[1:] == [
            ('list_tracks', credential, 'pl-1'),
            ('generate', 'gemini-2.5-flash'),
        ]

    @pytest.mark.parametrize('text', ['', '   ', '\n\t', None])
    def test_blank_text_is_a_noop(self, ready, catalog, credential, text):
        assert not ready.submit(text, credential)
        assert ready.messages == []
        assert ready.status is Status.READY
        assert len(catalog.calls) == 1

    def test_no_selection_is_a_noop(self, conversation, catalog, credential):
        conversation.load_playlists(credential)
        assert not conversation.submit('make it lofi', credential)
        assert conversation.messages == []
        assert len(catalog.calls) == 1

    def test_no_credential_is_a_noop(self, ready, catalog):
        assert not ready.submit('make it lofi', None)
        assert ready.messages == []
        assert len(catalog.calls) == 1

    def test_second_submission_while_pending_is_rejected(self, ready, fake_ai,
                                                         credential):
        seen = []

        def resubmit():
            seen.append(ready.status)
            seen.append(ready.submit('again', credential))
            seen.append(len(ready.messages))

        fake_ai.on_generate = resubmit
        assert ready.submit('make it lofi', credential)

        assert seen == [Status.SUBMITTING, False, 1]
        assert len(ready.messages) == 2
        assert len(fake_ai.prompts) == 1

    def test_selection_is_refused_while_pending(self, ready, fake_ai, credential):
        seen = []
        fake_ai.on_generate = lambda: seen.append(ready.select_playlist('pl-2'))

        ready.submit('make it lofi', credential)

        assert seen == [False]
        assert ready.selected_playlist_id == 'pl-1'

    def test_track_failure_becomes_apology(self, ready, catalog, fake_ai,
                                           credential):
        catalog.tracks_error = TransportError(
            'Failed to fetch playlist tracks: Service unavailable')

        assert ready.submit('make it lofi', credential)

        assert len(ready.messages) == 2
        assert ready.messages[1].role == 'assistant'
        assert ready.messages[1].content == (
            'I apologize, but I encountered an error: Failed to fetch playlist '
            'tracks: Service unavailable. Please try again or rephrase your '
            'request.')
        assert ready.error == ('Failed to process your request: Failed to '
                               'fetch playlist tracks: Service unavailable')
        assert ready.status is Status.READY
        assert fake_ai.prompts == []

    @pytest.mark.parametrize('error', [
        ConfigError('Gemini API key is not configured'),
        EmptyResponseError('Empty response from Gemini API'),
    ])
    def test_generation_failure_becomes_apology(self, ready, fake_ai,
                                                credential, error):
        fake_ai.error = error

        ready.submit('make it lofi', credential)

        assert len(ready.messages) == 2
        assert error.message in ready.messages[1].content
        assert ready.status is Status.READY
        assert not ready.needs_reauth

    def test_unexpected_failure_still_settles(self, ready, fake_ai, credential):
        fake_ai.error = KeyError('candidates')

        ready.submit('make it lofi', credential)

        assert len(ready.messages) == 2
        assert ready.messages[1].content.startswith(
            'I apologize, but I encountered an error:')
        assert ready.status is Status.READY

    def test_auth_failure_requires_sign_in(self, ready, catalog, credential):
        catalog.tracks_error = AuthError('Spotify rejected the session token')

        ready.submit('make it lofi', credential)

        assert len(ready.messages) == 2
        assert ready.needs_reauth
        assert not ready.submit('try again', credential)
        assert not ready.select_playlist('pl-2')
        assert len(ready.messages) == 2

    def test_success_clears_previous_error(self, ready, fake_ai, credential):
        fake_ai.error = EmptyResponseError('Empty response from Gemini API')
        ready.submit('make it lofi', credential)
        assert ready.error

        fake_ai.error = None
        ready.submit('make it lofi', credential)
        assert ready.error is None
        assert len(ready.messages) == 4


class TestAudioFeatures:
    def test_features_are_added_to_the_prompt(self, catalog, fake_ai, credential):
        catalog.features = {'t1': AudioFeatures(tempo=121.5, key=7)}
        conversation = Conversation(catalog, fake_ai, include_audio_features=True)
        conversation.load_playlists(credential)
        conversation.select_playlist('pl-1')

        conversation.submit('make it house', credential)

        prompt, _ = fake_ai.prompts[0]
        assert '"tempo": 121.5' in prompt
        assert ('audio_features', credential, ['t1', 't2']) in catalog.calls

    def test_unavailable_features_do_not_fail_the_request(self, catalog, fake_ai,
                                                          credential):
        catalog.features_error = TransportError('Failed to fetch audio features')
        conversation = Conversation(catalog, fake_ai, include_audio_features=True)
        conversation.load_playlists(credential)
        conversation.select_playlist('pl-1')

        conversation.submit('make it house', credential)

        assert conversation.messages[1].content == fake_ai.reply
        assert conversation.error is None

    def test_features_are_not_requested_by_default(self, ready, catalog,
                                                   credential):
        ready.submit('make it lofi', credential)
        assert not any(c[0] == 'audio_features' for c in catalog.calls)


class TestSnapshot:
    def test_assistant_messages_are_rendered(self, ready, fake_ai, credential):
        fake_ai.reply = 'Intro <b>\n\n- one\n- two'
        ready.submit('make it lofi', credential)

        snap = ready.snapshot()

        assert snap['status'] == 'ready'
        assert snap['selected_playlist_id'] == 'pl-1'
        assert snap['playlists'][0] == {
            'id': 'pl-1', 'name': 'Road Trip',
            'images': ['https://i.scdn.co/a.jpg'], 'track_count': None}
        user, assistant = snap['messages']
        assert user == {'role': 'user', 'content': 'make it lofi'}
        assert assistant['blocks'] == [
            {'kind': 'paragraph', 'items': ['Intro <b>']},
            {'kind': 'bullet_list', 'items': ['one', 'two']},
        ]
        assert '<b>' not in assistant['html']
        assert '&lt;b&gt;' in assistant['html']


class TestRegistry:
    def test_start_get_discard(self, catalog, fake_ai):
        registry = ConversationRegistry(lambda: Conversation(catalog, fake_ai))

        key, conversation = registry.start()
        assert registry.get(key) is conversation
        assert len(registry) == 1

        registry.discard(key)
        assert registry.get(key) is None
        assert len(registry) == 0

    def test_start_replaces_existing_conversation(self, catalog, fake_ai):
        registry = ConversationRegistry(lambda: Conversation(catalog, fake_ai))
        key, first = registry.start()

        same_key, second = registry.start(key)

        assert same_key == key
        assert second is not first
        assert registry.get(key) is second
        assert len(registry) == 1

    def test_missing_key(self, catalog, fake_ai):
        registry = ConversationRegistry(lambda: Conversation(catalog, fake_ai))
        assert registry.get(None) is None
        registry.discard(None)

    def test_full_registry_evicts_least_recently_used(self, catalog, fake_ai):
        registry = ConversationRegistry(
            lambda: Conversation(catalog, fake_ai), max_size=3)
        keys = [registry.start()[0] for _ in range(3)]
        registry.get(keys[0])

        for _ in range(10):
            registry.start()

        assert len(registry) == 3
        assert registry.get(keys[1]) is None

    def test_recently_used_conversation_survives(self, catalog, fake_ai):
        registry = ConversationRegistry(
            lambda: Conversation(catalog, fake_ai), max_size=2)
        first, conversation = registry.start()
        second, _ = registry.start()

        registry.get(first)
        registry.start()

        assert registry.get(first) is conversation
        assert registry.get(second) is None

    def test_idle_conversations_expire(self, catalog, fake_ai):
        now = [1000.0]
        registry = ConversationRegistry(
            lambda: Conversation(catalog, fake_ai), max_idle=60,
            clock=lambda: now[0])
        stale, _ = registry.start()
        now[0] += 30
        fresh, conversation = registry.start()

        now[0] += 45
        assert registry.get(stale) is None
        assert registry.get(fresh) is conversation
        assert len(registry) == 1

        now[0] += 61
        assert registry.get(fresh) is None
        assert len(registry) == 0
