"""
Prompt composition for remix requests.
"""

import json

PROMPT_REMIX = """\
You are an AI DJ, an expert remixer and music producer. The user wants to \
{request}.

Here are the tracks in their playlist:
{tracks}

Please provide specific suggestions on how to remix or modify these tracks to \
achieve their desired effect. Include specific techniques, effects, tempo or \
key changes, and transitions that would work well with these tracks. \
Use short paragraphs, "- " bullet lists or "1." numbered lists."""

NO_TRACKS = '(the playlist is empty)'


def _track_entry(track):
    entry = {
        'name': track.name,
        'artist': track.artist,
        'album': track.album,
    }
    features = track.features
    if features is not None:
        entry.update(features.model_dump(exclude_none=True))
    return entry


def build_prompt(user_text, tracks):
    """Compose the model instruction from the user's request and the playlist.

    The request text is embedded as-is. Tracks are serialized as a JSON list
    so every name, artist and album appears verbatim.
    """
    if tracks:
        tracks_text = json.dumps([_track_entry(t) for t in tracks],
                                 indent=2, ensure_ascii=False)
    else:
        tracks_text = NO_TRACKS
    return PROMPT_REMIX.format(request=user_text, tracks=tracks_text)
