"""
Turns an assistant reply into display blocks.

Replies are plain text with loose markdown: blank lines separate blocks,
"- " starts bullet items and "1." starts numbered items. Nothing in the text
is ever treated as markup; to_html escapes every item before the only
transformation it applies (**bold**).
"""

import re

from markupsafe import Markup, escape

from .models import Block

_BLANK_LINE = re.compile(r'\n[ \t]*\n')
_NUMBERED = re.compile(r'^\d+\.')
_NUMBER_MARKER = re.compile(r'^\d+\.\s*')
_BOLD = re.compile(r'\*\*(.+?)\*\*')

BULLET = '- '


def render(text):
    """Split text into paragraph, bullet_list and ordered_list blocks."""
    blocks = []
    normalized = (text or '').replace('\r\n', '\n')
    for section in _BLANK_LINE.split(normalized):
        section = section.strip('\n')
        if not section.strip():
            continue
        lines = section.split('\n')
        if all(line.startswith(BULLET) for line in lines):
            items = tuple(line[len(BULLET):] for line in lines)
            blocks.append(Block(kind='bullet_list', items=items))
        elif _NUMBERED.match(lines[0]):
            items = tuple(_NUMBER_MARKER.sub('', line, count=1)
                          for line in lines)
            blocks.append(Block(kind='ordered_list', items=items))
        else:
            blocks.append(Block(kind='paragraph', items=(section,)))
    return blocks


def _inline(item):
    return Markup(_BOLD.sub(r'<strong>\1</strong>', str(escape(item))))


def to_html(blocks):
    """Safe HTML for rendered blocks."""
    parts = []
    for block in blocks:
        if block.kind == 'paragraph':
            text = Markup('<br>').join(
                _inline(line) for line in block.items[0].split('\n'))
            parts.append(Markup('<p>%s</p>') % text)
        else:
            tag = 'ul' if block.kind == 'bullet_list' else 'ol'
            items = Markup('').join(
                Markup('<li>%s</li>') % _inline(i) for i in block.items)
            parts.append(Markup('<%s>%s</%s>') % (Markup(tag), items,
                                                   Markup(tag)))
    return Markup('').join(parts)
