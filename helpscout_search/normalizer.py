"""
Content Normalizer - Turns raw message markup into readable plain text

Bodies go through three stages:
  A. inline images are replaced by numbered placeholders (tracking pixels are dropped)
  B. markup is stripped to text, cutting quoted reply containers
  C. plain-text quoted/forwarded history is cut behind a notice

Each stage is idempotent and maps empty input to empty output.
"""

import re
import logging
from typing import Dict, List, Optional, Tuple

from helpscout_search.models import InlineImage, NormalizedBody, NormalizerConfig


logger = logging.getLogger(__name__)

# Quote detection thresholds
MIN_MARKUP_BEFORE_QUOTE = 50
MIN_RETAINED_CHARS = 10
MIN_REMOVED_CHARS = 100
HEADER_LOOKAHEAD_LINES = 8

QUOTE_NOTICE = '[Quoted/forwarded content removed - {} chars]'

# === Stage A patterns ===

IMG_TAG = re.compile(r'<img\b[^>]*>', re.IGNORECASE)
TAG_ATTRIBUTE = re.compile(
    r'''([^\s"'<>/=]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))'''
)
PIXEL_DIMENSION = re.compile(r'^\s*(\d+)(?:px)?\s*$', re.IGNORECASE)
FETCHABLE_SCHEMES = ('http://', 'https://')

# === Stage B patterns ===

HTML_QUOTE_PATTERNS = (
    re.compile(r'<blockquote[^>]*>', re.IGNORECASE),
    re.compile(r'<div\s[^>]*class="[^"]*gmail_quote[^"]*"[^>]*>', re.IGNORECASE),
    re.compile(r'<div\s[^>]*id="appendonsend"[^>]*>', re.IGNORECASE),
    re.compile(r'<div\s[^>]*class="[^"]*yahoo_quoted[^"]*"[^>]*>', re.IGNORECASE),
)
LINE_BREAK = re.compile(r'<br\s*/?>', re.IGNORECASE)
BLOCK_CLOSE = re.compile(r'</(p|div|li|tr|h[1-6])>', re.IGNORECASE)
ANY_TAG = re.compile(r'<[^>]+>')
HTML_ENTITIES = {
    '&amp;': '&',
    '&lt;': '<',
    '&gt;': '>',
    '&quot;': '"',
    '&#39;': "'",
    '&apos;': "'",
    '&nbsp;': ' ',
}
ENTITY = re.compile('|'.join(re.escape(entity) for entity in HTML_ENTITIES))
HORIZONTAL_SPACE = re.compile(r'[ \t]+')
EXCESS_NEWLINES = re.compile(r'\n{3,}')

# === Stage C patterns ===

FORWARD_DELIMITERS = (
    re.compile(r'^-{3,}\s*(Forwarded message|Original Message)\s*-{3,}$', re.IGNORECASE),
    re.compile(r'^Begin forwarded message:\s*$', re.IGNORECASE),
)
REPLY_HEADERS = (
    re.compile(r'^On\s+.{10,100}\s+wrote:\s*$'),
    re.compile(r'^Am\s+.{10,100}\s+schrieb\s+.+:\s*$'),
    re.compile(r'^Le\s+.{10,100}\s+a\s+.+crit\s*:\s*$', re.IGNORECASE),
)
HEADER_FROM = re.compile(r'^(From|Von|De|Da|Di):\s+.+')
HEADER_DATE = re.compile(r'^(Date|Datum|Fecha|Data):\s+.+')


# === Stage A: inline images ===

def _parse_attributes(tag: str) -> Dict[str, str]:
    attributes: Dict[str, str] = {}
    # Skip the element name so "<img" is never read as an attribute
    for match in TAG_ATTRIBUTE.finditer(tag[4:]):
        name = match.group(1).lower()
        if name in attributes:
            continue
        value = next((group for group in match.groups()[1:] if group is not None), '')
        attributes[name] = value
    return attributes


def _parse_dimension(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    match = PIXEL_DIMENSION.match(value)
    return int(match.group(1)) if match else None


def extract_inline_images(html: str) -> Tuple[str, List[InlineImage]]:
    """Replace <img> elements with numbered placeholders, dropping 1x1 tracking pixels"""
    if not html:
        return '', []

    images: List[InlineImage] = []

    def replace(match: 're.Match') -> str:
        attributes = _parse_attributes(match.group(0))
        width = _parse_dimension(attributes.get('width'))
        height = _parse_dimension(attributes.get('height'))

        if width == 1 and height == 1:
            return ''

        src = attributes.get('src', '')
        image = InlineImage(
            index=len(images) + 1,
            src=src,
            alt=attributes.get('alt', ''),
            width=width,
            height=height,
            is_fetchable=src.lower().startswith(FETCHABLE_SCHEMES)
        )
        images.append(image)
        return image.placeholder

    markup = IMG_TAG.sub(replace, html)
    return markup, images


# === Stage B: markup to text ===

def truncate_html_quote(html: str) -> str:
    """Cut everything from the first quoted-reply container onward"""
    if not html:
        return ''
    for pattern in HTML_QUOTE_PATTERNS:
        match = pattern.search(html)
        # A container at the very start is usually a false match, not real history
        if match and match.start() >= MIN_MARKUP_BEFORE_QUOTE:
            return html[:match.start()]
    return html


def _strip_html_once(html: str, max_length: Optional[int]) -> str:
    text = truncate_html_quote(html)
    text = text.replace('\r\n', '\n')
    text = LINE_BREAK.sub('\n', text)
    text = BLOCK_CLOSE.sub('\n', text)
    text = ANY_TAG.sub('', text)
    text = ENTITY.sub(lambda match: HTML_ENTITIES[match.group(0)], text)
    text = HORIZONTAL_SPACE.sub(' ', text)
    text = EXCESS_NEWLINES.sub('\n\n', text)
    text = text.strip()
    return text[:max_length] if max_length else text


def strip_html(html: str, max_length: Optional[int] = None) -> str:
    """Convert markup to plain text, optionally hard-capped at max_length"""
    if not html:
        return ''

    text = _strip_html_once(html, max_length)
    # Decoded entities can spell out new tags, so repeat until the text settles.
    # Every pass that changes the text makes it shorter (or swaps tabs for spaces).
    while True:
        settled = _strip_html_once(text, max_length)
        if settled == text:
            return text
        text = settled


# === Stage C: quoted plain text ===

def _is_header_block(lines: List[str], index: int) -> bool:
    if not HEADER_FROM.match(lines[index]):
        return False
    window = lines[index + 1:index + 1 + HEADER_LOOKAHEAD_LINES]
    return any(HEADER_DATE.match(line) for line in window)


def find_quote_boundary(lines: List[str]) -> Optional[int]:
    """Index of the first line that starts quoted or forwarded content"""
    stripped = [line.strip() for line in lines]
    for index, line in enumerate(stripped):
        if any(pattern.match(line) for pattern in FORWARD_DELIMITERS):
            return index
        if any(pattern.match(line) for pattern in REPLY_HEADERS):
            return index
        if _is_header_block(stripped, index):
            return index
    return None


def strip_quoted_content(text: str) -> str:
    """Remove trailing quoted/forwarded history from plain text"""
    if not text:
        return ''

    lines = text.split('\n')
    cut_index = find_quote_boundary(lines)
    if cut_index is None:
        return text

    kept = '\n'.join(lines[:cut_index]).strip()
    removed = '\n'.join(lines[cut_index:])

    if len(kept) < MIN_RETAINED_CHARS or len(removed) < MIN_REMOVED_CHARS:
        logger.debug(
            f"Quote boundary at line {cut_index} ignored "
            f"(kept {len(kept)} chars, would remove {len(removed)})"
        )
        return text

    return f'{kept}\n\n{QUOTE_NOTICE.format(len(removed))}'


# === Pipeline ===

class ContentNormalizer:
    """Runs every message body through the three normalization stages"""

    def __init__(self, config: Optional[NormalizerConfig] = None):
        self.config = config or NormalizerConfig()

    def normalize(self, body: Optional[str]) -> NormalizedBody:
        if not body:
            return NormalizedBody(text='', images=())

        markup, images = extract_inline_images(body)
        text = strip_html(markup, self.config.max_body_length or None)
        text = strip_quoted_content(text)

        return NormalizedBody(text=text, images=tuple(images))
