"""
Best-effort article body extraction for classifier context.
"""

from typing import Optional
import logging

import requests
from bs4 import BeautifulSoup, Comment

logger = logging.getLogger(__name__)

USER_AGENT = 'Pena-Betica-Escocesa/1.0'
FETCH_TIMEOUT = 10
MAX_REDIRECTS = 3
MAX_CONTENT_LENGTH = 5000

# Elements that never carry article text
NOISE_TAGS = ['script', 'style', 'noscript', 'nav', 'header', 'footer',
              'aside', 'form', 'iframe', 'svg', 'button']

NOISE_SELECTORS = [
    '[class*="advert"]', '[class*="ads-"]', '[id*="advert"]',
    '[class*="comment"]', '[id*="comment"]',
    '[class*="share"]', '[class*="related"]', '[class*="newsletter"]',
]

# Content containers, most specific first
CONTENT_SELECTORS = [
    'article .entry-content',
    'article .post-content',
    '[itemprop="articleBody"]',
    'article',
    '.entry-content',
    '.post-content',
    '.article-body',
    '.article-content',
    'main',
    '#content',
]


def clean_html(html_content: str) -> BeautifulSoup:
    """Parse HTML and remove non-content elements."""
    soup = BeautifulSoup(html_content, 'lxml')

    for tag in soup(NOISE_TAGS):
        tag.decompose()

    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for selector in NOISE_SELECTORS:
        for tag in soup.select(selector):
            # Never drop the document containers themselves
            if tag.name not in ('html', 'body'):
                tag.decompose()

    return soup


def extract_text(html_content: str) -> Optional[str]:
    """
    Extract the main text of an article page.

    Returns:
        Whitespace-collapsed text truncated to MAX_CONTENT_LENGTH characters
        (with a trailing "..."), or None when nothing usable is found
    """
    soup = clean_html(html_content)

    container = None
    for selector in CONTENT_SELECTORS:
        container = soup.select_one(selector)
        if container is not None and container.get_text(strip=True):
            break
        container = None

    if container is None:
        container = soup.find('body') or soup

    text = ' '.join(container.get_text(' ').split())
    if not text:
        return None

    if len(text) > MAX_CONTENT_LENGTH:
        text = text[:MAX_CONTENT_LENGTH] + '...'
    return text


def fetch_article_content(url: str, http: requests.Session = None) -> Optional[str]:
    """
    Download an article and return its main text.

    Never raises: network errors, HTTP errors and parse failures all return None.

    Args:
        url: Article URL ('#' placeholders are skipped without I/O)
        http: Optional requests Session, used as configured (injectable for
            tests); otherwise a private session capped at MAX_REDIRECTS is used

    Returns:
        Article text or None
    """
    if not url or url == '#':
        return None

    session = http
    if session is None:
        session = requests.Session()
        session.max_redirects = MAX_REDIRECTS

    try:
        response = session.get(url, headers={'User-Agent': USER_AGENT}, timeout=FETCH_TIMEOUT)
        response.raise_for_status()
        return extract_text(response.text)
    except Exception as e:
        logger.warning("Could not fetch article content from %s: %s", url, e)
        return None
    finally:
        if http is None:
            session.close()
