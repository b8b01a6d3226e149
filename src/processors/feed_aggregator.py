"""
Feed aggregation for Real Betis transfer news.

Fetches every configured RSS/Telegram feed, converts entries into candidate
items and filters them by age.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging

import feedparser
import requests
from bs4 import BeautifulSoup

from settings import DEFAULT_MAX_AGE_HOURS, get_setting

logger = logging.getLogger(__name__)

USER_AGENT = 'Pena-Betica-Escocesa/1.0'
FEED_TIMEOUT = 10

DEFAULT_TITLE = 'Sin título'
PLACEHOLDER_LINK = '#'


@dataclass
class CandidateItem:
    """News item pulled from a feed, before deduplication."""
    title: str
    link: str
    pub_date: datetime
    source: str
    description: Optional[str] = None


@dataclass(frozen=True)
class FeedSource:
    url: str
    source: str
    feed_type: str = 'rss'  # 'rss' or 'telegram'


FEED_SOURCES = [
    FeedSource('https://news.google.com/rss/search?q=Real+Betis+fichajes+rumores&hl=es&gl=ES&ceid=ES:es',
               'Google News (Fichajes)'),
    FeedSource('https://news.google.com/rss/search?q=Real+Betis&hl=es&gl=ES&ceid=ES:es',
               'Google News (General)'),
    FeedSource('https://betisweb.com/feed/', 'BetisWeb'),
    # Telegram channels through the tg.i-c-a.su RSS bridge
    FeedSource('https://tg.i-c-a.su/rss/FabrizioRomanoTG', 'Telegram: @FabrizioRomanoTG', 'telegram'),
    FeedSource('https://tg.i-c-a.su/rss/ficherioRealBetis', 'Telegram: @ficherioRealBetis', 'telegram'),
    FeedSource('https://tg.i-c-a.su/rss/Todo_betis', 'Telegram: @Todo_betis', 'telegram'),
    FeedSource('https://tg.i-c-a.su/rss/DMQRealBetis', 'Telegram: @DMQRealBetis', 'telegram'),
    FeedSource('https://tg.i-c-a.su/rss/transfer_news_football', 'Telegram: @transfer_news_football', 'telegram'),
    FeedSource('https://tg.i-c-a.su/rss/real_betis_balompi', 'Telegram: @real_betis_balompi', 'telegram'),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _entry_date(entry) -> datetime:
    """Publication date as naive UTC; missing or invalid dates become now."""
    parsed = entry.get('published_parsed') or entry.get('updated_parsed')
    if parsed:
        try:
            return datetime(*parsed[:6])
        except (TypeError, ValueError):
            pass
    return _utcnow()


def _entry_description(entry) -> Optional[str]:
    """Plain-text summary of an entry, HTML stripped."""
    raw = entry.get('summary') or entry.get('description')
    if not raw and entry.get('content'):
        raw = entry['content'][0].get('value')
    if not raw:
        return None
    text = BeautifulSoup(raw, 'lxml').get_text(' ', strip=True)
    return ' '.join(text.split()) or None


def fetch_feed(feed: FeedSource, http=requests) -> List[CandidateItem]:
    """
    Fetch and parse a single feed.

    Args:
        feed: Feed to fetch
        http: Object with a requests-compatible ``get`` (injectable for tests)

    Returns:
        Candidate items of the feed, or an empty list on any failure
    """
    try:
        response = http.get(feed.url, headers={'User-Agent': USER_AGENT}, timeout=FEED_TIMEOUT)
        response.raise_for_status()
        parsed = feedparser.parse(response.content)
        if parsed.get('bozo') and not parsed.entries:
            raise ValueError(f"Unparsable feed: {parsed.get('bozo_exception')}")

        return [
            CandidateItem(
                title=(entry.get('title') or '').strip() or DEFAULT_TITLE,
                link=(entry.get('link') or '').strip() or PLACEHOLDER_LINK,
                pub_date=_entry_date(entry),
                source=feed.source,
                description=_entry_description(entry),
            )
            for entry in parsed.entries
        ]

    except Exception as e:
        if feed.feed_type == 'telegram':
            logger.error("Telegram feed bridge failed: %s (%s): %s", feed.source, feed.url, e)
        else:
            logger.error("Failed to fetch RSS feed: %s (%s): %s", feed.source, feed.url, e)
        return []


def resolve_max_age_hours(max_age_hours: Optional[int] = None) -> int:
    """
    Resolve the maximum news age.

    Order: explicit positive value, NEWS_MAX_AGE_HOURS environment setting,
    then the 24 hour default.
    """
    if max_age_hours is not None and max_age_hours > 0:
        return max_age_hours

    raw = get_setting('NEWS_MAX_AGE_HOURS')
    try:
        value = int(raw) if raw else 0
    except ValueError:
        value = 0

    return value if value > 0 else DEFAULT_MAX_AGE_HOURS


def fetch_all_rumors(
    max_age_hours: Optional[int] = None,
    feeds: List[FeedSource] = None,
    http=requests,
    now: Optional[datetime] = None
) -> List[CandidateItem]:
    """
    Fetch all feeds and return recent items, newest first.

    A failing feed never affects the others.

    Args:
        max_age_hours: Maximum item age (see resolve_max_age_hours)
        feeds: Feeds to fetch (defaults to FEED_SOURCES)
        http: requests-compatible HTTP client
        now: Reference time, naive UTC (defaults to now)

    Returns:
        List of CandidateItem sorted by pub_date descending
    """
    feeds = FEED_SOURCES if feeds is None else feeds
    hours = resolve_max_age_hours(max_age_hours)
    cutoff = (now or _utcnow()) - timedelta(hours=hours)

    items = []
    for feed in feeds:
        items.extend(fetch_feed(feed, http=http))

    recent = [item for item in items if item.pub_date >= cutoff]
    logger.info("Fetched %d items from %d feeds, %d within %dh", len(items), len(feeds), len(recent), hours)

    recent.sort(key=lambda item: item.pub_date, reverse=True)
    return recent
