"""
Player identity resolution.

Maps free-text player names extracted from news to canonical Player records,
links them to news items and supports administrative merges and aliases.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional
import logging
import re
import unicodedata

from sqlalchemy import String, cast
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import Player, PlayerRole, news_players

logger = logging.getLogger(__name__)

SUFFIX_SCAN_LIMIT = 500
MIN_ALIAS_LENGTH = 2
VALID_ROLES = {role.value for role in PlayerRole}
GATE_CONFIDENCE = ('medium', 'high')


@dataclass
class LinkResult:
    players_processed: int = 0
    errors: int = 0


@dataclass
class MergeResult:
    news_transferred: int
    aliases_added: List[str]


def normalize_player_name(name: str) -> str:
    """
    Normalize a player name for identity matching.

    Examples:
        >>> normalize_player_name("José")
        'jose'
        >>> normalize_player_name("  Giovani   Lo Celso ")
        'giovani lo celso'
        >>> normalize_player_name("N'Golo Kanté")
        'ngolo kante'
    """
    name = name.lower()
    name = ''.join(
        c for c in unicodedata.normalize('NFD', name)
        if unicodedata.category(c) != 'Mn'
    )
    name = re.sub(r'[^a-z0-9\s]', '', name)
    return ' '.join(name.split())


def _is_suffix_match(shorter: str, longer: str) -> bool:
    """'lo celso' is a suffix of 'giovani lo celso'."""
    return len(shorter) < len(longer) and longer.endswith(f' {shorter}')


def _find_by_alias(session: Session, normalized: str, exclude_id: int = None) -> Optional[Player]:
    # JSON is stored as text; the LIKE narrows candidates, membership is checked in Python
    query = session.query(Player).filter(cast(Player.aliases, String).like(f'%"{normalized}"%'))
    if exclude_id is not None:
        query = query.filter(Player.id != exclude_id)
    for player in query.all():
        if normalized in (player.aliases or []):
            return player
    return None


def _find_by_suffix(session: Session, normalized: str) -> Optional[Player]:
    recent = (session.query(Player)
              .order_by(Player.last_seen_at.desc())
              .limit(SUFFIX_SCAN_LIMIT)
              .all())
    for player in recent:
        if _is_suffix_match(normalized, player.normalized_name) or \
                _is_suffix_match(player.normalized_name, normalized):
            logger.debug("Suffix match: '%s' -> %s", normalized, player.normalized_name)
            return player
    return None


def find_alias_owner(session: Session, normalized: str, exclude_id: int = None) -> Optional[Player]:
    """Player whose normalized_name or aliases contain the value (other than exclude_id)."""
    query = session.query(Player).filter(Player.normalized_name == normalized)
    if exclude_id is not None:
        query = query.filter(Player.id != exclude_id)
    owner = query.first()
    return owner or _find_by_alias(session, normalized, exclude_id=exclude_id)


def find_player(session: Session, name: str) -> Optional[Player]:
    """Look up a player by normalized name, then alias. No suffix matching, no updates."""
    normalized = normalize_player_name(name)
    if not normalized:
        return None
    player = session.query(Player).filter(Player.normalized_name == normalized).first()
    return player or _find_by_alias(session, normalized)


def find_or_create_player(session: Session, name: str, now: datetime = None) -> Optional[Player]:
    """
    Resolve a mention to a Player, creating it when unknown.

    Matching order:
    1. Exact normalized_name
    2. Alias membership
    3. Suffix match among the most recently seen players; the new variant is
       stored as an alias when it collides with nobody

    A matched player gets rumor_count + 1 and a fresh last_seen_at. If that
    update fails the pre-update record is returned.

    Returns:
        Player, or None if the name is empty or the player could not be created
    """
    normalized = normalize_player_name(name or '')
    if not normalized:
        return None

    now = now or datetime.utcnow()

    player = session.query(Player).filter(Player.normalized_name == normalized).first()
    if player is None:
        player = _find_by_alias(session, normalized)
    if player is None:
        player = _find_by_suffix(session, normalized)
        if player is not None and find_alias_owner(session, normalized, exclude_id=player.id) is None:
            if normalized not in (player.aliases or []):
                player.aliases = list(player.aliases or []) + [normalized]
                logger.info("Alias '%s' auto-added to player %s", normalized, player.name)

    if player is not None:
        player.rumor_count = (player.rumor_count or 0) + 1
        player.last_seen_at = now
        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            # Rolled back instance reloads its pre-update state
            logger.error("Error updating player %s: %s", player.id, e)
        return player

    player = Player(
        name=name.strip(),
        normalized_name=normalized,
        aliases=[],
        rumor_count=1,
        first_seen_at=now,
        last_seen_at=now,
    )
    session.add(player)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Error creating player '%s': %s", name, e)
        return None

    logger.info("Player created: %s (id=%s)", player.name, player.id)
    return player


def link_players_to_news(session: Session, news_id: int, players: Iterable, now: datetime = None) -> LinkResult:
    """
    Resolve extracted players and link them to a news record.

    Args:
        session: Database session
        news_id: News record id
        players: Objects with name and optional role attributes

    Returns:
        LinkResult. Links that already exist are neither processed nor errors.
    """
    result = LinkResult()

    for extracted in players or []:
        name = (getattr(extracted, 'name', None) or '').strip()
        if not name or not normalize_player_name(name):
            continue

        player = find_or_create_player(session, name, now=now)
        if player is None:
            result.errors += 1
            continue

        role = getattr(extracted, 'role', None) or PlayerRole.MENTIONED.value
        if role not in VALID_ROLES:
            role = PlayerRole.MENTIONED.value

        statement = (sqlite_insert(news_players)
                     .values(news_id=news_id, player_id=player.id, role=role,
                             created_at=now or datetime.utcnow())
                     .on_conflict_do_nothing(index_elements=['news_id', 'player_id']))
        try:
            inserted = session.execute(statement).rowcount
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Error linking player %s to news %s: %s", player.id, news_id, e)
            result.errors += 1
            continue

        if inserted:
            result.players_processed += 1

    return result


def passes_player_gate(is_relevant: bool, ai_probability: Optional[int], confidence: str, players) -> bool:
    """Players are only linked for relevant, analyzed rumors with medium/high confidence."""
    return bool(
        is_relevant
        and ai_probability is not None
        and ai_probability > 0
        and confidence in GATE_CONFIDENCE
        and players
    )


def merge_players(session: Session, primary_id: int, duplicate_id: int) -> MergeResult:
    """
    Merge a duplicate player into the primary one in a single transaction.

    - Links of the duplicate move to the primary (pairs already linked to the
      primary are dropped)
    - The duplicate's normalized_name and aliases become aliases of the primary
    - rumor_count is summed, first_seen_at/last_seen_at widened
    - The duplicate is deleted

    Raises:
        ValueError: On self-merge or unknown player ids
    """
    if primary_id == duplicate_id:
        raise ValueError("Cannot merge a player into itself")

    primary = session.get(Player, primary_id)
    if primary is None:
        raise ValueError(f"Primary player {primary_id} not found")
    duplicate = session.get(Player, duplicate_id)
    if duplicate is None:
        raise ValueError(f"Duplicate player {duplicate_id} not found")

    try:
        primary_news = {
            row.news_id for row in
            session.execute(news_players.select().where(news_players.c.player_id == primary_id))
        }
        duplicate_news = [
            row.news_id for row in
            session.execute(news_players.select().where(news_players.c.player_id == duplicate_id))
        ]

        transferred = 0
        for news_id in duplicate_news:
            pair = (news_players.c.player_id == duplicate_id) & (news_players.c.news_id == news_id)
            if news_id in primary_news:
                session.execute(news_players.delete().where(pair))
            else:
                session.execute(news_players.update().where(pair).values(player_id=primary_id))
                transferred += 1

        aliases = list(primary.aliases or [])
        added = []
        for alias in [duplicate.normalized_name] + list(duplicate.aliases or []):
            if alias != primary.normalized_name and alias not in aliases:
                aliases.append(alias)
                added.append(alias)

        primary.aliases = aliases
        primary.rumor_count = (primary.rumor_count or 0) + (duplicate.rumor_count or 0)
        primary.first_seen_at = min(primary.first_seen_at, duplicate.first_seen_at)
        primary.last_seen_at = max(primary.last_seen_at, duplicate.last_seen_at)
        if duplicate.is_current_squad:
            primary.is_current_squad = True

        session.delete(duplicate)
        session.commit()

    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info("Merged player %s (%s) into %s (%s), %d news transferred",
                duplicate_id, duplicate.name, primary_id, primary.name, transferred)
    return MergeResult(news_transferred=transferred, aliases_added=added)


def add_player_alias(session: Session, player_id: int, alias: str) -> Player:
    """
    Add a normalized alias to a player.

    Raises:
        ValueError: If the player is unknown, the alias is too short, or it
            already belongs to this or another player
    """
    player = session.get(Player, player_id)
    if player is None:
        raise ValueError(f"Player {player_id} not found")

    normalized = normalize_player_name(alias or '')
    if len(normalized) < MIN_ALIAS_LENGTH:
        raise ValueError(f"Alias must have at least {MIN_ALIAS_LENGTH} characters")

    if normalized == player.normalized_name or normalized in (player.aliases or []):
        raise ValueError(f"Alias '{normalized}' already exists for this player")

    owner = find_alias_owner(session, normalized, exclude_id=player.id)
    if owner is not None:
        raise ValueError(f"Alias '{normalized}' already belongs to player {owner.id} ({owner.name})")

    player.aliases = list(player.aliases or []) + [normalized]
    session.commit()
    return player


def remove_player_alias(session: Session, player_id: int, alias: str) -> Player:
    """
    Remove an alias from a player.

    Raises:
        ValueError: If the player is unknown or does not have the alias
    """
    player = session.get(Player, player_id)
    if player is None:
        raise ValueError(f"Player {player_id} not found")

    normalized = normalize_player_name(alias or '')
    if normalized not in (player.aliases or []):
        raise ValueError(f"Player {player_id} has no alias '{normalized}'")

    player.aliases = [a for a in player.aliases if a != normalized]
    session.commit()
    return player


def set_display_name(session: Session, player_id: int, display_name: Optional[str]) -> Player:
    """
    Set (or clear, with an empty value) the admin display name of a player.

    Raises:
        ValueError: If the player is unknown or the name is too long
    """
    player = session.get(Player, player_id)
    if player is None:
        raise ValueError(f"Player {player_id} not found")

    display_name = (display_name or '').strip() or None
    if display_name and len(display_name) > 255:
        raise ValueError("Display name must have at most 255 characters")

    player.display_name = display_name
    session.commit()
    return player
