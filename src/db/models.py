"""
SQLAlchemy models for the rumor pipeline.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Table, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship, declarative_base
import enum

Base = declarative_base()


class PlayerRole(enum.Enum):
    """Role of a player within a transfer story."""
    TARGET = "target"          # Player the club wants to sign
    DEPARTING = "departing"    # Player who could leave the club
    MENTIONED = "mentioned"    # Named without a clear direction


# Association table between news records and players.
# The composite primary key makes every (news, player) pair unique.
news_players = Table(
    'news_players',
    Base.metadata,
    Column('news_id', Integer, ForeignKey('betis_news.id', ondelete='CASCADE'), primary_key=True),
    Column('player_id', Integer, ForeignKey('players.id', ondelete='CASCADE'), primary_key=True),
    Column('role', String(20), nullable=False, default=PlayerRole.MENTIONED.value),
    Column('created_at', DateTime, default=datetime.utcnow, nullable=False),
    Index('idx_news_players_news', 'news_id'),
    Index('idx_news_players_player', 'player_id'),
)


class News(Base):
    """Persisted, classified news item."""
    __tablename__ = 'betis_news'

    id = Column(Integer, primary_key=True)
    title = Column(String(500), nullable=False)
    link = Column(String(2048), nullable=False, unique=True, index=True)
    pub_date = Column(DateTime, nullable=False, index=True)
    source = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    content_hash = Column(String(64), nullable=False, unique=True, index=True)  # SHA-256 of normalized title+description

    # AI classification
    ai_probability = Column(Integer, nullable=True, index=True)  # NULL=not analyzed, 0=not a rumor, 1-100=rumor credibility
    ai_analysis = Column(Text, nullable=True)
    ai_analyzed_at = Column(DateTime, nullable=True)
    is_relevant_to_betis = Column(Boolean, nullable=False, default=True)
    irrelevance_reason = Column(Text, nullable=True)

    # Curation
    is_hidden = Column(Boolean, nullable=False, default=False, index=True)
    is_duplicate = Column(Boolean, nullable=False, default=False)  # Duplicates are counted, never stored
    needs_reassessment = Column(Boolean, nullable=False, default=False, index=True)
    admin_context = Column(Text, nullable=True)
    reassessed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    players = relationship('Player', secondary=news_players, back_populates='news', viewonly=True)

    def __repr__(self):
        return f"<News(id={self.id}, title='{self.title[:50]}...', ai_probability={self.ai_probability})>"


class Player(Base):
    """Canonical player identity resolved from news mentions."""
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)                 # Original form of the first mention
    display_name = Column(String(255), nullable=True)          # Admin override for display
    normalized_name = Column(String(255), nullable=False, unique=True, index=True)
    aliases = Column(JSON, nullable=False, default=list)       # List of alternate normalized names
    rumor_count = Column(Integer, nullable=False, default=1)
    is_current_squad = Column(Boolean, nullable=False, default=False, index=True)  # Maintained by squad sync

    first_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    news = relationship('News', secondary=news_players, back_populates='players', viewonly=True)

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.name}', rumor_count={self.rumor_count})>"


class LLMApiCall(Base):
    """Log of LLM API calls for monitoring, debugging, and cost tracking."""
    __tablename__ = 'llm_api_calls'

    id = Column(Integer, primary_key=True)

    # Metadata of the call
    call_type = Column(String(50), nullable=False, index=True)  # 'structured_output'
    task_name = Column(String(100), nullable=True, index=True)  # 'rumor_analysis'
    model = Column(String(50), nullable=False, index=True)

    # Timing
    started_at = Column(DateTime, nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # Tokens
    input_tokens = Column(Integer, nullable=True)
    output_tokens = Column(Integer, nullable=True)
    total_tokens = Column(Integer, nullable=True)

    # Prompts and response
    system_prompt = Column(Text, nullable=True)
    user_prompt = Column(Text, nullable=True)
    response_raw = Column(JSON, nullable=True)  # NULL when the call failed before a response arrived
    parsed_output = Column(JSON, nullable=True)

    # Status and errors
    success = Column(Boolean, nullable=False, default=True, index=True)
    error_message = Column(Text, nullable=True)

    # Context metadata (news_id, title, is_reassessment)
    context_data = Column(JSON, nullable=True)

    __table_args__ = (
        Index('idx_llm_api_calls_task_model', 'task_name', 'model'),
    )

    def __repr__(self):
        status = 'ok' if self.success else 'error'
        return f"<LLMApiCall(id={self.id}, task='{self.task_name}', model='{self.model}', status={status})>"
