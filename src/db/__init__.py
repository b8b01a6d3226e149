"""
Database package for the rumor pipeline.
"""

from .models import Base, News, Player, PlayerRole, LLMApiCall, news_players
from .database import Database

__all__ = ['Base', 'News', 'Player', 'PlayerRole', 'LLMApiCall', 'news_players', 'Database']
