"""
Rumor sync pipeline.

One run drains the reassessment queue, then fetches fresh feed items and for
each one: dedupe -> enrich -> classify -> persist -> link players.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from db import Database
from extractors.article_content import fetch_article_content
from processors.credibility import CredibilityClassifier, RumorAnalysis, derive_news_fields
from processors.deduplication import classify_candidate
from processors.feed_aggregator import fetch_all_rumors
from processors.player_identity import link_players_to_news, passes_player_gate
from processors.rate_limit import CallPacer
from settings import ConfigurationError, REASSESS_BATCH_SIZE

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Aggregate counts of a sync run."""
    fetched: int = 0
    duplicates: int = 0
    transfer_rumors: int = 0
    regular_news: int = 0
    not_analyzed: int = 0
    auto_hidden: int = 0
    analyzed: int = 0
    inserted: int = 0
    players_processed: int = 0
    reassessed: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BackfillResult:
    total: int = 0
    processed: int = 0
    players_extracted: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class RumorSync:
    """
    Sequential rumor ingestion pipeline.

    Collaborators are injectable so runs can be exercised without network
    access or an LLM.
    """

    def __init__(
        self,
        db: Database,
        classifier: CredibilityClassifier = None,
        fetch_items: Callable = None,
        fetch_content: Callable[[str], Optional[str]] = None,
        pacer: CallPacer = None,
        reassess_batch_size: int = None
    ):
        self.db = db
        self.classifier = classifier or CredibilityClassifier()
        self.fetch_items = fetch_items or fetch_all_rumors
        self.fetch_content = fetch_content or fetch_article_content
        self.pacer = pacer or CallPacer()
        self.reassess_batch_size = reassess_batch_size or REASSESS_BATCH_SIZE

    def _enrich(self, link: str) -> Optional[str]:
        try:
            return self.fetch_content(link)
        except Exception as e:
            logger.warning("Article enrichment failed for %s: %s", link, e)
            return None

    def _classify(self, **kwargs) -> RumorAnalysis:
        self.pacer.wait()
        return self.classifier.analyze(**kwargs)

    def _link_players(self, session, news, analysis: RumorAnalysis, fields: dict, result) -> None:
        if not passes_player_gate(fields['is_relevant_to_betis'], fields['ai_probability'],
                                  analysis.confidence, analysis.players):
            return

        link_result = link_players_to_news(session, news.id, analysis.players)
        result.players_processed += link_result.players_processed
        result.errors += link_result.errors

    def _reassess(self, session, news, result: SyncResult) -> None:
        analysis = self._classify(
            title=news.title,
            description=news.description,
            source=news.source,
            article_content=self._enrich(news.link),
            admin_context=news.admin_context,
            is_reassessment=True,
            news_id=news.id,
        )

        if not analysis.analyzed:
            # Previous classification is kept; the item moves to the back of the queue
            logger.warning("Reassessment of news %s failed, keeping it queued", news.id)
            news.updated_at = datetime.utcnow()
            session.commit()
            result.errors += 1
            return

        now = datetime.utcnow()
        fields = derive_news_fields(analysis, now=now)
        for column, value in fields.items():
            setattr(news, column, value)
        news.needs_reassessment = False
        news.reassessed_at = now
        session.commit()
        result.reassessed += 1

        logger.info("News %s reassessed: probability=%s", news.id, news.ai_probability)
        self._link_players(session, news, analysis, fields, result)

    def _process_candidate(self, session, candidate, window: list, result: SyncResult) -> None:
        dedupe = classify_candidate(candidate, window)
        if dedupe.is_duplicate:
            logger.debug("Duplicate of %s (score %s): %s",
                         dedupe.duplicate_of_id, dedupe.similarity_score, candidate.title[:80])
            result.duplicates += 1
            return

        analysis = self._classify(
            title=candidate.title,
            description=candidate.description,
            source=candidate.source,
            article_content=self._enrich(candidate.link),
        )
        if analysis.analyzed:
            result.analyzed += 1

        fields = derive_news_fields(analysis)
        news_data = {
            'title': candidate.title,
            'link': candidate.link,
            'pub_date': candidate.pub_date,
            'source': candidate.source,
            'description': candidate.description,
            'content_hash': dedupe.content_hash,
            **fields,
        }

        try:
            news = self.db.insert_news(session, news_data)
        except IntegrityError as e:
            if Database.is_unique_violation(e, 'link', 'content_hash'):
                result.duplicates += 1
            else:
                logger.error("Failed to insert news '%s': %s", candidate.title[:80], e)
                result.errors += 1
            return
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to insert news '%s': %s", candidate.title[:80], e)
            result.errors += 1
            return

        result.inserted += 1
        window.append(news)

        if news.ai_probability is None:
            result.not_analyzed += 1
        elif news.ai_probability == 0:
            result.regular_news += 1
        else:
            result.transfer_rumors += 1
        if news.is_hidden:
            result.auto_hidden += 1

        self._link_players(session, news, analysis, fields, result)

    def run(self, max_age_hours: Optional[int] = None) -> SyncResult:
        """
        Execute one sync run.

        Per-item failures are counted in the result and never abort the run.

        Raises:
            ConfigurationError: If the classifier is not configured
        """
        result = SyncResult()
        self.pacer.reset()
        session = self.db.get_session()

        try:
            # 1. Reassessment queue
            for news in self.db.get_reassessment_queue(session, limit=self.reassess_batch_size):
                try:
                    self._reassess(session, news, result)
                except ConfigurationError:
                    raise
                except Exception as e:
                    session.rollback()
                    logger.error("Error reassessing news %s: %s", news.id, e)
                    result.errors += 1

            # 2. Fetch
            try:
                candidates = self.fetch_items(max_age_hours=max_age_hours)
            except Exception as e:
                logger.error("Feed aggregation failed: %s", e)
                candidates = []
                result.errors += 1
            result.fetched = len(candidates)

            # 3. Process candidates against the dedupe window
            window = self.db.get_dedupe_window(session)
            for candidate in candidates:
                try:
                    self._process_candidate(session, candidate, window, result)
                except ConfigurationError:
                    raise
                except Exception as e:
                    session.rollback()
                    logger.error("Error processing '%s': %s", candidate.title[:80], e)
                    result.errors += 1

        finally:
            session.close()

        logger.info("Sync completed: %s", result.to_dict())
        return result

    def backfill_players(self, limit: Optional[int] = None) -> BackfillResult:
        """
        Re-classify analyzed news without linked players and link their players.

        Stored classification fields are left untouched.
        """
        result = BackfillResult()
        self.pacer.reset()
        session = self.db.get_session()

        try:
            pending = self.db.get_news_without_players(session, limit=limit)
            result.total = len(pending)
            logger.info("Found %d news items without player associations", result.total)

            for news in pending:
                try:
                    analysis = self._classify(
                        title=news.title,
                        description=news.description,
                        source=news.source,
                        news_id=news.id,
                    )
                    if not analysis.analyzed:
                        result.errors += 1
                        continue

                    fields = derive_news_fields(analysis)
                    if not passes_player_gate(fields['is_relevant_to_betis'], fields['ai_probability'],
                                              analysis.confidence, analysis.players):
                        result.skipped += 1
                    else:
                        link_result = link_players_to_news(session, news.id, analysis.players)
                        result.players_extracted += link_result.players_processed
                        result.errors += link_result.errors
                    result.processed += 1

                except ConfigurationError:
                    raise
                except Exception as e:
                    session.rollback()
                    logger.error("Error backfilling news %s: %s", news.id, e)
                    result.errors += 1

        finally:
            session.close()

        logger.info("Backfill completed: %s", result.to_dict())
        return result
