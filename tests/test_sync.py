"""End-to-end tests of the sync pipeline with faked collaborators."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from db import News, Player
from db.models import news_players
from processors.credibility import CredibilityClassifier
from processors.feed_aggregator import CandidateItem
from processors.rate_limit import CallPacer
from processors.retry import RetryPolicy
from processors.sync import RumorSync
from settings import ConfigurationError


def _candidate(title, link=None, description="", source="X", pub_date=None):
    return CandidateItem(
        title=title,
        link=link or f"https://example.com/{abs(hash(title))}",
        pub_date=pub_date or datetime.utcnow(),
        source=source,
        description=description,
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def build_sync(db, sleeps):
    """RumorSync wired to a fake LLM call and in-memory feed items."""
    def _build(outputs, candidates=(), fetch_content=None):
        if isinstance(outputs, (list, Exception)) or callable(outputs):
            structured_output = MagicMock(side_effect=outputs)
        else:
            structured_output = MagicMock(return_value=outputs)
        classifier = CredibilityClassifier(
            structured_output=structured_output,
            policy=RetryPolicy(max_attempts=3, timeout_seconds=5, backoff_seconds=0, sleep=MagicMock()),
        )
        sync = RumorSync(
            db,
            classifier=classifier,
            fetch_items=MagicMock(return_value=list(candidates)),
            fetch_content=fetch_content or MagicMock(return_value=None),
            pacer=CallPacer(delay_seconds=4.0, sleep=sleeps.append),
        )
        return sync, structured_output

    return _build


def _links(session):
    return session.execute(news_players.select()).all()


class TestRunScenarios:
    """Single-candidate scenarios."""

    def test_transfer_rumor_with_player(self, build_sync, session, rumor_output):
        output = rumor_output(probability=80, players=[{"name": "Isco", "role": "target"}])
        sync, _ = build_sync(output, [_candidate("Isco vuelve al Betis", link="https://x/isco")])

        result = sync.run()

        assert result.fetched == 1
        assert result.inserted == 1
        assert result.transfer_rumors == 1
        assert result.analyzed == 1
        assert result.players_processed == 1
        assert result.errors == 0

        news = session.query(News).one()
        assert news.ai_probability == 80
        assert news.is_hidden is False
        assert news.is_duplicate is False
        assert news.ai_analyzed_at is not None

        player = session.query(Player).one()
        assert player.name == "Isco"
        assert player.rumor_count == 1

        link = _links(session)[0]
        assert (link.news_id, link.player_id, link.role) == (news.id, player.id, "target")

    def test_non_transfer_news_stored_as_zero(self, build_sync, session, rumor_output):
        output = rumor_output(probability=35, isTransferRumor=False, players=[{"name": "Isco"}])
        sync, _ = build_sync(output, [_candidate("Crónica del Betis - Sevilla")])

        result = sync.run()

        assert result.regular_news == 1
        assert result.transfer_rumors == 0
        assert session.query(News).one().ai_probability == 0
        assert session.query(Player).count() == 0
        assert _links(session) == []

    def test_exhausted_classifier_stores_not_analyzed(self, build_sync, session):
        sync, structured_output = build_sync(RuntimeError("503"), [_candidate("Isco vuelve al Betis")])

        result = sync.run()

        assert structured_output.call_count == 3
        assert result.not_analyzed == 1
        assert result.analyzed == 0
        assert result.inserted == 1
        assert result.errors == 0
        news = session.query(News).one()
        assert news.ai_probability is None
        assert news.ai_analyzed_at is None
        assert _links(session) == []

    def test_irrelevant_news_is_auto_hidden(self, build_sync, session, rumor_output):
        output = rumor_output(isRelevantToBetis=False, irrelevanceReason="Betis Baloncesto",
                              players=[{"name": "Shermadini", "role": "target"}])
        sync, _ = build_sync(output, [_candidate("El Betis Baloncesto ficha a un pívot")])

        result = sync.run()

        assert result.auto_hidden == 1
        news = session.query(News).one()
        assert news.is_hidden is True
        assert news.is_relevant_to_betis is False
        assert news.irrelevance_reason == "Betis Baloncesto"
        assert session.query(Player).count() == 0

    def test_low_confidence_rumor_links_no_players(self, build_sync, session, rumor_output):
        output = rumor_output(confidence="low", players=[{"name": "Isco"}])
        sync, _ = build_sync(output, [_candidate("Isco podría volver")])

        result = sync.run()
        assert result.transfer_rumors == 1
        assert result.players_processed == 0
        assert session.query(Player).count() == 0

    def test_existing_link_counts_as_duplicate(self, build_sync, session, make_news, rumor_output):
        make_news(title="Titular antiguo sin relación", link="https://x/isco",
                  pub_date=datetime.utcnow() - timedelta(days=60))
        sync, _ = build_sync(rumor_output(), [_candidate("Isco vuelve al Betis", link="https://x/isco")])

        result = sync.run()

        assert result.duplicates == 1
        assert result.errors == 0
        assert result.inserted == 0
        assert session.query(News).filter(News.link == "https://x/isco").count() == 1

    def test_windowed_duplicate_skips_classifier(self, build_sync, make_news, rumor_output):
        make_news(title="Isco vuelve al Betis", description="")
        sync, structured_output = build_sync(rumor_output(), [_candidate("Isco vuelve al Betis", link="https://y/1")])

        result = sync.run()

        assert result.duplicates == 1
        structured_output.assert_not_called()


class TestRunBatch:
    """Multi-candidate runs."""

    def test_counters_and_pacing(self, build_sync, session, sleeps, rumor_output):
        outputs = [
            rumor_output(probability=70, players=[{"name": "Isco", "role": "target"}]),
            rumor_output(probability=None, isTransferRumor=False),
            RuntimeError("timeout"), RuntimeError("timeout"), RuntimeError("timeout"),
        ]
        candidates = [
            _candidate("Isco vuelve al Betis"),
            _candidate("Crónica: el Betis gana en Vigo"),
            _candidate("Rueda de prensa de Pellegrini antes del derbi"),
        ]
        sync, _ = build_sync(outputs, candidates)

        result = sync.run()

        assert result.fetched == 3
        assert result.inserted == 3
        assert (result.transfer_rumors, result.regular_news, result.not_analyzed) == (1, 1, 1)
        assert result.transfer_rumors + result.regular_news + result.not_analyzed == result.inserted
        assert sleeps == [4.0, 4.0]

    def test_in_run_duplicates_are_caught(self, build_sync, session, rumor_output):
        candidates = [
            _candidate("Isco vuelve al Betis", link="https://a/1"),
            _candidate("Isco vuelve al Betis", link="https://b/1"),
        ]
        sync, structured_output = build_sync(rumor_output(), candidates)

        result = sync.run()

        assert result.inserted == 1
        assert result.duplicates == 1
        assert structured_output.call_count == 1

    def test_repeated_player_mentions_accumulate(self, build_sync, session, rumor_output):
        candidates = [
            _candidate("Isco vuelve al Betis"),
            _candidate("El Betis negocia con el Girona por Portu"),
        ]
        outputs = [
            rumor_output(players=[{"name": "Isco", "role": "target"}]),
            rumor_output(players=[{"name": "Portu", "role": "target"}, {"name": "isco"}]),
        ]
        sync, _ = build_sync(outputs, candidates)

        result = sync.run()

        assert result.players_processed == 3
        assert session.query(Player).filter(Player.normalized_name == "isco").one().rumor_count == 2

    def test_enrichment_content_reaches_classifier(self, build_sync, rumor_output):
        fetch_content = MagicMock(return_value="Texto completo")
        sync, structured_output = build_sync(rumor_output(), [_candidate("Isco vuelve al Betis", link="https://x/1")],
                                             fetch_content=fetch_content)
        sync.run()

        fetch_content.assert_called_once_with("https://x/1")
        assert structured_output.call_args.args[1]["articleContent"] == "Texto completo"

    def test_enrichment_failure_is_not_fatal(self, build_sync, rumor_output):
        sync, _ = build_sync(rumor_output(), [_candidate("Isco vuelve al Betis")],
                             fetch_content=MagicMock(side_effect=RuntimeError("boom")))
        result = sync.run()
        assert result.inserted == 1
        assert result.errors == 0

    def test_fetch_failure_still_reports(self, build_sync, rumor_output):
        sync, _ = build_sync(rumor_output())
        sync.fetch_items = MagicMock(side_effect=RuntimeError("network"))

        result = sync.run()
        assert result.fetched == 0
        assert result.errors == 1

    def test_configuration_error_aborts(self, build_sync):
        sync, _ = build_sync(ConfigurationError("OPENAI_API_KEY environment variable is required"),
                             [_candidate("Isco vuelve al Betis")])
        with pytest.raises(ConfigurationError):
            sync.run()


class TestReassessment:
    """Reassessment queue handling."""

    def test_reassessment_updates_record(self, build_sync, session, make_news, rumor_output):
        news = make_news(title="El Betis ficha a un base", ai_probability=60,
                         needs_reassessment=True, admin_context="Es el Betis de baloncesto")
        output = rumor_output(isRelevantToBetis=False, irrelevanceReason="Baloncesto", probability=60)
        sync, structured_output = build_sync(output)

        result = sync.run()

        assert result.reassessed == 1
        session.refresh(news)
        assert news.needs_reassessment is False
        assert news.reassessed_at is not None
        assert news.is_hidden is True
        _, data = structured_output.call_args.args
        assert data["adminContext"] == "Es el Betis de baloncesto"
        assert data["isReassessment"] is True

    def test_reassessment_links_players(self, build_sync, session, make_news, rumor_output):
        make_news(ai_probability=0, needs_reassessment=True, admin_context="Sí es un fichaje")
        sync, _ = build_sync(rumor_output(probability=75, players=[{"name": "Isco", "role": "target"}]))

        result = sync.run()

        assert result.players_processed == 1
        assert session.query(News).one().ai_probability == 75

    def test_failed_reassessment_stays_queued(self, build_sync, session, make_news):
        news = make_news(ai_probability=60, needs_reassessment=True, admin_context="x")
        sync, _ = build_sync(RuntimeError("quota"))

        result = sync.run()

        assert result.errors == 1
        assert result.reassessed == 0
        session.refresh(news)
        assert news.needs_reassessment is True
        assert news.ai_probability == 60

    def test_failing_items_do_not_starve_newer_requests(self, build_sync, session, make_news, rumor_output):
        for i in range(10):
            make_news(title=f"Falla {i}", ai_probability=50, needs_reassessment=True, admin_context="x")
        good = make_news(title="Pendiente correcta", ai_probability=50, needs_reassessment=True,
                         admin_context="x")

        def _respond(task_name, data, **kwargs):
            if data["title"].startswith("Falla"):
                raise RuntimeError("malformed")
            return rumor_output(probability=20)

        sync, _ = build_sync(_respond)

        first = sync.run()
        second = sync.run()

        assert first.errors == 10
        assert first.reassessed == 0
        assert second.reassessed == 1
        session.refresh(good)
        assert good.needs_reassessment is False
        assert good.ai_probability == 20
        assert session.query(News).filter(News.needs_reassessment.is_(True)).count() == 10

    def test_queue_limited_per_run(self, db, sleeps, session, make_news, rumor_output):
        for i in range(12):
            make_news(title=f"Pendiente {i}", needs_reassessment=True, admin_context="x")
        classifier = CredibilityClassifier(structured_output=MagicMock(return_value=rumor_output()),
                                           policy=RetryPolicy(sleep=MagicMock()))
        sync = RumorSync(db, classifier=classifier, fetch_items=MagicMock(return_value=[]),
                         fetch_content=MagicMock(return_value=None),
                         pacer=CallPacer(sleep=sleeps.append))

        result = sync.run()

        assert result.reassessed == 10
        assert session.query(News).filter(News.needs_reassessment.is_(True)).count() == 2


class TestBackfillPlayers:
    """Player backfill for analyzed news."""

    def test_backfills_only_analyzed_news_without_players(self, build_sync, session, make_news, rumor_output):
        target = make_news(title="Isco vuelve al Betis", ai_probability=70)
        make_news(title="Sin analizar", ai_probability=None)
        sync, structured_output = build_sync(rumor_output(players=[{"name": "Isco", "role": "target"}]))

        result = sync.backfill_players()

        assert result.total == 1
        assert result.processed == 1
        assert result.players_extracted == 1
        assert structured_output.call_count == 1
        assert _links(session)[0].news_id == target.id

    def test_backfill_skips_when_gate_fails(self, build_sync, make_news, rumor_output):
        make_news(ai_probability=70)
        sync, _ = build_sync(rumor_output(players=[]))

        result = sync.backfill_players()
        assert result.skipped == 1
        assert result.players_extracted == 0
