import unittest
from datetime import datetime, timezone
import os
import sys
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from event_scout.exceptions import ExtractionError, RateLimitError, RunInProgressError
from event_scout.models import CandidateEvent, DuplicateMatch, EventRecord, MatchType, RunStats, TrackedSource
from event_scout.workflows.extraction_pipeline import (
    build_event_document,
    collect_events,
    merge_updates,
    reconcile_event,
    reconcile_events,
)

PIPELINE = 'event_scout.workflows.extraction_pipeline'
NOW = datetime(2026, 11, 1, 12, 0, tzinfo=timezone.utc)

SOURCE = TrackedSource(
    id="src-1",
    name="Balarm",
    slug="balarm",
    base_url="https://www.balarm.it",
    events_url="https://www.balarm.it/eventi",
    is_active=True,
    scrape_priority=75,
)


def _candidate(**kwargs):
    base = {
        "title": "Jazz Night",
        "start_time": "2026-11-14T21:00:00",
        "detail_url": "https://www.balarm.it/eventi/jazz-night",
        "category": "Concert",
    }
    base.update(kwargs)
    return CandidateEvent(**base)


def _stored(confidence, **kwargs):
    return EventRecord(
        id="evt-1",
        title="Jazz Night",
        start_time="2026-11-14T21:00:00",
        event_date="2026-11-14",
        confidence_score=confidence,
        **kwargs,
    )


# image (20) + ticket (15) + address (20)
RICHER = {
    "image_url": "https://www.balarm.it/img/new.jpg",
    "ticket_url": "https://ticketone.it/jazz-night",
    "location_address": "Piazza Verdi, 90138 Palermo",
}
# ticket (15) + organizer (15)
POORER = {
    "ticket_url": "https://ticketone.it/jazz-night",
    "organizer_name": "Jazz Club",
}


class TestMergePolicy(unittest.TestCase):

    def test_empty_candidate_fields_keep_stored_values(self):
        existing = _stored(40, description="Serata jazz", image_url="https://x.it/old.jpg")
        updates = merge_updates(existing, _candidate(ticket_url="https://t.it/1"), 55)
        self.assertEqual(updates, {
            "description": "Serata jazz",
            "image_url": "https://x.it/old.jpg",
            "ticket_url": "https://t.it/1",
            "confidence_score": 55,
        })

    def test_title_and_time_are_never_updated(self):
        updates = merge_updates(_stored(0), _candidate(title="Other", start_time="2027-01-01T10:00:00"), 10)
        self.assertNotIn("title", updates)
        self.assertNotIn("start_time", updates)

    def test_new_document_defaults(self):
        doc = build_event_document(_candidate(), SOURCE, "loc-1", "org-1", "cat-1", 0)
        self.assertEqual(doc["end_time"], doc["start_time"])
        self.assertEqual(doc["event_date"], "2026-11-14")
        self.assertEqual(doc["source_id"], "src-1")
        self.assertTrue(doc["is_published"])


@patch(f'{PIPELINE}.find_duplicate_event')
class TestReconcileEvent(unittest.TestCase):

    @patch(f'{PIPELINE}.update_event', return_value=True)
    @patch(f'{PIPELINE}.get_event_by_id')
    def test_exact_match_with_higher_confidence_updates(self, mock_get, mock_update, mock_match):
        mock_match.return_value = DuplicateMatch(True, "evt-1", MatchType.EXACT)
        mock_get.return_value = _stored(40, description="Serata jazz")
        stats = RunStats()

        reconcile_event(_candidate(**RICHER), SOURCE, stats, NOW)

        mock_update.assert_called_once()
        event_id, updates = mock_update.call_args[0]
        self.assertEqual(event_id, "evt-1")
        self.assertEqual(updates["confidence_score"], 55)
        self.assertEqual(updates["description"], "Serata jazz")
        self.assertEqual(updates["image_url"], RICHER["image_url"])
        self.assertEqual(stats.events_updated, 1)

    @patch(f'{PIPELINE}.update_event')
    @patch(f'{PIPELINE}.get_event_by_id')
    def test_exact_match_with_lower_confidence_is_discarded(self, mock_get, mock_update, mock_match):
        mock_match.return_value = DuplicateMatch(True, "evt-1", MatchType.EXACT)
        mock_get.return_value = _stored(40)
        stats = RunStats()

        reconcile_event(_candidate(**POORER), SOURCE, stats, NOW)

        mock_update.assert_not_called()
        self.assertEqual(stats.events_duplicate_exact, 1)

    @patch(f'{PIPELINE}.update_event')
    @patch(f'{PIPELINE}.get_event_by_id')
    def test_equal_confidence_is_discarded(self, mock_get, mock_update, mock_match):
        mock_match.return_value = DuplicateMatch(True, "evt-1", MatchType.EXACT)
        mock_get.return_value = _stored(30)
        stats = RunStats()

        reconcile_event(_candidate(**POORER), SOURCE, stats, NOW)

        mock_update.assert_not_called()
        self.assertEqual(stats.events_duplicate_exact, 1)

    @patch(f'{PIPELINE}.update_event', return_value=False)
    @patch(f'{PIPELINE}.get_event_by_id')
    def test_failed_update_counts_as_failed(self, mock_get, mock_update, mock_match):
        mock_match.return_value = DuplicateMatch(True, "evt-1", MatchType.EXACT)
        mock_get.return_value = _stored(0)
        stats = RunStats()

        reconcile_event(_candidate(**RICHER), SOURCE, stats, NOW)

        self.assertEqual(stats.events_failed, 1)
        self.assertEqual(stats.events_updated, 0)

    @patch(f'{PIPELINE}.create_event')
    @patch(f'{PIPELINE}.update_event')
    @patch(f'{PIPELINE}.get_event_by_id')
    def test_fuzzy_match_never_writes(self, mock_get, mock_update, mock_create, mock_match):
        mock_match.return_value = DuplicateMatch(True, "evt-1", MatchType.FUZZY)
        stats = RunStats()

        reconcile_event(_candidate(**RICHER), SOURCE, stats, NOW)

        mock_get.assert_not_called()
        mock_update.assert_not_called()
        mock_create.assert_not_called()
        self.assertEqual(stats.events_duplicate_fuzzy, 1)
        self.assertEqual(stats.events_duplicated, 1)

    def test_past_event_is_skipped_before_matching(self, mock_match):
        stats = RunStats()

        reconcile_event(_candidate(start_time="2026-10-31T21:00:00"), SOURCE, stats, NOW)

        mock_match.assert_not_called()
        self.assertEqual(stats.events_skipped_past, 1)

    @patch(f'{PIPELINE}.create_event', return_value="evt-new")
    @patch(f'{PIPELINE}.find_or_create_category', return_value="cat-1")
    @patch(f'{PIPELINE}.find_or_create_organizer', return_value=("org-1", False))
    @patch(f'{PIPELINE}.find_or_create_location', return_value=("loc-1", True))
    def test_new_event_is_created(self, mock_loc, mock_org, mock_cat, mock_create, mock_match):
        mock_match.return_value = DuplicateMatch.none()
        stats = RunStats()

        reconcile_event(_candidate(location_name="Teatro Massimo", **POORER), SOURCE, stats, NOW)

        mock_loc.assert_called_once_with("Teatro Massimo", None)
        mock_org.assert_called_once_with("Jazz Club")
        mock_cat.assert_called_once_with("Concert")
        doc = mock_create.call_args[0][0]
        self.assertEqual(doc["location_id"], "loc-1")
        self.assertEqual(doc["organizer_id"], "org-1")
        self.assertEqual(doc["category_id"], "cat-1")
        self.assertEqual(doc["confidence_score"], 30)
        self.assertEqual(stats.events_created, 1)
        self.assertEqual(stats.locations_created, 1)
        self.assertEqual(stats.organizers_created, 0)

    @patch(f'{PIPELINE}.create_event', return_value="evt-new")
    @patch(f'{PIPELINE}.find_or_create_category', return_value="cat-1")
    @patch(f'{PIPELINE}.find_or_create_organizer', return_value=("org-1", True))
    @patch(f'{PIPELINE}.find_or_create_location', return_value=("loc-1", False))
    def test_missing_venue_and_organizer_fall_back_to_source(self, mock_loc, mock_org, mock_cat, mock_create, mock_match):
        mock_match.return_value = DuplicateMatch.none()
        stats = RunStats()

        reconcile_event(_candidate(), SOURCE, stats, NOW)

        mock_loc.assert_called_once_with("Balarm", None)
        mock_org.assert_called_once_with("Balarm")
        self.assertEqual(stats.organizers_created, 1)

    @patch(f'{PIPELINE}.create_event')
    @patch(f'{PIPELINE}.find_or_create_location', return_value=(None, False))
    def test_location_failure_counts_as_failed(self, mock_loc, mock_create, mock_match):
        mock_match.return_value = DuplicateMatch.none()
        stats = RunStats()

        reconcile_event(_candidate(), SOURCE, stats, NOW)

        mock_create.assert_not_called()
        self.assertEqual(stats.events_failed, 1)


class TestReconcileEvents(unittest.TestCase):

    @patch(f'{PIPELINE}.find_duplicate_event')
    def test_one_bad_event_does_not_stop_the_batch(self, mock_match):
        mock_match.side_effect = [RuntimeError("db down"), DuplicateMatch(True, "evt-2", MatchType.FUZZY)]
        stats = RunStats()

        reconcile_events([(_candidate(title="A"), SOURCE), (_candidate(title="B"), SOURCE)], stats, now=NOW)

        self.assertEqual(stats.events_failed, 1)
        self.assertEqual(stats.events_duplicate_fuzzy, 1)
        self.assertEqual(len(stats.errors), 1)
        self.assertIn("'A'", stats.errors[0])

    @patch(f'{PIPELINE}.find_duplicate_event')
    def test_malformed_start_time_counts_as_failed(self, mock_match):
        stats = RunStats()

        reconcile_events([(_candidate(start_time="next friday"), SOURCE)], stats, now=NOW)

        mock_match.assert_not_called()
        self.assertEqual(stats.events_failed, 1)


def _source(name):
    return TrackedSource(id=name, name=name, slug=name, base_url=f"https://{name}.it", events_url=f"https://{name}.it/eventi")


@patch(f'{PIPELINE}.time.sleep')
@patch(f'{PIPELINE}.extract_events_from_content')
@patch(f'{PIPELINE}.fetch_page_with_fallback', return_value="# page")
class TestCollectEvents(unittest.TestCase):

    def test_budget_stops_collection(self, mock_fetch, mock_extract, mock_sleep):
        mock_extract.side_effect = [
            [_candidate(title=f"A{i}") for i in range(3)],
            [_candidate(title=f"B{i}") for i in range(3)],
            [_candidate(title="C")],
        ]
        stats = RunStats()

        collected = collect_events([_source("a"), _source("b"), _source("c")], stats, max_events=4, delay_seconds=3.0)

        self.assertEqual([c.title for c, _ in collected], ["A0", "A1", "A2", "B0"])
        self.assertEqual(mock_fetch.call_count, 2)
        self.assertEqual(stats.sources_processed, 2)
        self.assertEqual(stats.events_found, 4)
        mock_sleep.assert_called_once_with(3.0)

    def test_failing_sources_are_recorded_and_skipped(self, mock_fetch, mock_extract, mock_sleep):
        mock_extract.side_effect = [
            ExtractionError("invalid output", source_name="a"),
            RateLimitError("rate limited"),
            [_candidate(title="C")],
        ]
        stats = RunStats()

        collected = collect_events([_source("a"), _source("b"), _source("c")], stats, max_events=10, delay_seconds=3.0)

        self.assertEqual(len(collected), 1)
        self.assertEqual(collected[0][1].name, "c")
        self.assertEqual(stats.sources_processed, 1)
        self.assertEqual(len(stats.errors), 2)
        self.assertIn("Rate limited", stats.errors[1])
        self.assertEqual(mock_sleep.call_count, 2)

    def test_fetch_failure_is_recorded(self, mock_fetch, mock_extract, mock_sleep):
        mock_fetch.side_effect = RuntimeError("HTTP 500")
        stats = RunStats()

        collected = collect_events([_source("a")], stats, max_events=10, delay_seconds=3.0)

        self.assertEqual(collected, [])
        mock_extract.assert_not_called()
        self.assertEqual(stats.errors, ["Failed to process a: HTTP 500"])
        mock_sleep.assert_not_called()


@patch(f'{PIPELINE}.ensure_indexes')
@patch(f'{PIPELINE}.start_run', return_value="run-1")
@patch(f'{PIPELINE}.cleanup_stuck_runs')
class TestExtractionRun(unittest.TestCase):

    @patch(f'{PIPELINE}.finish_run')
    @patch(f'{PIPELINE}.reconcile_events')
    @patch(f'{PIPELINE}.collect_events', return_value=[])
    @patch(f'{PIPELINE}.get_active_sources', return_value=[SOURCE])
    def test_run_brackets_work_with_run_log(self, mock_sources, mock_collect, mock_reconcile, mock_finish, mock_cleanup, mock_start, mock_indexes):
        from event_scout.workflows.extraction_pipeline import AGENT_NAME, run

        stats = run(max_events=7)

        mock_cleanup.assert_called_once()
        mock_start.assert_called_once_with(AGENT_NAME)
        self.assertEqual(mock_collect.call_args.kwargs["max_events"], 7)
        mock_reconcile.assert_called_once_with([], stats)
        self.assertEqual(mock_finish.call_args[0][:3], (AGENT_NAME, "run-1", stats))

    @patch(f'{PIPELINE}.fail_run')
    @patch(f'{PIPELINE}.get_active_sources')
    def test_fatal_error_alerts_and_reraises(self, mock_sources, mock_fail, *_):
        from event_scout.workflows.extraction_pipeline import run

        mock_sources.side_effect = RuntimeError("mongo unreachable")

        with self.assertRaises(RuntimeError):
            run()

        mock_fail.assert_called_once()
        self.assertIsInstance(mock_fail.call_args[0][4], RuntimeError)

    @patch(f'{PIPELINE}.fail_run')
    @patch(f'{PIPELINE}.get_active_sources')
    def test_refused_start_skips_fatal_path(self, mock_sources, mock_fail, mock_cleanup, mock_start, mock_indexes):
        from event_scout.workflows.extraction_pipeline import run

        mock_start.side_effect = RunInProgressError("Extraction Agent run is still in progress")

        with self.assertRaises(RunInProgressError):
            run()

        mock_sources.assert_not_called()
        mock_fail.assert_not_called()


if __name__ == '__main__':
    unittest.main()
