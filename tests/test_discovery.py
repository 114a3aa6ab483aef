import unittest
import os
import sys
from unittest.mock import MagicMock, patch

from pymongo.errors import DuplicateKeyError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from event_scout.exceptions import RunInProgressError
from event_scout.models import RunStats, SourceCandidate
from event_scout.services.discovery import (
    build_search_queries,
    build_source_document,
    classify_source,
    extract_site_name,
    get_base_url,
    is_blocked_source,
    normalize_url,
    search_event_sources,
)
from event_scout.workflows.discovery_pipeline import load_tracked_urls, process_candidate


class TestUrlHelpers(unittest.TestCase):

    def test_normalize_url(self):
        self.assertEqual(normalize_url("https://www.Balarm.it/eventi/"), "balarm.it/eventi")
        self.assertEqual(normalize_url("http://balarm.it/eventi?page=2"), "balarm.it/eventi")

    def test_base_url(self):
        self.assertEqual(get_base_url("https://www.balarm.it/eventi/oggi"), "https://www.balarm.it")

    def test_site_name(self):
        self.assertEqual(extract_site_name("https://www.palermo-eventi.it/x"), "Palermo Eventi")
        self.assertEqual(extract_site_name("not a url"), "Unknown Source")


class TestSourceFilters(unittest.TestCase):

    def test_blocked_domain_and_subdomain(self):
        self.assertTrue(is_blocked_source("https://www.facebook.com/events/123"))
        self.assertTrue(is_blocked_source("https://m.facebook.com/events/123"))
        self.assertTrue(is_blocked_source("https://it.tripadvisor.it/Attractions-g187890"))

    def test_lookalike_domain_is_not_blocked(self):
        self.assertFalse(is_blocked_source("https://notfacebook.com/eventi"))

    def test_blocked_path(self):
        self.assertTrue(is_blocked_source("https://palermoviva.it/blog/cosa-fare"))

    def test_blocklist_beats_aggregator_table(self):
        candidate = SourceCandidate(url="https://feverup.com/blog/palermo-nightlife")
        self.assertIsNone(classify_source(candidate))

    def test_aggregator_priority(self):
        cases = [
            ("https://feverup.com/it/palermo", ("Feverup", 75)),
            ("https://ra.co/events/it/palermo", ("Resident Advisor", 100)),
            ("https://www.eventbrite.it/d/italy--palermo/events/", ("Eventbrite", 70)),
            ("https://www.palermotoday.it/eventi/", ("PalermoToday", 85)),
        ]
        for url, expected in cases:
            with self.subTest(url=url):
                self.assertEqual(classify_source(SourceCandidate(url=url)), expected)

    def test_resident_advisor_rule_needs_its_own_host(self):
        candidate = SourceCandidate(url="https://www.extra.com/page")
        self.assertIsNone(classify_source(candidate))

    def test_keyword_heuristic_gets_default_priority(self):
        candidate = SourceCandidate(url="https://www.palermo-live.it/concerti", title="Concerti a Palermo")
        self.assertEqual(classify_source(candidate), ("Palermo Live", 30))

    def test_keyword_in_title_only(self):
        candidate = SourceCandidate(url="https://www.circolo.it/", title="Calendario eventi")
        self.assertEqual(classify_source(candidate), ("Circolo", 30))

    def test_unrelated_page_is_rejected(self):
        candidate = SourceCandidate(url="https://www.ristorante.it/menu", title="Il nostro menu")
        self.assertIsNone(classify_source(candidate))

    def test_source_document_starts_inactive(self):
        candidate = SourceCandidate(url="https://www.balarm.it/eventi")
        doc = build_source_document(candidate, "Balarm", 75, "Palermo")
        self.assertFalse(doc["is_active"])
        self.assertEqual(doc["base_url"], "https://www.balarm.it")
        self.assertEqual(doc["events_url"], "https://www.balarm.it/eventi")
        self.assertEqual(doc["slug"], "balarm")
        self.assertEqual(doc["scrape_priority"], 75)


class TestSearchEventSources(unittest.TestCase):

    def test_queries_are_built_for_the_metro(self):
        queries = build_search_queries("Catania")
        self.assertTrue(all("Catania" in q for q in queries))
        self.assertIn("site:feverup.com Catania", queries)

    @patch('event_scout.services.discovery.time.sleep')
    @patch('event_scout.services.discovery.get_tavily_client')
    def test_results_are_deduplicated_and_failures_skipped(self, mock_client_factory, mock_sleep):
        client = MagicMock()
        mock_client_factory.return_value = client
        hits = {"results": [
            {"url": "https://balarm.it/eventi", "title": "Eventi", "content": "..."},
            {"url": "https://feverup.com/it/palermo", "title": "Fever"},
        ]}
        client.search.side_effect = [RuntimeError("quota")] + [hits] * 20

        results, searches, failures = search_event_sources("Palermo")

        queries = build_search_queries("Palermo")
        self.assertEqual(searches, len(queries) - 1)
        self.assertEqual(len(failures), 1)
        self.assertIn("quota", failures[0])
        self.assertEqual(client.search.call_count, len(queries))
        self.assertEqual([r.url for r in results], ["https://balarm.it/eventi", "https://feverup.com/it/palermo"])
        self.assertEqual(results[0].description_snippet, "...")
        self.assertEqual(mock_sleep.call_count, len(queries) - 1)

    @patch('event_scout.services.discovery.time.sleep')
    @patch('event_scout.services.discovery.get_tavily_client')
    def test_every_query_failing_is_reported(self, mock_client_factory, mock_sleep):
        mock_client_factory.return_value.search.side_effect = RuntimeError("search backend down")

        results, searches, failures = search_event_sources("Palermo")

        self.assertEqual(results, [])
        self.assertEqual(searches, 0)
        self.assertEqual(len(failures), len(build_search_queries("Palermo")))


class TestProcessCandidate(unittest.TestCase):

    @patch('event_scout.workflows.discovery_pipeline.get_tracked_source_urls')
    def test_load_tracked_urls(self, mock_urls):
        mock_urls.return_value = [("https://www.balarm.it", "https://www.balarm.it/eventi/"), ("https://x.it", "")]
        self.assertEqual(load_tracked_urls(), {"balarm.it", "balarm.it/eventi", "x.it"})

    @patch('event_scout.workflows.discovery_pipeline.insert_source')
    def test_new_source_is_added(self, mock_insert):
        stats = RunStats()
        tracked = set()

        process_candidate(SourceCandidate(url="https://www.balarm.it/eventi"), "Palermo", tracked, stats)

        mock_insert.assert_called_once()
        self.assertEqual(mock_insert.call_args[0][0]["name"], "Balarm")
        self.assertEqual(stats.new_sources_added, 1)
        self.assertIn("balarm.it/eventi", tracked)

    @patch('event_scout.workflows.discovery_pipeline.insert_source')
    def test_blocked_source_is_counted(self, mock_insert):
        stats = RunStats()
        process_candidate(SourceCandidate(url="https://www.facebook.com/events/1"), "Palermo", set(), stats)
        mock_insert.assert_not_called()
        self.assertEqual(stats.blocked_skipped, 1)

    @patch('event_scout.workflows.discovery_pipeline.insert_source')
    def test_already_tracked_source_is_counted(self, mock_insert):
        stats = RunStats()
        process_candidate(SourceCandidate(url="https://balarm.it/eventi/"), "Palermo", {"balarm.it/eventi"}, stats)
        mock_insert.assert_not_called()
        self.assertEqual(stats.duplicates_skipped, 1)

    @patch('event_scout.workflows.discovery_pipeline.insert_source')
    def test_unique_index_conflict_counts_as_duplicate(self, mock_insert):
        mock_insert.side_effect = DuplicateKeyError("duplicate key")
        stats = RunStats()

        process_candidate(SourceCandidate(url="https://www.balarm.it/eventi"), "Palermo", set(), stats)

        self.assertEqual(stats.duplicates_skipped, 1)
        self.assertEqual(stats.new_sources_added, 0)

    @patch('event_scout.workflows.discovery_pipeline.insert_source')
    def test_rejected_source_counts_nothing(self, mock_insert):
        stats = RunStats()
        process_candidate(SourceCandidate(url="https://www.ristorante.it/menu"), "Palermo", set(), stats)
        mock_insert.assert_not_called()
        self.assertEqual(stats.counters(), RunStats().counters())


@patch('event_scout.workflows.discovery_pipeline.ensure_indexes')
@patch('event_scout.workflows.discovery_pipeline.start_run', return_value="run-1")
@patch('event_scout.workflows.discovery_pipeline.cleanup_stuck_runs')
class TestDiscoveryRun(unittest.TestCase):

    @patch('event_scout.workflows.discovery_pipeline.finish_run')
    @patch('event_scout.workflows.discovery_pipeline.insert_source')
    @patch('event_scout.workflows.discovery_pipeline.get_tracked_source_urls', return_value=[])
    @patch('event_scout.workflows.discovery_pipeline.search_event_sources')
    def test_run_counts_and_reports(self, mock_search, mock_tracked, mock_insert, mock_finish, *_):
        from event_scout.workflows.discovery_pipeline import run

        mock_search.return_value = (
            [
                SourceCandidate(url="https://www.balarm.it/eventi"),
                SourceCandidate(url="https://www.facebook.com/events/1"),
            ],
            14,
            [],
        )

        stats = run("Palermo")

        self.assertEqual(stats.searches_performed, 14)
        self.assertEqual(stats.results_found, 2)
        self.assertEqual(stats.new_sources_added, 1)
        self.assertEqual(stats.blocked_skipped, 1)
        mock_finish.assert_called_once()
        self.assertEqual(mock_finish.call_args[0][1], "run-1")

    @patch('event_scout.workflows.discovery_pipeline.fail_run')
    @patch('event_scout.workflows.discovery_pipeline.search_event_sources')
    def test_fatal_error_is_reported_and_reraised(self, mock_search, mock_fail, *_):
        from event_scout.workflows.discovery_pipeline import run

        mock_search.side_effect = RuntimeError("search backend down")

        with self.assertRaises(RuntimeError):
            run("Palermo")

        mock_fail.assert_called_once()
        self.assertEqual(mock_fail.call_args[0][1], "run-1")

    @patch('event_scout.workflows.bookkeeping.send_agent_report')
    @patch('event_scout.workflows.bookkeeping.complete_run')
    @patch('event_scout.workflows.discovery_pipeline.get_tracked_source_urls', return_value=[])
    @patch('event_scout.workflows.discovery_pipeline.search_event_sources')
    def test_search_outage_reports_failed(self, mock_search, mock_tracked, mock_complete, mock_report, *_):
        from event_scout.workflows.discovery_pipeline import run

        mock_search.return_value = ([], 0, [f"Search failed for 'q{i}': down" for i in range(14)])

        stats = run("Palermo")

        self.assertEqual(stats.searches_performed, 0)
        self.assertEqual(stats.searches_failed, 14)
        self.assertEqual(len(stats.errors), 14)
        self.assertEqual(mock_report.call_args[0][0]["status"], "failed")
        self.assertEqual(mock_report.call_args[0][0]["stats"]["searches_failed"], 14)
        self.assertEqual(mock_complete.call_args[0][1], "failed")

    @patch('event_scout.workflows.discovery_pipeline.fail_run')
    @patch('event_scout.workflows.discovery_pipeline.search_event_sources')
    def test_refused_start_is_not_a_failure(self, mock_search, mock_fail, mock_cleanup, mock_start, mock_indexes):
        from event_scout.workflows.discovery_pipeline import run

        mock_start.side_effect = RunInProgressError("Discovery Agent run is still in progress")

        with self.assertRaises(RunInProgressError):
            run("Palermo")

        mock_search.assert_not_called()
        mock_fail.assert_not_called()


if __name__ == '__main__':
    unittest.main()
