"""
Integration tests for full scan passes.

Each test drives ScanService against a local document store with a fake
clock, the way the background scanner does day after day.
"""

import random

import pytest

from remember.content.quiz import DueBlock, QuizCompiler
from remember.db.content_log import ContentLog
from remember.db.review_record import ReviewRecord
from remember.store.sql_store import SqlDocumentStore
from remember.sync.scan_service import LAST_UPDATED, REVIEWS_COMPLETED, ScanService


# =============================================================================
# Helpers
# =============================================================================


def add_source(service, body, title="Geography"):
    inbox = service.notes.ensure_folder("Inbox")
    return service.notes.create_note(title, body, inbox.id)


def metadata(service):
    return service.load_metadata(service.init())[1]


def content_log(service, source_id):
    folders = service.init()
    note = service.notes.find_by_key(f"log/{source_id}", folders.log.id)
    assert note is not None, "content log missing"
    return ContentLog.from_text(note.body, source_id)


def review_notes(service):
    return list(service.notes.notes(service.init().review.id))


def tick(service, note, section, rating):
    """Check one rating box of a review note, as a user would."""
    body = service.notes.get_note(note.id).body
    head, sep, tail = body.partition(f"# {section}\n")
    line = f"- [ ] {rating} - "
    index = tail.index(line)
    body = head + sep + tail[:index] + f"- [x] {rating} - " + tail[index + len(line) :]
    service.notes.update_note(note.id, body=body)


# =============================================================================
# Tests
# =============================================================================


class TestFirstScan:
    """Tests for discovering blocks."""

    def test_ids_are_written_back(self, scan_service, sample_note_body):
        source = add_source(scan_service, sample_note_body)

        assert scan_service.scan().success
        assert scan_service.scan(force=True).success

        body = scan_service.notes.get_note(source.id).body
        assert body.count("```remember 1\n") == 1
        assert body.count("```remember 2\n") == 1
        assert body.index("```remember 1\n") < body.index("```remember 2\n")

        log = content_log(scan_service, source.id)
        assert sorted(log.histories) == [1, 2]
        assert all(not h.events for h in log.histories.values())
        assert log.block_id_max == 2

    def test_first_scan_creates_review_session(self, scan_service, sample_note_body):
        add_source(scan_service, sample_note_body)

        result = scan_service.scan()

        assert result.logs_created == 1
        assert result.ids_allocated == 2
        assert result.quizzes == 2
        notes = review_notes(scan_service)
        assert [n.id for n in notes] == [result.review_note_id]
        assert notes[0].title == "Review 2021-01-07 (#0)"
        record = ReviewRecord.parse(notes[0].body)
        assert sorted(s.block_id for s in record.sections) == [1, 2]

    def test_metadata_is_advanced(self, scan_service, sample_note_body):
        add_source(scan_service, sample_note_body)
        scan_service.scan()

        assert metadata(scan_service).get(LAST_UPDATED) == "20210107"

    def test_same_day_scan_is_skipped(self, scan_service, sample_note_body):
        add_source(scan_service, sample_note_body)
        scan_service.scan()

        result = scan_service.scan()

        assert result.skipped
        assert len(review_notes(scan_service)) == 1

    def test_notes_without_blocks_get_no_log(self, scan_service):
        source = add_source(scan_service, "just prose\n```python\nprint()\n```\n")

        result = scan_service.scan()

        assert result.success
        assert result.logs_created == 0
        folders = scan_service.init()
        assert scan_service.notes.find_by_key(f"log/{source.id}", folders.log.id) is None
        assert review_notes(scan_service) == []

    def test_folders_are_recreated(self, scan_service, memory_store):
        scan_service.scan()
        memory_store.folders.clear()

        assert scan_service.scan(force=True).success
        titles = sorted(f["title"] for f in memory_store.folders.values())
        assert titles == ["Remember-DB", "Remember-Log", "Remember-Review"]


class TestHarvest:
    """Tests for folding review answers back into content logs."""

    def test_answered_section_is_logged(self, scan_service, sample_note_body, clock):
        source = add_source(scan_service, sample_note_body)
        scan_service.scan()
        review = review_notes(scan_service)[0]
        tick(scan_service, review, 1, 4)
        answered = ReviewRecord.parse(scan_service.notes.get_note(review.id).body).sections[0]

        result = scan_service.scan(force=True)

        assert result.success
        assert result.reviews_completed == 1
        record = ReviewRecord.parse(scan_service.notes.get_note(review.id).body)
        assert [s.block_id for s in record.sections] == [answered.block_id]
        assert record.sections[0].rating == 4
        assert record.completed

        events = content_log(scan_service, source.id).histories[answered.block_id].events
        assert len(events) == 1
        assert (events[0].date, events[0].rating, events[0].days) == ("20210107", 4, 6)
        assert metadata(scan_service).get(REVIEWS_COMPLETED) == 1

    def test_completion_is_counted_once(self, scan_service, sample_note_body):
        add_source(scan_service, sample_note_body)
        scan_service.scan()
        review = review_notes(scan_service)[0]
        tick(scan_service, review, 1, 4)

        scan_service.scan(force=True)
        second = scan_service.scan(force=True)

        assert second.success
        assert second.reviews_completed == 0
        assert metadata(scan_service).get(REVIEWS_COMPLETED) == 1

    def test_harvested_session_is_not_rated_again(self, scan_service, sample_note_body, clock):
        source = add_source(scan_service, sample_note_body)
        scan_service.scan()
        review = review_notes(scan_service)[0]
        tick(scan_service, review, 1, 4)
        tick(scan_service, review, 2, 4)
        clock.advance(days=1)
        assert scan_service.scan().ratings_logged == 2
        before = content_log(scan_service, source.id).histories

        clock.advance(days=1)
        result = scan_service.scan()

        assert result.success
        assert result.ratings_logged == 0
        after = content_log(scan_service, source.id).histories
        assert {k: v.events for k, v in after.items()} == {k: v.events for k, v in before.items()}
        assert all([e.date for e in h.events] == ["20210108"] for h in after.values())
        record = ReviewRecord.parse(scan_service.notes.get_note(review.id).body)
        assert record.harvested_on == "20210108"

    def test_changed_rating_replaces_harvested_rating(self, scan_service, sample_note_body, clock):
        source = add_source(scan_service, sample_note_body)
        scan_service.scan()
        review = review_notes(scan_service)[0]
        tick(scan_service, review, 1, 4)
        clock.advance(days=1)
        scan_service.scan()

        body = scan_service.notes.get_note(review.id).body
        scan_service.notes.update_note(review.id, body=body.replace("- [x] 4 - ", "- [ ] 4 - "))
        tick(scan_service, review, 1, 2)
        answered = ReviewRecord.parse(scan_service.notes.get_note(review.id).body).sections[0]
        clock.advance(days=1)
        result = scan_service.scan()

        assert result.success
        assert result.reviews_completed == 0
        events = content_log(scan_service, source.id).histories[answered.block_id].events
        assert [(e.date, e.rating) for e in events] == [("20210108", 2)]
        assert metadata(scan_service).get(REVIEWS_COMPLETED) == 1

    def test_unanswered_session_is_deleted(self, scan_service, sample_note_body, clock):
        add_source(scan_service, sample_note_body)
        first = scan_service.scan()
        clock.advance(days=1)

        result = scan_service.scan()

        assert result.reviews_deleted == 1
        assert [n.id for n in review_notes(scan_service)] == [result.review_note_id]
        assert result.review_note_id != first.review_note_id

    def test_new_session_uses_completed_count(self, scan_service, sample_note_body, clock):
        add_source(scan_service, sample_note_body)
        scan_service.scan()
        tick(scan_service, review_notes(scan_service)[0], 1, 4)
        clock.advance(days=1)

        result = scan_service.scan()

        new_review = scan_service.notes.get_note(result.review_note_id)
        assert new_review.title == "Review 2021-01-08 (#1)"

    def test_rated_block_waits_for_its_interval(self, scan_service, sample_note_body):
        add_source(scan_service, sample_note_body)
        scan_service.scan()
        review = review_notes(scan_service)[0]
        tick(scan_service, review, 1, 4)
        answered = ReviewRecord.parse(scan_service.notes.get_note(review.id).body).sections[0]
        scan_service.scan(force=True)

        # Rated on 20210107 with a 6 day interval
        due_12 = {b.block_id for b in scan_service.collect_due("20210112")}
        due_13 = {b.block_id for b in scan_service.collect_due("20210113")}
        assert answered.block_id not in due_12
        assert answered.block_id in due_13

    def test_rating_for_unknown_note_is_skipped(self, scan_service):
        folders = scan_service.init()
        quiz = QuizCompiler().compile_due_block(
            DueBlock(source_id="ghost", source_title="Gone", block_id=1, body="x")
        )
        record = ReviewRecord.create("20210106", 0, quiz)
        note = scan_service.notes.create_note(record.title, record.to_text(), folders.review.id)
        tick(scan_service, note, 1, 5)

        result = scan_service.scan(force=True)

        assert result.success
        assert result.ratings_logged == 0
        assert result.reviews_completed == 1


class TestPassSafety:
    """Tests for aborted and failed passes."""

    def test_failed_harvest_keeps_last_updated(self, scan_service, sample_note_body, clock, monkeypatch):
        add_source(scan_service, sample_note_body)
        scan_service.scan()
        tick(scan_service, review_notes(scan_service)[0], 1, 4)
        clock.advance(days=1)

        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(ContentLog, "log_score", explode)
        result = scan_service.scan()

        assert result.error == "disk on fire"
        assert metadata(scan_service).get(LAST_UPDATED) == "20210107"

    def test_failed_pass_is_retried(self, scan_service, sample_note_body, clock, monkeypatch):
        add_source(scan_service, sample_note_body)
        scan_service.scan()
        tick(scan_service, review_notes(scan_service)[0], 1, 4)
        clock.advance(days=1)

        with monkeypatch.context() as patched:
            patched.setattr(ContentLog, "log_score", lambda *a, **k: 1 / 0)
            assert not scan_service.scan().success

        result = scan_service.scan()
        assert result.success
        assert result.reviews_completed == 1
        assert metadata(scan_service).get(LAST_UPDATED) == "20210108"
        assert metadata(scan_service).get(REVIEWS_COMPLETED) == 1

    def test_recent_review_edit_aborts_pass(self, scan_service, sample_note_body, clock):
        add_source(scan_service, sample_note_body)
        scan_service.scan()
        clock.advance(days=1)
        review = review_notes(scan_service)[0]
        tick(scan_service, review, 1, 4)
        clock.advance(minutes=10)

        result = scan_service.scan()

        assert result.aborted
        assert metadata(scan_service).get(LAST_UPDATED) == "20210107"
        untouched = ReviewRecord.parse(scan_service.notes.get_note(review.id).body)
        assert len(untouched.sections) == 2

    def test_forced_scan_ignores_recent_edit(self, scan_service, sample_note_body, clock):
        add_source(scan_service, sample_note_body)
        scan_service.scan()
        tick(scan_service, review_notes(scan_service)[0], 1, 4)

        assert scan_service.scan(force=True).success

    def test_orphaned_log_is_skipped(self, scan_service, sample_note_body, clock):
        source = add_source(scan_service, sample_note_body)
        scan_service.scan()
        scan_service.notes.delete_note(source.id)
        clock.advance(days=1)

        result = scan_service.scan()

        assert result.success
        assert result.quizzes == 0
        assert result.review_note_id is None

    def test_malformed_log_fails_the_pass(self, scan_service, sample_note_body, clock):
        source = add_source(scan_service, sample_note_body)
        scan_service.scan()
        folders = scan_service.init()
        log_note = scan_service.notes.find_by_key(f"log/{source.id}", folders.log.id)
        scan_service.notes.update_note(log_note.id, body="# Properties\n\nnot a table\n")
        clock.advance(days=1)

        result = scan_service.scan()

        assert result.error is not None
        assert metadata(scan_service).get(LAST_UPDATED) == "20210107"


@pytest.mark.slow
class TestSqlBackend:
    """The same flow on the SQLAlchemy store."""

    def test_ids_and_harvest_on_sqlite(self, settings, clock, sample_note_body):
        store = SqlDocumentStore("sqlite://", clock=clock)
        service = ScanService(
            store, settings=settings, clock=clock, sleep=lambda s: None, rng=random.Random(7)
        )
        source = add_source(service, sample_note_body)

        assert service.scan().success
        tick(service, review_notes(service)[0], 1, 5)
        assert service.scan(force=True).success

        body = service.notes.get_note(source.id).body
        assert "```remember 1\n" in body and "```remember 2\n" in body
        log = content_log(service, source.id)
        assert sum(len(h.events) for h in log.histories.values()) == 1
        assert metadata(service).get(REVIEWS_COMPLETED) == 1
