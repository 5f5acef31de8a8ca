"""
Scan Service - Orchestrates the daily reconciliation of notes and reviews.

Core responsibilities:
- Keep one content log per note holding trackable blocks
- Write allocated block ids back into the source notes
- Harvest ratings from answered review sessions into the content logs
- Compile due blocks into a new review session
- Track progress in the metadata note so each day is reconciled once

A pass is not transactional, but ``last_updated`` only advances when the
whole pass succeeds, so a failed pass is retried on the next cycle.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from config import Settings, get_settings
from remember.content.blocks import BlockExtractor
from remember.content.quiz import DueBlock, QuizCompiler
from remember.core.errors import NotFoundError, ScanAbortedError
from remember.db.content_log import ContentLog
from remember.db.review_record import ReviewRecord
from remember.formats.property_grid import PropertyGrid
from remember.store.base import DocumentStore
from remember.store.notes import Folder, Note, NoteStore
from remember.study.scheduler import format_day

METADATA_KEY = "metadata"
METADATA_TITLE = "Metadata"
LOG_KEY_PREFIX = "log/"
LAST_UPDATED = "last_updated"
REVIEWS_COMPLETED = "reviews_completed"


class ScanResult:
    """Statistics for one scan pass."""

    def __init__(self) -> None:
        self.today: str | None = None
        self.skipped = False
        self.aborted = False
        self.notes_scanned = 0
        self.logs_created = 0
        self.logs_updated = 0
        self.ids_allocated = 0
        self.reviews_harvested = 0
        self.reviews_deleted = 0
        self.reviews_completed = 0
        self.ratings_logged = 0
        self.quizzes = 0
        self.review_note_id: str | None = None
        self.error: str | None = None
        self.start_time = datetime.now()
        self.end_time: datetime | None = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.aborted

    def finish(self) -> None:
        """Mark the pass as finished."""
        self.end_time = datetime.now()

    def duration_seconds(self) -> float:
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/CLI output."""
        return {
            "today": self.today,
            "skipped": self.skipped,
            "aborted": self.aborted,
            "notes_scanned": self.notes_scanned,
            "logs_created": self.logs_created,
            "logs_updated": self.logs_updated,
            "ids_allocated": self.ids_allocated,
            "reviews_harvested": self.reviews_harvested,
            "reviews_deleted": self.reviews_deleted,
            "reviews_completed": self.reviews_completed,
            "ratings_logged": self.ratings_logged,
            "quizzes": self.quizzes,
            "review_note_id": self.review_note_id,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds(), 2),
        }


@dataclass
class RememberFolders:
    """The well-known folders owned by the scanner."""

    database: Folder
    log: Folder
    review: Folder

    def owned_ids(self) -> set[str]:
        return {self.database.id, self.log.id}


@dataclass
class _LogEntry:
    note: Note | None
    log: ContentLog
    title: str
    dirty: bool = False


class ScanService:
    """
    Orchestrates one scan pass over the document store.

    Features:
    - Incremental (only notes changed since the last reconciled day)
    - Aborts untouched when a review session is being edited
    - Parallel quiz compilation (one task per content log)
    - Injectable clock, sleep and random source for tests
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.notes = NoteStore(store, key_prefix=self.settings.source_url_prefix)
        self.clock = clock or datetime.now
        self.sleep = sleep or time.sleep
        self.rng = rng or random.Random()
        self.compiler = QuizCompiler(self.rng)
        self.folders: RememberFolders | None = None

    # ========================================
    # Setup
    # ========================================

    def init(self) -> RememberFolders:
        """Find or create the database, log and review folders."""
        names = self.settings.get_folder_names()
        database = self.notes.ensure_folder(names["database"])
        self.folders = RememberFolders(
            database=database,
            log=self.notes.ensure_folder(names["log"], database.id),
            review=self.notes.ensure_folder(names["review"], database.id),
        )
        return self.folders

    def load_metadata(self, folders: RememberFolders) -> tuple[Note, PropertyGrid]:
        """Load the metadata note, creating an empty one if missing."""
        note = self.notes.find_by_key(METADATA_KEY, folders.database.id)
        if note is None:
            logger.info("No metadata note found; creating one")
            note = self.notes.create_note(
                title=METADATA_TITLE,
                body=PropertyGrid().to_text(),
                parent_id=folders.database.id,
                source_url=self.notes.key_value(METADATA_KEY),
            )
        return note, PropertyGrid.from_text(note.body)

    # ========================================
    # Scan Pass
    # ========================================

    def scan(self, force: bool = False) -> ScanResult:
        """
        Run one pass; never raises.

        Args:
            force: Rescan even if today was already reconciled and harvest
                review sessions that were edited recently

        Returns:
            ScanResult with counters, and ``error`` set if the pass failed
        """
        result = ScanResult()
        try:
            self._scan(force, result)
        except ScanAbortedError as e:
            result.aborted = True
            logger.info("Scan aborted: {}", e)
        except Exception as e:
            result.error = str(e) or type(e).__name__
            logger.exception("Scan failed: {}", e)
        finally:
            result.finish()

        logger.debug("Scan result: {}", result.to_dict())
        return result

    def _scan(self, force: bool, result: ScanResult) -> None:
        folders = self.init()
        metadata_note, metadata = self.load_metadata(folders)

        now = self.clock()
        today = format_day(now)
        result.today = today
        last_updated = metadata.get(LAST_UPDATED)
        logger.debug("Considering update... {} / {}", today, last_updated)
        if today == last_updated and not force:
            result.skipped = True
            return

        if last_updated is None:
            changed = list(self.notes.notes())
        else:
            changed = list(self.notes.search(f"updated:{last_updated}"))
        logger.info("Scanning {} changed notes (since {})", len(changed), last_updated or "the beginning")

        if not force:
            self._check_review_edits(changed, folders, now)

        logs: dict[str, _LogEntry] = {}
        harvested: dict[str, str] = {}
        for note in changed:
            result.notes_scanned += 1
            if note.parent_id == folders.review.id:
                self._harvest(note, folders, metadata, today, logs, harvested, result)
            elif note.parent_id in folders.owned_ids():
                continue
            else:
                self._track(note, folders, logs, result)

        self._flush_logs(logs, folders, result)

        # Let the search index catch up with the writes above
        self.sleep(self.settings.index_settle_seconds)

        quizzes = self._compile_due(folders, today)
        result.quizzes = len(quizzes)
        if quizzes:
            self.rng.shuffle(quizzes)
            record = ReviewRecord.create(today, metadata.get(REVIEWS_COMPLETED, 0), quizzes)
            note = self.notes.create_note(record.title, record.to_text(), folders.review.id)
            result.review_note_id = note.id
            logger.info("Created review session {} with {} questions", record.title, len(quizzes))

        # Rewrite harvested sessions only once everything else is stored
        for note_id, body in harvested.items():
            self.notes.update_note(note_id, body=body)

        metadata.set(LAST_UPDATED, today)
        self.notes.update_note(metadata_note.id, body=metadata.to_text())

    def _check_review_edits(self, changed: list[Note], folders: RememberFolders, now: datetime) -> None:
        grace = timedelta(minutes=self.settings.review_edit_grace_minutes)
        for note in changed:
            if note.parent_id != folders.review.id or note.updated_time is None:
                continue
            if now - note.updated_time < grace:
                raise ScanAbortedError(
                    f"Review session {note.title!r} was edited at {note.updated_time:%H:%M}; "
                    "waiting for the user to finish"
                )

    # ========================================
    # Content Logs
    # ========================================

    def _log_key(self, source_id: str) -> str:
        return LOG_KEY_PREFIX + source_id

    def _open_log(
        self,
        source_id: str,
        folders: RememberFolders,
        logs: dict[str, _LogEntry],
        title: str | None = None,
    ) -> _LogEntry | None:
        """Load a content log once per pass; create it only when ``title`` is given."""
        entry = logs.get(source_id)
        if entry is not None:
            return entry

        note = self.notes.find_by_key(self._log_key(source_id), folders.log.id)
        if note is not None:
            entry = _LogEntry(note=note, log=ContentLog.from_text(note.body, source_id), title=note.title)
        elif title is not None:
            entry = _LogEntry(note=None, log=ContentLog(source_id), title=title, dirty=True)
        else:
            return None

        logs[source_id] = entry
        return entry

    def _track(
        self,
        note: Note,
        folders: RememberFolders,
        logs: dict[str, _LogEntry],
        result: ScanResult,
    ) -> None:
        """Reconcile a source note's blocks with its content log."""
        if not BlockExtractor(note.body).has_blocks():
            return

        entry = self._open_log(note.id, folders, logs, title=f"Log: {note.title}")
        block_scan = entry.log.load_blocks(note.body)
        if block_scan.changed:
            entry.dirty = True
        if block_scan.missing_ids:
            logger.debug("Note {} no longer holds blocks {}", note.id, block_scan.missing_ids)

        if block_scan.new_body is not None:
            logger.info("Assigned block ids {} in note {!r}", block_scan.allocated, note.title)
            self.notes.update_note(note.id, body=block_scan.new_body)
            result.ids_allocated += len(block_scan.allocated)

    def _flush_logs(self, logs: dict[str, _LogEntry], folders: RememberFolders, result: ScanResult) -> None:
        for source_id, entry in logs.items():
            if not entry.dirty:
                continue
            body = entry.log.to_text()
            if entry.note is None:
                entry.note = self.notes.create_note(
                    title=entry.title,
                    body=body,
                    parent_id=folders.log.id,
                    source_url=self.notes.key_value(self._log_key(source_id)),
                )
                result.logs_created += 1
            else:
                self.notes.update_note(entry.note.id, body=body)
                result.logs_updated += 1
            entry.dirty = False

    # ========================================
    # Harvesting
    # ========================================

    def _harvest(
        self,
        note: Note,
        folders: RememberFolders,
        metadata: PropertyGrid,
        today: str,
        logs: dict[str, _LogEntry],
        harvested: dict[str, str],
        result: ScanResult,
    ) -> None:
        """Fold the ratings of a review session into the content logs."""
        record = ReviewRecord.parse(note.body)
        changed = record.cleanup_sections()
        if not record.sections:
            logger.info("Review session {!r} has no answers; deleting", note.title)
            self.notes.delete_note(note.id)
            result.reviews_deleted += 1
            return

        first_completion = record.mark_completed(today)
        if changed or first_completion:
            harvested[note.id] = record.to_text()

        # Ratings keep the day of the first harvest so a later pass replaces them
        rating_day = record.harvested_on
        if rating_day is None:
            logger.warning("Review session {!r} has no harvest date; skipping its ratings", note.title)
            return

        for section in record.sections:
            entry = self._open_log(section.source_id, folders, logs)
            if entry is None:
                logger.warning(
                    "No content log for note {} (question {} of {!r}); skipping rating",
                    section.source_id,
                    section.index,
                    note.title,
                )
                continue
            try:
                if entry.log.log_score(section.block_id, rating_day, record.review_number, section.rating):
                    entry.dirty = True
                    result.ratings_logged += 1
            except NotFoundError as e:
                logger.warning("Skipping rating from {!r}: {}", note.title, e)

        result.reviews_harvested += 1
        if first_completion:
            metadata.set(REVIEWS_COMPLETED, metadata.get(REVIEWS_COMPLETED, 0) + 1)
            result.reviews_completed += 1

    # ========================================
    # Quiz Compilation
    # ========================================

    def due_blocks(self, log_note: Note, today: str) -> list[DueBlock]:
        """
        Blocks of one content log that are due on ``today``.

        Raises:
            NotFoundError: If the log's source note no longer exists
        """
        key = log_note.source_url[len(self.notes.key_prefix) :]
        source_id = key[len(LOG_KEY_PREFIX) :]
        log = ContentLog.from_text(log_note.body, source_id)
        due_ids = log.due_block_ids(today)
        if not due_ids:
            return []

        source = self.notes.get_note(source_id)
        blocks = BlockExtractor(source.body).by_id()
        due: list[DueBlock] = []
        for block_id in due_ids:
            block = blocks.get(str(block_id))
            if block is None:
                continue
            due.append(
                DueBlock(
                    source_id=source_id,
                    source_title=source.title,
                    block_id=block_id,
                    body=block.body,
                    log_id=log_note.id,
                    log_title=log_note.title,
                )
            )
        return due

    def _log_notes(self, folders: RememberFolders) -> list[Note]:
        prefix = self.notes.key_value(LOG_KEY_PREFIX)
        return [n for n in self.notes.notes(folders.log.id) if n.source_url.startswith(prefix)]

    def _compile_log(self, log_note: Note, today: str) -> list[str]:
        try:
            return self.compiler.compile_session(self.due_blocks(log_note, today))
        except NotFoundError as e:
            logger.warning("Skipping orphaned content log {!r}: {}", log_note.title, e)
            return []

    def _compile_due(self, folders: RememberFolders, today: str) -> list[str]:
        log_notes = self._log_notes(folders)
        if not log_notes:
            return []

        quizzes: list[str] = []
        with ThreadPoolExecutor(max_workers=self.settings.scan_workers) as executor:
            futures = {executor.submit(self._compile_log, n, today): n for n in log_notes}
            for future in as_completed(futures):
                quizzes.extend(future.result())
        return quizzes

    # ========================================
    # Reporting
    # ========================================

    def collect_due(self, today: str | None = None) -> list[DueBlock]:
        """Every due block across all content logs (orphans skipped)."""
        folders = self.folders or self.init()
        today = today or format_day(self.clock())
        due: list[DueBlock] = []
        for log_note in self._log_notes(folders):
            try:
                due.extend(self.due_blocks(log_note, today))
            except NotFoundError as e:
                logger.warning("Skipping orphaned content log {!r}: {}", log_note.title, e)
        return due

    def status(self) -> dict[str, Any]:
        """Metadata and counts for the status command."""
        folders = self.folders or self.init()
        _, metadata = self.load_metadata(folders)
        return {
            LAST_UPDATED: metadata.get(LAST_UPDATED),
            REVIEWS_COMPLETED: metadata.get(REVIEWS_COMPLETED, 0),
            "content_logs": len(self._log_notes(folders)),
            "review_sessions": sum(1 for _ in self.notes.notes(folders.review.id)),
            "due_blocks": len(self.collect_due()),
        }
