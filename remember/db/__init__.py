"""Documents owned by the scanner: content logs and review records."""

from remember.db.content_log import BlockHistory, BlockScan, ContentLog, ReviewEvent
from remember.db.review_record import QuizSection, ReviewRecord

__all__ = [
    "BlockHistory",
    "BlockScan",
    "ContentLog",
    "ReviewEvent",
    "QuizSection",
    "ReviewRecord",
]
