# series_tracker/service.py
from typing import List
import logging

from series_tracker.models import Series, PayloadError, VALID_STATUSES, DEFAULT_STATUS
from series_tracker.repo import RepoError

logger = logging.getLogger(__name__)

# Exceptions
class ValidationError(Exception):
    """Raised when input validation fails."""
    pass

class NotFoundError(Exception):
    """Raised when a series is not found."""
    pass

SERIES_NOT_FOUND = "Series not found"

class SeriesService:
    """
    Rules for the series watch list.
    The service expects a repository object exposing the methods used below
    (PostgresRepo, SqliteRepo or InMemoryRepo from series_tracker.repo).
    Ids are passed through to the repository as received; the store decides
    whether they are well-formed.
    """

    def __init__(self, repo):
        self.repo = repo
        logger.debug("SeriesService initialized with repo %s", type(repo).__name__)

    @staticmethod
    def _parse(payload) -> Series:
        try:
            return Series.from_payload(payload)
        except PayloadError as e:
            raise ValidationError(str(e)) from e

    def list_series(self) -> List[Series]:
        return self.repo.list_series()

    def get_series(self, series_id) -> Series:
        s = self.repo.get_series(series_id)
        if not s:
            logger.debug("get_series: series %s not found", series_id)
            raise NotFoundError(SERIES_NOT_FOUND)
        return s

    def create_series(self, payload) -> Series:
        """Create a series from a JSON body. Title is required; status defaults to pending."""
        s = self._parse(payload)
        if s.title == "":
            raise ValidationError("Title is required")
        if not s.status:
            s.status = DEFAULT_STATUS
        created = self.repo.create_series(s)
        logger.info("Created series id=%s title=%s", created.id, created.title)
        return created

    def replace_series(self, series_id, payload) -> None:
        """
        Overwrite every mutable field of an existing series.
        Omitted fields are written as their zero value and status is stored
        as given, without checking it against VALID_STATUSES.
        """
        s = self._parse(payload)
        try:
            exists = self.repo.series_exists(series_id)
        except RepoError as e:
            logger.debug("replace_series: existence check failed for %s: %s", series_id, e)
            exists = False
        if not exists:
            raise NotFoundError(SERIES_NOT_FOUND)
        s.id = series_id
        self.repo.update_series(s)
        logger.info("Updated series id=%s", series_id)

    def delete_series(self, series_id) -> None:
        if self.repo.delete_series(series_id) == 0:
            logger.debug("delete_series: series %s not found", series_id)
            raise NotFoundError(SERIES_NOT_FOUND)
        logger.info("Deleted series id=%s", series_id)

    def update_status(self, series_id, payload) -> None:
        """Set status to one of VALID_STATUSES. Unknown ids are not an error."""
        status = payload.get("status") if isinstance(payload, dict) else None
        if status is None or status == "":
            raise ValidationError("status is required")
        if status not in VALID_STATUSES:
            logger.warning("update_status: invalid status %r for series %s", status, series_id)
            raise ValidationError("Invalid status")
        affected = self.repo.update_status(series_id, status)
        logger.info("Updated status for series id=%s to %s (rows=%s)", series_id, status, affected)

    def increment_episode(self, series_id) -> None:
        progress = self.repo.get_episode_progress(series_id)
        if progress is None:
            raise NotFoundError(SERIES_NOT_FOUND)
        current, total = progress
        if current >= total:
            raise ValidationError("Already at the last episode")
        # not atomic with the read above; concurrent callers may overrun the total by one
        self.repo.increment_episode(series_id)
        logger.info("Incremented episode for series id=%s to %s", series_id, current + 1)

    def upvote(self, series_id) -> None:
        affected = self.repo.adjust_score(series_id, 1)
        logger.info("Upvoted series id=%s (rows=%s)", series_id, affected)

    def downvote(self, series_id) -> None:
        affected = self.repo.adjust_score(series_id, -1)
        logger.info("Downvoted series id=%s (rows=%s)", series_id, affected)
