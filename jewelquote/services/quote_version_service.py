"""Version snapshot store: append-only history of quote states."""
import enum
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jewelquote.exceptions import NotFoundError
from jewelquote.models import Quote, QuoteVersion

logger = logging.getLogger(__name__)


class SnapshotOutcome(enum.Enum):
    """Result of a best-effort snapshot write."""
    PERSISTED = "PERSISTED"
    SKIPPED_DUPLICATE = "SKIPPED_DUPLICATE"
    SKIPPED_NO_VERSION = "SKIPPED_NO_VERSION"


def write_snapshot(session: Session, quote: Quote, change_notes: Optional[str] = None) -> SnapshotOutcome:
    """
    Record the quote's current state under its current version number.

    Best effort: an existing snapshot for (quote, version) is left alone and
    reported as SKIPPED_DUPLICATE. The insert runs in a savepoint, so a
    unique-constraint race only discards the snapshot, never the caller's
    pending changes. Any other database error propagates.

    The caller owns the surrounding transaction and commits it.
    """
    if not quote.version or quote.version < 1:
        return SnapshotOutcome.SKIPPED_NO_VERSION

    exists = session.query(QuoteVersion.id).filter(
        QuoteVersion.quote_id == quote.id,
        QuoteVersion.version_num == quote.version
    ).first()
    if exists:
        logger.warning(f"Snapshot for quote {quote.id} v{quote.version} already exists, skipping")
        return SnapshotOutcome.SKIPPED_DUPLICATE

    try:
        with session.begin_nested():
            session.add(QuoteVersion(
                quote_id=quote.id,
                version_num=quote.version,
                snapshot_json=quote.to_snapshot(),
                change_notes=change_notes
            ))
    except IntegrityError:
        logger.warning(f"Concurrent snapshot for quote {quote.id} v{quote.version}, skipping")
        return SnapshotOutcome.SKIPPED_DUPLICATE

    return SnapshotOutcome.PERSISTED


def list_versions(session: Session, quote_id: int, limit: Optional[int] = 10) -> List[QuoteVersion]:
    """Most recent versions first; ``limit=None`` returns the whole history."""
    if session.query(Quote.id).filter(Quote.id == quote_id).first() is None:
        raise NotFoundError(f'Quote {quote_id} not found')

    query = session.query(QuoteVersion).filter(
        QuoteVersion.quote_id == quote_id
    ).order_by(QuoteVersion.version_num.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_version(session: Session, quote_id: int, version_num: int) -> QuoteVersion:
    version = session.query(QuoteVersion).filter(
        QuoteVersion.quote_id == quote_id,
        QuoteVersion.version_num == version_num
    ).first()
    if not version:
        raise NotFoundError(f'Version {version_num} of quote {quote_id} not found')
    return version
