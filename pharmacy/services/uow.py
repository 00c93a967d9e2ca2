from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy.services.errors import InternalError, PharmacyError

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Une transaction = une opération métier.
    commit en sortie normale, rollback sur toute erreur ; les pannes SQL
    deviennent InternalError (message générique, détail dans les logs).
    """
    try:
        yield db
        db.commit()
    except PharmacyError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("database failure, transaction rolled back")
        raise InternalError("Internal server error") from exc
    except Exception:
        db.rollback()
        raise
