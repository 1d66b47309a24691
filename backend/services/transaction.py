from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.services.exceptions import PersistenceConflict

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(db: Session, label: str) -> Iterator[Session]:
    """
    Une seule transaction par appel de réconciliation : commit en sortie,
    rollback complet sur toute erreur (jamais d'application partielle).

    Les conflits de persistance (version, contrainte unique, verrou)
    remontent en PersistenceConflict, rejouable par l'appelant.
    """
    try:
        yield db
        db.commit()
    except (StaleDataError, IntegrityError, OperationalError) as e:
        db.rollback()
        logger.warning("%s: persistence conflict, rolled back (%s)", label, e.__class__.__name__)
        raise PersistenceConflict(f"{label}: concurrent modification, retry the request") from e
    except Exception:
        db.rollback()
        raise
