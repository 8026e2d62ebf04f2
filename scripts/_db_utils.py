from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.dms.db import build_engine, make_sessionmaker


@contextmanager
def script_session(db_url: str) -> Generator[Session, None, None]:
    """Standalone session for scripts that run without a Flask app (release, seed)."""
    engine = build_engine(db_url)
    s: Session = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
