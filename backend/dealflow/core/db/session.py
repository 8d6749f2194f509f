from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache
import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from dealflow.core.config import settings
from dealflow.core.db.base import Base


def _import_model_modules() -> None:
    module_names = [
        "dealflow.core.db.models",
        "dealflow.domain.deals.models.deals",
        "dealflow.domain.deals.models.documents",
    ]
    for module_name in module_names:
        importlib.import_module(module_name)


@lru_cache(maxsize=1)
def get_engine():
    # Lazy init so importing the app never requires a reachable database.
    engine = create_engine(settings.database_url, pool_pre_ping=True)
    _import_model_modules()
    Base.metadata.create_all(bind=engine)
    return engine


def get_session_local() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()
