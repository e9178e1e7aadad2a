from veille.db.models import Base, Source, Opportunity, IngestRun
from veille.db.session import build_engine, make_session_factory, get_engine, get_session_factory, get_session

__all__ = [
    "Base",
    "Source",
    "Opportunity",
    "IngestRun",
    "build_engine",
    "make_session_factory",
    "get_engine",
    "get_session_factory",
    "get_session",
]
