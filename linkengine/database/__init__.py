from .connection import Base, SessionLocal, engine, get_db, build_engine

__all__ = ["Base", "SessionLocal", "engine", "get_db", "build_engine"]
