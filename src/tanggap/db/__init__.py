from tanggap.db.database import SessionLocal, engine, get_db, init_db

__all__ = ["SessionLocal", "engine", "get_db", "init_db"]
