"""
Create tables from SQLAlchemy models.
Quick bootstrap for a fresh database when not running `alembic upgrade head`
(local SQLite, throwaway preview environments).
"""
from shiprelay.database import engine, Base
from shiprelay import models  # noqa: F401 - register all models with Base

Base.metadata.create_all(bind=engine)
print("Tables created (or already exist).")
