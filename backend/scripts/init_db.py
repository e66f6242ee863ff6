"""
Bring the database schema to the latest revision and create the admin user.
Run before starting the API: python scripts/init_db.py

For PostgreSQL create the role and database first:

  sudo -u postgres psql
  CREATE USER task_auth WITH PASSWORD 'task_auth';
  CREATE DATABASE task_auth_db OWNER task_auth;
  \q
"""

import sys
from pathlib import Path

_BACKEND_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_BACKEND_DIR))

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings


def main():
    url = settings.get_database_url()
    try:
        engine = create_engine(url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        print(f"Cannot connect to database: {e}")
        sys.exit(1)

    alembic_cfg = Config(str(_BACKEND_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(_BACKEND_DIR / "alembic"))
    command.upgrade(alembic_cfg, "head")
    print("Schema is at head revision.")

    from app.main import bootstrap_admin
    bootstrap_admin()
    print(f"Admin account ready: {settings.ADMIN_EMAIL}")


if __name__ == "__main__":
    main()
