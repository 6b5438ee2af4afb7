"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.packages.dataroom.core.config import get_settings
from app.packages.dataroom.core.security import get_password_hash
from app.packages.dataroom.db import session as db_session
from app.packages.dataroom.models import User  # noqa: F401 - registers every model on Base.metadata
from app.packages.dataroom.models.base import Base

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all database tables if they do not exist and seed the default account."""
    Base.metadata.create_all(bind=db_session.engine)

    session = db_session.SessionLocal()
    try:
        _seed_default_admin(session)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Failed to seed default data during database initialization")
        raise
    finally:
        session.close()


def _seed_default_admin(db: Session) -> None:
    """确保默认管理员账号存在，便于首次部署后直接登录。"""
    settings = get_settings()
    admin = db.query(User).filter(User.username == settings.default_admin_username).first()
    if admin is not None:
        return
    db.add(
        User(
            username=settings.default_admin_username,
            hashed_password=get_password_hash(settings.default_admin_password),
            nickname="Administrator",
            is_active=True,
        )
    )
    db.flush()
    logger.info("Seeded default account %s", settings.default_admin_username)
