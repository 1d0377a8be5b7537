# services/subscriber_store.py
"""
Subscriber table access

The alert cycle only needs three queries: list all, insert one, delete one.
Every SQLAlchemy failure is translated into StoreError so callers never see
driver exceptions.
"""

import logging
from typing import List

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.database_models import Subscriber
from core.exceptions import AlreadySubscribedError, StoreError

logger = logging.getLogger(__name__)


class SubscriberStore:
    """Thin repository over the Flask-SQLAlchemy session"""

    def __init__(self, db):
        self.db = db

    def list_all(self) -> List[Subscriber]:
        try:
            return list(self.db.session.scalars(select(Subscriber).order_by(Subscriber.id)))
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise StoreError(f"Failed to load subscribers: {exc}") from exc

    def add(self, email: str) -> Subscriber:
        """
        Insert a subscriber row.

        Raises:
            AlreadySubscribedError: the email is already stored
            StoreError: any other database failure
        """
        subscriber = Subscriber(email=email)
        try:
            self.db.session.add(subscriber)
            self.db.session.commit()
        except IntegrityError as exc:
            self.db.session.rollback()
            raise AlreadySubscribedError(f"{email} is already subscribed") from exc
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise StoreError(f"Failed to insert subscriber: {exc}") from exc

        logger.info(f"Email {email} subscribed successfully")
        return subscriber

    def remove(self, email: str) -> bool:
        """Delete a subscriber row, returning False when no row matched"""
        try:
            result = self.db.session.execute(delete(Subscriber).where(Subscriber.email == email))
            self.db.session.commit()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise StoreError(f"Failed to delete subscriber: {exc}") from exc

        removed = result.rowcount > 0
        if removed:
            logger.info(f"Email {email} unsubscribed successfully")
        return removed

    def ping(self) -> None:
        """Check database connectivity"""
        try:
            self.db.session.execute(select(1))
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise StoreError(f"Database connection failed: {exc}") from exc
