from signal_engine.db.repositories.contact_point_repo import ContactPointRepository
from signal_engine.db.repositories.notification_repo import NotificationRepository
from signal_engine.db.repositories.signal_repo import SignalRepository

__all__ = ["ContactPointRepository", "NotificationRepository", "SignalRepository"]
