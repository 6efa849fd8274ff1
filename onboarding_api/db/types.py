"""Custom SQLAlchemy types for encrypted and timezone-aware fields."""

from __future__ import annotations

from datetime import timezone

from sqlalchemy.types import DateTime, Text, TypeDecorator

from onboarding_api.core.encryption import open_payload, seal_payload


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always reads back as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class EncryptedJSON(TypeDecorator):
    """Form payload column: a dict in Python, one sealed Fernet token in the row."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return seal_payload(value)

    def process_result_value(self, value, dialect):
        if not value:
            return None
        return open_payload(value)
