import uuid
from datetime import datetime, timezone


def generate_id(prefix: str = "") -> str:
    """Short unique id, e.g. SELL1f3a9c0d2b."""
    return f"{prefix}{uuid.uuid4().hex[:10].upper()}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes coming back from storage as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def strip_mongo_id(doc):
    """Drop Mongo's _id so the document can be fed to a pydantic model."""
    if doc is not None:
        doc.pop("_id", None)
    return doc
