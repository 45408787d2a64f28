# series_tracker/models.py
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

VALID_STATUSES = ("pending", "watching", "completed")
DEFAULT_STATUS = "pending"

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

class PayloadError(ValueError):
    """Raised when a JSON body cannot be read as a Series."""
    pass

def _string_field(payload: dict, name: str) -> str:
    value = payload.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise PayloadError(f"{name} must be a string")
    return value

def _int_field(payload: dict, name: str) -> int:
    value = payload.get(name)
    if value is None:
        return 0
    # bool is an int subclass; JSON true/false is not an episode count
    if isinstance(value, bool) or not isinstance(value, int):
        raise PayloadError(f"{name} must be an integer")
    return value

@dataclass
class Series:
    id: Optional[int]
    title: str
    description: str = ""
    status: str = DEFAULT_STATUS
    current_episode: int = 0
    total_episodes: int = 0
    score: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> "Series":
        """
        Build a Series from a decoded JSON body.
        Absent fields take their zero value; `id` in the body is ignored.
        Raises PayloadError when the body is not an object, title is
        missing/empty, or a field has the wrong type.
        """
        if not isinstance(payload, dict):
            raise PayloadError("request body must be a JSON object")
        title = _string_field(payload, "title")
        if not title:
            raise PayloadError("title is required")
        return cls(
            id=None,
            title=title,
            description=_string_field(payload, "description"),
            status=_string_field(payload, "status"),
            current_episode=_int_field(payload, "current_episode"),
            total_episodes=_int_field(payload, "total_episodes"),
            score=_int_field(payload, "score"),
        )

    @classmethod
    def from_row(cls, r) -> "Series":
        """Map a store row (mapping-like) to a Series; NULL columns read as zero values."""
        return cls(
            id=r["id"],
            title=r["title"],
            description=r["description"] or "",
            status=r["status"] or "",
            current_episode=r["current_episode"] or 0,
            total_episodes=r["total_episodes"] or 0,
            score=r["score"] or 0,
            created_at=_as_text(r["created_at"]),
            updated_at=_as_text(r["updated_at"]),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "current_episode": self.current_episode,
            "total_episodes": self.total_episodes,
            "score": self.score,
        }

def _as_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
