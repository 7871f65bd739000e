import secrets
import string
from typing import Any, Iterable, Optional

from helpdesk.core.config import settings

_CODE_ALPHABET = string.ascii_lowercase + string.digits


def random_meet_code(length: int = 12) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def build_meeting_link(provider: Optional[str] = None, code: Optional[str] = None, prefix: Optional[str] = None) -> str:
    provider = (provider or settings.meet_provider or "jitsi").lower()
    code = code or random_meet_code()

    if provider == "google":
        return f"https://meet.google.com/{code}"
    if provider == "zoom":
        return f"https://zoom.us/j/{code}"
    if provider == "teams":
        return f"https://teams.microsoft.com/l/meetup-join/{code}"

    prefix = prefix if prefix is not None else settings.meet_room_prefix
    return f"https://meet.jit.si/{prefix}-{code}"


def clean_attendees(attendees: Any, creator_email: Optional[str] = None) -> list[str]:
    """Keep strings that look like addresses, add the creator, drop duplicates (first wins)."""
    out: list[str] = []
    seen: set[str] = set()

    candidates: Iterable[Any] = attendees if isinstance(attendees, (list, tuple)) else []
    for a in list(candidates) + [creator_email]:
        if not isinstance(a, str):
            continue
        email = a.strip()
        if "@" not in email or email.lower() in seen:
            continue
        seen.add(email.lower())
        out.append(email)
    return out


def resolve_meeting_link(meeting_type: str, location: Optional[str], meet_id: Optional[str] = None) -> Optional[str]:
    if meeting_type != "online":
        return None
    if location and location.strip().lower().startswith("http"):
        return location.strip()
    return build_meeting_link(code=(meet_id or "").strip() or None)
