import logging
import time
from typing import Any, Optional

import httpx

from helpdesk.core.config import settings

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"


class GoogleMeetError(RuntimeError):
    pass


class GoogleMeetClient:
    """Creates Calendar events with a Meet conference using a stored refresh token."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        timezone_name: str = "Asia/Kolkata",
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.timezone_name = timezone_name
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self._timeout, transport=self._transport)

    def _access_token(self, client: httpx.Client) -> str:
        r = client.post(
            TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if r.status_code >= 400:
            raise GoogleMeetError(f"token refresh failed: HTTP {r.status_code}")
        token = r.json().get("access_token")
        if not token:
            raise GoogleMeetError("token refresh returned no access_token")
        return token

    def build_event(
        self,
        title: str,
        description: Optional[str],
        start: str,
        end: str,
        attendees: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        return {
            "summary": title,
            "description": description,
            "start": {"dateTime": start, "timeZone": self.timezone_name},
            "end": {"dateTime": end, "timeZone": self.timezone_name},
            "attendees": [{"email": e} for e in (attendees or [])],
            "conferenceData": {"createRequest": {"requestId": f"{int(time.time() * 1000)}-meet"}},
        }

    def create_meeting(
        self,
        title: str,
        description: Optional[str],
        start: str,
        end: str,
        attendees: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        event = self.build_event(title, description, start, end, attendees)
        try:
            with self._client() as client:
                token = self._access_token(client)
                r = client.post(
                    EVENTS_URL,
                    params={"conferenceDataVersion": 1, "sendUpdates": "all"},
                    headers={"Authorization": f"Bearer {token}"},
                    json=event,
                )
                if r.status_code >= 400:
                    raise GoogleMeetError(f"event insert failed: HTTP {r.status_code}")
                data = r.json()
        except httpx.HTTPError as e:
            raise GoogleMeetError(str(e)) from e

        entry_points = (data.get("conferenceData") or {}).get("entryPoints") or []
        meet_link = next((ep.get("uri") for ep in entry_points if ep.get("entryPointType") == "video"), None)
        return {"meetLink": meet_link or data.get("hangoutLink"), "eventId": data.get("id")}


def get_meet_client() -> Optional[GoogleMeetClient]:
    if not settings.google_meet_enabled:
        return None
    return GoogleMeetClient(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        refresh_token=settings.google_refresh_token,
        timezone_name=settings.google_calendar_timezone,
    )
