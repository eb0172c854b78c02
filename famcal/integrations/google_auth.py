"""
Family Calendar Assistant — Google Calendar Authentication.

The family calendar is shared with a service account; the bot writes to
it with the service account's key file. No interactive consent flow.
"""

from __future__ import annotations

import logging
from pathlib import Path

from google.oauth2 import service_account
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]


def get_calendar_service(key_file: str | None = None):
    """Authenticate with the service-account key and return a Calendar API v3 service.

    Raises FileNotFoundError when the key file is missing so startup fails
    loudly instead of at the first calendar call.
    """
    if key_file is None:
        from famcal.config import settings
        key_file = settings.GOOGLE_SERVICE_ACCOUNT_FILE

    key_path = Path(key_file)
    if not key_path.exists():
        raise FileNotFoundError(
            f"Google service account key not found at {key_path}. "
            "Create one in the Google Cloud Console and share the family "
            "calendar with its e-mail address."
        )

    creds = service_account.Credentials.from_service_account_file(str(key_path), scopes=SCOPES)
    service = build("calendar", "v3", credentials=creds, cache_discovery=False)
    logger.info("Google Calendar service built for %s", creds.service_account_email)
    return service


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    from famcal.config import settings

    print("Checking Google Calendar access...")
    svc = get_calendar_service()
    events = svc.events().list(calendarId=settings.GOOGLE_CALENDAR_ID, maxResults=3).execute()
    items = events.get("items", [])
    print(f"Access OK! Found {len(items)} upcoming event(s).")
    for item in items:
        print(f"  - {item.get('summary', '(no title)')}")
