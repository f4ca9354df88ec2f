# app/services/calendar/google_calendar_service.py
import asyncio
from datetime import timedelta, datetime, timezone
from typing import List, Optional

from app.config.settings import get_settings
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from cryptography.fernet import InvalidToken
import logging

from app.core.errors import CalendarSyncError
from app.schemas.scheduling import (
    BookingRecord,
    CalendarIntegrationRecord,
    ConnectionStatus,
    ExternalBusyInterval,
)
from app.services.calendar.base import CalendarSyncAdapter
from app.services.scheduling.intervals import TimeInterval
from app.services.storage.booking_store import BookingStore
from app.utils.encryption import decrypt_token, encrypt_token

settings = get_settings()

logger = logging.getLogger(__name__)

# Google answers these with a retryable error
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def _parse_rfc3339(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GoogleCalendarAdapter(CalendarSyncAdapter):
    """Google Calendar v3 adapter: freeBusy for busy time, events for mirroring"""

    SCOPES = ['https://www.googleapis.com/auth/calendar']

    def __init__(self, integration: CalendarIntegrationRecord, store: BookingStore, **kwargs):
        super().__init__(integration, **kwargs)
        self.store = store
        self.client_config = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "token_uri": settings.GOOGLE_TOKEN_URI,
        }

    # ---- credentials --------------------------------------------------------

    def get_valid_credentials(self) -> Credentials:
        """Get valid credentials, refreshing if necessary"""
        now = datetime.now(timezone.utc)
        expires_at = self.integration.token_expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at is None or expires_at <= now + timedelta(minutes=5):
            return self.refresh_access_token()
        access_token = decrypt_token(self.integration.access_token_encrypted)
        refresh_token = decrypt_token(self.integration.refresh_token_encrypted)
        return Credentials(
            token=access_token,
            refresh_token=refresh_token,
            **self.client_config
        )

    def refresh_access_token(self) -> Credentials:
        """Refresh expired access token using refresh token"""
        refresh_token = decrypt_token(self.integration.refresh_token_encrypted)
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            **self.client_config
        )
        credentials.refresh(Request())
        access_token_encrypted = encrypt_token(credentials.token)
        expiry = credentials.expiry.replace(tzinfo=timezone.utc) if credentials.expiry else None
        self.store.update_integration_tokens(self.integration.id, access_token_encrypted, expiry)
        self.integration = self.integration.model_copy(
            update={"access_token_encrypted": access_token_encrypted, "token_expires_at": expiry}
        )
        return credentials

    def _service(self):
        return build('calendar', 'v3', credentials=self.get_valid_credentials(), cache_discovery=False)

    async def _execute(self, operation: str, fn):
        """Run a blocking Google client call in a worker thread and normalize its errors"""
        try:
            return await asyncio.to_thread(fn)
        except RefreshError as e:
            logger.error(f"Google credentials revoked for integration {self.integration.id}: {e}")
            self.store.update_integration_status(
                self.integration.id, ConnectionStatus.AUTH_REVOKED, str(e)
            )
            raise CalendarSyncError(f"{operation}: authorization revoked", retryable=False) from e
        except InvalidToken as e:
            raise CalendarSyncError(f"{operation}: stored token cannot be decrypted", retryable=False) from e
        except HttpError as e:
            status = e.resp.status if e.resp is not None else None
            raise CalendarSyncError(
                f"{operation}: Google API returned {status}",
                retryable=status in RETRYABLE_STATUS_CODES
            ) from e
        except (TransportError, OSError) as e:
            raise CalendarSyncError(f"{operation}: {e}") from e

    # ---- adapter contract ---------------------------------------------------

    async def _pull_busy(self, owner_id, date_range: TimeInterval) -> List[ExternalBusyInterval]:
        calendar_id = self.calendar_id

        def query():
            body = {
                "timeMin": date_range.start.isoformat(),
                "timeMax": date_range.end.isoformat(),
                "items": [{"id": calendar_id}],
            }
            return self._service().freebusy().query(body=body).execute()

        result = await self._execute("pull_busy", query)
        calendar = result.get("calendars", {}).get(calendar_id, {})
        if calendar.get("errors"):
            reasons = ", ".join(err.get("reason", "unknown") for err in calendar["errors"])
            raise CalendarSyncError(f"pull_busy: freeBusy reported errors: {reasons}")

        busy = []
        for block in calendar.get("busy", []):
            start = _parse_rfc3339(block["start"])
            end = _parse_rfc3339(block["end"])
            if end <= start:
                continue
            busy.append(ExternalBusyInterval(start=start, end=end, source_calendar_id=calendar_id))

        logger.info(f"Pulled {len(busy)} busy blocks from Google calendar {calendar_id} for owner {owner_id}")
        return busy

    def _event_body(self, booking: BookingRecord) -> dict:
        description = booking.notes or ""
        if booking.booker_company:
            description = f"Company: {booking.booker_company}\n{description}".strip()
        return {
            "summary": f"Meeting with {booking.booker_name}",
            "description": description,
            "start": {"dateTime": booking.start_time.isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": booking.end_time.isoformat(), "timeZone": "UTC"},
            "attendees": [{"email": booking.booker_email, "displayName": booking.booker_name}],
            "extendedProperties": {"private": {"booking_id": str(booking.id)}},
        }

    async def _push(self, booking: BookingRecord) -> str:
        body = self._event_body(booking)
        event = await self._execute(
            "push",
            lambda: self._service().events().insert(calendarId=self.calendar_id, body=body).execute()
        )
        logger.info(f"Created Google event {event['id']} for booking {booking.id}")
        return event["id"]

    async def _update(self, external_ref: str, booking: BookingRecord) -> None:
        body = self._event_body(booking)
        await self._execute(
            "update",
            lambda: self._service().events().patch(
                calendarId=self.calendar_id, eventId=external_ref, body=body
            ).execute()
        )
        logger.info(f"Updated Google event {external_ref} for booking {booking.id}")

    async def _delete(self, external_ref: str) -> None:
        def delete():
            try:
                self._service().events().delete(calendarId=self.calendar_id, eventId=external_ref).execute()
            except HttpError as e:
                # Already gone on Google's side
                if e.resp is not None and e.resp.status in (404, 410):
                    logger.info(f"Google event {external_ref} already deleted")
                    return
                raise

        await self._execute("delete", delete)


def get_calendar_adapter(
        integration: CalendarIntegrationRecord,
        store: BookingStore,
        pull_timeout: Optional[float] = None,
        push_timeout: Optional[float] = None
) -> CalendarSyncAdapter:
    """Build the adapter for an integration's provider"""
    if integration.provider == 'google':
        return GoogleCalendarAdapter(
            integration, store, pull_timeout=pull_timeout, push_timeout=push_timeout
        )

    logger.error(f"Unknown calendar provider: {integration.provider}")
    raise CalendarSyncError(f"Unsupported calendar provider: {integration.provider}", retryable=False)
