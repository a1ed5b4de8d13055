"""
Google OAuth Service for Calendar API access.
Handles OAuth URL generation, code exchange, token refresh and revocation.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httpx

from gigsync.config import settings
from gigsync.infrastructure.observability.logging import get_logger, token_preview

logger = get_logger(__name__)

# OAuth configuration
GOOGLE_OAUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

CALENDAR_READ_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"
CALENDAR_WRITE_SCOPE = "https://www.googleapis.com/auth/calendar.events"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 10  # seconds
MAX_ATTEMPTS = 2
RETRY_BACKOFF_SECONDS = 0.5
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class GoogleOAuthError(Exception):
    """Custom exception for Google OAuth-related errors."""

    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


class TokenRevokedError(GoogleOAuthError):
    """The refresh token itself is invalid (revoked or expired), not just the access token."""


class TokenResponse:
    """Structured representation of OAuth token response."""

    def __init__(self, data: dict):
        self.access_token = data.get("access_token")
        self.refresh_token = data.get("refresh_token")
        self.token_type = data.get("token_type", "Bearer")
        self.expires_in = data.get("expires_in")
        self.scope = data.get("scope", "")

        if self.expires_in:
            self.expires_at = datetime.now(UTC) + timedelta(seconds=int(self.expires_in))
        else:
            self.expires_at = None

    def is_valid(self) -> bool:
        """Check if token response contains required fields."""
        return bool(self.access_token and self.token_type)

    def has_write_access(self) -> bool:
        """Event creation needs the calendar.events scope."""
        return CALENDAR_WRITE_SCOPE in (self.scope or "").split()


class GoogleOAuthService:
    """
    Service for Google OAuth 2.0 operations against the Calendar API.

    Configuration is validated on first use so the module imports without
    credentials.
    """

    def __init__(self):
        self.client_id = settings.GOOGLE_CALENDAR_CLIENT_ID
        self.client_secret = settings.GOOGLE_CALENDAR_CLIENT_SECRET
        self.redirect_uri = settings.calendar_redirect_uri()

    def _validate_config(self) -> None:
        if not self.client_id:
            raise GoogleOAuthError("GOOGLE_CALENDAR_CLIENT_ID not configured")
        if not self.client_secret:
            raise GoogleOAuthError("GOOGLE_CALENDAR_CLIENT_SECRET not configured")

    async def _post_with_retry(self, url: str, data: dict, operation: str) -> httpx.Response:
        """POST a form with one retry on transient failures."""
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            for attempt in range(1, MAX_ATTEMPTS + 1):
                try:
                    response = await client.post(url, data=data, headers=headers)

                    if response.status_code in RETRY_STATUS_CODES and attempt < MAX_ATTEMPTS:
                        logger.warning(
                            "Google OAuth transient status",
                            operation=operation,
                            status_code=response.status_code,
                            attempt=attempt,
                        )
                        await asyncio.sleep(RETRY_BACKOFF_SECONDS)
                        continue

                    return response

                except httpx.RequestError as exc:
                    if attempt == MAX_ATTEMPTS:
                        raise
                    logger.warning(
                        "Google OAuth request error, retrying",
                        operation=operation,
                        attempt=attempt,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    await asyncio.sleep(RETRY_BACKOFF_SECONDS)

        raise GoogleOAuthError(f"{operation} failed: retries exhausted")

    def generate_oauth_url(self, state: str, write_access: bool = True) -> str:
        """
        Build the consent URL.

        ``access_type=offline`` + ``prompt=consent`` so Google always hands
        back a refresh token.
        """
        self._validate_config()
        scopes = [CALENDAR_READ_SCOPE]
        if write_access:
            scopes.append(CALENDAR_WRITE_SCOPE)

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(scopes),
            "response_type": "code",
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        oauth_url = f"{GOOGLE_OAUTH_BASE_URL}?{urlencode(params)}"

        logger.info(
            "OAuth URL generated",
            state_preview=state[:8] + "...",
            write_access=write_access,
        )
        return oauth_url

    async def exchange_code_for_tokens(self, authorization_code: str) -> TokenResponse:
        """
        Exchange authorization code for access and refresh tokens.

        Raises:
            GoogleOAuthError: If token exchange fails
        """
        self._validate_config()
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": authorization_code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }

        try:
            response = await self._post_with_retry(GOOGLE_TOKEN_URL, data, "code_exchange")
            return self._handle_token_response(response, "code_exchange")

        except GoogleOAuthError:
            raise
        except httpx.RequestError as e:
            logger.error("Network error during token exchange", error=str(e))
            raise GoogleOAuthError(f"Network error during token exchange: {e}") from e
        except Exception as e:
            logger.error(
                "Unexpected error during token exchange",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GoogleOAuthError(f"Token exchange failed: {e}") from e

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """
        Refresh access token using refresh token.

        Google usually omits a new refresh token on refresh; the existing one
        is carried over.

        Raises:
            TokenRevokedError: Google answered ``invalid_grant``
            GoogleOAuthError: any other refresh failure
        """
        self._validate_config()
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            logger.info(
                "Refreshing calendar access token",
                refresh_token_preview=token_preview(refresh_token),
            )
            response = await self._post_with_retry(GOOGLE_TOKEN_URL, data, "token_refresh")
            token_response = self._handle_token_response(response, "token_refresh")

            if not token_response.refresh_token:
                token_response.refresh_token = refresh_token

            return token_response

        except GoogleOAuthError:
            raise
        except httpx.RequestError as e:
            logger.error("Network error during token refresh", error=str(e))
            raise GoogleOAuthError(f"Network error during token refresh: {e}") from e
        except Exception as e:
            logger.error(
                "Unexpected error during token refresh",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GoogleOAuthError(f"Token refresh failed: {e}") from e

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke access or refresh token.

        Returns:
            bool: True if revocation successful, False otherwise (never raises)
        """
        try:
            response = await self._post_with_retry(
                GOOGLE_REVOKE_URL, {"token": token}, "token_revocation"
            )
            success = response.status_code == 200
            if success:
                logger.info("Calendar token revoked successfully")
            else:
                logger.warning(
                    "Token revocation failed",
                    status_code=response.status_code,
                    response_text=response.text[:200],
                )
            return success

        except Exception as e:
            logger.error(
                "Error during token revocation",
                token_preview=token_preview(token),
                error=str(e),
            )
            return False

    def _handle_token_response(self, response: httpx.Response, operation: str) -> TokenResponse:
        """
        Handle and validate token response from Google.

        Raises:
            TokenRevokedError: ``invalid_grant`` on refresh
            GoogleOAuthError: If response is invalid or contains errors
        """
        if not response.is_success:
            try:
                error_data = response.json()
            except ValueError:
                logger.error(
                    f"Google {operation} failed with non-JSON response",
                    status_code=response.status_code,
                    response_text=response.text[:200],
                )
                raise GoogleOAuthError(
                    f"Google OAuth service error (HTTP {response.status_code})"
                ) from None

            error_code = error_data.get("error", "unknown_error")
            logger.error(
                f"Google {operation} failed",
                status_code=response.status_code,
                error_code=error_code,
                error_description=error_data.get("error_description"),
            )

            error_class = GoogleOAuthError
            if error_code == "invalid_grant" and operation == "token_refresh":
                error_class = TokenRevokedError
            raise error_class(
                self._map_google_error(error_code),
                error_code=error_code,
                response_data=error_data,
            )

        try:
            token_response = TokenResponse(response.json())
        except ValueError as e:
            logger.error(f"Failed to parse Google {operation} response", error=str(e))
            raise GoogleOAuthError(f"Failed to parse Google response: {e}") from e

        if not token_response.is_valid():
            raise GoogleOAuthError("Invalid token response from Google")

        logger.info(
            f"Google {operation} successful",
            expires_in=token_response.expires_in,
            has_refresh_token=bool(token_response.refresh_token),
            write_access=token_response.has_write_access(),
        )
        return token_response

    def _map_google_error(self, error_code: str) -> str:
        error_messages = {
            "access_denied": "Calendar access was denied. Please connect again and grant access.",
            "invalid_grant": "Google Calendar session expired. Please reconnect your calendar.",
            "invalid_client": "Calendar connection configuration error. Please contact support.",
            "invalid_request": "Invalid calendar connection request. Please try again.",
            "unauthorized_client": "Calendar connection not authorized. Please contact support.",
            "invalid_scope": "Invalid calendar permissions requested. Please contact support.",
        }
        return error_messages.get(
            error_code, f"Calendar connection failed ({error_code}). Please try again."
        )


# Singleton instance for application use
google_oauth_service = GoogleOAuthService()

