"""Authentication helpers for the Gmail API."""

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from inbox_sweeper.constants import CONFIG_DIR, CREDENTIALS_PATH, SCOPES, TOKEN_PATH
from inbox_sweeper.gmail_client import build_service
from inbox_sweeper.models import AuthState


def get_credentials(interactive: bool = True) -> Credentials | None:
    """Return OAuth credentials for the Gmail API.

    Loads the cached token from TOKEN_PATH if available.  When the token is
    expired it is silently refreshed.  If no token exists and
    ``interactive`` is set, an OAuth browser flow is launched (requires
    credentials.json at CREDENTIALS_PATH).
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    creds: Credentials | None = None

    if TOKEN_PATH.exists():
        creds = Credentials.from_authorized_user_file(str(TOKEN_PATH), SCOPES)

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    elif not creds or not creds.valid:
        if not interactive:
            return None
        if not CREDENTIALS_PATH.exists():
            raise FileNotFoundError(
                f"Credentials file not found at {CREDENTIALS_PATH}.\n"
                "Download your OAuth client credentials from the Google Cloud Console "
                "and save them as:\n"
                f"  {CREDENTIALS_PATH}"
            )
        flow = InstalledAppFlow.from_client_secrets_file(str(CREDENTIALS_PATH), SCOPES)
        creds = flow.run_local_server(port=0)

    TOKEN_PATH.write_text(creds.to_json())
    return creds


def get_auth_state(interactive: bool = True) -> AuthState:
    """Return whether we hold a usable access token, and the token itself."""
    creds = get_credentials(interactive=interactive)
    if creds is None or not creds.token:
        return AuthState()
    return AuthState(is_authenticated=True, access_token=creds.token)


def check_auth() -> bool:
    """Test whether Gmail authentication is working.

    Returns True when the service can reach the Gmail API, False otherwise.
    Prints human-readable status messages.
    """
    try:
        state = get_auth_state()
        service = build_service(state.access_token)
        profile = service.users().getProfile(userId="me").execute()
        print(f"Authenticated as {profile['emailAddress']}")
        return True
    except FileNotFoundError as exc:
        print(f"Authentication failed: {exc}")
        return False
    except Exception as exc:  # noqa: BLE001
        print(f"Authentication failed: {exc}")
        return False
