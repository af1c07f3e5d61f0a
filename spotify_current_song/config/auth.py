"""
OAuth2 PKCE authentication and token management for Spotify API

This module implements the one login flow the application needs: the
Authorization Code flow with Proof Key for Code Exchange (PKCE). No client
secret is involved, so the application can ship with a public client id.

The flow is an explicit state machine driven by ``SpotifyAuth.authorize()``:

    IDLE -> LISTENER_STARTED -> AWAITING_CODE -> EXCHANGING -> AUTHORIZED
                             \\-> BROWSER_OPEN_FAILED -/

1. Bind a local HTTP listener for the redirect path and generate a fresh
   PKCE verifier/challenge pair
2. Build the authorization URL and open it in the user's browser (if the
   browser cannot be opened the URL is logged and the flow keeps waiting)
3. Receive exactly one authorization code through the redirect; the
   listener is shut down and its socket closed right away
4. Exchange the code and the verifier for access/refresh tokens

Any failure moves the flow to FAILED and surfaces as AuthorizationError.
There is no automatic retry of the whole flow.

After authorization the access token is refreshed with the refresh token
whenever it is about to expire, so the polling loop can run for longer than
the lifetime of a single access token.
"""

import base64
import hashlib
import secrets
import threading
import time
import urllib.parse
import webbrowser
from dataclasses import dataclass
from enum import Enum
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Callable, Dict, Optional

import requests
import spotipy
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .settings import CALLBACK_PATH, Settings, get_settings
from ..exceptions import AuthorizationError
from ..utils.logger import get_logger


AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"

# Refresh the access token when it expires within this many seconds
REFRESH_BUFFER_SECONDS = 60

logger = get_logger(__name__)


class AuthState(Enum):
    """States of the authorization flow"""
    IDLE = "idle"
    LISTENER_STARTED = "listener_started"
    AWAITING_CODE = "awaiting_code"
    BROWSER_OPEN_FAILED = "browser_open_failed"
    EXCHANGING = "exchanging"
    AUTHORIZED = "authorized"
    FAILED = "failed"


@dataclass(frozen=True)
class PkceCredentials:
    """
    PKCE verifier and its S256 challenge

    The verifier stays in memory until the token exchange; only the challenge
    is sent in the authorization URL.
    """
    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, num_bytes: int = 64) -> 'PkceCredentials':
        """
        Generate a new random verifier and its challenge

        Args:
            num_bytes: Random bytes used for the verifier. 64 bytes give an
                       86 character verifier, inside the 43..128 range PKCE
                       requires.

        Returns:
            Fresh PkceCredentials
        """
        verifier = secrets.token_urlsafe(num_bytes)
        if not 43 <= len(verifier) <= 128:
            raise ValueError(f"PKCE verifier must be 43-128 characters, got {len(verifier)}")
        return cls(verifier=verifier, challenge=cls.challenge_for(verifier))

    @staticmethod
    def challenge_for(verifier: str) -> str:
        """base64url(SHA256(verifier)) without padding"""
        digest = hashlib.sha256(verifier.encode('ascii')).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b'=').decode('ascii')


@dataclass
class TokenInfo:
    """Access/refresh token pair returned by the Spotify token endpoint"""
    access_token: str
    refresh_token: Optional[str]
    expires_at: int
    token_type: str = "Bearer"
    scope: str = ""

    @classmethod
    def from_token_response(
        cls,
        data: Dict[str, Any],
        default_scope: str = "",
        previous_refresh_token: Optional[str] = None
    ) -> 'TokenInfo':
        """
        Build token information from a token endpoint response

        Spotify may or may not rotate the refresh token on refresh, so the
        previous refresh token is kept when the response has none.

        Args:
            data: Parsed JSON body of the token response
            default_scope: Scope to record when the response omits it
            previous_refresh_token: Refresh token to keep if none is returned

        Returns:
            TokenInfo with an absolute expiry timestamp
        """
        expires_in = int(data.get('expires_in', 3600))
        return cls(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token') or previous_refresh_token,
            expires_at=int(time.time()) + expires_in,
            token_type=data.get('token_type', 'Bearer'),
            scope=data.get('scope', default_scope),
        )

    def is_expired(self, buffer_seconds: int = REFRESH_BUFFER_SECONDS) -> bool:
        """True if the access token expires within buffer_seconds"""
        return int(time.time()) >= self.expires_at - buffer_seconds


class CallbackHandler(BaseHTTPRequestHandler):
    """
    HTTP request handler for the OAuth2 redirect

    Only the configured callback path is served. A request carrying ``code``
    (with the expected ``state``) or ``error`` completes the listener; the
    response page is written before the result is handed to the waiting flow.
    """

    def do_GET(self):
        parsed_url = urllib.parse.urlparse(self.path)
        query_params = urllib.parse.parse_qs(parsed_url.query)

        if parsed_url.path != self.server.callback_path:
            self._send_page(404, "Not Found", "Nothing to see here.")
            return

        if 'error' in query_params:
            error = query_params['error'][0]
            self._send_page(400, "Authorization Failed", f"Spotify returned an error: {error}")
            self.server.deliver(error=error)
            return

        if 'code' not in query_params:
            self._send_page(400, "Authorization Failed", "The redirect did not carry an authorization code.")
            return

        received_state = query_params.get('state', [None])[0]
        if self.server.expected_state and received_state != self.server.expected_state:
            self._send_page(400, "Authorization Failed", "The redirect state did not match this login attempt.")
            self.server.deliver(error="state_mismatch")
            return

        self._send_page(
            200,
            "Authorization Successful!",
            "You can now close this window. The current song will be written shortly."
        )
        self.server.deliver(code=query_params['code'][0])

    def _send_page(self, status: int, title: str, message: str) -> None:
        color = "#1DB954" if status == 200 else "#E22134"
        page = f"""
        <html>
        <head><title>{title}</title></head>
        <body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
            <h1 style="color: {color};">{title}</h1>
            <p>{message}</p>
        </body>
        </html>
        """
        body = page.encode('utf-8')
        self.send_response(status)
        self.send_header('Content-type', 'text/html; charset=utf-8')
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Connection', 'close')
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        """Route request logs to the module logger instead of stderr"""
        logger.debug("Callback listener: " + format, *args)


class CallbackServer(HTTPServer):
    """
    Single-use local listener for the authorization redirect

    Serves requests on a background thread until one code or error has been
    delivered. ``stop()`` shuts the serving loop down and closes the socket,
    after which connections to the port are refused.
    """

    def __init__(
        self,
        port: int,
        callback_path: str = CALLBACK_PATH,
        expected_state: Optional[str] = None,
        host: str = 'localhost'
    ):
        super().__init__((host, port), CallbackHandler)
        self.callback_path = callback_path
        self.expected_state = expected_state
        self.authorization_code: Optional[str] = None
        self.authorization_error: Optional[str] = None
        self._received = threading.Event()
        self._deliver_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    @property
    def port(self) -> int:
        """Port the listener is bound to (resolved when 0 was requested)"""
        return self.server_address[1]

    def start(self) -> None:
        """Start serving on a daemon thread"""
        self._thread = threading.Thread(
            target=self.serve_forever,
            kwargs={'poll_interval': 0.1},
            name='spotify-auth-callback',
            daemon=True
        )
        self._thread.start()

    def deliver(self, code: Optional[str] = None, error: Optional[str] = None) -> bool:
        """
        Record the result of the redirect

        Only the first delivery counts; later ones are ignored.

        Returns:
            True if this call recorded the result
        """
        with self._deliver_lock:
            if self._received.is_set():
                return False
            self.authorization_code = code
            self.authorization_error = error
            self._received.set()
            return True

    def wait_for_code(self, timeout: Optional[float] = None) -> str:
        """
        Block until the redirect has been received

        Args:
            timeout: Seconds to wait, None waits forever

        Returns:
            The authorization code

        Raises:
            AuthorizationError: On timeout or when the redirect carried an error
        """
        deadline = time.monotonic() + timeout if timeout else None

        # Short waits keep the main thread responsive to Ctrl-C
        while not self._received.wait(0.5):
            if deadline is not None and time.monotonic() > deadline:
                raise AuthorizationError(
                    f"Timed out after {timeout:.0f}s waiting for the Spotify authorization callback",
                    details={'port': self.port}
                )

        if self.authorization_error:
            raise AuthorizationError(
                f"Authorization failed: {self.authorization_error}",
                details={'error': self.authorization_error}
            )
        return self.authorization_code

    def stop(self) -> None:
        """Stop serving and release the socket. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._thread is not None:
            self.shutdown()
            self._thread.join()
        self.server_close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> 'CallbackServer':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


class SpotifyAuth:
    """
    Spotify PKCE authorization and token management

    Runs the authorization flow once per process and keeps the resulting
    tokens fresh. Consumers get an authenticated spotipy client through
    ``get_spotify_client()``.

    Attributes:
        settings: Application settings instance
        client_id: Spotify application client ID
        redirect_uri: OAuth2 callback URL (uses the bound port)
        scope: Required permission scope
        state: Current AuthState of the flow
        pkce: Credentials of the current attempt
        authorization_url: Login URL of the current attempt
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        browser_opener: Optional[Callable[[str], bool]] = None
    ):
        """
        Initialize authentication manager with application settings

        Args:
            settings: Settings to use, defaults to the global settings
            browser_opener: Callable opening a URL, defaults to webbrowser.open
        """
        self.settings = settings or get_settings()

        self.client_id = self.settings.spotify.client_id
        self.scope = self.settings.spotify.scope
        self.port = self.settings.spotify.auth_server_port
        self.redirect_uri = self.settings.redirect_uri
        self.request_timeout = self.settings.network.request_timeout

        self.state = AuthState.IDLE
        self.pkce: Optional[PkceCredentials] = None
        self.authorization_url: Optional[str] = None
        self._oauth_state: Optional[str] = None

        self._browser_opener = browser_opener or webbrowser.open
        self._server: Optional[CallbackServer] = None
        self._flow_lock = threading.Lock()
        self._token_lock = threading.Lock()
        self._token_info: Optional[TokenInfo] = None
        self._spotify_client: Optional[spotipy.Spotify] = None

    def _transition(self, new_state: AuthState) -> None:
        logger.debug(f"Authorization state: {self.state.value} -> {new_state.value}")
        self.state = new_state

    # Authorization flow

    def authorize(self) -> TokenInfo:
        """
        Run the complete PKCE authorization flow

        Blocks until the user has completed the login in the browser and the
        code has been exchanged for tokens.

        Returns:
            Token information of the authorized session

        Raises:
            AuthorizationError: If a flow is already running or has completed,
                if the listener cannot be bound, if the redirect carries an
                error, or if the token exchange fails
        """
        if not self._flow_lock.acquire(blocking=False):
            raise AuthorizationError("An authorization flow is already in progress")

        try:
            if self.state not in (AuthState.IDLE, AuthState.FAILED):
                raise AuthorizationError(
                    f"Authorization flow cannot start from state '{self.state.value}'"
                )

            try:
                self._start_listener()
                self._open_browser()
                code = self._await_code()
                token_info = self._exchange_code_for_token(code)
            except BaseException:
                self._transition(AuthState.FAILED)
                raise
            finally:
                self.close()

            with self._token_lock:
                self._token_info = token_info
            self._transition(AuthState.AUTHORIZED)
            logger.console_info("Authorization successful!")
            return token_info
        finally:
            self._flow_lock.release()

    def _start_listener(self) -> None:
        """IDLE -> LISTENER_STARTED"""
        self.pkce = PkceCredentials.generate()
        self._oauth_state = secrets.token_urlsafe(16)

        try:
            self._server = CallbackServer(self.port, CALLBACK_PATH, expected_state=self._oauth_state)
        except OSError as e:
            raise AuthorizationError(
                f"Could not start the authorization callback listener on port {self.port}: {e}",
                details={'port': self.port, 'original_error': str(e)}
            ) from e

        # Port 0 binds an ephemeral port, the redirect must point at it
        self.redirect_uri = f"http://localhost:{self._server.port}{CALLBACK_PATH}"
        self._server.start()
        self._transition(AuthState.LISTENER_STARTED)
        logger.debug(f"Callback listener started on {self.redirect_uri}")

    def build_authorization_url(self) -> str:
        """
        Build the Spotify login URL for the current attempt

        Returns:
            Authorization URL embedding client id, redirect URI, PKCE
            challenge, challenge method, scope and state
        """
        if self.pkce is None:
            raise AuthorizationError("PKCE credentials have not been generated")

        params = {
            'client_id': self.client_id,
            'response_type': 'code',
            'redirect_uri': self.redirect_uri,
            'code_challenge_method': self.pkce.method,
            'code_challenge': self.pkce.challenge,
            'scope': self.scope,
        }
        if self._oauth_state:
            params['state'] = self._oauth_state
        return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

    def _open_browser(self) -> None:
        """LISTENER_STARTED -> AWAITING_CODE or BROWSER_OPEN_FAILED"""
        self.authorization_url = self.build_authorization_url()

        logger.console_info("Opening browser for Spotify authorization...")
        try:
            opened = self._browser_opener(self.authorization_url)
        except Exception as e:
            logger.debug(f"Browser launch raised: {e}")
            opened = False

        if opened:
            self._transition(AuthState.AWAITING_CODE)
            logger.console_info(f"If the browser doesn't open, visit: {self.authorization_url}")
        else:
            # The listener stays up, the user can still log in manually
            self._transition(AuthState.BROWSER_OPEN_FAILED)
            logger.critical(
                f"Could not open a web browser. Open this URL to log in to Spotify: {self.authorization_url}"
            )
        logger.console_info("Waiting for authorization callback...")

    def _await_code(self) -> str:
        """AWAITING_CODE -> EXCHANGING; the listener is released before returning"""
        timeout = self.settings.spotify.authorization_timeout_seconds or None
        try:
            code = self._server.wait_for_code(timeout=timeout)
        finally:
            self._server.stop()
        self._transition(AuthState.EXCHANGING)
        return code

    def _exchange_code_for_token(self, code: str) -> TokenInfo:
        """
        Exchange authorization code and PKCE verifier for tokens

        Args:
            code: Authorization code from the redirect

        Returns:
            TokenInfo for the new session

        Raises:
            AuthorizationError: If the token endpoint rejects the exchange
        """
        data = {
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': self.redirect_uri,  # Must match authorization request
            'client_id': self.client_id,
            'code_verifier': self.pkce.verifier,
        }
        payload = self._request_token(data, "exchange authorization code")
        return TokenInfo.from_token_response(payload, default_scope=self.scope)

    def _request_token(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        headers = {'Content-Type': 'application/x-www-form-urlencoded'}
        try:
            response = requests.post(TOKEN_URL, headers=headers, data=data, timeout=self.request_timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise AuthorizationError(
                f"Failed to {action}: HTTP {status}",
                details={'status': status, 'original_error': str(e)}
            ) from e
        except (requests.RequestException, ValueError) as e:
            raise AuthorizationError(
                f"Failed to {action}: {e}",
                details={'original_error': str(e)}
            ) from e

        if not isinstance(payload, dict) or 'access_token' not in payload:
            raise AuthorizationError(f"Failed to {action}: token response has no access_token")
        return payload

    def close(self) -> None:
        """Release the callback listener if it is still bound"""
        if self._server is not None:
            self._server.stop()

    # Token lifetime

    @property
    def token_info(self) -> Optional[TokenInfo]:
        return self._token_info

    @property
    def cached_client(self) -> Optional[spotipy.Spotify]:
        """spotipy client built so far, without touching the token"""
        return self._spotify_client

    @property
    def is_authorized(self) -> bool:
        return self.state == AuthState.AUTHORIZED and self._token_info is not None

    def refresh_access_token(self) -> TokenInfo:
        """
        Refresh the access token using the refresh token

        Returns:
            Updated token information

        Raises:
            AuthorizationError: If there is no refresh token or the refresh fails
        """
        with self._token_lock:
            current = self._token_info
            if current is None or not current.refresh_token:
                raise AuthorizationError("No refresh token available, restart to log in again")

            data = {
                'grant_type': 'refresh_token',
                'refresh_token': current.refresh_token,
                'client_id': self.client_id,
            }
            payload = self._request_token(data, "refresh access token")
            self._token_info = TokenInfo.from_token_response(
                payload,
                default_scope=current.scope,
                previous_refresh_token=current.refresh_token
            )
            if self._spotify_client is not None:
                self._spotify_client.set_auth(self._token_info.access_token)

        logger.debug("Access token refreshed")
        return self._token_info

    def get_valid_token(self) -> str:
        """
        Get a valid access token, refreshing it when it is about to expire

        Returns:
            Access token string

        Raises:
            AuthorizationError: If not authorized or the refresh fails
        """
        token_info = self._token_info
        if token_info is None:
            raise AuthorizationError("Not authorized with Spotify, run the login flow first")
        if token_info.is_expired():
            logger.debug("Access token expiring, refreshing...")
            token_info = self.refresh_access_token()
        return token_info.access_token

    def _build_api_session(self) -> requests.Session:
        """
        HTTP session for Web API calls

        Only failed connections are retried. Error statuses, 429 included,
        are returned at once with their headers so the caller decides when
        to try again.
        """
        retries = self.settings.network.max_retries
        retry = Retry(
            total=retries,
            connect=retries,
            read=False,
            status=0,
            respect_retry_after_header=False
        )
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=retry)
        session.mount('https://', adapter)
        session.mount('http://', adapter)
        return session

    def get_spotify_client(self) -> spotipy.Spotify:
        """
        Get authenticated Spotify API client instance

        The client is created once and its token is updated in place on
        refresh.

        Returns:
            Authenticated spotipy client
        """
        token = self.get_valid_token()
        if self._spotify_client is None:
            self._spotify_client = spotipy.Spotify(
                auth=token,
                requests_session=self._build_api_session(),
                requests_timeout=self.request_timeout
            )
        else:
            self._spotify_client.set_auth(token)
        return self._spotify_client


# Global authentication instance management
_auth_instance: Optional[SpotifyAuth] = None


def get_auth() -> SpotifyAuth:
    """
    Get the global authentication instance (singleton pattern)

    Returns:
        Global SpotifyAuth instance
    """
    global _auth_instance
    if not _auth_instance:
        _auth_instance = SpotifyAuth()
    return _auth_instance


def reset_auth() -> None:
    """
    Reset the global authentication instance

    Clears the global authentication instance, releasing its listener, so
    the next get_auth() call builds a fresh one from current settings.
    """
    global _auth_instance
    if _auth_instance is not None:
        _auth_instance.close()
    _auth_instance = None
