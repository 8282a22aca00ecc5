from collections.abc import Iterable
from pathlib import Path
import json
import copy
import datetime
import logging
from functools import wraps

import google.auth
import google.auth.exceptions
from google.auth.credentials import Credentials as BaseCredentials
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError
import googleapiclient.discovery_cache as gws_discovery_cache

from .exceptions import TransportFailure

log = logging.getLogger(__name__)

_DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"

SCOPES = {
    "sheets": "https://www.googleapis.com/auth/spreadsheets",
    "sheets-ro": "https://www.googleapis.com/auth/spreadsheets.readonly",
    "drive-file": "https://www.googleapis.com/auth/drive.file",
    "drive": "https://www.googleapis.com/auth/drive",
    "drive-ro": "https://www.googleapis.com/auth/drive.readonly",
}
_SCOPE_URL_PREFIX = "https://www.googleapis.com/"


def get_scope(scope: str) -> str:
    """
    Map a short label such as "sheets" or "drive-file" to its OAuth scope URL.
    A full scope URL passes through unchanged, anything else gives "".
    """
    s = str(scope)
    sc = SCOPES.get(s, "")
    if not sc and s.startswith(_SCOPE_URL_PREFIX):
        sc = s
    return sc


def _scope_list(value: None|str|Iterable[str]) -> list[str]:
    if value is None:
        return [SCOPES["sheets"]]
    items = [value] if isinstance(value, str) or not isinstance(value, Iterable) else value
    slist = []
    for v in items:
        s = get_scope(str(v))
        if s and s not in slist:
            slist.append(s)
    return slist


def _load_json(source: bytes|str|dict|Path) -> dict:
    """
    Secrets and tokens turn up as raw bytes (read from a secret store),
    JSON text, an already decoded dict or a path to a file.
    """
    if isinstance(source, dict):
        return dict(source)
    if isinstance(source, Path):
        return json.loads(source.read_text(encoding='utf-8'))
    if isinstance(source, bytes):
        source = source.decode('utf-8')
    text = str(source).strip()
    if not text.startswith('{'):
        return json.loads(Path(text).read_text(encoding='utf-8'))
    return json.loads(text)


def _token_expiry(value: str|None) -> datetime.datetime|None:
    """
    Parse a stored expiry into the naive UTC datetime google-auth compares
    against.  Nanosecond fractions and UTC offsets are accepted.
    """
    if not value:
        return None
    expiry = datetime.datetime.fromisoformat(str(value).strip())
    if expiry.tzinfo is not None:
        expiry = expiry.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return expiry


def credentials_from_oauth2(client_secret: bytes|str|dict|Path,
                            token: bytes|str|dict|Path,
                            scopes: None|str|Iterable[str] = None) -> Credentials:
    """
    Build user credentials from a client secrets file (as downloaded from the
    Google Cloud console, either the 'installed' or 'web' flavour) and a stored
    token holding a refresh_token.
    A stored access token is used until its expiry, then refreshed.  One
    without a readable expiry is dropped and the first request refreshes.
    """
    secret = _load_json(client_secret)
    client = secret.get('installed') or secret.get('web') or secret
    tok = _load_json(token)
    refresh_token = tok.get('refresh_token')
    if not refresh_token:
        raise ValueError("Stored token has no refresh_token")
    client_id = client.get('client_id') or tok.get('client_id')
    client_secret_value = client.get('client_secret') or tok.get('client_secret')
    if not client_id or not client_secret_value:
        raise ValueError("Client secret is missing client_id/client_secret")
    access_token = tok.get('access_token') or tok.get('token') or None
    try:
        expiry = _token_expiry(tok.get('expiry'))
    except ValueError as e:
        log.warning("ignoring stored access token, unreadable expiry %r: %s", tok.get('expiry'), e)
        access_token, expiry = None, None
    if expiry is None:
        access_token = None
    return Credentials(access_token,
                       refresh_token=refresh_token,
                       token_uri=client.get('token_uri', _DEFAULT_TOKEN_URI),
                       client_id=client_id,
                       client_secret=client_secret_value,
                       scopes=_scope_list(scopes),
                       expiry=expiry)


def credentials_from_service_account(key: bytes|str|dict|Path,
                                     subject: str|None = None,
                                     scopes: None|str|Iterable[str] = None) -> service_account.Credentials:
    """
    Build service account credentials from a key file.  With a subject the
    account impersonates that user, which needs domain wide delegation set
    up for the service account.
    """
    info = _load_json(key)
    return service_account.Credentials.from_service_account_info(info,
                                                                  scopes=_scope_list(scopes),
                                                                  subject=subject or None)


def build_service(credentials: BaseCredentials, name: str = "sheets", version: str = "v4",
                  developer_key: str|None = None) -> Resource:
    """Build a discovery service for already constructed credentials."""
    try:
        return build(name, version, credentials=credentials,
                     developerKey=developer_key,
                     cache=gws_discovery_cache.autodetect())
    except (google.auth.exceptions.GoogleAuthError, HttpError) as e:
        raise TransportFailure(f"Failed to build {name}:{version} service: {e}") from e


class GWSAccess():
    """
    Holds the one authenticated Google session of the process.
    Credentials are resolved in this order on connect():
        explicitly supplied credentials (see the credentials property)
        a service account key, impersonating subject if one is set
        the local credential cache, refreshed if needed
        the installed app OAuth flow from the client secrets file
        google.auth.default(), GOOGLE_APPLICATION_CREDENTIALS and friends
    Sessions are cached and refreshed so the confirmation screens of the
    installed app flow do not need to happen repeatedly.

    Use the module level gws instance, functions take their service from it
    through the service() decorator.
    """

    __DEFAULT_AUTH_PROMPT_MSG = "Please visit this URL to authorize gsheets3k: {url}"
    __DEFAULT_AUTH_FLOW_SUCCESS_MSG = "gsheets3k authorization complete, you may close this window."
    __DEFAULT_SECRETS = (Path.home() / "gws_client_secrets.json").absolute()
    __DEFAULT_CACHE = (Path.home() / "gws_tokens.json").absolute()

    def __init__(self) -> None:
        self.reset()

    def __bool__(self) -> bool:
        """Whether the held credentials can be used right now."""
        return self.connected

    def __str__(self) -> str:
        if self.connected:
            return f"Connected:{str(self.session_scopes)}"
        return f"Disconnected:{str(self.__scopes)}"

    def __repr__(self) -> str:
        return f"{str(self.__class__)}:{str(self)}"

    @property
    def client_secrets(self) -> Path:
        """
        OAuth client secrets JSON downloaded from the Cloud console.
        """
        return self.__secrets

    @client_secrets.setter
    def client_secrets(self, value: Path|str) -> None:
        val = value if isinstance(value, Path) else Path(str(value))
        if val != self.__secrets:
            self.__secrets = val
            self.clear()

    @property
    def cred_cache(self) -> Path:
        """
        JSON file holding the refresh token from the last interactive login.
        """
        return self.__cache

    @cred_cache.setter
    def cred_cache(self, value: Path|str) -> None:
        val = value if isinstance(value, Path) else Path(str(value))
        if val != self.__cache:
            self.__cache = val
            self.clear()

    @property
    def service_account_key(self) -> Path|None:
        """Path to a service account key file, takes priority over the OAuth files."""
        return self.__service_account

    @service_account_key.setter
    def service_account_key(self, value: Path|str|None) -> None:
        self.__service_account = None if value is None else Path(str(value))
        self.clear()

    @property
    def subject(self) -> str|None:
        """User a service account impersonates."""
        return self.__subject

    @subject.setter
    def subject(self, value: str|None) -> None:
        self.__subject = None if not value else str(value)
        self.clear()

    def clear(self) -> None:
        """Drop the session so the next service request reconnects."""
        self.__creds = None
        self.__explicit = False
        self.__services = {}

    @property
    def connected(self) -> bool:
        """
        Are we authenticated with Google?
        Service account credentials start without a token, they are usable
        as long as they exist.
        """
        if self.__creds is None:
            return False
        if isinstance(self.__creds, service_account.Credentials):
            return True
        return bool(self.__creds.valid)

    @property
    def session_scopes(self) -> list[str]:
        """
        Scopes the current credentials were granted.
        self.scopes is what the next connect() will ask for.
        """
        if self.connected:
            return list(self.__creds.scopes or [])
        return []

    @property
    def scopes(self) -> list[str]:
        """
        Scopes connect() asks for.
        """
        return self.__scopes

    @scopes.setter
    def scopes(self, value: None|list[str]|str) -> None:
        self.__scopes = [] if value is None else _scope_list(value)
        self.clear()

    def append_scopes(self, *args) -> None:
        """
        Appends to the requested scopes.
        A scope not in the current session drops the session.
        """
        for a in args:
            for s in _scope_list(a):
                if s not in self.__scopes:
                    self.__scopes.append(s)
        if self.connected and not all(s in self.session_scopes for s in self.__scopes):
            self.clear()

    @property
    def credentials(self) -> BaseCredentials|None:
        """
        Credentials in use, None before connect()
        """
        return self.__creds

    @credentials.setter
    def credentials(self, creds: BaseCredentials|None) -> None:
        """
        Use explicitly built credentials, typically from credentials_from_oauth2()
        or credentials_from_service_account().
        """
        self.__services = {}
        self.__creds = creds
        self.__explicit = creds is not None

    @property
    def services(self) -> dict[str,Resource]:
        """
        Services built so far, keyed "name:version".
        """
        return self.__services

    @property
    def config(self) -> dict:
        """
        Settings as a plain dict, suitable for writing to a config file.
        """
        config = {
            'secrets': str(self.__secrets),
            'cache': str(self.__cache),
            'scopes': self.__scopes,
            'server': self.auth_server,
            'port': self.auth_port,
            'service_account': str(self.__service_account) if self.__service_account else None,
            'subject': self.__subject
        }
        return config

    @config.setter
    def config(self, config: dict) -> None:
        """
        Apply settings from a dict shaped like the getter.
        Missing keys keep their current value.
        """
        v = config.get('port', None)
        if v is not None:
            self.auth_port = int(v)
        v = config.get('server', None)
        if v is not None:
            self.auth_server = str(v)
        v = config.get('scopes', [])
        if v:
            self.__scopes = _scope_list(v)
        v = config.get('cache', None)
        if v is not None:
            self.__cache = Path(v)
        v = config.get('secrets', None)
        if v is not None:
            self.__secrets = Path(v)
        v = config.get('service_account', None)
        if v is not None:
            self.__service_account = Path(v)
        v = config.get('subject', None)
        if v is not None:
            self.__subject = str(v)
        v = config.get('auth_prompt_msg', None)
        if v is not None:
            self.auth_prompt_msg = str(v)
        v = config.get('flow_success_msg', None)
        if v is not None:
            self.auth_flow_success_msg = str(v)
        if not self.__explicit:
            self.clear()

    def reset(self) -> None:
        """
        Back to default paths, scopes and no credentials.
        """
        self.__secrets = self.__DEFAULT_SECRETS
        self.__cache = self.__DEFAULT_CACHE
        self.__service_account = None
        self.__subject = None
        self.__creds = None
        self.__explicit = False
        self.__scopes = [SCOPES["sheets"]]
        self.__services = {}
        self.auth_server = 'localhost'
        self.auth_port = 0
        self.auth_prompt_msg = self.__DEFAULT_AUTH_PROMPT_MSG
        self.auth_flow_success_msg = self.__DEFAULT_AUTH_FLOW_SUCCESS_MSG

    def _from_cache(self, requested_scopes: list[str]) -> None:
        if not (self.__cache.exists() and self.__cache.is_file()):
            return
        with open(self.__cache, 'r', encoding='utf-8') as f:
            j = json.load(f)
        # the cache doesn't know about scopes added since it was written
        if not all(s in j.get('scopes', []) for s in requested_scopes):
            log.info("cached credentials lack requested scopes, discarding %s", self.__cache)
            self.__cache.unlink()
            return
        self.__creds = Credentials.from_authorized_user_info(j, requested_scopes)
        if not self.__creds.valid and self.__creds.refresh_token:
            try:
                self.__creds.refresh(Request())
            except google.auth.exceptions.RefreshError as e:
                log.warning("failed to refresh stored creds: %s, deleting cred cache", e)
                self.__creds = None
                self.__cache.unlink()

    def _save_cache(self, requested_scopes: list[str]) -> None:
        if not isinstance(self.__creds, Credentials) or not self.__creds.refresh_token:
            return
        user_info = {'refresh_token': self.__creds.refresh_token, 'client_id': self.__creds.client_id,
                     'client_secret': self.__creds.client_secret, 'scopes': requested_scopes}
        with open(self.__cache, 'w', encoding='utf-8') as f:
            json.dump(user_info, f, ensure_ascii=False, indent=2)

    def connect(self) -> bool:
        """
        Establish a new authentication session if there isn't one.
        Interactive logins are saved in the cache file to reuse
        on subsequent invocations.
        """
        if self.__explicit:
            return self.__creds is not None
        self.__creds = None
        self.__services = {}
        if not self.__scopes:
            return False
        requested_scopes = copy.copy(self.__scopes)

        if self.__service_account is not None:
            self.__creds = credentials_from_service_account(self.__service_account,
                                                            self.__subject, requested_scopes)
            return self.connected

        self._from_cache(requested_scopes)
        if not self.connected:
            if self.__secrets.exists() and self.__secrets.is_file():
                flow = InstalledAppFlow.from_client_secrets_file(str(self.__secrets), requested_scopes)
                self.__creds = flow.run_local_server(host=self.auth_server, port=self.auth_port,
                                                     authorization_prompt_message=self.auth_prompt_msg,
                                                     success_message=self.auth_flow_success_msg)
                self._save_cache(requested_scopes)
            else:
                # GOOGLE_APPLICATION_CREDENTIALS, gcloud ADC or the metadata server
                try:
                    self.__creds, _ = google.auth.default(scopes=requested_scopes)
                except google.auth.exceptions.DefaultCredentialsError as e:
                    log.warning("no usable Google credentials found: %s", e)
                    self.__creds = None
        return self.__creds is not None

    def get_service(self, name: str, version: str) -> Resource:
        """
        Cached discovery service for name:version, connecting first if needed.
        """
        if self.__creds is None and not self.connect():
            raise TransportFailure(f"Not authenticated, cannot build {name}:{version} service")
        id = f'{name}:{version}'
        s = self.__services.get(id, None)
        if s is None:
            s = build_service(self.__creds, name, version)
            self.__services[id] = s
        return s

gws = GWSAccess()

def service(name: str, version: str):
    """
    Decorator passing the GWS service a request function needs as service=.
    A caller that already
    holds a service handle passes it as service= and nothing is built.
    param: name: service name
    param: version: service version
    """
    def _inner_decorator(f):
        @wraps(f)
        def wrapped(*args,**kwargs):
            if kwargs.get('service') is None:
                kwargs['service'] = gws.get_service(name, version)
            return f(*args, **kwargs)
        return wrapped
    return _inner_decorator
