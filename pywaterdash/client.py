"""Client for the Firebase services behind the water dashboard.

The client talks to three REST surfaces of one Firebase project:
- AUTH_URL / TOKEN_URL: password sign-in and ID token refresh
- database_url: the Realtime Database holding telemetry and valve commands
- FIRESTORE_URL: the document store holding users and service requests

It also owns the optional InfluxDB sink used to keep a history of flow
samples.
"""

import asyncio
import copy
import inspect
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple, Union

import aiohttp
from influxdb_client import InfluxDBClient, Point
from influxdb_client.client.write_api import SYNCHRONOUS

from .cache import FlowSampleCache
from .config import WaterDashConfig
from .exceptions import WaterDashAPIError, WaterDashAuthError, WaterDashInfluxDBError
from .feed import RealtimeFeed, Subscription
from .firestore import decode_document, decode_query_results, encode_fields, structured_query
from .models import AuthUser, FlowSample
from .telemetry import evaluate_leak

main_logger = logging.getLogger('waterdash.main')
debug_logger = logging.getLogger('waterdash.debug')
warning_logger = logging.getLogger('waterdash.warning')

AuthListener = Callable[[Optional[AuthUser]], Any]
Params = Union[Dict[str, Any], Sequence[Tuple[str, Any]], None]

DEFAULT_AUTH_ERROR = "Login failed. Please try again."
AUTH_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "Invalid username or password",
    "INVALID_PASSWORD": "Invalid username or password",
    "INVALID_LOGIN_CREDENTIALS": "Invalid username or password",
    "INVALID_EMAIL": "Invalid username or password",
    "USER_DISABLED": "This account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many failed attempts. Please try again later.",
}


def _error_code(data: Any) -> Optional[str]:
    """Pull the provider error code out of an error body.

    Codes sometimes carry a description: ``"TOO_MANY_ATTEMPTS_TRY_LATER : ..."``.
    """
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        message = error.get("message")
    else:
        message = error
    if not message:
        return None
    return str(message).split(" : ")[0].split(" ")[0].strip()


def _apply_at(current: Any, path: str, data: Any) -> Any:
    """Return ``current`` with ``data`` written at the event ``path``."""
    keys = [key for key in path.split("/") if key]
    if not keys:
        return copy.deepcopy(data)
    root = copy.deepcopy(current) if isinstance(current, dict) else {}
    node = root
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    if data is None:
        node.pop(keys[-1], None)
    else:
        node[keys[-1]] = copy.deepcopy(data)
    return root or None


class WaterDashClient(RealtimeFeed):
    """Client for the dashboard's feed, document store and identity provider."""

    AUTH_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
    TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
    FIRESTORE_URL = "https://firestore.googleapis.com/v1"

    def __init__(
        self,
        api_key: str,
        project_id: str,
        database_url: str,
        influxdb_url: Optional[str] = None,
        influxdb_token: Optional[str] = None,
        influxdb_org: Optional[str] = None,
        influxdb_bucket: Optional[str] = None,
        influxdb_measurement: str = "flow_readings",
        cache_dir: Optional[str] = None,
        site: str = "waterSystem",
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Web API key of the Firebase project
            project_id: Firebase project ID (used for Firestore URLs)
            database_url: Realtime Database URL
            influxdb_url: InfluxDB server URL
            influxdb_token: InfluxDB authentication token
            influxdb_org: InfluxDB organization
            influxdb_bucket: InfluxDB bucket name
            influxdb_measurement: InfluxDB measurement name
            cache_dir: Directory for the local sample cache (optional)
            site: Tag written with every flow sample
        """
        self.api_key = api_key
        self.project_id = project_id
        self.database_url = database_url.rstrip("/")
        self.site = site
        self._session: Optional[aiohttp.ClientSession] = None
        self._user: Optional[AuthUser] = None
        self._auth_listeners: List[AuthListener] = []
        self._tasks: set = set()
        self._influxdb_client: Optional[InfluxDBClient] = None
        self._write_api = None
        self.cache = FlowSampleCache(cache_dir) if cache_dir else None

        # InfluxDB configuration
        self.influxdb_url = influxdb_url
        self.influxdb_token = influxdb_token
        self.influxdb_org = influxdb_org
        self.influxdb_bucket = influxdb_bucket
        self.influxdb_measurement = influxdb_measurement

        # Initialize InfluxDB client if all required parameters are provided
        if all([influxdb_url, influxdb_token, influxdb_org, influxdb_bucket]):
            self._influxdb_client = InfluxDBClient(
                url=influxdb_url,
                token=influxdb_token,
                org=influxdb_org
            )
            self._write_api = self._influxdb_client.write_api(write_options=SYNCHRONOUS)

    @classmethod
    def from_config(cls, config: WaterDashConfig) -> "WaterDashClient":
        """Create a client from a loaded configuration."""
        return cls(
            api_key=config.api_key,
            project_id=config.project_id,
            database_url=config.database_url,
            influxdb_url=config.influxdb_url,
            influxdb_token=config.influxdb_token,
            influxdb_org=config.influxdb_org,
            influxdb_bucket=config.influxdb_bucket,
            influxdb_measurement=config.influxdb_measurement,
            cache_dir=config.cache_dir,
        )

    @classmethod
    def from_env(cls) -> "WaterDashClient":
        """Create a client from environment variables."""
        return cls.from_config(WaterDashConfig.from_env())

    @property
    def current_user(self) -> Optional[AuthUser]:
        """The signed-in identity, if any."""
        return self._user

    @property
    def influxdb_enabled(self) -> bool:
        return self._write_api is not None

    @property
    def documents_url(self) -> str:
        return f"{self.FIRESTORE_URL}/projects/{self.project_id}/databases/(default)/documents"

    async def __aenter__(self):
        """Set up the client session."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up the client session."""
        await self.close()

    async def connect(self) -> None:
        """Open the HTTP session if it is not open yet."""
        if not self._session:
            self._session = aiohttp.ClientSession()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def on_auth_state_changed(self, callback: AuthListener) -> Subscription:
        """Call ``callback`` with the new identity (or ``None``) on every
        sign-in and sign-out. Coroutine callbacks are awaited in order.
        """
        self._auth_listeners.append(callback)

        def remove() -> None:
            if callback in self._auth_listeners:
                self._auth_listeners.remove(callback)

        return Subscription(remove)

    async def _notify_auth_listeners(self) -> None:
        for callback in list(self._auth_listeners):
            result = callback(self._user)
            if inspect.isawaitable(result):
                await result

    async def _post_auth(self, url: str, **kwargs) -> Tuple[int, Any]:
        """POST to an identity endpoint, returning the status and JSON body."""
        await self.connect()
        debug_logger.debug("=== AUTH REQUEST ===")
        debug_logger.debug(f"URL: {url}")

        try:
            async with self._session.post(url, params={"key": self.api_key}, **kwargs) as response:
                debug_logger.debug("=== AUTH RESPONSE ===")
                debug_logger.debug(f"Status: {response.status}")
                response_text = await response.text()
                debug_logger.debug(f"Body: {response_text}")
                return response.status, self._parse_body(response_text)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            warning_logger.error(f"Identity request failed: {str(e)}")
            raise WaterDashAuthError(DEFAULT_AUTH_ERROR) from e

    async def sign_in(self, email: str, password: str) -> AuthUser:
        """Sign in with email and password."""
        status, data = await self._post_auth(
            self.AUTH_URL,
            json={"email": email, "password": password, "returnSecureToken": True},
        )

        if status != 200:
            code = _error_code(data)
            warning_logger.error(f"Failed to sign in {email}: {code}")
            raise WaterDashAuthError(AUTH_ERROR_MESSAGES.get(code, DEFAULT_AUTH_ERROR), code=code)

        try:
            self._user = AuthUser(
                uid=data["localId"],
                email=data.get("email", email),
                id_token=data["idToken"],
                refresh_token=data["refreshToken"],
                expires_at=self._expiry(data.get("expiresIn")),
            )
        except (KeyError, TypeError) as e:
            warning_logger.error(f"Error parsing sign-in response: {e}")
            raise WaterDashAuthError(DEFAULT_AUTH_ERROR) from e

        main_logger.info(f"Signed in as {self._user.email}")
        await self._notify_auth_listeners()
        return self._user

    async def refresh(self) -> AuthUser:
        """Exchange the refresh token for a new ID token.

        A rejected refresh token ends the session and notifies listeners.
        """
        if not self._user:
            raise WaterDashAuthError("Not signed in.")

        status, data = await self._post_auth(
            self.TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": self._user.refresh_token},
        )

        if status != 200 or not isinstance(data, dict) or "id_token" not in data:
            code = _error_code(data)
            warning_logger.error(f"Failed to refresh ID token: {code}")
            self._user = None
            await self._notify_auth_listeners()
            raise WaterDashAuthError("Session expired. Please login again.", code=code)

        self._user = self._user.model_copy(update={
            "id_token": data["id_token"],
            "refresh_token": data.get("refresh_token", self._user.refresh_token),
            "expires_at": self._expiry(data.get("expires_in")),
        })
        debug_logger.debug(f"Refreshed ID token for {self._user.uid}")
        return self._user

    async def sign_out(self) -> None:
        """Forget the current identity."""
        if self._user is None:
            return
        main_logger.info(f"Signing out {self._user.email}")
        self._user = None
        await self._notify_auth_listeners()

    async def _id_token(self) -> str:
        if not self._session:
            raise WaterDashAuthError("Client not connected. Call connect() first.")
        if not self._user:
            raise WaterDashAuthError("Not signed in.")
        if self._user.expired:
            await self.refresh()
        return self._user.id_token

    @staticmethod
    def _expiry(expires_in: Any) -> datetime:
        seconds = int(expires_in or 3600)
        return datetime.now(timezone.utc) + timedelta(seconds=seconds)

    @staticmethod
    def _parse_body(text: str) -> Any:
        if not text or not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        params: Params = None,
        payload: Any = None,
        token_in_query: bool = False,
        allow_missing: bool = False,
    ) -> Any:
        """Make an authenticated request and return the decoded JSON body.

        The Realtime Database takes the ID token as an ``auth`` query
        parameter; Firestore takes it as a bearer header.
        """
        token = await self._id_token()

        if isinstance(params, dict):
            params = list(params.items())
        params = list(params or [])

        def build(id_token: str) -> Tuple[list, Dict[str, str]]:
            headers = {"Content-Type": "application/json"}
            if token_in_query:
                return params + [("auth", id_token)], headers
            headers["Authorization"] = f"Bearer {id_token}"
            return params, headers

        request_params, headers = build(token)
        debug_logger.debug("=== REQUEST DETAILS ===")
        debug_logger.debug(f"URL: {url}")
        debug_logger.debug(f"Method: {method}")
        debug_logger.debug(f"Params: {params}")
        debug_logger.debug(f"Body: {payload}")

        try:
            async with self._session.request(
                method,
                url,
                headers=headers,
                params=request_params,
                json=payload
            ) as response:
                debug_logger.debug("=== RESPONSE DETAILS ===")
                debug_logger.debug(f"Status: {response.status}")

                response_text = await response.text()
                debug_logger.debug(f"Body: {response_text}")
                status = response.status

            if status == 401:
                main_logger.info("ID token rejected, refreshing...")
                await self.refresh()
                request_params, headers = build(self._user.id_token)
                async with self._session.request(
                    method,
                    url,
                    headers=headers,
                    params=request_params,
                    json=payload
                ) as retry_response:
                    response_text = await retry_response.text()
                    status = retry_response.status
                    if not 200 <= status < 300 and not (allow_missing and status == 404):
                        warning_logger.error(f"Request failed after refresh: {status}")
                        raise WaterDashAPIError(
                            f"Request failed: {status}\nResponse: {response_text}", status=status
                        )

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            warning_logger.error(f"Request failed: {e!r}")
            raise WaterDashAPIError(f"Request failed: {e!r}") from e

        if allow_missing and status == 404:
            return None

        if not 200 <= status < 300:
            warning_logger.error(f"{method} {url} failed: {status}")
            raise WaterDashAPIError(f"Request failed: {status}\nResponse: {response_text}", status=status)

        return self._parse_body(response_text)

    # ------------------------------------------------------------------
    # Realtime Database
    # ------------------------------------------------------------------

    def _feed_url(self, path: str) -> str:
        return f"{self.database_url}/{path.strip('/')}.json"

    async def get_value(self, path: str) -> Any:
        """Read the current value at a feed path."""
        return await self._request("GET", self._feed_url(path), token_in_query=True)

    async def set_value(self, path: str, value: Any) -> None:
        """Overwrite the value at a feed path."""
        debug_logger.debug(f"Setting {path} = {value}")
        await self._request("PUT", self._feed_url(path), payload=value, token_in_query=True)

    async def stream_value(self, path: str) -> AsyncIterator[Any]:
        """Yield the value at ``path`` every time it changes.

        Reads the Realtime Database event stream. Ends quietly when the
        server closes the stream, cancels it, or revokes the token.
        """
        token = await self._id_token()
        url = self._feed_url(path)
        debug_logger.debug(f"Opening feed stream: {url}")

        async with self._session.get(
            url,
            params={"auth": token},
            headers={"Accept": "text/event-stream"},
            timeout=aiohttp.ClientTimeout(total=None),
        ) as response:
            if response.status != 200:
                warning_logger.error(f"Feed stream for {path} refused: {response.status}")
                raise WaterDashAPIError(
                    f"Stream request failed: {response.status}", status=response.status
                )

            value: Any = None
            event: Optional[str] = None
            async for raw_line in response.content:
                line = raw_line.decode("utf-8").rstrip("\r\n")
                if line.startswith("event:"):
                    event = line[len("event:"):].strip()
                    continue
                if not line.startswith("data:"):
                    continue

                data = line[len("data:"):].strip()
                if event == "keep-alive":
                    continue
                if event in ("cancel", "auth_revoked"):
                    warning_logger.warning(f"Feed stream for {path} ended by server: {event}")
                    return

                message = self._parse_body(data)
                if not isinstance(message, dict) or "path" not in message:
                    debug_logger.debug(f"Ignoring feed event {event}: {data}")
                    continue

                if event == "put":
                    value = _apply_at(value, message["path"], message.get("data"))
                elif event == "patch":
                    base = message["path"].rstrip("/")
                    for key, item in (message.get("data") or {}).items():
                        value = _apply_at(value, f"{base}/{key}", item)
                else:
                    continue
                debug_logger.debug(f"Feed {path} -> {value}")
                yield value

        debug_logger.debug(f"Feed stream for {path} closed")

    def subscribe(self, path: str, callback: Callable[[Any], None]) -> Subscription:
        """Deliver every new value at ``path`` to ``callback``.

        Runs the event stream as a task on the current loop. Stream failures
        are logged and the subscription goes quiet; nothing is retried.
        """
        async def pump() -> None:
            try:
                async for value in self.stream_value(path):
                    if not subscription.active:
                        break
                    callback(value)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                warning_logger.error(f"Feed subscription for {path} stopped: {e}")

        task = asyncio.get_running_loop().create_task(pump())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        subscription = Subscription(task.cancel)
        return subscription

    # ------------------------------------------------------------------
    # Firestore
    # ------------------------------------------------------------------

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Get one document, or ``None`` if it does not exist."""
        response = await self._request(
            "GET", f"{self.documents_url}/{collection}/{doc_id}", allow_missing=True
        )
        if response is None:
            return None
        return decode_document(response)

    async def run_query(
        self,
        collection: str,
        where: Optional[Tuple[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Query a collection with an optional equality filter and ordering.

        Args:
            collection: Collection ID
            where: ``(field, value)`` equality filter
            order_by: Field to sort by
            descending: Sort newest/largest first
            limit: Maximum number of documents to return

        Returns:
            Decoded documents, each with its ``id``
        """
        response = await self._request(
            "POST",
            f"{self.documents_url}:runQuery",
            payload=structured_query(collection, where, order_by, descending, limit),
        )
        return decode_query_results(response or [])

    async def update_document(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Overwrite only ``fields`` on an existing document."""
        params = [("updateMask.fieldPaths", field) for field in fields]
        params.append(("currentDocument.exists", "true"))
        await self._request(
            "PATCH",
            f"{self.documents_url}/{collection}/{doc_id}",
            params=params,
            payload={"fields": encode_fields(fields)},
        )
        debug_logger.debug(f"Updated {collection}/{doc_id}: {list(fields)}")

    # ------------------------------------------------------------------
    # Flow history
    # ------------------------------------------------------------------

    def write_flow_sample(
        self,
        sample: FlowSample,
        measurement: Optional[str] = None,
        leak: Optional[bool] = None,
    ) -> None:
        """Write a flow sample to InfluxDB.

        Args:
            sample: Sample produced by the flow monitor
            measurement: Optional override for measurement name
            leak: Leak flag for the sample; evaluated here when omitted
        """
        if not self._write_api:
            raise WaterDashInfluxDBError("InfluxDB client not initialized")

        # Store in cache if available
        if self.cache:
            self.cache.store(self.site, sample)

        measurement = measurement or self.influxdb_measurement
        if leak is None:
            leak = evaluate_leak(sample.inlet, sample.outlet)

        observed_at = sample.observed_at
        if observed_at.tzinfo is None:
            # Point.time reads naive datetimes as UTC
            observed_at = observed_at.astimezone()

        point = Point(measurement) \
            .tag("site", self.site) \
            .field("inlet", float(sample.inlet)) \
            .field("outlet", float(sample.outlet)) \
            .field("difference", float(sample.difference)) \
            .field("valve_open", sample.valve_open) \
            .field("leak", leak) \
            .time(observed_at)

        try:
            debug_logger.debug(f"Writing to InfluxDB: {point}")
            self._write_api.write(
                bucket=self.influxdb_bucket,
                org=self.influxdb_org,
                record=point
            )
        except Exception as e:
            warning_logger.error(f"Failed to write to InfluxDB: {e}")
            # Sample is still in cache even if InfluxDB write fails

    def record_flow(self, monitor) -> Subscription:
        """Write every sample published by ``monitor`` to InfluxDB."""
        if not self._write_api:
            warning_logger.error("InfluxDB client not initialized")
            raise WaterDashInfluxDBError("InfluxDB client not initialized")

        main_logger.info(f"Recording flow samples for {self.site}")
        return monitor.add_listener(
            lambda state: self.write_flow_sample(state.sample, leak=state.leak_detected)
        )

    async def close(self) -> None:
        """Stop streams and close the client session."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()

        if self._session:
            await self._session.close()
            self._session = None

        if self._influxdb_client:
            self._influxdb_client.close()
            self._influxdb_client = None
            self._write_api = None
