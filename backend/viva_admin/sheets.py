from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.service_account import Credentials

from .settings import settings
from .timestamps import parse_timestamp

logger = logging.getLogger(__name__)

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"


class SheetsError(Exception):
	def __init__(self, message: str, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


class SheetsNotFound(SheetsError):
	"""The spreadsheet, sheet tab or range does not exist."""


class SheetsConfigError(SheetsError):
	"""Credentials or spreadsheet id are missing from the environment."""


@dataclass
class AccessToken:
	value: str
	expires_at: datetime

	def expired(self, skew: timedelta) -> bool:
		return datetime.now(timezone.utc) >= self.expires_at - skew


class TokenSource(Protocol):
	async def fetch(self) -> AccessToken: ...


class CredentialCache:
	"""Holds one short-lived access token and refreshes it from ``source`` when stale.

	Two callers may refresh at the same time; both tokens stay valid until their own
	expiry so the last writer simply wins.
	"""

	def __init__(self, source: TokenSource, *, skew_seconds: int = 60) -> None:
		self.source = source
		self._skew = timedelta(seconds=skew_seconds)
		self._token: Optional[AccessToken] = None

	async def get_token(self) -> str:
		token = self._token
		if token is None or token.expired(self._skew):
			token = await self.source.fetch()
			self._token = token
		return token.value

	def invalidate(self) -> None:
		self._token = None


class StaticTokenSource:
	def __init__(self, token: str, *, lifetime_seconds: int = 3600) -> None:
		self.token = token
		self.lifetime = timedelta(seconds=lifetime_seconds)

	async def fetch(self) -> AccessToken:
		return AccessToken(self.token, datetime.now(timezone.utc) + self.lifetime)


class ServiceAccountTokenSource:
	"""Google service account credentials, refreshed through google-auth."""

	def __init__(
		self,
		client_email: str,
		private_key: str,
		*,
		token_url: Optional[str] = None,
		scope: str = SHEETS_SCOPE,
	) -> None:
		self.client_email = client_email
		self.private_key = private_key
		self.token_url = token_url or settings.google_token_url
		self.scope = scope
		self._credentials: Optional[Credentials] = None

	def _load(self) -> Credentials:
		if self._credentials is None:
			info = {
				"type": "service_account",
				"client_email": self.client_email,
				"private_key": self.private_key,
				"token_uri": self.token_url,
			}
			try:
				self._credentials = Credentials.from_service_account_info(info, scopes=[self.scope])
			except (GoogleAuthError, ValueError) as err:
				raise SheetsConfigError(f"GOOGLE_PRIVATE_KEY is not a usable service account key: {err}") from err
		return self._credentials

	async def fetch(self) -> AccessToken:
		credentials = self._load()
		try:
			# google-auth refreshes with a blocking HTTP call
			await asyncio.to_thread(credentials.refresh, GoogleAuthRequest())
		except (GoogleAuthError, ValueError) as err:
			raise SheetsError(f"Service account token exchange failed: {err}") from err
		expiry = credentials.expiry
		if expiry is None:
			expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
		else:
			# google-auth reports expiry as naive UTC
			expires_at = expiry.replace(tzinfo=timezone.utc) if expiry.tzinfo is None else expiry
		return AccessToken(credentials.token, expires_at)


class ConnectorTokenSource:
	"""Delegated Sheets token handed out by the hosting platform's connector API."""

	def __init__(self, hostname: str, identity: str, *, http: Optional[httpx.AsyncClient] = None) -> None:
		self.hostname = hostname
		self.identity = identity
		self._http = http or httpx.AsyncClient(timeout=30)

	async def fetch(self) -> AccessToken:
		url = f"https://{self.hostname}/api/v2/connection"
		try:
			r = await self._http.get(
				url,
				params={"include_secrets": "true", "connector_names": "google-sheet"},
				headers={"Accept": "application/json", "X_REPLIT_TOKEN": self.identity},
			)
			r.raise_for_status()
			data = r.json()
		except (httpx.HTTPError, ValueError) as err:
			raise SheetsError(f"Connector token request failed: {err}") from err
		items = data.get("items") or []
		if not items:
			raise SheetsConfigError("Google Sheet connection not found")
		conn_settings = items[0].get("settings") or {}
		value = conn_settings.get("access_token") or (
			((conn_settings.get("oauth") or {}).get("credentials") or {}).get("access_token")
		)
		if not value:
			raise SheetsConfigError("Google Sheet connection has no access token")
		expires_at = parse_timestamp(conn_settings.get("expires_at"), timezone.utc)
		if expires_at is None:
			expires_at = datetime.now(timezone.utc) + timedelta(minutes=5)
		return AccessToken(value, expires_at)


def _error_message(r: httpx.Response) -> str:
	try:
		body = r.json()
		return str(body.get("error", {}).get("message") or r.text)
	except (ValueError, AttributeError):
		return r.text or f"HTTP {r.status_code}"


class SheetsClient:
	"""Thin async wrapper over the Sheets v4 values API, addressed by A1 ranges."""

	def __init__(
		self,
		spreadsheet_id: str,
		credentials: CredentialCache,
		*,
		base_url: Optional[str] = None,
		client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.spreadsheet_id = spreadsheet_id
		self.credentials = credentials
		self.base_url = (base_url or settings.sheets_api_base_url).rstrip("/")
		self._client = client or httpx.AsyncClient(timeout=30)

	def for_spreadsheet(self, spreadsheet_id: str) -> "SheetsClient":
		"""Same credentials and connection pool, different document."""
		return SheetsClient(spreadsheet_id, self.credentials, base_url=self.base_url, client=self._client)

	async def _request(
		self,
		method: str,
		path: str,
		*,
		params: Optional[Dict[str, Any]] = None,
		json: Optional[Dict[str, Any]] = None,
	) -> Dict[str, Any]:
		token = await self.credentials.get_token()
		url = f"{self.base_url}/{self.spreadsheet_id}{path}"
		try:
			r = await self._client.request(
				method,
				url,
				params=params,
				json=json,
				headers={"Authorization": f"Bearer {token}"},
			)
		except httpx.RequestError as err:
			raise SheetsError(f"Sheets request failed: {err}") from err
		if r.status_code >= 400:
			message = _error_message(r)
			if r.status_code == 401:
				self.credentials.invalidate()
			if r.status_code == 404 or "Unable to parse range" in message:
				raise SheetsNotFound(message, r.status_code)
			if r.status_code == 403:
				message = f"Permission denied on spreadsheet {self.spreadsheet_id}: {message}"
			raise SheetsError(message, r.status_code)
		if not r.content:
			return {}
		try:
			return r.json()
		except ValueError as err:
			raise SheetsError(f"Sheets returned a non-JSON response ({r.status_code})", r.status_code) from err

	@staticmethod
	def _values_path(a1_range: str, suffix: str = "") -> str:
		return f"/values/{quote(a1_range, safe='')}{suffix}"

	async def get_values(self, a1_range: str) -> List[List[str]]:
		data = await self._request("GET", self._values_path(a1_range))
		return data.get("values") or []

	async def append_values(self, a1_range: str, rows: List[List[Any]]) -> Dict[str, Any]:
		return await self._request(
			"POST",
			self._values_path(a1_range, ":append"),
			params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
			json={"values": rows},
		)

	async def update_values(self, a1_range: str, rows: List[List[Any]]) -> Dict[str, Any]:
		return await self._request(
			"PUT",
			self._values_path(a1_range),
			params={"valueInputOption": "RAW"},
			json={"values": rows},
		)

	async def clear_values(self, a1_range: str) -> Dict[str, Any]:
		return await self._request("POST", self._values_path(a1_range, ":clear"), json={})

	async def get_sheet_titles(self) -> List[str]:
		data = await self._request("GET", "", params={"fields": "sheets.properties.title"})
		return [s.get("properties", {}).get("title", "") for s in data.get("sheets") or []]

	async def add_sheet(self, title: str) -> None:
		await self._request(
			"POST",
			":batchUpdate",
			json={"requests": [{"addSheet": {"properties": {"title": title}}}]},
		)

	async def ensure_sheet(self, title: str, header: List[str]) -> None:
		"""Create ``title`` with a header row unless it already exists."""
		try:
			await self.get_values(f"'{title}'!A1")
			return
		except SheetsNotFound:
			pass
		logger.info("Creating missing sheet %r", title)
		await self.add_sheet(title)
		await self.update_values(f"'{title}'!A1", [header])

	async def aclose(self) -> None:
		await self._client.aclose()


def build_sheets_client(spreadsheet_id: Optional[str] = None) -> SheetsClient:
	"""Authorized client for ``spreadsheet_id`` (defaults to GOOGLE_SHEET_ID)."""
	sheet_id = spreadsheet_id or settings.google_sheet_id
	if not sheet_id:
		raise SheetsConfigError("Google Sheets not configured: GOOGLE_SHEET_ID is missing")
	has_service_account = bool(settings.google_client_email and settings.google_private_key)
	has_connector = bool(settings.connectors_hostname and (settings.repl_identity or settings.web_repl_renewal))
	if not (settings.google_sheets_access_token or has_service_account or has_connector):
		raise SheetsConfigError(
			"Google Sheets credentials not configured: set GOOGLE_CLIENT_EMAIL and GOOGLE_PRIVATE_KEY, "
			"GOOGLE_SHEETS_ACCESS_TOKEN, or the hosting connector variables"
		)
	http = httpx.AsyncClient(timeout=30)
	source: TokenSource
	if settings.google_sheets_access_token:
		source = StaticTokenSource(settings.google_sheets_access_token)
	elif has_service_account:
		source = ServiceAccountTokenSource(settings.google_client_email, settings.google_private_key)
	else:
		identity = f"repl {settings.repl_identity}" if settings.repl_identity else f"depl {settings.web_repl_renewal}"
		source = ConnectorTokenSource(settings.connectors_hostname, identity, http=http)
	return SheetsClient(sheet_id, CredentialCache(source), client=http)
