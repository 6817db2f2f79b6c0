from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field, field_validator

class Settings(BaseSettings):
	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Spreadsheet store (system of record for results and catalog)
	google_sheet_id: str | None = Field(default=None, validation_alias="GOOGLE_SHEET_ID")
	teacher_sheet_id: str | None = Field(default=None, validation_alias="TEACHER_SHEET_ID")
	google_client_email: str | None = Field(
		default=None,
		validation_alias=AliasChoices("GOOGLE_CLIENT_EMAIL", "GOOGLE_SERVICE_ACCOUNT_EMAIL"),
	)
	google_private_key: str | None = Field(default=None, validation_alias="GOOGLE_PRIVATE_KEY")
	# Pre-issued delegated OAuth token (takes precedence over the connector)
	google_sheets_access_token: str | None = Field(default=None, validation_alias="GOOGLE_SHEETS_ACCESS_TOKEN")
	sheets_api_base_url: str = Field(default="https://sheets.googleapis.com/v4/spreadsheets", validation_alias="SHEETS_API_BASE_URL")
	google_token_url: str = Field(default="https://oauth2.googleapis.com/token", validation_alias="GOOGLE_TOKEN_URL")

	# Hosting-platform connector that hands out delegated Sheets tokens
	connectors_hostname: str | None = Field(default=None, validation_alias="REPLIT_CONNECTORS_HOSTNAME")
	repl_identity: str | None = Field(default=None, validation_alias="REPL_IDENTITY")
	web_repl_renewal: str | None = Field(default=None, validation_alias="WEB_REPL_RENEWAL")

	# Reconciliation job
	# "full_replace" pulls the Viva Results sheet, "call_platform" upserts calls from Vapi
	sync_policy: str = Field(default="full_replace", validation_alias="SYNC_POLICY")
	sync_interval_seconds: int = Field(default=300, validation_alias="SYNC_INTERVAL_SECONDS")
	sync_on_startup: bool = Field(default=True, validation_alias="SYNC_ON_STARTUP")
	sync_enabled: bool = Field(default=True, validation_alias="SYNC_ENABLED")
	# Webhook rows younger than this survive a full replace until the sheet catches up
	sync_pending_grace_seconds: int = Field(default=900, validation_alias="SYNC_PENDING_GRACE_SECONDS")

	# Zone for timestamps written without an offset ("15 Jan 2026, 3:38 pm"); server local when unset
	viva_timezone: str | None = Field(default=None, validation_alias="VIVA_TIMEZONE")

	# External call platform
	vapi_api_key: str | None = Field(default=None, validation_alias="VAPI_API_KEY")
	vapi_base_url: str = Field(default="https://api.vapi.ai", validation_alias="VAPI_BASE_URL")
	vapi_assistant_id: str | None = Field(default=None, validation_alias="VAPI_ASSISTANT_ID")

	# Question generation
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="openai/gpt-4o-mini", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")

	# Result notification emails
	resend_api_key: str | None = Field(default=None, validation_alias="RESEND_API_KEY")
	resend_base_url: str = Field(default="https://api.resend.com", validation_alias="RESEND_BASE_URL")
	result_email_from: str = Field(default="AI Viva <results@aiviva.app>", validation_alias="RESULT_EMAIL_FROM")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=720, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@field_validator("google_private_key")
	@classmethod
	def _unescape_private_key(cls, value: str | None) -> str | None:
		# Keys pasted into env files usually carry literal "\n" sequences
		if value:
			return value.replace("\\n", "\n")
		return value

settings = Settings()
