from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")
	llm_timeout_seconds: float = Field(default=60.0, validation_alias="LLM_TIMEOUT_SECONDS")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="AISB Selection", validation_alias="OPENROUTER_TITLE")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed admin, written to admin_users at startup when both are set
	admin_email: str | None = Field(default=None, validation_alias="ADMIN_EMAIL")
	admin_password: str | None = Field(default=None, validation_alias="ADMIN_PASSWORD")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Links placed in outgoing emails
	public_base_url: str = Field(default="http://localhost:3000", validation_alias="PUBLIC_BASE_URL")
	video_topic: str = Field(default="Why you are the best candidate for AISB", validation_alias="VIDEO_TOPIC")

	# Transcript service
	transcript_api_url: str | None = Field(default=None, validation_alias="TRANSCRIPT_API_URL")
	transcript_api_key: str | None = Field(default=None, validation_alias="TRANSCRIPT_API_KEY")
	transcript_timeout_seconds: float = Field(default=30.0, validation_alias="TRANSCRIPT_TIMEOUT_SECONDS")
	transcript_max_chars: int = Field(default=8000, validation_alias="TRANSCRIPT_MAX_CHARS")

	# Email delivery: "log" only writes to the log, "resend" posts to the Resend API
	email_provider: str = Field(default="log", validation_alias="EMAIL_PROVIDER")
	resend_api_key: str | None = Field(default=None, validation_alias="RESEND_API_KEY")
	resend_base_url: str = Field(default="https://api.resend.com/emails", validation_alias="RESEND_BASE_URL")
	from_email: str = Field(default="Contest Team <contest@resend.dev>", validation_alias="FROM_EMAIL")
	email_timeout_seconds: float = Field(default=15.0, validation_alias="EMAIL_TIMEOUT_SECONDS")

	# Batch fan-out caps
	batch_concurrency: int = Field(default=3, ge=1, validation_alias="BATCH_CONCURRENCY")
	email_concurrency: int = Field(default=1, ge=1, validation_alias="EMAIL_CONCURRENCY")

	# Selection policies per funnel stage (percent of eligible entities)
	quiz_stage_top_percent: float = Field(default=10.0, validation_alias="QUIZ_STAGE_TOP_PERCENT")
	quiz_stage_min: int = Field(default=1, validation_alias="QUIZ_STAGE_MIN")
	quiz_stage_max: int | None = Field(default=None, validation_alias="QUIZ_STAGE_MAX")
	video_stage_top_percent: float = Field(default=5.0, validation_alias="VIDEO_STAGE_TOP_PERCENT")
	video_stage_min: int = Field(default=1, validation_alias="VIDEO_STAGE_MIN")
	video_stage_max: int | None = Field(default=10, validation_alias="VIDEO_STAGE_MAX")

	# Prize labels by final position; positions past the list get finalist_prize
	prizes: list[str] = Field(
		default=[
			"First Place - $500 + Certificate",
			"Second Place - $300 + Certificate",
			"Third Place - $200 + Certificate",
		],
		validation_alias="PRIZES",
	)
	finalist_prize: str = Field(default="Finalist - Certificate", validation_alias="FINALIST_PRIZE")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
