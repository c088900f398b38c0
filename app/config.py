from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VIDEO_SERVICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    app_name: str = "video-generator"
    host: str = "0.0.0.0"
    port: int = 3001
    # Base URL used for locally served artifacts when remote upload fails
    public_host: str = Field(
        default="",
        validation_alias=AliasChoices("VIDEO_SERVICE_PUBLIC_HOST", "RENDER_EXTERNAL_URL"),
    )

    output_dir: str = "public/videos"
    audio_dir: str = "public/audio"
    max_workers: int = 2

    # Object storage configuration
    storage_provider: str = "s3"
    narration_bucket: str = "narration-audio"
    video_bucket: str = "videos"
    s3_endpoint_url: str = ""
    s3_region: str | None = None
    s3_public_url: str = ""
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_addressing_style: str = "virtual"

    # Job store configuration
    job_store: str = "memory"
    supabase_url: str = Field(
        default="",
        validation_alias=AliasChoices("VIDEO_SERVICE_SUPABASE_URL", "SUPABASE_URL"),
    )
    supabase_key: str = Field(
        default="",
        validation_alias=AliasChoices("VIDEO_SERVICE_SUPABASE_KEY", "SUPABASE_KEY"),
    )
    supabase_public_url: str = ""

    # Narration synthesis
    tts_provider: str = "deepgram"
    tts_voice_model: str = "aura-2-odysseus-en"
    tts_scene_retry_count: int = 1
    deepgram_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("VIDEO_SERVICE_DEEPGRAM_API_KEY", "DEEPGRAM_API_KEY"),
    )
    deepgram_base_url: str = "https://api.deepgram.com"
    elevenlabs_api_key: str = ""
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    elevenlabs_base_url: str = "https://api.elevenlabs.io"

    # Rendering
    render_entry_point: str = "remotion/index.tsx"
    composition_id: str = "LoanBriefing"
    render_concurrency: int = Field(
        default=4,
        ge=1,
        validation_alias=AliasChoices("VIDEO_SERVICE_RENDER_CONCURRENCY", "REMOTION_CONCURRENCY"),
    )
    render_codec: str = "h264"
    remotion_command: list[str] = Field(default_factory=lambda: ["npx", "remotion"])
    progress_interval_seconds: float = 1.0

    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_updates_topic: str = "video_updates"

    def resolved_public_host(self) -> str:
        return (self.public_host or f"http://localhost:{self.port}").rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
