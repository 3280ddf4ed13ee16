from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./rfp_intake.db"

    # AnythingLLM: extraction is skipped when the key is empty
    ANYTHING_LLM_BASE_URL: str = ""
    ANYTHING_LLM_KEY: str = ""
    ANYTHING_LLM_WORKSPACE: str = "rfp-intake"
    LLM_TIMEOUT_SECONDS: int = 90

    # Serper web search, used as the fallback when LLM output is unusable
    SERPER_API_KEY: str = ""
    SERPER_ENDPOINT: str = "https://google.serper.dev/search"

    # Drawing scan is optional; candidates are only reported when unset
    VISION_API_KEY: str = ""

    # Uploads
    MAX_UPLOAD_MB: int = 50
    MAX_PDF_PAGES: int = 2500
    STREAMING_PAGE_THRESHOLD: int = 300

    # Gap fill: LLM values below this confidence count as missing
    GAP_FILL_MIN_CONFIDENCE: float = 0.6

    # Pricing defaults
    DEFAULT_COST_PER_SQFT: float = 120.0
    DEFAULT_MARGIN: float = 0.25
    BOND_PCT: float = 0.015

    class Config:
        env_file = ".env"


settings = Settings()
