from pathlib import Path
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{BASE_DIR / 'linguaspark.db'}"
    gemini_key: str = ""
    openai_key: str = ""
    anthropic_api_key: str = ""
    log_dir: Path = BASE_DIR / "data" / "logs"

    llm_timeout: int = 60
    llm_temperature: float = 0.7
    default_max_output_tokens: int = 2048
    max_tokens_floor: int = 10
    max_section_attempts: int = 2
    min_source_words: int = 50

    model_config = {"env_file": [BASE_DIR / ".env", BASE_DIR.parent / ".env"], "extra": "ignore"}


settings = Settings()
