from pydantic_settings import BaseSettings

VERSION = "0.1.0"


class Settings(BaseSettings):
    # LLM
    llm_provider: str = "anthropic"
    llm_model: str = "claude-sonnet-4-20250514"
    llm_api_key: str = ""
    llm_base_url: str = ""  # Only forwarded to the engine when non-empty

    # Project
    project_dir: str = "."
    output_dir: str = "./skene-context"

    # Engine
    engine_path: str = ""  # Explicit override, checked before any other location

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_prefix": "SKENE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
