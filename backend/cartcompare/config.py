from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": "../.env",
        "extra": "ignore",
        "env_prefix": "",
        "case_sensitive": False,
    }

    # AI APIs
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    google_ai_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    default_provider: str = "anthropic"  # "anthropic", "gemini"
    model_output_mode: str = "text"  # "text", "tool"
    model_max_tokens: int = 8192

    # Web search (Bing Web Search v7)
    bing_search_key: str = ""
    bing_endpoint: str = "https://api.bing.microsoft.com/v7.0/search"
    search_market: str = "he-IL"
    search_results_per_query: int = 5

    # Evidence budgets
    max_queries: int = 8
    max_query_items: int = 6
    max_docs: int = 6
    page_char_cap: int = 8000
    min_doc_chars: int = 400
    total_corpus_chars: int = 30000
    prompt_excerpt_chars: int = 2500

    # Timeouts (seconds)
    search_timeout: float = 10.0
    fetch_timeout: float = 8.0
    model_timeout: float = 120.0

    # Output
    currency: str = "₪"

    # App
    environment: str = "development"
    log_level: str = "INFO"
    log_file: str = ""
    use_mock_capabilities: bool = False


settings = Settings()
