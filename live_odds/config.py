from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Polymarket
    clob_ws_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
    gamma_api: str = "https://gamma-api.polymarket.com"
    market_id: str = ""

    # Feed connection
    auto_reconnect: bool = True
    reconnect_interval: float = 3.0
    max_reconnect_attempts: int = 10
    reconnect_backoff: str = "fixed"  # "fixed" or "exponential"
    max_reconnect_delay: float = 30.0  # cap for exponential backoff
    heartbeat_interval: float = 30.0
    subscribe_delay: float = 0.1
    trade_history_limit: int = 50

    # Sessions
    session_db_path: str = "live_odds_sessions.db"
    session_ttl: int = 300

    # App
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
