from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Solana RPC
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    solana_network: str = "mainnet-beta"
    rpc_timeout_sec: float = 15.0
    confirm_timeout_sec: int = 60

    # Operator wallet (fee payer that sponsored the accounts)
    operator_private_key: str = ""  # Base58 or JSON byte array, never logged

    # Reclaim mode (live reclaim kill-switch)
    dry_run: bool = True

    # Auditor
    inactivity_days: int = 30
    no_history_is_inactive: bool = True  # Accounts with zero signatures count as inactive
    audit_concurrency: int = 1  # >1 audits accounts in parallel (order preserved)

    # Scanner pacing
    max_signatures_per_request: int = 1000  # getSignaturesForAddress page size (RPC max 1000)
    request_delay_ms: int = 100  # Sleep between getTransaction calls
    scan_signature_cap: int = 5000  # Stop after N signatures; 0 = scan full history

    # Sponsorship detection (comma-separated)
    sponsor_program_ids: str = ""
    sponsor_memo_markers: str = "KORA"
    sponsor_relay_addresses: str = ""
    sponsor_fallback_confident: bool = True  # Operator-paid counts as confident if nothing matches

    # Persisted state
    whitelist_file: str = "./data/whitelist.json"
    emergency_stop_file: str = "./data/state/emergency.json"
    ledger_file: str = "./data/logs/reclaim.log"
    ledger_memory_limit: int = 10000  # Recent entries kept in memory for /logs

    # Scheduler
    scheduler_enabled: bool = True
    schedule_interval_sec: int = 21600  # 6h

    # Alerts (Telegram)
    alerts_enabled: bool = False
    alert_threshold_sol: float = 10.0
    alert_cooldown_sec: int = 3600
    telegram_bot_token: str = ""
    telegram_admin_id: int = 0

    # Control plane API
    api_enabled: bool = True
    api_port: int = 3001
    api_cors_origin: str = "http://localhost:5173"
    api_admin_user: str = "admin"
    api_admin_password: str = ""
    api_jwt_secret: str = ""

    @staticmethod
    def split_csv(value: str) -> list[str]:
        return [item.strip() for item in value.split(",") if item.strip()]


settings = Settings()
