from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_BASE_URL = "https://gw-fatoora.zatca.gov.sa/e-invoicing/developer-portal"


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got: {raw}") from exc


def _optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


@dataclass(frozen=True)
class Settings:
    zatca_base_url: str = DEFAULT_BASE_URL
    zatca_api_version: str = ""
    zatca_api_token: str | None = None
    zatca_auth_scheme: str = "bearer"
    zatca_payload_format: str = "xml"
    zatca_request_timeout: float = 60.0
    testing_mode: bool = False
    webhook_secret: str | None = None
    private_key_file: str | None = None
    certificate_file: str | None = None
    require_vat_number: bool = True
    tax_rate: float = 0.15
    currency: str = "SAR"
    record_store_backend: str = "rest"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    sqlite_store_path: str = "data/zatca_sync.db"
    log_level: str = "INFO"

    @property
    def signing_enabled(self) -> bool:
        return self.private_key_file is not None

    @classmethod
    def from_env(cls) -> "Settings":
        testing_mode = _parse_bool(os.getenv("ZATCA_TESTING_MODE"))

        base_url = os.getenv("ZATCA_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/")
        if not base_url and not testing_mode:
            raise ValueError("ZATCA_BASE_URL is required unless ZATCA_TESTING_MODE is enabled")

        auth_scheme = os.getenv("ZATCA_AUTH_SCHEME", "bearer").strip().lower()
        if auth_scheme not in {"bearer", "basic"}:
            raise ValueError("ZATCA_AUTH_SCHEME must be one of: bearer, basic")

        payload_format = os.getenv("ZATCA_PAYLOAD_FORMAT", "xml").strip().lower()
        if payload_format not in {"xml", "json"}:
            raise ValueError("ZATCA_PAYLOAD_FORMAT must be one of: xml, json")

        timeout = _parse_float("ZATCA_REQUEST_TIMEOUT", 60.0)
        if timeout <= 0:
            raise ValueError("ZATCA_REQUEST_TIMEOUT must be positive")

        tax_rate = _parse_float("ZATCA_TAX_RATE", 0.15)
        if tax_rate > 1:
            tax_rate = tax_rate / 100
        if tax_rate < 0:
            raise ValueError("ZATCA_TAX_RATE must not be negative")

        currency = os.getenv("ZATCA_CURRENCY", "SAR").strip().upper()
        if len(currency) != 3:
            raise ValueError("ZATCA_CURRENCY must be a 3-letter ISO code")

        private_key_file = _optional("ZATCA_PRIVATE_KEY_FILE")
        if private_key_file and not Path(private_key_file).exists():
            raise ValueError(f"ZATCA_PRIVATE_KEY_FILE not found: {private_key_file}")
        certificate_file = _optional("ZATCA_CERTIFICATE_FILE")
        if certificate_file and not Path(certificate_file).exists():
            raise ValueError(f"ZATCA_CERTIFICATE_FILE not found: {certificate_file}")

        store_backend = os.getenv("RECORD_STORE_BACKEND", "rest").strip().lower()
        if store_backend not in {"rest", "sqlite"}:
            raise ValueError("RECORD_STORE_BACKEND must be one of: rest, sqlite")

        supabase_url = _optional("SUPABASE_URL")
        supabase_key = _optional("SUPABASE_SERVICE_ROLE_KEY")
        if store_backend == "rest":
            missing = [
                key
                for key, value in {
                    "SUPABASE_URL": supabase_url,
                    "SUPABASE_SERVICE_ROLE_KEY": supabase_key,
                }.items()
                if not value
            ]
            if missing:
                raise ValueError(
                    f"Missing required environment variable(s) for REST store: {', '.join(missing)}"
                )

        return cls(
            zatca_base_url=base_url,
            zatca_api_version=os.getenv("ZATCA_API_VERSION", "").strip().strip("/"),
            zatca_api_token=_optional("ZATCA_API_TOKEN"),
            zatca_auth_scheme=auth_scheme,
            zatca_payload_format=payload_format,
            zatca_request_timeout=timeout,
            testing_mode=testing_mode,
            webhook_secret=_optional("ZATCA_WEBHOOK_SECRET"),
            private_key_file=private_key_file,
            certificate_file=certificate_file,
            require_vat_number=_parse_bool(os.getenv("ZATCA_REQUIRE_VAT_NUMBER"), default=True),
            tax_rate=tax_rate,
            currency=currency,
            record_store_backend=store_backend,
            supabase_url=supabase_url.rstrip("/") if supabase_url else None,
            supabase_service_key=supabase_key,
            sqlite_store_path=os.getenv("SQLITE_STORE_PATH", "data/zatca_sync.db"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def load_dotenv(path: str | Path = ".env") -> None:
    env_path = Path(path)
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)
