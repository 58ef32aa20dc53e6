from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field
import tomllib
import os
import random

ZENTRACK_ROOT = Path(os.getenv("ZENTRACK_ROOT", Path.cwd())).resolve()


class RefreshCfg(BaseModel):
    auto_refresh: bool = True
    interval_minutes: int = Field(default=5, ge=1, le=60)


class NetworkCfg(BaseModel):
    rotate_user_agents: bool = True
    use_proxies: bool = False
    proxy_file: str = "proxies.txt"
    timeout_seconds: float = 30


class LocaleCfg(BaseModel):
    currency: str = "JPY"
    language: str = "en"


class TranslationCfg(BaseModel):
    # LibreTranslate-compatible endpoint, e.g. "https://libretranslate.com/translate"
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 10
    cache_size: int = Field(default=1024, ge=1)


class BatchCfg(BaseModel):
    endpoint: str = "http://127.0.0.1:8000/api/category"
    timeout_seconds: float = 60


class Settings(BaseModel):
    refresh: RefreshCfg = RefreshCfg()
    network: NetworkCfg = NetworkCfg()
    locale: LocaleCfg = LocaleCfg()
    translation: TranslationCfg = TranslationCfg()
    batch: BatchCfg = BatchCfg()
    database_url: Optional[str] = None

    # ---- helpers -----------------------------------------------------
    _UA_POOL = [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_5) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.0 Safari/605.1.15",
    ]

    def random_headers(self) -> dict[str, str]:
        ua = random.choice(self._UA_POOL) if self.network.rotate_user_agents else self._UA_POOL[0]
        return {
            "User-Agent": ua,
            "Accept-Language": "en-US,en;q=0.9",
        }

    def random_proxy(self) -> Optional[str]:
        if not self.network.use_proxies:
            return None
        lines = [
            ln.strip()
            for ln in Path(self.network.proxy_file).read_text().splitlines()
            if ln.strip()
        ]
        return random.choice(lines) if lines else None

    def resolved_database_url(self) -> str:
        return self.database_url or f"sqlite:///{ZENTRACK_ROOT}/data/zentrack.sqlite"


def load_settings() -> Settings:
    cfg_path = Path(os.getenv("ZENTRACK_CONFIG", "zentrack.toml"))
    raw = tomllib.loads(cfg_path.read_text()) if cfg_path.exists() else {}
    return Settings.model_validate(raw)
