from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数（および `.env`）から読み込まれるアプリ設定クラス。
    - cometode_db_path: 進捗 SQLite DB の保存先
    - cometode_catalog_path: 問題カタログ JSON（未指定ならパッケージ同梱版）
    - interview_mode: 面接モードの既定値（DB の preferences が優先）
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- 永続化 ---
    cometode_db_path: str = Field(
        default=".data/cometode.sqlite3",
        description="Path to progress SQLite database / 進捗用SQLite DBパス",
    )
    cometode_catalog_path: str | None = Field(
        default=None,
        description="Optional problem catalog JSON path / 問題カタログJSONのパス（未指定なら同梱版）",
    )

    # --- スケジューリング ---
    interview_mode: bool = Field(
        default=False,
        description="Default interview mode when no stored preference exists / 面接モードの既定値",
    )
    due_limit: int = Field(
        default=50,
        ge=1,
        description="Max problems listed as due at once / 一度に表示する復習対象の上限",
    )

    # --- ログ ---
    log_level: str = Field(
        default="INFO",
        description="stdlib logging level name / ログレベル",
    )

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: 未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or "INFO"
        return v


settings = Settings()
