from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    database_url: str = 'sqlite+pysqlite:///:memory:'

    session_backend: str = 'file'
    session_file: str = '.procuremed_session.json'
    session_key: str = 'pm_user'

    default_supplier_name: str = 'Supplier'
    currency_symbol: str = '₱'
    order_status_policy: str = 'permissive'

    log_level: str = 'INFO'
    log_file: str | None = None
    log_retention_days: int = 30

    @property
    def database_url_normalized(self) -> str:
        url = self.database_url.strip()
        if url.startswith('postgres://'):
            return 'postgresql+psycopg://' + url[len('postgres://') :]
        if url.startswith('postgresql://'):
            return 'postgresql+psycopg://' + url[len('postgresql://') :]
        return url


settings = Settings()
