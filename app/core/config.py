import logging
import os


class Settings:
    database_url: str = os.getenv("ELIB_DB", "sqlite:///./elibrary.db")
    log_level: str = os.getenv("ELIB_LOG", "INFO")
    loan_period_months: int = int(os.getenv("ELIB_LOAN_MONTHS", "1"))
    db_timeout: float = float(os.getenv("ELIB_DB_TIMEOUT", "30"))


settings = Settings()

logging.basicConfig(level=settings.log_level,
                    format="%(asctime)s %(levelname)s %(name)s - %(message)s")
