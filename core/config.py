from pydantic_settings import BaseSettings
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Settings(BaseSettings):
    """
    Application settings.
    """
    # API Config
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Sensum Anthropometry"

    # Logging Config
    LOG_DIR: str = "logs"

    # Metrics Config
    METRICS_ENABLED: bool = True
    METRICS_EXPORT_DIR: Optional[str] = "output/metrics"
    METRICS_SAMPLE_FREQUENCY: int = 10  # Sample every N-th frame
    METRICS_SNAPSHOT_INTERVAL: int = 100  # Emit a snapshot every N samples

    # Tracking Config
    MAX_TRACKED_POSES: int = 4
    TRACK_TIMEOUT_MS: float = 1000.0

    # Stabilization Config
    SMOOTHING_WINDOW_SIZE: int = 5
    VISIBILITY_THRESHOLD: float = 0.5
    STABILITY_TIMEOUT_MS: float = 500.0
    MIN_PROCESSING_INTERVAL_MS: float = 0.0  # 0 disables the rate gate

    class Config:
        env_prefix = "SENSUM_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

# Create global settings object
settings = Settings()
