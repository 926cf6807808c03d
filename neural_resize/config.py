"""
Configuration management for neural-resize
"""

import os
import tempfile
from pathlib import Path
from typing import Tuple
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

class Config:
    """Main configuration class for neural-resize"""

    # Application settings
    APP_NAME = "neural-resize"

    # Paths
    BASE_DIR = Path(__file__).parent.parent
    LOGS_DIR = Path(os.getenv("LOGS_DIR", str(BASE_DIR / "logs")))
    TEMP_DIR = os.getenv(
        "TEMP_DIR", str(Path(tempfile.gettempdir()) / "neural_resize")
    )

    # Create directories if they don't exist
    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    # Inference runtime settings
    EXECUTION_BACKEND = os.getenv("EXECUTION_BACKEND", "CPU")
    ORT_LOG_SEVERITY = int(os.getenv("ORT_LOG_SEVERITY", "2"))  # 2 = warning
    MODEL_INPUT_NAME = os.getenv("MODEL_INPUT_NAME", "input")
    MODEL_OUTPUT_NAME = os.getenv("MODEL_OUTPUT_NAME", "output")
    GPU_DEVICE_ID = int(os.getenv("GPU_DEVICE_ID", "0"))
    GPU_MEM_LIMIT = int(os.getenv("GPU_MEM_LIMIT", "0"))  # 0 = unlimited

    # Result cache settings
    CACHE_CAPACITY = int(os.getenv("CACHE_CAPACITY", "4"))
    CACHE_POLICY = os.getenv("CACHE_POLICY", "fifo")
    CACHE_PERSIST = os.getenv("CACHE_PERSIST", "False").lower() == "true"
    DISK_CACHE_MAX_ENTRIES = int(os.getenv("DISK_CACHE_MAX_ENTRIES", "64"))

    # Image processing settings
    FLATTEN_BACKGROUND = os.getenv("FLATTEN_BACKGROUND", "0,0,0")

    # Logging settings
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_PROPAGATE = os.getenv("LOG_PROPAGATE", "False").lower() == "true"

    @classmethod
    def flatten_background(cls) -> Tuple[int, int, int]:
        """Parse FLATTEN_BACKGROUND ("r,g,b") into an RGB tuple"""
        try:
            parts = [int(p.strip()) for p in str(cls.FLATTEN_BACKGROUND).split(",")]
        except ValueError:
            parts = []
        if len(parts) != 3:
            return (0, 0, 0)
        return tuple(max(0, min(255, p)) for p in parts)  # type: ignore[return-value]

class DevelopmentConfig(Config):
    """Development configuration"""

    LOG_LEVEL = "DEBUG"

class ProductionConfig(Config):
    """Production configuration"""

    LOG_LEVEL = "INFO"

class TestingConfig(Config):
    """Testing configuration"""

    LOG_LEVEL = "WARNING"
    EXECUTION_BACKEND = "CPU"
    CACHE_CAPACITY = 4
    CACHE_POLICY = "fifo"
    CACHE_PERSIST = False

def get_config() -> Config:
    """Get appropriate configuration based on environment"""
    env = os.getenv("ENVIRONMENT", "development").lower()

    config_map = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
    }

    return config_map.get(env, DevelopmentConfig)
