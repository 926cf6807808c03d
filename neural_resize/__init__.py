"""
neural-resize: decode images and upscale them with an ONNX super-resolution model
Main package initialization
"""

__version__ = "1.0.0"

from neural_resize.config import Config
from neural_resize.logger import setup_logger

# Initialize logger
logger = setup_logger(__name__)

__all__ = ["Config", "logger"]
