"""Configuration for BuildFish AI Text-to-3D server."""

import os
from dotenv import load_dotenv

load_dotenv()

# LLM API
OPENAI_API_BASE_URL = os.getenv("OPENAI_API_BASE_URL", "https://api.openai.com/v1")
DEFAULT_MODEL = os.getenv(
    "NEXT_PUBLIC_DEFAULT_MODEL", os.getenv("DEFAULT_MODEL", "gpt-4o")
)

# Completion settings
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2000"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

# Mesh export
MESH_SECTIONS = 32
EXPORT_FORMATS = ("stl", "obj", "glb")
DEFAULT_FILENAME = "buildfish_model"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
VERSION = "0.1.0"


def openai_api_key() -> str:
    """Read the API key from the environment on every call."""
    return os.getenv("OPENAI_API_KEY", "")
