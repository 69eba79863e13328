"""
Configuration settings for AgentGraph.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""
    
    # Application
    APP_NAME: str = "AgentGraph"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    
    # Workflow Engine
    DEFAULT_LOOP_MAX_ITERATIONS: int = 3
    DEFAULT_DELAY_SECONDS: float = 5
    MAX_SNAPSHOTS: int = 10
    CONCURRENT_BRANCHES: bool = True
    
    # Runtime
    DECISION_TIMEOUT_FALLBACK: bool = True  # Pick the first option once a decision times out
    AGENT_LATENCY_SECONDS: float = 0.0  # Simulated latency of the built-in agents
    
    # Logging
    LOG_LEVEL: str = "INFO"
    
    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
