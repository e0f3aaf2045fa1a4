"""
Configuration for the Mental Boost service, read from the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class LLMConfig:
    provider: str
    openai_api_key: Optional[str]
    openai_model: str
    ollama_serve_url: str
    ollama_model: str
    ctx_window: int


@dataclass
class MetricsConfig:
    host: str
    port: int
    prefix: str


@dataclass
class SessionConfig:
    emotion_detector: str
    camera_source: str
    speech_source: str
    emotion_poll_interval: float
    stale_session_minutes: float


@dataclass
class AuthConfig:
    delay: float
    identity_file: str


@dataclass
class AppConfig:
    environment: str
    log_level: str
    database_url: str
    llm: LLMConfig
    metrics: MetricsConfig
    session: SessionConfig
    auth: AuthConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    llm_config = LLMConfig(provider=os.getenv('LLM_PROVIDER', 'openai'),
                           openai_api_key=os.getenv('OPENAI_API_KEY'),
                           openai_model=os.getenv('OPENAI_MODEL', 'gpt-3.5-turbo'),
                           ollama_serve_url=os.getenv('OLLAMA_SERVE_URL', 'http://127.0.0.1:11434'),
                           ollama_model=os.getenv('OLLAMA_MODEL', 'llama2'),
                           ctx_window=int(os.getenv('OLLAMA_CTX_WINDOW', '4096')))

    metrics_config = MetricsConfig(host=os.getenv('GRAPHITE_HOST', 'localhost'),
                                   port=int(os.getenv('GRAPHITE_HOST_PORT', '8125')),
                                   prefix=os.getenv('METRICS_PREFIX', 'mentalboost'))

    session_config = SessionConfig(emotion_detector=os.getenv('EMOTION_DETECTOR', 'none'),
                                   camera_source=os.getenv('CAMERA_SOURCE', 'upload'),
                                   speech_source=os.getenv('SPEECH_SOURCE', 'push'),
                                   emotion_poll_interval=float(os.getenv('EMOTION_POLL_INTERVAL', '0.5')),
                                   stale_session_minutes=float(os.getenv('STALE_SESSION_MINUTES', '30')))

    auth_config = AuthConfig(delay=float(os.getenv('AUTH_DELAY', '1.0')),
                             identity_file=os.getenv('IDENTITY_FILE', '.mentalboost/identity.json'))

    return AppConfig(environment=os.getenv('ENVIRONMENT', 'development'),
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     database_url=os.getenv('DATABASE_URL', 'sqlite:///mentalboost.db'),
                     llm=llm_config,
                     metrics=metrics_config,
                     session=session_config,
                     auth=auth_config)
