from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

load_dotenv()

Base = declarative_base()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./genii.db"

    ollama_base_url: str = "http://localhost:11434"
    chat_model: str = "qwen2.5:7b"
    chat_temperature: float = 0.7
    max_generation_steps: int = 3

    chroma_persist_dir: Optional[str] = None
    chroma_collection: str = "genii-content"
    lesson_context_top_k: int = 3
    course_top_k: int = 10
    resource_top_k: int = 5

    auth_jwt_secret: str = "change-me"
    auth_jwt_algorithms: list[str] = ["HS256"]
    auth_jwt_audience: Optional[str] = None

    job_dispatcher: Literal["local", "inngest"] = "local"
    inngest_event_key: Optional[str] = None
    inngest_base_url: str = "https://inn.gs"
    job_secret: Optional[str] = None

    log_level: str = "INFO"
    log_dir: Optional[str] = None
    cors_origins: list[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees its own empty database
            return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(database_url, connect_args=connect_args)
    return create_engine(database_url, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def create_db(engine: Engine) -> None:
    # model modules register their tables on Base at import
    import api.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def reset_db(engine: Engine) -> None:
    import api.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    create_db(engine)
