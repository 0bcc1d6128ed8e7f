"""Application settings loaded from environment variables via pydantic-settings.

Sources, highest priority first:

  1. Environment variables, e.g. ``OLLAMA_BASE_URL=http://gpu-box:11434``
  2. ``.env`` file in the working directory (local development)
  3. The defaults below

Field ``ollama_base_url`` maps to env var ``OLLAMA_BASE_URL``; pydantic-settings
matches case-insensitively.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """CourseRAG application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Inference backend (Ollama native API) ===
    ollama_base_url: str = "http://localhost:11434"
    ollama_embedding_model: str = "nomic-embed-text:v1.5"
    ollama_generation_model: str = "llama3.1"
    ollama_timeout_seconds: float = 60.0

    # === Embedding gateway ===
    embedding_char_limit: int = 8000
    embedding_batch_size: int = 3
    embedding_batch_pause: float = 0.1

    # === Chunking ===
    chunk_max_tokens: int = 3000
    chunk_min_tokens: int = 500
    chunk_overlap_tokens: int = 200

    # === Primary vector store (ChromaDB) ===
    # Empty chroma_url = embedded PersistentClient at chromadb_persist_dir.
    chroma_url: str = ""
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "material_chunks"

    # === Relational storage (materials + fallback chunk table) ===
    sqlite_db_path: str = "data/course_rag.db"
    upload_dir: str = "data/uploads"

    # === Ingestion task queue ===
    ingestion_workers: int = 2
    ingestion_queue_size: int = 100

    # === Retrieval / routing ===
    retrieval_default_limit: int = 5
    router_temperature: float = 0.1
    router_top_p: float = 0.9
    router_max_tokens: int = 200

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @field_validator("embedding_batch_size", "ingestion_workers", "ingestion_queue_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @property
    def uses_remote_chroma(self) -> bool:
        return bool(self.chroma_url)
