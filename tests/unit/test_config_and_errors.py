"""Unit tests for settings, the YAML loader, the error hierarchy and status mapping."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.config.loader import load_config
from src.config.settings import Settings
from src.utils.errors import (
    ConfigurationError,
    CourseRAGError,
    DocumentParsingError,
    ExternalServiceError,
    PipelineError,
    ResourceNotFoundError,
    ValidationError,
    VectorStoreError,
)


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)
        assert settings.ollama_embedding_model == "nomic-embed-text:v1.5"
        assert settings.embedding_char_limit == 8000
        assert settings.embedding_batch_size == 3
        assert settings.chunk_max_tokens == 3000
        assert settings.chunk_min_tokens == 500
        assert settings.uses_remote_chroma is False

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434")
        monkeypatch.setenv("CHROMA_URL", "http://chroma:8000")
        settings = Settings(_env_file=None)
        assert settings.ollama_base_url == "http://gpu-box:11434"
        assert settings.uses_remote_chroma is True

    @pytest.mark.parametrize("field", ["embedding_batch_size", "ingestion_workers", "ingestion_queue_size"])
    def test_positive_fields(self, field: str) -> None:
        with pytest.raises(ValueError):
            Settings(_env_file=None, **{field: 0})


class TestLoadConfig:
    def test_repo_config_merged_with_settings(self, make_settings) -> None:
        config_path = Path(__file__).resolve().parents[2] / "config" / "config.yaml"
        config = load_config(str(config_path), settings=make_settings(app_port=9001))

        assert config["chunking"]["method"] == "by-heading"
        assert config["retrieval"]["fallback_multiplier"] == 2
        assert "hello" in config["router"]["no_retrieval_phrases"]
        assert config["app"]["name"] == "course-rag"
        assert config["app"]["port"] == 9001
        assert config["ollama"]["base_url"] == "http://ollama.test:11434"

    def test_missing_file_is_empty(self, tmp_path: Path, make_settings) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=make_settings())
        assert config["storage"]["upload_dir"].endswith("uploads")

    def test_malformed_yaml(self, tmp_path: Path, make_settings) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("chunking: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(str(path), settings=make_settings())

    def test_non_mapping_yaml(self, tmp_path: Path, make_settings) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(str(path), settings=make_settings())


class TestErrors:
    @pytest.mark.parametrize(
        "error_cls",
        [
            ValidationError,
            ResourceNotFoundError,
            ExternalServiceError,
            VectorStoreError,
            DocumentParsingError,
            PipelineError,
            ConfigurationError,
        ],
    )
    def test_hierarchy(self, error_cls: type[CourseRAGError]) -> None:
        exc = error_cls()
        assert isinstance(exc, CourseRAGError)
        assert exc.message

    def test_provider_prefix(self) -> None:
        exc = ExternalServiceError("HTTP 500", provider_name="ollama")
        assert str(exc) == "[ollama] HTTP 500"
        assert exc.message == "HTTP 500"
        assert str(ValidationError("bad")) == "bad"


class TestStatusMapping:
    @pytest.mark.parametrize(
        ("exc", "status"),
        [
            (ResourceNotFoundError(), 404),
            (ValidationError(), 422),
            (ExternalServiceError(), 502),
            (VectorStoreError(), 502),
            (PipelineError(), 500),
            (DocumentParsingError(), 500),
            (CourseRAGError(), 500),
        ],
    )
    def test_status_for(self, exc: CourseRAGError, status: int) -> None:
        from src.api.middleware import status_for

        assert status_for(exc) == status
