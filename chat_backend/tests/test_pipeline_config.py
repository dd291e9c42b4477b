from chat_backend.pipeline_config import (
    DEFAULT_MAX_DOCUMENT_CHARS,
    DEFAULT_MEMORY_LIMIT,
    DEFAULT_SYSTEM_PROMPT,
    load_pipeline_config,
)


def test_defaults_when_unset(monkeypatch):
    for name in ["CHAT_MAX_DOCUMENT_CHARS", "CHAT_MEMORY_LIMIT", "CHAT_SYSTEM_PROMPT", "CHAT_MAX_IMAGE_DIMENSION"]:
        monkeypatch.delenv(name, raising=False)

    config = load_pipeline_config()

    assert config.max_document_chars == DEFAULT_MAX_DOCUMENT_CHARS
    assert config.memory_limit == DEFAULT_MEMORY_LIMIT
    assert config.memory_min_importance == 5
    assert config.max_artifact_bytes == 10 * 1024 * 1024
    assert config.max_image_dimension is None
    assert config.system_prompt == DEFAULT_SYSTEM_PROMPT


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("CHAT_MAX_DOCUMENT_CHARS", "2000")
    monkeypatch.setenv("CHAT_MEMORY_MIN_IMPORTANCE", "7")
    monkeypatch.setenv("CHAT_MAX_IMAGE_DIMENSION", "1024")
    monkeypatch.setenv("CHAT_DATA_DIR", str(tmp_path))

    config = load_pipeline_config()

    assert config.max_document_chars == 2000
    assert config.memory_min_importance == 7
    assert config.max_image_dimension == 1024
    assert config.to_dict()["data_dir"] == str(tmp_path)


def test_invalid_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("CHAT_MEMORY_LIMIT", "lots")
    monkeypatch.setenv("CHAT_MAX_DOCUMENT_CHARS", "0")

    config = load_pipeline_config()

    assert config.memory_limit == DEFAULT_MEMORY_LIMIT
    assert config.max_document_chars == DEFAULT_MAX_DOCUMENT_CHARS
