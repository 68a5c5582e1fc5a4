"""
Unit tests for the configuration system.
"""

import json
from unittest.mock import patch

import pytest

from fv1block.utils.config import (
    Fv1Config,
    get_config,
    load_config,
    set_config,
)
from fv1block.utils.exceptions import Fv1Error


class TestFv1Config:
    """Test configuration loading."""

    def test_defaults(self, tmp_path, monkeypatch):
        """Test defaults when no file exists."""
        monkeypatch.chdir(tmp_path)
        config = Fv1Config()

        assert config.config_file is None
        assert config.compilation.register_count == 32
        assert config.compilation.program_size == 128
        assert config.compilation.memory_size == 32768
        assert config.compilation.sample_rate == 32768
        assert config.compilation.optimize is True
        assert config.assembler.legacy_memory_layout is True
        assert config.assembler.rounding == "nearest"
        assert config.is_strict() is False

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            "compilation:\n"
            "  register_count: 16\n"
            "  template_dirs: [blocks]\n"
            "assembler:\n"
            "  strict: true\n"
            "  rounding: truncate\n"
        )
        config = load_config(str(path))

        assert config.compilation.register_count == 16
        assert config.compilation.template_dirs == ["blocks"]
        assert config.assembler.strict is True
        assert config.assembler.rounding == "truncate"

    def test_load_json(self, tmp_path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"assembler": {"legacy_memory_layout": False}}))

        assert Fv1Config(str(path)).assembler.legacy_memory_layout is False

    def test_discovers_file_in_cwd(self, tmp_path, monkeypatch):
        (tmp_path / "fv1block.yml").write_text("compilation:\n  program_size: 64\n")
        monkeypatch.chdir(tmp_path)

        config = Fv1Config()
        assert config.config_file.name == "fv1block.yml"
        assert config.compilation.program_size == 64

    def test_missing_file_uses_defaults(self, tmp_path):
        config = Fv1Config(str(tmp_path / "absent.yaml"))
        assert config.compilation.register_count == 32

    def test_invalid_rounding(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("assembler:\n  rounding: ceiling\n")
        with pytest.raises(Fv1Error, match="Unknown rounding mode"):
            Fv1Config(str(path))

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(Fv1Error):
            Fv1Config(str(path))

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("compilation: [unclosed\n")
        with pytest.raises(Fv1Error, match="Failed to load configuration"):
            Fv1Config(str(path))

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch.dict("os.environ", {"FV1BLOCK_STRICT": "yes", "FV1BLOCK_LEGACY_MEM": "0"}):
            config = Fv1Config()
        assert config.assembler.strict is True
        assert config.assembler.legacy_memory_layout is False

    def test_save_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = Fv1Config()
        target = config.save_config(str(tmp_path / "saved.json"))

        data = json.loads(target.read_text())
        assert data == config.to_dict()
        assert set(data) == {"logging", "compilation", "assembler"}


class TestGlobalConfig:
    """Test the global configuration instance."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_config(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("compilation:\n  register_count: 8\n")
        set_config(load_config(str(path)))
        assert get_config().compilation.register_count == 8

    def test_load_config_leaves_global_alone(self, tmp_path):
        current = get_config()
        load_config(str(tmp_path / "absent.yaml"))
        assert get_config() is current
