from pathlib import Path

import pytest

yaml = pytest.importorskip("yaml")

from gmai.commands.config import COMMAND
from gmai.configuration import load_runtime_configuration
from gmai.slash_commands import CommandRouter, SlashCommandContext


def _build_context(tmp_path: Path, metadata: dict | None = None) -> tuple[SlashCommandContext, Path]:
    home_dir = tmp_path / "home"
    (home_dir / "config").mkdir(parents=True)
    bundle = load_runtime_configuration(home_dir)
    router = CommandRouter(bundle, metadata=metadata or {"repo_root": str(Path(__file__).resolve().parents[1])})
    context = SlashCommandContext(config=bundle, router=router, metadata=router.metadata)
    return context, home_dir


def test_config_set_updates_override_file_and_reload(tmp_path: Path):
    context, home_dir = _build_context(tmp_path)

    output = COMMAND.handler(context, ["logging.level", "DEBUG"])

    override = home_dir / "config" / "99-cli-overrides.yml"
    assert override.exists()
    data = yaml.safe_load(override.read_text(encoding="utf-8"))
    assert data["logging"]["level"] == "DEBUG"
    assert context.router.config.merged["logging"]["level"] == "DEBUG"
    assert "logging.level" in output


def test_config_get_returns_value(tmp_path: Path):
    context, _ = _build_context(tmp_path)
    COMMAND.handler(context, ["api.base_url", "https://gm.example.test"])

    output = COMMAND.handler(context, ["api.base_url"])

    assert 'api.base_url = "https://gm.example.test"' in output


def test_config_get_reports_unset_key(tmp_path: Path):
    context, _ = _build_context(tmp_path)

    output = COMMAND.handler(context, ["vault.nothing"])

    assert "vault.nothing is not set" in output


def test_config_set_rejects_lists(tmp_path: Path):
    context, _ = _build_context(tmp_path)

    output = COMMAND.handler(context, ["api.document_urls", "[https://a, https://b]"])

    assert "list values is not supported" in output


def test_config_set_runs_reload_hook(tmp_path: Path):
    reloaded = []
    context, _ = _build_context(tmp_path, metadata={"on_config_reloaded": reloaded.append})

    COMMAND.handler(context, ["vault.poll_interval", "30"])

    assert len(reloaded) == 1
    assert reloaded[0].merged["vault"]["poll_interval"] == 30


def test_config_validate_reports_diagnostics(tmp_path: Path):
    context, _ = _build_context(tmp_path)
    broken = context.config.home_dir / "config" / "broken.yml"
    broken.write_text("runtime: [\n", encoding="utf-8")

    output = COMMAND.handler(context, ["validate"])

    assert "Diagnostics" in output
    assert "broken.yml" in output
