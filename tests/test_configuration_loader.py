from pathlib import Path

from gmai.configuration import load_runtime_configuration


def _write_override(home: Path, content: str) -> None:
    cfg_dir = home / "config"
    cfg_dir.mkdir(parents=True, exist_ok=True)
    (cfg_dir / "local.yml").write_text(content)


def test_invalid_types_raise_diagnostics(tmp_path: Path):
    home = tmp_path / "home"
    home.mkdir()
    _write_override(
        home,
        """
        vault:
          poll_interval: "often"
        """,
    )

    bundle = load_runtime_configuration(home)

    assert bundle.status == "invalid"
    assert any("poll_interval" in diag.message for diag in bundle.diagnostics)
    assert bundle.merged["vault"]["poll_interval"] == 20


def test_bool_is_not_accepted_as_number(tmp_path: Path):
    home = tmp_path / "home"
    home.mkdir()
    _write_override(
        home,
        """
        vault:
          reply_timeout: true
        """,
    )

    bundle = load_runtime_configuration(home)

    assert bundle.status == "invalid"
    assert any("reply_timeout" in diag.message for diag in bundle.diagnostics)


def test_document_urls_drop_non_strings(tmp_path: Path):
    home = tmp_path / "home"
    home.mkdir()
    _write_override(
        home,
        """
        api:
          document_urls:
            - https://example.test/rules.pdf
            - 42
        """,
    )

    bundle = load_runtime_configuration(home)

    assert bundle.merged["api"]["document_urls"] == ["https://example.test/rules.pdf"]
    assert any("document_urls[1]" in diag.message for diag in bundle.diagnostics)


def test_unknown_keys_warn(tmp_path: Path):
    home = tmp_path / "home"
    home.mkdir()
    _write_override(
        home,
        """
        mystery:
          value: 1
        """,
    )

    bundle = load_runtime_configuration(home)

    assert any("Unknown configuration key" in diag.message for diag in bundle.diagnostics)
