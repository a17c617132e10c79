"""Tests for the command-line surface."""

from click.testing import CliRunner

from fluxion import cli as cli_module
from fluxion.cli import cli, format_size
from fluxion.transfer.crypto import generate_key


class TestReceiveValidation:
    """Input errors stop before any network activity."""

    def test_bad_code(self):
        runner = CliRunner()

        result = runner.invoke(cli, ['receive', '12345', '--key', generate_key()])

        assert result.exit_code == 1
        assert "valid 6-digit code" in result.output

    def test_bad_key(self):
        runner = CliRunner()

        result = runner.invoke(cli, ['receive', '482913', '--key', 'abc'])

        assert result.exit_code == 1
        assert "Invalid key format" in result.output


class TestInitConfig:
    """Example config generation."""

    def test_writes_example_once(self, tmp_path):
        runner = CliRunner()
        path = tmp_path / 'config.json'

        first = runner.invoke(cli, ['init-config', str(path)])
        second = runner.invoke(cli, ['init-config', str(path)])

        assert first.exit_code == 0
        assert '"relay_url"' in path.read_text()
        assert "already exists" in " ".join(second.output.split())


def test_format_size():
    assert format_size(512) == "512.0 B"
    assert format_size(2048) == "2.0 KB"


class TestSessionRelease:
    """The session forgets its code and key once the outcome is shown."""

    def test_receive_prints_outcome_then_resets_session(self, monkeypatch, tmp_path):
        seen = {}

        async def fake_receive(self, code, key, output_dir=None, progress_callback=None):
            seen['endpoint'] = self
            self.session.room_code = code
            self.session.key = key
            self.session.success("File received and saved! (0.01 KB)")
            return tmp_path / 'hello.txt'

        monkeypatch.setattr(cli_module.ReceiverEndpoint, 'receive_file', fake_receive)
        runner = CliRunner()

        result = runner.invoke(cli, ['receive', '482913', '--key', generate_key()])

        flat = " ".join(result.output.split())
        assert result.exit_code == 0
        assert "File received and saved!" in flat
        assert "Saved to:" in flat
        session = seen['endpoint'].session
        assert session.room_code is None
        assert session.key is None
        assert session.status is None
