import logging

import pytest

from drvcheck import context
from drvcheck.config import Configuration


@pytest.fixture(autouse=True)
def reset_confpath(monkeypatch):
    """
    Fixture to restore the loaded configuration path after each test.
    """
    monkeypatch.setattr(context, "confpath", None)
    monkeypatch.delenv("DRVCHECK_CONFIG_FILE", raising=False)


class TestLoadFirstConfig:
    def test_first_match_wins(self, tmp_path, monkeypatch):
        """
        Test that the search stops at the first existing file.
        """
        first = tmp_path / "config.yaml"
        first.write_text("options:\n  timeout: 20\n")
        second = tmp_path / "config.toml"
        second.write_text("[options]\ntimeout = 30\n")

        monkeypatch.setattr(
            "drvcheck.main.CONFPATHS", [tmp_path / "missing.yaml", first, second]
        )

        from drvcheck.main import load_first_config

        config = Configuration()

        assert load_first_config(config) is True
        assert config["options"]["timeout"] == 20
        assert context.confpath == str(first)

    def test_nothing_found(self, tmp_path, monkeypatch):
        """
        Test that defaults are kept when no file exists.
        """
        monkeypatch.setattr("drvcheck.main.CONFPATHS", [tmp_path / "config.yaml"])

        from drvcheck.main import load_first_config

        config = Configuration()

        assert load_first_config(config) is False
        assert config == Configuration.DEFAULTS
        assert context.confpath is None

    def test_env_file_is_exclusive(self, tmp_path, monkeypatch):
        """
        Test that DRVCHECK_CONFIG_FILE replaces the search path.
        """
        regular = tmp_path / "config.yaml"
        regular.write_text("options:\n  timeout: 20\n")
        override = tmp_path / "override.json"
        override.write_text('{"options": {"timeout": 40}}')

        monkeypatch.setattr("drvcheck.main.CONFPATHS", [regular])
        monkeypatch.setenv("DRVCHECK_CONFIG_FILE", str(override))

        from drvcheck.main import load_first_config

        config = Configuration()

        assert load_first_config(config) is True
        assert config["options"]["timeout"] == 40
        assert context.confpath == str(override)

    def test_unknown_extension_skipped(self, tmp_path, monkeypatch, caplog):
        """
        Test that files without a loader are skipped with an error.
        """
        unknown = tmp_path / "config.ini"
        unknown.write_text("[options]\n")

        monkeypatch.setattr("drvcheck.main.CONFPATHS", [unknown])

        from drvcheck.main import load_first_config

        assert load_first_config(Configuration()) is False
        assert "No working loaders for extension: ini" in caplog.text

    def test_broken_file_exits(self, tmp_path, monkeypatch, capsys):
        """
        Test that an unparseable configuration file aborts startup.
        """
        broken = tmp_path / "config.json"
        broken.write_text("{not json")

        monkeypatch.setattr("drvcheck.main.CONFPATHS", [broken])

        from drvcheck.main import load_first_config

        with pytest.raises(SystemExit) as excinfo:
            load_first_config(Configuration())

        assert excinfo.value.code == 1
        assert "Unable to load configuration" in capsys.readouterr().err


class TestSetupLogging:
    def test_setup_logging_file(self, mocker, tmp_path):
        """
        Test that a log file gets a file handler.
        """
        mock_basic_config = mocker.patch("drvcheck.main.logging.basicConfig")

        from drvcheck.main import setup_logging

        log_file = tmp_path / "drvcheck.log"
        setup_logging("INFO", str(log_file))

        handler = mock_basic_config.call_args.kwargs["handlers"][0]
        assert isinstance(handler, logging.FileHandler)
        handler.close()

        assert logging.getLogger("drvcheck").level == logging.INFO

    def test_setup_logging_console(self, mocker):
        """
        Test that console logging uses a stream handler at the given level.
        """
        mock_basic_config = mocker.patch("drvcheck.main.logging.basicConfig")

        from drvcheck.main import setup_logging

        setup_logging("DEBUG")

        handler = mock_basic_config.call_args.kwargs["handlers"][0]
        assert type(handler) is logging.StreamHandler
        assert handler.level == logging.DEBUG


class TestMain:
    @pytest.fixture()
    def app_config(self, mocker):
        """
        Fixture to patch the app_config with a fresh configuration object.
        """
        config = Configuration()
        mocker.patch("drvcheck.main.app_config", config)
        return config

    def test_main(self, mocker, app_config, caplog):
        """
        Test the program entry point with a configuration file.
        """
        caplog.set_level("INFO", logger="drvcheck.main")

        mock_load_first_config = mocker.patch(
            "drvcheck.main.load_first_config", return_value=True
        )
        mock_setup_logging = mocker.patch("drvcheck.main.setup_logging")
        mock_cli_app = mocker.patch("drvcheck.cli.app")

        from drvcheck.main import main

        main()

        mock_load_first_config.assert_called_once_with(app_config)
        mock_setup_logging.assert_not_called()
        mock_cli_app.assert_called_once()
        assert "Configuration loaded from:" in caplog.text

    def test_main_no_config(self, mocker, app_config, caplog):
        """
        Test the entry point when no configuration file exists.
        """
        caplog.set_level("INFO", logger="drvcheck.main")

        mocker.patch("drvcheck.main.load_first_config", return_value=False)
        mocker.patch("drvcheck.main.setup_logging")
        mocker.patch("drvcheck.cli.app")

        from drvcheck.main import main

        main()

        assert "No configuration file found. Using defaults" in caplog.text

    def test_main_debug_mode_enabled(self, mocker, app_config, caplog):
        """
        Test that debug mode logs to the console.
        """
        caplog.set_level("WARNING", logger="drvcheck.main")

        mocker.patch("drvcheck.main.load_first_config", return_value=True)
        mocker.patch("drvcheck.cli.app")
        mock_setup_logging = mocker.patch("drvcheck.main.setup_logging")

        app_config.update_from_mapping(
            {"options": {"debug": True, "log_level": "DEBUG"}}
        )

        from drvcheck.main import main

        main()

        mock_setup_logging.assert_called_once_with("DEBUG")  # No file!
        assert "Debug mode enabled! Logs may flood console!" in caplog.text

    def test_main_log_file(self, mocker, app_config):
        """
        Test that a configured log file is handed to setup_logging.
        """
        mocker.patch("drvcheck.main.load_first_config", return_value=True)
        mocker.patch("drvcheck.cli.app")
        mock_setup_logging = mocker.patch("drvcheck.main.setup_logging")

        app_config.update_from_mapping(
            {"options": {"log_file": "drvcheck.log", "log_level": "INFO"}}
        )

        from drvcheck.main import main

        main()

        mock_setup_logging.assert_called_once_with("INFO", "drvcheck.log")

    def test_main_env_overrides(self, mocker, app_config, monkeypatch):
        """
        Test that environment variables are applied after the file.
        """
        monkeypatch.setenv("DRVCHECK_OPTIONS_AUTO_INSTALL", "true")

        mocker.patch("drvcheck.main.load_first_config", return_value=False)
        mocker.patch("drvcheck.cli.app")

        from drvcheck.main import main

        main()

        assert app_config["options"]["auto_install"] is True
