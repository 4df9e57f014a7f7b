import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from capturoo_cli import config
from capturoo_cli.errors import ConfigError


class EndpointToFilenameTests(unittest.TestCase):
    def test_host_and_port(self) -> None:
        self.assertEqual(config.endpoint_to_filename("http://localhost:8080"), "localhost_8080")

    def test_dots_replaced(self) -> None:
        self.assertEqual(config.endpoint_to_filename("https://api.capturoo.com"), "api_capturoo_com")
        self.assertEqual(config.endpoint_to_filename("https://api.capturoo.com/v1"), "api_capturoo_com")

    def test_unparsable_endpoint(self) -> None:
        for endpoint in ["", "not a url", "http://localhost:notaport"]:
            with self.subTest(endpoint=endpoint):
                with self.assertRaises(ConfigError):
                    config.endpoint_to_filename(endpoint)


class LoadConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self) -> None:
        cfg = config.load_config(self.tmp / "missing.env", config_dir=self.tmp)
        self.assertEqual(cfg.endpoint, config.DEFAULT_ENDPOINT)
        self.assertEqual(cfg.token_filename, "api_capturoo_com")
        self.assertEqual(cfg.config_dir, self.tmp)
        self.assertFalse(cfg.debug)

    @patch.dict(os.environ, {}, clear=True)
    def test_env_file(self) -> None:
        env_file = self.tmp / ".env"
        env_file.write_text("# local stack\nCAPTUROO_CLI_ENDPOINT=http://localhost:8080/\nIGNORED LINE\n")

        cfg = config.load_config(env_file, config_dir=self.tmp)

        self.assertEqual(cfg.endpoint, "http://localhost:8080")
        self.assertEqual(cfg.token_filename, "localhost_8080")

    @patch.dict(os.environ, {"CAPTUROO_CLI_ENDPOINT": "https://staging.capturoo.com"}, clear=True)
    def test_environment_beats_env_file(self) -> None:
        env_file = self.tmp / ".env"
        env_file.write_text("CAPTUROO_CLI_ENDPOINT=http://localhost:8080\n")

        cfg = config.load_config(env_file, config_dir=self.tmp)

        self.assertEqual(cfg.token_filename, "staging_capturoo_com")

    @patch.dict(os.environ, {"CAPTUROO_CLI_ENDPOINT": "https://staging.capturoo.com"}, clear=True)
    def test_flag_beats_environment(self) -> None:
        cfg = config.load_config(self.tmp / "missing.env", endpoint="http://127.0.0.1:9000", debug=True)

        self.assertEqual(cfg.token_filename, "127_0_0_1_9000")
        self.assertTrue(cfg.debug)


if __name__ == "__main__":
    unittest.main()
