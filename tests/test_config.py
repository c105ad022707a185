#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for layered configuration loading
"""

import os
import sys
import json
import tempfile
import unittest
from unittest import mock

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ransom_recovery import config as config_module
from ransom_recovery.config import CONFIG_ENV_VAR, DEFAULTS, load_config


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.user_path = os.path.join(self.temp_dir.name, "user.json")
        patcher = mock.patch.object(config_module, "USER_CONFIG_PATH", self.user_path)
        patcher.start()
        self.addCleanup(patcher.stop)
        env_patcher = mock.patch.dict(os.environ)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)
        os.environ.pop(CONFIG_ENV_VAR, None)

    def tearDown(self):
        self.temp_dir.cleanup()

    def write(self, name, data):
        path = os.path.join(self.temp_dir.name, name)
        with open(path, "w") as f:
            if isinstance(data, str):
                f.write(data)
            else:
                json.dump(data, f)
        return path

    def test_defaults(self):
        config = load_config()
        self.assertEqual(config, DEFAULTS)
        self.assertEqual(config["sample_size"], 8192)
        self.assertEqual(config["header_scan_window"], 2048)
        self.assertFalse(config["check_padding"])

    def test_layer_order(self):
        self.write("user.json", {"max_candidates": 10, "trial_size": 512, "pacing_delay": 0.1})
        os.environ[CONFIG_ENV_VAR] = self.write("env.json", {"max_candidates": 20, "trial_size": 256})
        custom = self.write("custom.json", {"max_candidates": 30})

        config = load_config(custom)
        self.assertEqual(config["max_candidates"], 30)
        self.assertEqual(config["trial_size"], 256)
        self.assertEqual(config["pacing_delay"], 0.1)

        config = load_config(custom, max_candidates=40)
        self.assertEqual(config["max_candidates"], 40)

    def test_missing_and_malformed_files_are_skipped(self):
        self.write("user.json", "{not json")
        os.environ[CONFIG_ENV_VAR] = self.write("env.json", "[1, 2, 3]")
        with self.assertLogs("RecoveryConfig", level="WARNING"):
            config = load_config(os.path.join(self.temp_dir.name, "missing.json"))
        self.assertEqual(config, DEFAULTS)

    def test_values_coerced_to_default_types(self):
        config = load_config(sample_size="4096", check_padding="true",
                             acceptance_threshold="0.75", pacing_delay=1)
        self.assertEqual(config["sample_size"], 4096)
        self.assertIs(config["check_padding"], True)
        self.assertEqual(config["acceptance_threshold"], 0.75)
        self.assertIsInstance(config["pacing_delay"], float)
        self.assertIs(load_config(check_padding="off")["check_padding"], False)

    def test_invalid_value_falls_back_to_default(self):
        with self.assertLogs("RecoveryConfig", level="WARNING"):
            config = load_config(max_candidates="many")
        self.assertEqual(config["max_candidates"], DEFAULTS["max_candidates"])

    def test_unknown_keys_are_kept(self):
        self.assertEqual(load_config(extra_setting="x")["extra_setting"], "x")

    def test_output_dir_expanded(self):
        config = load_config(output_dir="~/recovered")
        self.assertEqual(config["output_dir"], os.path.expanduser("~/recovered"))
        self.assertIsNone(load_config()["output_dir"])


if __name__ == '__main__':
    unittest.main()
