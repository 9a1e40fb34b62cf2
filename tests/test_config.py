"""Tests for config.ini parsing, security floors, and KDF calibration."""

from __future__ import annotations

import configparser

import pytest

from pearanoid.config import (
    ARGON2_PROFILES,
    KDF_ARGON2ID,
    KDF_PBKDF2,
    PBKDF2_MIN_ITERATIONS,
    STORAGE_FILE,
    STORAGE_HTTP,
    Config,
)
from pearanoid.crypto.engine import CryptoEngine
from pearanoid.main import parse_args, prepare_config
from pearanoid.vault.models import Vault


def _write_ini(tmp_path, text: str):
    (tmp_path / "config.ini").write_text(text, encoding="utf-8")


class TestKdfParams:
    def test_defaults_without_file(self, tmp_path):
        pars = Config.get_kdf_params(tmp_path)
        assert pars["algorithm"] == KDF_PBKDF2
        assert pars["iterations"] == PBKDF2_MIN_ITERATIONS

    def test_iteration_floor(self, tmp_path):
        _write_ini(tmp_path, "[kdf]\nalgorithm = pbkdf2-sha256\niterations = 10\n")
        assert Config.get_kdf_params(tmp_path)["iterations"] == PBKDF2_MIN_ITERATIONS

    def test_argon2_floor(self, tmp_path):
        _write_ini(
            tmp_path,
            "[kdf]\nalgorithm = argon2id\ntime_cost = 1\nmemory_cost = 1024\nparallelism = 1\n",
        )
        pars = Config.get_kdf_params(tmp_path)
        assert pars["algorithm"] == KDF_ARGON2ID
        assert pars["time_cost"] == ARGON2_PROFILES["compat"]["time_cost"]
        assert pars["memory_cost"] == ARGON2_PROFILES["compat"]["memory_cost"]
        assert pars["parallelism"] == 2

    def test_unknown_algorithm_falls_back(self, tmp_path):
        _write_ini(tmp_path, "[kdf]\nalgorithm = md5\n")
        assert Config.get_kdf_params(tmp_path)["algorithm"] == KDF_PBKDF2

    def test_garbage_values_use_defaults(self, tmp_path):
        _write_ini(tmp_path, "[kdf]\niterations = lots\n")
        pars = Config.get_kdf_params(tmp_path)
        assert pars["iterations"] == PBKDF2_MIN_ITERATIONS


class TestStorageSettings:
    def test_defaults(self, tmp_path):
        s = Config.get_storage_settings(tmp_path)
        assert s == {"backend": STORAGE_FILE, "url": Config.DEFAULT_API_URL, "token": None}

    def test_http(self, tmp_path):
        _write_ini(
            tmp_path,
            "[storage]\nbackend = HTTP\nurl = https://vault.example/api\ntoken = abc\n",
        )
        s = Config.get_storage_settings(tmp_path)
        assert s["backend"] == STORAGE_HTTP
        assert s["url"] == "https://vault.example/api"
        assert s["token"] == "abc"

    def test_unknown_backend(self, tmp_path):
        _write_ini(tmp_path, "[storage]\nbackend = ftp\n")
        assert Config.get_storage_settings(tmp_path)["backend"] == STORAGE_FILE


class TestSessionSettings:
    def test_defaults(self, tmp_path):
        s = Config.get_session_settings(tmp_path)
        assert s["timeout"] == 600
        assert s["check_interval"] == 60

    @pytest.mark.parametrize(
        "timeout,interval,expected",
        [
            (5, 60, (Config.MIN_SESSION_TIMEOUT, 60)),
            (900, 0, (900, 1)),
            (900, 3600, (900, Config.IDLE_CHECK_INTERVAL)),
        ],
    )
    def test_clamped(self, tmp_path, timeout, interval, expected):
        _write_ini(tmp_path, f"[session]\ntimeout = {timeout}\ncheck_interval = {interval}\n")
        s = Config.get_session_settings(tmp_path)
        assert (s["timeout"], s["check_interval"]) == expected


class TestCalibrate:
    def test_writes_config(self, tmp_path):
        assert not Config.config_exists(tmp_path)
        best = Config.calibrate_kdf(tmp_path, target_ms=1)
        assert Config.config_exists(tmp_path)
        assert best["iterations"] >= PBKDF2_MIN_ITERATIONS
        assert Config.get_kdf_params(tmp_path)["iterations"] == best["iterations"]
        assert list(tmp_path.glob("cfg_tmp_*")) == []

    def test_keeps_other_sections(self, tmp_path):
        _write_ini(tmp_path, "[storage]\nbackend = http\n")
        Config.calibrate_kdf(tmp_path, target_ms=1)
        cfg = configparser.ConfigParser()
        cfg.read(tmp_path / "config.ini", encoding="utf-8")
        assert cfg.get("storage", "backend") == "http"
        assert cfg.get("kdf", "algorithm") == KDF_PBKDF2


class TestFirstRun:
    def test_defaults_open_default_vaults(self, tmp_path, sample_password):
        # Any client on defaults, e.g. the web client or another install
        blob = CryptoEngine({"algorithm": KDF_PBKDF2}).encrypt(Vault(), sample_password)

        params = prepare_config(tmp_path)

        assert Config.config_exists(tmp_path)
        assert params["algorithm"] == KDF_PBKDF2
        assert params["iterations"] == PBKDF2_MIN_ITERATIONS
        assert CryptoEngine(params).decrypt(blob, sample_password) == Vault()

    def test_existing_config_untouched(self, tmp_path):
        _write_ini(tmp_path, "[kdf]\nalgorithm = pbkdf2-sha256\niterations = 310000\n")
        assert prepare_config(tmp_path)["iterations"] == 310_000

    def test_calibration_only_on_request(self):
        assert parse_args([]).calibrate_kdf is None
        args = parse_args(["--calibrate-kdf", KDF_PBKDF2])
        assert args.calibrate_kdf == KDF_PBKDF2

    def test_rejects_unknown_algorithm(self):
        with pytest.raises(SystemExit):
            parse_args(["--calibrate-kdf", "md5"])
