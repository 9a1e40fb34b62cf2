"""Centralised configuration, KDF profiles, and config.ini I/O."""

from __future__ import annotations

import configparser
import hashlib
import logging
import multiprocessing
import os
import secrets
import tempfile
import time
from pathlib import Path

import psutil

logger = logging.getLogger("pearanoid.config")


# ============================================================================
#  KDF settings
# ============================================================================
KDF_PBKDF2 = "pbkdf2-sha256"
KDF_ARGON2ID = "argon2id"
KDF_ALGORITHMS = (KDF_PBKDF2, KDF_ARGON2ID)

# PBKDF2 iteration tiers tried by calibrate_kdf, weakest first
PBKDF2_TIERS = (100_000, 310_000, 600_000)
PBKDF2_MIN_ITERATIONS = PBKDF2_TIERS[0]

ARGON2_PROFILES = {
    "compat": {
        "time_cost": 3,
        "memory_cost": 65_536,  # 64 MiB
        "parallelism": 2,
    },
    "balanced": {
        "time_cost": 4,
        "memory_cost": 262_144,  # 256 MiB
        "parallelism": min(4, multiprocessing.cpu_count() or 2),
    },
    "high": {
        "time_cost": 6,
        "memory_cost": 524_288,  # 512 MiB
        "parallelism": min(8, multiprocessing.cpu_count() or 2),
    },
}

# Security floor: never go below these
_ARGON2_FLOOR = ARGON2_PROFILES["compat"]
_KDF_DEFAULTS = {
    "algorithm": KDF_PBKDF2,
    "iterations": PBKDF2_MIN_ITERATIONS,
    **_ARGON2_FLOOR,
}

STORAGE_FILE = "file"
STORAGE_HTTP = "http"


# ============================================================================
#  Config class
# ============================================================================
class Config:
    """Centralised settings."""

    # Session
    SESSION_TIMEOUT = 600  # seconds of inactivity before auto-lock
    MIN_SESSION_TIMEOUT = 60
    IDLE_CHECK_INTERVAL = 60  # seconds between idle checks

    # Password generation
    DEFAULT_PASSWORD_LENGTH = 16
    MIN_GENERATED_PASSWORD_LENGTH = 4
    MAX_GENERATED_PASSWORD_LENGTH = 128

    # Storage
    MAX_VAULT_SIZE = 10 * 1024 * 1024  # 10 MB
    DEFAULT_API_URL = "http://localhost:8080/api"
    HTTP_TIMEOUT = 15.0  # seconds

    # ------------------------------------------------------------------
    #  config.ini helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _read(data_dir: Path | None) -> configparser.ConfigParser:
        if data_dir is None:
            from pearanoid.paths import get_data_dir

            data_dir = get_data_dir()
        cfg = configparser.ConfigParser()
        config_path = data_dir / "config.ini"
        if config_path.exists():
            try:
                cfg.read(config_path, encoding="utf-8")
            except configparser.Error as exc:
                logger.warning("Ignoring unreadable config.ini: %s", exc)
                cfg = configparser.ConfigParser()
        return cfg

    @staticmethod
    def get_kdf_params(data_dir: Path | None = None) -> dict:
        """Read KDF params from config.ini, enforcing a security floor."""
        cfg = Config._read(data_dir)
        try:
            algorithm = cfg.get("kdf", "algorithm", fallback=KDF_PBKDF2).strip().lower()
            if algorithm not in KDF_ALGORITHMS:
                logger.warning("Unknown KDF '%s', using %s", algorithm, KDF_PBKDF2)
                algorithm = KDF_PBKDF2
            pars = {
                "algorithm": algorithm,
                "iterations": cfg.getint(
                    "kdf", "iterations", fallback=PBKDF2_MIN_ITERATIONS
                ),
                "time_cost": cfg.getint(
                    "kdf", "time_cost", fallback=_ARGON2_FLOOR["time_cost"]
                ),
                "memory_cost": cfg.getint(
                    "kdf", "memory_cost", fallback=_ARGON2_FLOOR["memory_cost"]
                ),
                "parallelism": cfg.getint(
                    "kdf", "parallelism", fallback=_ARGON2_FLOOR["parallelism"]
                ),
            }
        except ValueError as exc:
            logger.warning("Invalid [kdf] section, using defaults: %s", exc)
            return dict(_KDF_DEFAULTS)

        pars["iterations"] = max(pars["iterations"], PBKDF2_MIN_ITERATIONS)
        pars["memory_cost"] = max(pars["memory_cost"], _ARGON2_FLOOR["memory_cost"])
        pars["time_cost"] = max(pars["time_cost"], _ARGON2_FLOOR["time_cost"])
        pars["parallelism"] = max(pars["parallelism"], 2)
        return pars

    @staticmethod
    def get_storage_settings(data_dir: Path | None = None) -> dict:
        cfg = Config._read(data_dir)
        backend = cfg.get("storage", "backend", fallback=STORAGE_FILE).strip().lower()
        if backend not in (STORAGE_FILE, STORAGE_HTTP):
            logger.warning("Unknown storage backend '%s', using file", backend)
            backend = STORAGE_FILE
        return {
            "backend": backend,
            "url": cfg.get("storage", "url", fallback=Config.DEFAULT_API_URL),
            "token": cfg.get("storage", "token", fallback=None) or None,
        }

    @staticmethod
    def get_session_settings(data_dir: Path | None = None) -> dict:
        cfg = Config._read(data_dir)
        try:
            timeout = cfg.getint("session", "timeout", fallback=Config.SESSION_TIMEOUT)
            interval = cfg.getint(
                "session", "check_interval", fallback=Config.IDLE_CHECK_INTERVAL
            )
        except ValueError as exc:
            logger.warning("Invalid [session] section, using defaults: %s", exc)
            timeout, interval = Config.SESSION_TIMEOUT, Config.IDLE_CHECK_INTERVAL
        return {
            "timeout": max(timeout, Config.MIN_SESSION_TIMEOUT),
            "check_interval": min(max(interval, 1), Config.IDLE_CHECK_INTERVAL),
        }

    @staticmethod
    def get_log_level(data_dir: Path | None = None) -> int:
        cfg = Config._read(data_dir)
        name = cfg.get("logging", "level", fallback="INFO").strip().upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            logger.warning("Unknown log level '%s', using INFO", name)
            return logging.INFO
        return level

    @staticmethod
    def calibrate_kdf(
        data_dir: Path, algorithm: str = KDF_PBKDF2, target_ms: int = 1000
    ) -> dict:
        """Select the strongest KDF setting the hardware runs within *target_ms*.

        Opt-in only. The blob does not record KDF parameters, so every client
        that opens the same vault must be configured with the result.
        """
        salt = secrets.token_bytes(16)
        pw = b"benchmark"
        best = dict(_KDF_DEFAULTS, algorithm=algorithm)

        if algorithm == KDF_ARGON2ID:
            best.update(_calibrate_argon2(pw, salt, target_ms))
        else:
            for iterations in PBKDF2_TIERS:
                t0 = time.perf_counter()
                hashlib.pbkdf2_hmac("sha256", pw, salt, iterations, 32)
                dt = (time.perf_counter() - t0) * 1_000
                logger.info("PBKDF2 %d iterations: %.0f ms", iterations, dt)
                if iterations != PBKDF2_MIN_ITERATIONS and dt > target_ms:
                    break
                best["iterations"] = iterations

        # Atomic write of config.ini
        _write_config(data_dir, best)
        logger.info("KDF calibrated: %s", algorithm)
        logger.warning(
            "KDF settings changed; vaults sealed under the previous settings "
            "will only open with a matching [kdf] section"
        )
        return best

    @staticmethod
    def write_default_config(data_dir: Path) -> dict:
        """Write config.ini with the interoperable defaults (PBKDF2, 100k)."""
        _write_config(data_dir, _KDF_DEFAULTS)
        logger.info("Default config written")
        return dict(_KDF_DEFAULTS)

    @staticmethod
    def config_exists(data_dir: Path) -> bool:
        return (data_dir / "config.ini").exists()


def _calibrate_argon2(pw: bytes, salt: bytes, target_ms: int) -> dict:
    import argon2
    import argon2.low_level as low

    ram_cap = psutil.virtual_memory().total * 3 // 4
    cores = multiprocessing.cpu_count() or 2
    best = dict(_ARGON2_FLOOR)

    for name, profile in ARGON2_PROFILES.items():
        if profile["memory_cost"] * 1024 > ram_cap:
            logger.info("Skipping profile '%s': exceeds RAM cap", name)
            continue
        par = min(profile["parallelism"], cores)
        try:
            t0 = time.perf_counter()
            low.hash_secret_raw(
                pw,
                salt,
                time_cost=profile["time_cost"],
                memory_cost=profile["memory_cost"],
                parallelism=par,
                hash_len=32,
                type=argon2.Type.ID,
            )
            dt = (time.perf_counter() - t0) * 1_000
        except (MemoryError, OSError):
            logger.warning("Profile '%s' failed (not enough RAM)", name)
            break
        logger.info("Argon2 profile '%s': %.0f ms", name, dt)
        if name != "compat" and dt > target_ms:
            break
        best = {
            "time_cost": profile["time_cost"],
            "memory_cost": profile["memory_cost"],
            "parallelism": max(par, 2),
        }
    return best


# ============================================================================
#  Atomic config writer
# ============================================================================
def _write_config(data_dir: Path, kdf_params: dict) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    if os.name != "nt":
        try:
            os.chmod(data_dir, 0o700)
        except OSError:
            pass

    config_path = data_dir / "config.ini"
    cfg = configparser.ConfigParser()
    if config_path.exists():
        cfg.read(config_path, encoding="utf-8")
    cfg["kdf"] = {
        "algorithm": kdf_params["algorithm"],
        "iterations": str(kdf_params["iterations"]),
        "time_cost": str(kdf_params["time_cost"]),
        "memory_cost": str(kdf_params["memory_cost"]),
        "parallelism": str(kdf_params["parallelism"]),
    }

    fd = tempfile.NamedTemporaryFile(
        mode="w",
        dir=data_dir,
        prefix="cfg_tmp_",
        suffix=".ini",
        delete=False,
        encoding="utf-8",
    )
    try:
        cfg.write(fd)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        tmp = Path(fd.name)
        if os.name != "nt":
            os.chmod(tmp, 0o600)
        tmp.replace(config_path)
    except BaseException:
        fd.close()
        try:
            Path(fd.name).unlink(missing_ok=True)
        except OSError:
            pass
        raise
