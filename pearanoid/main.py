"""Pearanoid entrypoint and interactive vault shell."""

from __future__ import annotations

import argparse
import cmd
import getpass
import logging
import shlex
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from pearanoid.config import KDF_ALGORITHMS, STORAGE_HTTP, Config
from pearanoid.crypto.engine import CryptoEngine, PasswordGenerator
from pearanoid.errors import AuthenticationError, PearanoidError
from pearanoid.storage.backend import FileStorage, VaultStorage
from pearanoid.vault.session import SessionState, VaultSession

logger = logging.getLogger("pearanoid")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pearanoid", description=__doc__)
    parser.add_argument(
        "--calibrate-kdf",
        choices=KDF_ALGORITHMS,
        metavar="ALGORITHM",
        help="benchmark and store stronger KDF settings (pbkdf2-sha256 or argon2id); "
        "every client of the vault must then use the same [kdf] section",
    )
    return parser.parse_args(argv)


def prepare_config(data_dir: Path, calibrate: Optional[str] = None) -> dict:
    """Ensure config.ini exists and return the KDF parameters to use.

    A first run writes the defaults (PBKDF2-SHA256, 100k iterations), which
    every client can open. Calibration replaces them only when asked for.
    """
    if calibrate:
        print(
            "WARNING: new KDF settings apply to vaults created from now on. "
            "Copy the [kdf] section to every client of this vault.",
            file=sys.stderr,
        )
        Config.calibrate_kdf(data_dir, algorithm=calibrate)
    elif not Config.config_exists(data_dir):
        logger.info("First run: writing default config")
        Config.write_default_config(data_dir)
    return Config.get_kdf_params(data_dir)


def build_storage(data_dir: Path) -> VaultStorage:
    settings = Config.get_storage_settings(data_dir)
    if settings["backend"] == STORAGE_HTTP:
        from pearanoid.storage.http import HttpStorage

        logger.info("Using remote vault store")
        return HttpStorage(settings["url"], token=settings["token"])

    from pearanoid.paths import get_vault_path

    return FileStorage(get_vault_path(data_dir))


def build_session(data_dir: Path, storage: VaultStorage) -> VaultSession:
    session_cfg = Config.get_session_settings(data_dir)
    return VaultSession(
        storage,
        CryptoEngine(Config.get_kdf_params(data_dir)),
        timeout=session_cfg["timeout"],
        check_interval=session_cfg["check_interval"],
    )


def parse_fields(arg: str) -> Tuple[List[str], Dict[str, str]]:
    """Split ``a b key=value`` into positionals and a field dict."""
    positional, fields = [], {}
    for token in shlex.split(arg):
        if "=" in token:
            key, value = token.split("=", 1)
            fields[key.strip()] = value
        else:
            positional.append(token)
    return positional, fields


class VaultShell(cmd.Cmd):
    """Line-oriented front end; every command counts as user activity."""

    intro = "Pearanoid vault. Type 'help' for commands."
    prompt = "pearanoid> "

    def __init__(
        self,
        session: VaultSession,
        read_secret: Callable[[str], str] = getpass.getpass,
        stdin=None,
        stdout=None,
    ):
        super().__init__(stdin=stdin, stdout=stdout)
        self.session = session
        self._read_secret = read_secret

    def _say(self, text: str = "") -> None:
        self.stdout.write(text + "\n")

    def precmd(self, line):
        self.session.touch_activity()
        return line

    def emptyline(self):
        pass

    def onecmd(self, line):
        try:
            return super().onecmd(line)
        except (PearanoidError, ValueError) as exc:
            self._say(f"Error: {exc}")
            return False

    def _require_unlocked(self) -> bool:
        if self.session.is_locked:
            self._say("Vault is locked. Use 'unlock' first.")
            return False
        return True

    def _resolve(self, prefix: str) -> Optional[str]:
        matches = [e.id for e in self.session.entries if e.id.startswith(prefix)]
        if len(matches) == 1:
            return matches[0]
        self._say("No such entry." if not matches else "Ambiguous id prefix.")
        return None

    # -- session ------------------------------------------------------------
    def do_status(self, arg):
        """status: show lock state and vault summary."""
        s = self.session
        self._say(f"State: {s.state.value}")
        if s.state is SessionState.LOCKED:
            self._say("Vault exists." if s.vault_exists else "No vault yet; 'unlock' creates one.")
        if not s.is_locked:
            self._say(f"Entries: {len(s.entries)}")
            if s.has_unsaved_changes:
                self._say("Unsaved changes: run 'save' to retry.")
        if s.last_error:
            self._say(f"Last error: {s.last_error}")

    def do_unlock(self, arg):
        """unlock: open the vault (creates a new one on first use)."""
        creating = not self.session.vault_exists
        password = self._read_secret("New master password: " if creating else "Master password: ")
        try:
            self.session.unlock(password)
        except AuthenticationError as exc:
            self._say(str(exc))
            return
        self._say("Vault created and unlocked." if creating else "Vault unlocked.")

    def do_lock(self, arg):
        """lock: forget the decrypted vault and key."""
        self.session.lock()
        self._say("Vault locked.")

    def do_save(self, arg):
        """save: retry storing the vault after a failed save."""
        if self._require_unlocked():
            self.session.save()
            self._say("Saved.")

    # -- entries ------------------------------------------------------------
    def do_list(self, arg):
        """list [section]: list entries, optionally within one section."""
        if not self._require_unlocked():
            return
        section = arg.strip() or None
        for e in self.session.entries:
            if section and e.section != section:
                continue
            who = e.username or e.email or ""
            self._say(f"{e.id[:8]}  {e.name:<24} {who:<24} {e.section or ''}")

    def do_show(self, arg):
        """show <id>: print one entry including its password."""
        if not self._require_unlocked() or not arg.strip():
            return
        entry_id = self._resolve(arg.strip())
        if entry_id is None:
            return
        e = self.session.get_entry(entry_id)
        for label in ("id", "name", "username", "email", "password", "section", "notes"):
            value = getattr(e, label)
            if value:
                self._say(f"{label:>9}: {value}")
        self._say(f"{'updated':>9}: {e.updated_at.isoformat()}")

    def do_add(self, arg):
        """add name=<name> [username=..] [email=..] [section=..] [notes=..]

        The password is prompted for; leave it empty to generate one."""
        if not self._require_unlocked():
            return
        _, fields = parse_fields(arg)
        if "password" not in fields:
            fields["password"] = self._read_secret("Password (empty = generate): ")
            if not fields["password"]:
                fields["password"] = PasswordGenerator.generate()
        entry = self.session.add_entry(**fields)
        if entry is not None:
            self._say(f"Added {entry.id[:8]} ({entry.name}).")

    def do_edit(self, arg):
        """edit <id> field=value ... [password]: change fields; bare 'password' prompts."""
        if not self._require_unlocked():
            return
        positional, fields = parse_fields(arg)
        if not positional:
            self._say("Usage: edit <id> field=value ...")
            return
        entry_id = self._resolve(positional[0])
        if entry_id is None:
            return
        if "password" in positional[1:]:
            fields["password"] = self._read_secret("New password: ")
        if not fields:
            self._say("Nothing to change.")
            return
        self.session.update_entry(entry_id, **fields)
        self._say("Updated.")

    def do_rm(self, arg):
        """rm <id>: delete an entry."""
        if not self._require_unlocked() or not arg.strip():
            return
        entry_id = self._resolve(arg.strip())
        if entry_id is not None:
            self.session.delete_entry(entry_id)
            self._say("Deleted.")

    def do_sections(self, arg):
        """sections: list the section labels in use."""
        if self._require_unlocked():
            for name in self.session.sections:
                self._say(name)

    def do_gen(self, arg):
        """gen [length] [--no-symbols]: print a random password."""
        positional, _ = parse_fields(arg)
        length = Config.DEFAULT_PASSWORD_LENGTH
        symbols = "--no-symbols" not in positional
        numbers = [p for p in positional if p.isdigit()]
        if numbers:
            length = int(numbers[0])
        self._say(PasswordGenerator.generate(length, symbols=symbols))

    def do_quit(self, arg):
        """quit: lock the vault and exit."""
        self.session.close()
        return True

    do_EOF = do_quit


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point."""
    args = parse_args(argv)

    # 1. Check dependencies
    from pearanoid import check_dependencies

    check_dependencies()

    # 2. Resolve data directory
    from pearanoid.paths import get_data_dir, get_log_dir

    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    # 3. Initialise logging
    from pearanoid.logging_setup import setup_secure_logging

    setup_secure_logging(get_log_dir(data_dir), Config.get_log_level(data_dir))

    # 4. Platform hardening
    from pearanoid.util.platform_harden import (
        apply_platform_hardening,
        validate_system_requirements,
    )

    try:
        validate_system_requirements()
    except SystemError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    apply_platform_hardening()

    # 5. Config: interoperable defaults on first run, calibration only on request
    prepare_config(data_dir, calibrate=args.calibrate_kdf)

    # 6. Session + shell
    try:
        storage = build_storage(data_dir)
    except PearanoidError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    session = build_session(data_dir, storage)
    try:
        try:
            session.initialize()
        except PearanoidError as exc:
            print(f"WARNING: {exc} (unlock will retry)", file=sys.stderr)
        VaultShell(session).cmdloop()
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    finally:
        session.close()
        storage.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
