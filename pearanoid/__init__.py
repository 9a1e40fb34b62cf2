"""Pearanoid - encrypted password vault client."""

__version__ = "1.0.0"
__all__ = ["__version__"]


def check_dependencies():
    """Halt with a clear message if a critical dependency is missing."""
    import importlib.util
    import sys

    required = {
        "cryptography": "cryptography",
        "argon2": "argon2-cffi",
        "httpx": "httpx",
        "platformdirs": "platformdirs",
        "psutil": "psutil",
    }
    missing = [dist for mod, dist in required.items() if importlib.util.find_spec(mod) is None]
    if missing:
        print("ERROR: Missing dependencies ->", ", ".join(missing))
        print("Install with:  pip install " + " ".join(missing))
        sys.exit(1)
