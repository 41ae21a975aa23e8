"""Restricted evaluation context for provider code.

Provider source is compiled and executed in a fresh namespace. The namespace
only sees a curated subset of builtins, and ``import`` statements resolve
through a guard that admits the host capability modules listed in
``ALLOWED_MODULES``. An import yields a facade carrying only the public names
of the module, never the module object. Nothing else from the host process is
reachable by name.
"""
from __future__ import annotations

import builtins
import importlib
import logging
import types
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .errors import LoadError


log = logging.getLogger("tunebridge")

# Wire name -> module-level function name expected in provider code.
CAPABILITY_EXPORTS: Dict[str, str] = {
    "search": "search",
    "getMediaSource": "get_media_source",
    "getLyric": "get_lyric",
    "importMusicSheet": "import_music_sheet",
}

ALLOWED_MODULES = frozenset(
    {
        # HTTP client
        "httpx",
        # HTML parsing
        "bs4",
        # hashes and ciphers
        "hashlib",
        "hmac",
        "cryptography.hazmat.primitives.ciphers",
        "cryptography.hazmat.primitives.ciphers.algorithms",
        "cryptography.hazmat.primitives.ciphers.modes",
        "cryptography.hazmat.primitives.padding",
        # dates
        "datetime",
        "time",
        "calendar",
        # text encoding
        "base64",
        "binascii",
        "html",
        "json",
        "re",
        "string",
        "unicodedata",
        "urllib.parse",
        # numbers
        "decimal",
        "fractions",
        "math",
        "random",
    }
)

_SAFE_BUILTIN_NAMES = (
    "abs",
    "all",
    "any",
    "ascii",
    "bin",
    "bool",
    "bytearray",
    "bytes",
    "callable",
    "chr",
    "classmethod",
    "complex",
    "dict",
    "divmod",
    "enumerate",
    "filter",
    "float",
    "format",
    "frozenset",
    "getattr",
    "hasattr",
    "hash",
    "hex",
    "id",
    "int",
    "isinstance",
    "issubclass",
    "iter",
    "len",
    "list",
    "map",
    "max",
    "min",
    "next",
    "object",
    "oct",
    "ord",
    "pow",
    "property",
    "range",
    "repr",
    "reversed",
    "round",
    "set",
    "setattr",
    "slice",
    "sorted",
    "staticmethod",
    "str",
    "sum",
    "super",
    "tuple",
    "type",
    "zip",
    "__build_class__",
    # exceptions provider code commonly raises or catches
    "ArithmeticError",
    "AssertionError",
    "AttributeError",
    "BaseException",
    "Exception",
    "IndexError",
    "KeyError",
    "LookupError",
    "NotImplementedError",
    "RuntimeError",
    "StopAsyncIteration",
    "StopIteration",
    "TypeError",
    "UnicodeDecodeError",
    "UnicodeEncodeError",
    "ValueError",
    "ZeroDivisionError",
)


def _is_allowed(name: str) -> bool:
    if name in ALLOWED_MODULES:
        return True
    # "import urllib.parse" first resolves the "urllib" package.
    prefix = f"{name}."
    return any(allowed.startswith(prefix) for allowed in ALLOWED_MODULES)


def _public_names(module: types.ModuleType) -> List[str]:
    names = getattr(module, "__all__", None)
    if names is None:
        names = dir(module)
    return [name for name in names if isinstance(name, str) and not name.startswith("_")]


def module_facade(name: str) -> types.SimpleNamespace:
    """Public surface of an allowlisted module.

    Provider code never receives the module object itself, so private
    attributes (and the host modules they reference) stay out of reach.
    Module-valued attributes survive only when they are allowlisted too, and
    packages that are allowed by prefix expose nothing but those children.
    """
    attrs: Dict[str, Any] = {}
    if name in ALLOWED_MODULES:
        module = importlib.import_module(name)
        for attr in _public_names(module):
            if not hasattr(module, attr):
                continue
            value = getattr(module, attr)
            if isinstance(value, types.ModuleType):
                if value.__name__ == name or value.__name__ not in ALLOWED_MODULES:
                    continue
                value = module_facade(value.__name__)
            attrs[attr] = value
    prefix = f"{name}."
    children = {allowed[len(prefix):].split(".")[0] for allowed in ALLOWED_MODULES if allowed.startswith(prefix)}
    for child in sorted(children):
        attrs[child] = module_facade(prefix + child)
    return types.SimpleNamespace(**attrs)


def _guarded_import(
    name: str,
    globals: Optional[dict] = None,
    locals: Optional[dict] = None,
    fromlist: tuple = (),
    level: int = 0,
) -> Any:
    if level != 0:
        raise ImportError("Relative imports are not available to providers")
    if not _is_allowed(name):
        raise ImportError(f"Module '{name}' is not available to providers")
    for item in fromlist or ():
        if item == "*":
            continue
        if item.startswith("_"):
            raise ImportError(f"Name '{item}' is private to '{name}'")
        qualified = f"{name}.{item}"
        if qualified not in ALLOWED_MODULES and name not in ALLOWED_MODULES:
            # Parent packages only expose their allowlisted submodules.
            raise ImportError(f"Module '{qualified}' is not available to providers")
    if fromlist:
        return module_facade(name)
    # "import a.b" binds "a"; the facade of "a" carries "b".
    return module_facade(name.split(".")[0])


def build_builtins(provider_id: str) -> Dict[str, Any]:
    plugin_log = logging.getLogger(f"tunebridge.plugin.{provider_id}")

    def _print(*args: Any, **_: Any) -> None:
        plugin_log.info(" ".join(str(arg) for arg in args))

    safe = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}
    safe["__import__"] = _guarded_import
    safe["print"] = _print
    return safe


@dataclass(frozen=True)
class SandboxModule:
    capabilities: Dict[str, Callable[..., Any]]
    platform: Optional[str]
    version: Optional[str]


def evaluate(provider_id: str, source: str, *, filename: Optional[str] = None) -> SandboxModule:
    """Execute provider source and collect the capability functions it defines."""
    namespace: Dict[str, Any] = {
        "__builtins__": build_builtins(provider_id),
        "__name__": f"tunebridge_plugin_{provider_id}",
        "logger": logging.getLogger(f"tunebridge.plugin.{provider_id}"),
    }
    try:
        code = compile(source, filename or f"<plugin:{provider_id}>", "exec")
    except (SyntaxError, ValueError) as exc:
        raise LoadError(provider_id, f"code does not compile: {exc}") from exc
    try:
        exec(code, namespace)
    except BaseException as exc:
        # Runs on a worker thread, so interrupts never land here.
        raise LoadError(provider_id, f"{type(exc).__name__}: {exc}") from exc

    capabilities: Dict[str, Callable[..., Any]] = {}
    for wire_name, export_name in CAPABILITY_EXPORTS.items():
        fn = namespace.get(export_name)
        if callable(fn):
            capabilities[wire_name] = fn
    if not capabilities:
        raise LoadError(provider_id, "code defines none of " + ", ".join(CAPABILITY_EXPORTS.values()))

    platform = namespace.get("platform")
    version = namespace.get("version")
    return SandboxModule(
        capabilities=capabilities,
        platform=platform if isinstance(platform, str) else None,
        version=str(version) if version is not None else None,
    )
