"""Tests for the restricted provider evaluation context."""

import logging

import pytest

from providers.errors import LoadError
from providers.sandbox import evaluate, module_facade


class TestCapabilityCollection:
    """Capabilities come from module-level functions."""

    def test_collects_declared_functions_only(self) -> None:
        module = evaluate(
            "demo",
            "async def search(query, page, type):\n"
            "    return []\n"
            "def get_lyric(item):\n"
            "    return None\n",
        )

        assert set(module.capabilities) == {"search", "getLyric"}

    def test_reads_platform_and_version(self) -> None:
        module = evaluate("demo", "platform = 'Demo Music'\nversion = 3\ndef search(q, p, t):\n    return []\n")

        assert module.platform == "Demo Music"
        assert module.version == "3"

    def test_no_capabilities_is_load_error(self) -> None:
        with pytest.raises(LoadError):
            evaluate("demo", "value = 1\n")

    def test_non_callable_export_is_ignored(self) -> None:
        with pytest.raises(LoadError):
            evaluate("demo", "search = 'not a function'\n")

    def test_classes_can_be_defined(self) -> None:
        module = evaluate(
            "demo",
            "class Api:\n"
            "    def hits(self):\n"
            "        return [{'title': 'a'}]\n"
            "def search(q, p, t):\n"
            "    return Api().hits()\n",
        )

        assert module.capabilities["search"]("x", 1, "music") == [{"title": "a"}]


class TestAllowlist:
    """Only host capability modules can be imported."""

    def test_allowlisted_modules_import(self) -> None:
        module = evaluate(
            "demo",
            "import hashlib\n"
            "from urllib.parse import quote\n"
            "from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes\n"
            "def search(q, p, t):\n"
            "    return [{'title': quote(q), 'id': hashlib.md5(q.encode()).hexdigest()}]\n",
        )

        hits = module.capabilities["search"]("a b", 1, "music")
        assert hits[0]["title"] == "a%20b"
        assert len(hits[0]["id"]) == 32

    def test_big_integer_arithmetic_is_native(self) -> None:
        module = evaluate("demo", "def search(q, p, t):\n    return [{'id': pow(2, 200, 10 ** 30)}]\n")

        assert module.capabilities["search"]("", 1, "music")[0]["id"] == pow(2, 200, 10**30)

    @pytest.mark.parametrize(
        "statement",
        [
            "import os",
            "import subprocess",
            "import socket",
            "from urllib import request",
            "from . import sibling",
            "import importlib",
        ],
    )
    def test_disallowed_imports_fail_to_load(self, statement: str) -> None:
        with pytest.raises(LoadError):
            evaluate("demo", f"{statement}\ndef search(q, p, t):\n    return []\n")

    @pytest.mark.parametrize("name", ["open", "eval", "exec", "compile", "input", "globals", "breakpoint"])
    def test_dangerous_builtins_are_absent(self, name: str) -> None:
        with pytest.raises(LoadError):
            evaluate("demo", f"{name}\ndef search(q, p, t):\n    return []\n")

    def test_module_internals_are_unreachable(self) -> None:
        module = evaluate(
            "demo",
            "import random\n"
            "import httpx\n"
            "def search(q, p, t):\n"
            "    return [hasattr(random, '_os'), hasattr(httpx, '_utils'), hasattr(random, 'randint')]\n",
        )

        assert module.capabilities["search"]("", 1, "music") == [False, False, True]

    def test_private_names_cannot_be_imported(self) -> None:
        with pytest.raises(LoadError):
            evaluate("demo", "from random import _os\ndef search(q, p, t):\n    return []\n")

    def test_package_exposes_only_allowlisted_children(self) -> None:
        module = evaluate(
            "demo",
            "import urllib.parse\n"
            "def search(q, p, t):\n"
            "    return [urllib.parse.quote('a b'), hasattr(urllib, 'request')]\n",
        )

        assert module.capabilities["search"]("", 1, "music") == ["a%20b", False]

    def test_facade_keeps_public_surface(self) -> None:
        ciphers = module_facade("cryptography.hazmat.primitives.ciphers")
        json_facade = module_facade("json")

        assert hasattr(ciphers, "Cipher")
        assert hasattr(ciphers.algorithms, "AES")
        assert hasattr(ciphers.modes, "CBC")
        assert json_facade.loads("[1]") == [1]
        assert not hasattr(json_facade, "decoder")

    def test_print_goes_to_plugin_logger(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="tunebridge.plugin.demo"):
            evaluate("demo", "print('hello', 42)\ndef search(q, p, t):\n    return []\n")

        assert "hello 42" in caplog.text


class TestFaultContainment:
    """Broken provider code never escapes as anything but LoadError."""

    def test_syntax_error(self) -> None:
        with pytest.raises(LoadError) as excinfo:
            evaluate("broken", "def search(:\n")

        assert excinfo.value.provider_id == "broken"

    def test_exception_at_top_level(self) -> None:
        with pytest.raises(LoadError):
            evaluate("broken", "raise RuntimeError('boom')\n")

    def test_system_exit_at_top_level(self) -> None:
        with pytest.raises(LoadError):
            evaluate("broken", "raise SystemExit(1)\n")

    def test_base_exception_subclass_at_top_level(self) -> None:
        with pytest.raises(LoadError) as excinfo:
            evaluate("boom", "class Boom(BaseException):\n    pass\nraise Boom('x')\n")

        assert "Boom" in excinfo.value.reason
