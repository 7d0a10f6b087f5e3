"""
Tests for input validation, escaping and secret generation.
"""

from __future__ import annotations

import itertools
import os
from collections import Counter

import pytest

from mailplane.core.errors import InvalidInputError
from mailplane.core.services.catalog import SERVICE_NAMES
from mailplane.core.services.secrets import (
    ALNUM,
    DES_KEY_CHARSET,
    generate_db_password,
    generate_des_key,
    random_string,
)
from mailplane.core.services.validation import (
    dsn_encode,
    php_escape,
    validate_db_host,
    validate_domain,
    validate_email,
    validate_forwarders,
    validate_identifier,
    validate_service_name,
    validate_socket_path,
)

# ── Domains and emails ───────────────────────────────────────────────


class TestDomain:
    @pytest.mark.parametrize("value", [
        "mail.example.com",
        "a.io",
        "xn--bcher-kva.example",
        "sub-domain.mail.example.co.uk",
        "a" * 63 + ".com",
    ])
    def test_valid(self, value):
        assert validate_domain(value) == value

    @pytest.mark.parametrize("value", [
        None, 42, "", "example", "-a.com", "a-.com", "a..com", "a.c",
        "a" * 64 + ".com", "mail.example.com/../etc", "mail example.com",
        "mail.example.com;reboot", "mail.exa_mple.com",
    ])
    def test_invalid(self, value):
        with pytest.raises(InvalidInputError):
            validate_domain(value)

    def test_lowercased_and_stripped(self):
        assert validate_domain("  Mail.Example.COM ") == "mail.example.com"

    def test_length_limit(self):
        label = "a" * 60
        long_domain = ".".join([label] * 5) + ".com"
        assert len(long_domain) > 253
        with pytest.raises(InvalidInputError):
            validate_domain(long_domain)

    def test_top_level_label_limit(self):
        assert validate_domain("mail.example." + "a" * 63)
        with pytest.raises(InvalidInputError):
            validate_domain("mail.example." + "a" * 64)


class TestEmail:
    @pytest.mark.parametrize("value", ["admin@example.com", "first.last+tag@mail.example.org"])
    def test_valid(self, value):
        assert validate_email(value) == value

    @pytest.mark.parametrize("value", [
        None, "", "admin", "@example.com", "admin@example", "admin@@example.com",
        "admin@example.com'", "adm in@example.com",
    ])
    def test_invalid(self, value):
        with pytest.raises(InvalidInputError):
            validate_email(value)


# ── Names and paths ──────────────────────────────────────────────────


class TestNames:
    def test_service_in_allow_list(self):
        assert validate_service_name("postfix", SERVICE_NAMES) == "postfix"

    @pytest.mark.parametrize("value", ["sshd", "postfix.service", "../postfix", "", 1])
    def test_service_rejected(self, value):
        with pytest.raises(InvalidInputError):
            validate_service_name(value, SERVICE_NAMES)

    def test_socket_path(self):
        assert validate_socket_path("/run/php/php8.2-fpm.sock") == "/run/php/php8.2-fpm.sock"
        with pytest.raises(InvalidInputError):
            validate_socket_path("/tmp/php8.2-fpm.sock")

    def test_db_host(self):
        assert validate_db_host("db.internal") == "db.internal"
        with pytest.raises(InvalidInputError):
            validate_db_host("db;drop")

    def test_identifier(self):
        assert validate_identifier("roundcube") == "roundcube"
        for bad in ["round`cube", "a" * 65, ""]:
            with pytest.raises(InvalidInputError):
                validate_identifier(bad)


class TestForwarders:
    def test_normalized(self):
        assert validate_forwarders([" 1.1.1.1", "2001:4860:4860:0:0:0:0:8888"]) == [
            "1.1.1.1", "2001:4860:4860::8888",
        ]

    def test_duplicates_dropped(self):
        assert validate_forwarders(["8.8.8.8", "8.8.8.8"]) == ["8.8.8.8"]


# ── Escaping ─────────────────────────────────────────────────────────


class TestEscaping:
    def test_php_escape(self):
        assert php_escape("it's") == "it\\'s"
        assert php_escape("back\\slash") == "back\\\\slash"

    def test_php_escape_backslash_before_quote(self):
        # Backslashes are escaped before quotes
        assert php_escape("\\'") == "\\\\\\'"

    def test_php_escape_null_byte(self):
        with pytest.raises(InvalidInputError):
            php_escape("a\0b")

    def test_dsn_encode(self):
        assert dsn_encode("p@ss:w/rd") == "p%40ss%3Aw%2Frd"
        assert dsn_encode("safe-_.!~*'()") == "safe-_.!~*'()"


# ── Secrets ──────────────────────────────────────────────────────────


class TestSecrets:
    def test_lengths_and_charsets(self):
        password = generate_db_password()
        key = generate_des_key()
        assert len(password) == 32 and set(password) <= set(ALNUM)
        assert len(key) == 24 and set(key) <= set(DES_KEY_CHARSET)

    def test_distinct(self):
        assert len({generate_db_password() for _ in range(50)}) == 50

    def test_rejects_biased_bytes(self):
        # 62 symbols: bytes >= 248 must be discarded, not folded onto the charset
        feed = itertools.chain([255, 250, 248, 0, 247], itertools.repeat(1))

        def source(n: int) -> bytes:
            return bytes(next(feed) for _ in range(n))

        out = random_string(2, ALNUM, source=source)
        assert out == ALNUM[0] + ALNUM[247 % 62]

    def test_uniform_distribution(self):
        charset = "abcdefg"
        draws = random_string(70_000, charset)
        counts = Counter(draws)
        expected = len(draws) / len(charset)
        chi_squared = sum((counts[c] - expected) ** 2 / expected for c in charset)
        # 6 degrees of freedom; p = 0.001 critical value is 22.46
        assert chi_squared < 22.46

    def test_every_byte_value_maps_once(self):
        seen = Counter()

        def source(n: int) -> bytes:
            return bytes(range(256))

        for ch in random_string(248, ALNUM, source=source):
            seen[ch] += 1
        assert set(seen.values()) == {4}

    def test_bad_arguments(self):
        with pytest.raises(ValueError):
            random_string(4, "")
        with pytest.raises(ValueError):
            random_string(-1, ALNUM)

    def test_default_source_is_urandom(self):
        assert random_string.__defaults__[0] is os.urandom
