"""
Tests for credential verifiers
"""
import secrets
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from authgate.core.auth.errors import InvalidCredential, MissingCredential
from authgate.core.auth.verifiers import (
    ApiKeyRecord,
    ApiKeyVerifier,
    StaticPairVerifier,
    key_fingerprint,
    load_api_keys_from_yaml,
    parse_api_key_csv,
)


class TestStaticPairVerifier:
    """Username/password against one fixed pair."""

    def test_matching_pair_returns_username(self):
        verifier = StaticPairVerifier("admin", "1234")
        assert verifier.verify(("admin", "1234")) == "admin"

    @pytest.mark.parametrize("username,password", [
        ("admin", "12345"),
        ("Admin", "1234"),
        ("root", "1234"),
        ("admin", "123"),
    ])
    def test_mismatch_is_invalid(self, username, password):
        verifier = StaticPairVerifier("admin", "1234")
        with pytest.raises(InvalidCredential):
            verifier.verify((username, password))

    @pytest.mark.parametrize("username,password", [
        (None, "1234"),
        ("admin", None),
        ("", ""),
    ])
    def test_absent_fields_are_missing(self, username, password):
        verifier = StaticPairVerifier("admin", "1234")
        with pytest.raises(MissingCredential):
            verifier.verify((username, password))

    def test_both_fields_compared_even_when_username_is_wrong(self):
        """A wrong username must not short-circuit the password comparison."""
        verifier = StaticPairVerifier("admin", "1234")
        with patch("authgate.core.auth.verifiers.secrets.compare_digest", wraps=secrets.compare_digest) as compare:
            with pytest.raises(InvalidCredential):
                verifier.verify(("nobody", "1234"))
        assert compare.call_count == 2


class TestApiKeyVerifier:
    """Lookup against an immutable key set."""

    def test_active_key_accepted(self):
        verifier = ApiKeyVerifier(parse_api_key_csv("12345,abcdef"))
        assert verifier.verify("12345") == f"key-{key_fingerprint('12345')}"
        assert verifier.verify("abcdef") == f"key-{key_fingerprint('abcdef')}"

    def test_named_key_uses_name_as_subject(self):
        verifier = ApiKeyVerifier([ApiKeyRecord(key="k-1", name="reporting-job")])
        assert verifier.verify("k-1") == "reporting-job"

    def test_unknown_key_rejected(self):
        verifier = ApiKeyVerifier(parse_api_key_csv("12345"))
        with pytest.raises(InvalidCredential) as exc_info:
            verifier.verify("wrong")
        assert exc_info.value.public_message == "missing or invalid key"
        # The presented key never appears in the diagnostic
        assert "wrong" not in exc_info.value.reason

    def test_inactive_key_rejected_with_same_message(self):
        verifier = ApiKeyVerifier([ApiKeyRecord(key="old", active=False)])
        with pytest.raises(InvalidCredential) as exc_info:
            verifier.verify("old")
        assert exc_info.value.public_message == "missing or invalid key"

    @pytest.mark.parametrize("presented", [None, ""])
    def test_missing_key(self, presented):
        verifier = ApiKeyVerifier(parse_api_key_csv("12345"))
        with pytest.raises(MissingCredential) as exc_info:
            verifier.verify(presented)
        assert exc_info.value.public_message == "missing or invalid key"

    def test_empty_key_set_rejects_everything(self):
        verifier = ApiKeyVerifier()
        assert len(verifier) == 0
        with pytest.raises(InvalidCredential):
            verifier.verify("12345")

    def test_reload_replaces_whole_set(self):
        verifier = ApiKeyVerifier(parse_api_key_csv("12345"))
        verifier.reload([ApiKeyRecord(key="fresh")])

        assert verifier.verify("fresh") == f"key-{key_fingerprint('fresh')}"
        with pytest.raises(InvalidCredential):
            verifier.verify("12345")

    def test_concurrent_lookups_of_same_key_all_accepted(self):
        verifier = ApiKeyVerifier(parse_api_key_csv("12345,abcdef"))

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: verifier.verify("12345"), range(200)))

        assert len(set(results)) == 1

    def test_lookups_during_reload_see_old_or_new_set(self):
        verifier = ApiKeyVerifier(parse_api_key_csv("12345"))
        old_and_new = [ApiKeyRecord(key="12345"), ApiKeyRecord(key="abcdef")]

        def reload_loop():
            for _ in range(100):
                verifier.reload(old_and_new)

        def lookup(_):
            return verifier.verify("12345")

        with ThreadPoolExecutor(max_workers=8) as pool:
            reloader = pool.submit(reload_loop)
            results = list(pool.map(lookup, range(200)))
            reloader.result()

        assert all(results)


class TestKeyLoading:
    """CSV and YAML key sources."""

    def test_csv_strips_whitespace_and_blanks(self):
        records = parse_api_key_csv(" 12345 , ,abcdef,")
        assert [record.key for record in records] == ["12345", "abcdef"]
        assert all(record.active for record in records)

    def test_csv_empty(self):
        assert parse_api_key_csv("") == ()

    def test_yaml_registry(self, tmp_path):
        config = tmp_path / "api_keys.yaml"
        config.write_text(
            "api_keys:\n"
            "  reporting-job:\n"
            "    key: \"12345\"\n"
            "    active: true\n"
            "  old-dashboard:\n"
            "    key: abcdef\n"
            "    active: false\n"
        )

        records = load_api_keys_from_yaml(config)

        assert records == (
            ApiKeyRecord(key="12345", active=True, name="reporting-job"),
            ApiKeyRecord(key="abcdef", active=False, name="old-dashboard"),
        )

    def test_yaml_missing_file_gives_empty_set(self, tmp_path):
        assert load_api_keys_from_yaml(tmp_path / "nope.yaml") == ()

    def test_yaml_entry_without_key_is_an_error(self, tmp_path):
        config = tmp_path / "api_keys.yaml"
        config.write_text("api_keys:\n  broken:\n    active: true\n")

        with pytest.raises(ValueError, match="broken"):
            load_api_keys_from_yaml(config)
