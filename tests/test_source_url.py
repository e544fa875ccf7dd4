# FILE: tests/test_source_url.py
"""
Tests for plutus_scan/source_url.py
Source URL parsing and commit-hash validation.
"""

import pytest

from plutus_scan.source_url import (
    VcsType,
    detect_vcs_type,
    extract_org_and_repo,
    is_valid_commit_hash,
    is_valid_commit_hash_bytes,
    parse_source_url,
)


class TestParseSourceUrl:
    """Tests for parse_source_url."""

    def test_github(self):
        """GitHub URLs split into org/repo with a .git clone URL."""
        parsed = parse_source_url("https://github.com/easy1staking-com/cardano-recurring-payment")

        assert parsed.vcs_type == VcsType.GITHUB
        assert parsed.host == "github.com"
        assert parsed.protocol == "https"
        assert parsed.org_or_group == "easy1staking-com"
        assert parsed.repo == "cardano-recurring-payment"
        assert parsed.clone_url == "https://github.com/easy1staking-com/cardano-recurring-payment.git"
        assert parsed.is_clonable

    def test_gitlab_nested_groups(self):
        """GitLab uses every segment but the last as the group."""
        parsed = parse_source_url("https://gitlab.com/group/subgroup/project")

        assert parsed.vcs_type == VcsType.GITLAB
        assert parsed.org_or_group == "group/subgroup"
        assert parsed.repo == "project"
        assert parsed.clone_url == "https://gitlab.com/group/subgroup/project.git"

    def test_non_gitlab_uses_first_two_segments(self):
        """Other hosts ignore segments after org/repo."""
        parsed = parse_source_url("https://github.com/org/repo/tree/main")

        assert parsed.org_or_group == "org"
        assert parsed.repo == "repo"

    def test_trailing_git_and_slash_stripped(self):
        """.git suffix and trailing slash do not leak into the repo name."""
        parsed = parse_source_url("https://git.company.com/team/project.git/")

        assert parsed.vcs_type == VcsType.SELF_HOSTED_GIT
        assert parsed.repo == "project"
        assert parsed.clone_url == "https://git.company.com/team/project.git"

    @pytest.mark.parametrize("url,expected", [
        ("https://codeberg.org/org/repo", VcsType.CODEBERG),
        ("https://bitbucket.org/org/repo", VcsType.BITBUCKET),
        ("https://gitlab.example.com/org/repo", VcsType.GITLAB),
    ])
    def test_known_hosts(self, url, expected):
        """Known hosts are recognised."""
        assert parse_source_url(url).vcs_type == expected

    def test_decentralized(self):
        """ipfs:// short-circuits without path decomposition."""
        parsed = parse_source_url("ipfs://bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi")

        assert parsed.vcs_type == VcsType.DECENTRALIZED
        assert parsed.repo is None
        assert parsed.clone_url is None
        assert not parsed.is_clonable

    @pytest.mark.parametrize("url", [
        None,
        "",
        "   ",
        "github.com/org/repo",
        "https://github.com/org",
        "https://github.com/",
        "not a url",
    ])
    def test_invalid_returns_none(self, url):
        """Missing scheme/host or fewer than two segments yields None."""
        assert parse_source_url(url) is None

    def test_extract_org_and_repo(self):
        """Convenience accessor mirrors the parse result."""
        assert extract_org_and_repo("https://github.com/org/repo") == ("org", "repo")
        assert extract_org_and_repo("ipfs://cid") is None
        assert extract_org_and_repo("nope") is None


class TestDetectVcsType:
    """Tests for host classification."""

    def test_missing_host(self):
        """No host means unknown."""
        assert detect_vcs_type(None) == VcsType.UNKNOWN
        assert detect_vcs_type("") == VcsType.UNKNOWN

    def test_case_insensitive(self):
        """Host matching ignores case."""
        assert detect_vcs_type("GitHub.com") == VcsType.GITHUB


class TestCommitHash:
    """Tests for commit-hash validation."""

    def test_sha1_and_sha256(self):
        """Exactly 40 or 64 hex characters are accepted, any case."""
        assert is_valid_commit_hash("a" * 40)
        assert is_valid_commit_hash("ABCDEF0123" * 4)
        assert is_valid_commit_hash("0" * 64)

    @pytest.mark.parametrize("value", [None, "", "a" * 39, "a" * 41, "a" * 63, "a" * 65, "g" * 40])
    def test_rejected(self, value):
        """Other lengths and non-hex characters are rejected."""
        assert not is_valid_commit_hash(value)

    def test_bytes(self):
        """Raw hashes must be 20 or 32 bytes."""
        assert is_valid_commit_hash_bytes(b"\x00" * 20)
        assert is_valid_commit_hash_bytes(b"\x00" * 32)
        assert not is_valid_commit_hash_bytes(b"\x00" * 21)
        assert not is_valid_commit_hash_bytes(None)
