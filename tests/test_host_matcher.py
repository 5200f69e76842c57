"""Tests for allow-list parsing and host matching."""

from imageproxy.services.host_matcher import AllowList, host_matches, parse_allow_list


class TestParseAllowList:
    """Tests for parse_allow_list."""

    def test_trims_whitespace_and_blank_lines(self):
        """Surrounding whitespace and blank lines are discarded."""
        assert parse_allow_list("  imgur.com  \n\n  example.com  \n  \n") == ("imgur.com", "example.com")

    def test_empty_and_missing_config(self):
        """Empty or absent config gives an empty list."""
        assert parse_allow_list("") == ()
        assert parse_allow_list(None) == ()
        assert parse_allow_list("\n  \n") == ()

    def test_lowercases_entries(self):
        """Entries are normalized to lowercase."""
        assert parse_allow_list("Example.COM\n*.IMGUR.com") == ("example.com", "*.imgur.com")

    def test_removes_duplicates_keeping_order(self):
        """Duplicate entries keep their first position."""
        assert parse_allow_list("b.com\na.com\nB.com") == ("b.com", "a.com")

    def test_handles_crlf_line_endings(self):
        """Windows line endings are stripped with the whitespace."""
        assert parse_allow_list("a.com\r\nb.com\r\n") == ("a.com", "b.com")


class TestHostMatches:
    """Tests for host_matches."""

    def test_exact_match(self):
        """A plain entry matches the same host."""
        assert host_matches("example.com", ["example.com"]) is True

    def test_exact_entry_does_not_match_subdomain(self):
        """A plain entry does not cover subdomains."""
        assert host_matches("cdn.example.com", ["example.com"]) is False

    def test_case_insensitive(self):
        """Host and entry comparison ignores case."""
        assert host_matches("EXAMPLE.COM", ["example.com"]) is True
        assert host_matches("example.com", ["Example.Com"]) is True

    def test_wildcard_matches_subdomain(self):
        """*.domain matches subdomains."""
        assert host_matches("i.imgur.com", ["*.imgur.com"]) is True
        assert host_matches("a.b.imgur.com", ["*.imgur.com"]) is True

    def test_wildcard_matches_base_domain(self):
        """*.domain also matches the bare domain."""
        assert host_matches("imgur.com", ["*.imgur.com"]) is True

    def test_wildcard_requires_label_boundary(self):
        """*.imgur.com does not match notimgur.com."""
        assert host_matches("notimgur.com", ["*.imgur.com"]) is False

    def test_empty_list_never_matches(self):
        """Nothing is exempt when the list is empty."""
        assert host_matches("example.com", []) is False

    def test_empty_host_never_matches(self):
        """An empty host is never allow-listed."""
        assert host_matches("", ["example.com"]) is False

    def test_trailing_dot_is_ignored(self):
        """Fully-qualified hosts with a trailing dot still match."""
        assert host_matches("example.com.", ["example.com"]) is True


class TestAllowList:
    """Tests for the AllowList value object."""

    def test_parse_and_match(self):
        """Parsed lists match their hosts."""
        allow_list = AllowList.parse("imgur.com\n*.example.com")
        assert allow_list.matches("imgur.com")
        assert allow_list.matches("static.example.com")
        assert not allow_list.matches("other.com")

    def test_of_builds_from_hosts(self):
        """AllowList.of accepts individual patterns."""
        assert AllowList.of(" A.com ", "b.com").entries == ("a.com", "b.com")

    def test_empty_list_is_falsy(self):
        """An empty allow-list has no entries."""
        assert len(AllowList.parse("")) == 0
        assert not AllowList()

    def test_iterates_entries(self):
        """Iteration yields entries in order."""
        assert list(AllowList.parse("x.com\ny.com")) == ["x.com", "y.com"]
