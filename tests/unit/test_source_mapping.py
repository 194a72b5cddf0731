"""Unit tests for source lookup and the remote workspace mapping."""

from rdlaunch.source_mapping import (
    DIRECT_REMOTE_DEBUG_MAPPING,
    DirectorySourceContainer,
    MapEntry,
    MappingSourceContainer,
    SourceContainer,
    SourceLocator,
    ensure_mapping,
    inject_mapping,
)


class TestMapEntry:
    """Tests for MapEntry.translate."""

    def test_translate_inside_root(self, tmp_path):
        entry = MapEntry("/remote/ws/proj", tmp_path)
        assert entry.translate("/remote/ws/proj/src/main.c") == tmp_path / "src" / "main.c"

    def test_translate_outside_root(self, tmp_path):
        assert MapEntry("/remote/ws/proj", tmp_path).translate("/usr/include/stdio.h") is None

    def test_translate_backslashes(self, tmp_path):
        entry = MapEntry("C:/ws", tmp_path)
        assert entry.translate("C:\\ws\\main.c") == tmp_path / "main.c"


class TestEnsureMapping:
    """Tests for ensure_mapping."""

    def test_appends_mapping(self, tmp_path):
        """Test the mapping is appended after existing containers."""
        base = [SourceContainer("default")]
        result = ensure_mapping(base, "/remote/ws/proj", tmp_path)

        assert [c.name for c in result] == ["default", DIRECT_REMOTE_DEBUG_MAPPING]
        assert result[-1].entries == [MapEntry("/remote/ws/proj", tmp_path)]
        assert len(base) == 1

    def test_idempotent(self, tmp_path):
        """Test a second call leaves the containers unchanged."""
        once = ensure_mapping([], "/remote/ws/proj", tmp_path)
        twice = ensure_mapping(once, "/remote/ws/proj", tmp_path)
        assert twice is once
        assert sum(c.name == DIRECT_REMOTE_DEBUG_MAPPING for c in twice) == 1

    def test_blank_remote_root(self, tmp_path):
        base = [SourceContainer("default")]
        assert ensure_mapping(base, "", tmp_path) is base
        assert ensure_mapping(base, None, tmp_path) is base

    def test_unknown_local_root(self):
        base = [SourceContainer("default")]
        assert ensure_mapping(base, "/remote/ws", None) is base


class TestSourceLocator:
    """Tests for SourceLocator lookups."""

    def test_find_through_mapping(self, tmp_path):
        """Test a remote path resolves to the local project file."""
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "main.c").write_text("int main;")
        locator = inject_mapping(SourceLocator(), "/remote/ws/proj", tmp_path)

        assert locator.find_source("/remote/ws/proj/src/main.c") == tmp_path / "src" / "main.c"
        assert locator.find_source("/remote/ws/proj/src/missing.c") is None

    def test_first_container_wins(self, tmp_path):
        first = tmp_path / "first"
        second = tmp_path / "second"
        for directory in (first, second):
            directory.mkdir()
            (directory / "a.c").write_text("")

        locator = SourceLocator(
            [DirectorySourceContainer("one", first), DirectorySourceContainer("two", second)]
        )
        assert locator.find_source("a.c") == first / "a.c"

    def test_directory_container_absolute_path(self, tmp_path):
        """Test absolute remote paths fall back to the file name."""
        (tmp_path / "util.c").write_text("")
        container = DirectorySourceContainer("project", tmp_path)
        assert container.find("/somewhere/else/util.c") == tmp_path / "util.c"

    def test_inject_mapping_twice(self, tmp_path):
        locator = SourceLocator([DirectorySourceContainer("project", tmp_path)])
        inject_mapping(locator, "/remote/ws", tmp_path)
        inject_mapping(locator, "/remote/ws", tmp_path)

        names = [c.name for c in locator.containers]
        assert names == ["project", DIRECT_REMOTE_DEBUG_MAPPING]

    def test_mapping_container_add_entry(self, tmp_path):
        (tmp_path / "b.c").write_text("")
        container = MappingSourceContainer("m")
        container.add_map_entry(MapEntry("/x", tmp_path / "nope"))
        container.add_map_entry(MapEntry("/y", tmp_path))
        assert container.find("/y/b.c") == tmp_path / "b.c"
