"""
Tests for file name sanitization and path normalization.

Tests:
  - sanitize_file_path: invalid characters, prefixes, capitalization, fallback name
  - sanitized_name: selector prefix, all-dot directory segments
  - normalize_path / ensure_extension / file_key_for_lookup
  - sanitize_relative_path: where a remote name is stored locally
"""
import unittest


class TestSanitizeFilePath(unittest.TestCase):

    def test_invalid_characters_become_underscores(self):
        from canvassync.utils.paths import sanitize_file_path
        result = sanitize_file_path("my component.tsx")
        self.assertEqual(result.path, "My_component.tsx")
        self.assertEqual(result.name, "My_component")
        self.assertEqual(result.extension, "tsx")

    def test_leading_digit_is_prefixed(self):
        from canvassync.utils.paths import sanitize_file_path
        self.assertEqual(sanitize_file_path("123abc.tsx").path, "$123abc.tsx")

    def test_prefix_followed_by_underscore_collapses(self):
        from canvassync.utils.paths import sanitize_file_path
        # "-foo" -> "$-foo" -> "$_foo" -> "$foo"
        self.assertEqual(sanitize_file_path("-foo.tsx").path, "$foo.tsx")

    def test_underscore_runs_collapse(self):
        from canvassync.utils.paths import sanitize_file_path
        self.assertEqual(sanitize_file_path("a  --  b.tsx").path, "A_b.tsx")

    def test_only_components_are_capitalized(self):
        from canvassync.utils.paths import sanitize_file_path
        self.assertEqual(sanitize_file_path("button.tsx").path, "Button.tsx")
        self.assertEqual(sanitize_file_path("utils/helpers.ts").path, "utils/helpers.ts")
        self.assertEqual(sanitize_file_path("data.json").path, "data.json")
        self.assertEqual(sanitize_file_path("widget").path, "Widget")

    def test_capitalize_can_be_disabled(self):
        from canvassync.utils.paths import sanitize_file_path
        self.assertEqual(sanitize_file_path("button.tsx", capitalize=False).path, "button.tsx")

    def test_directories_sanitized_independently(self):
        from canvassync.utils.paths import sanitize_file_path
        result = sanitize_file_path("my-dir/sub dir/foo.tsx")
        self.assertEqual(result.dir_name, "my_dir/sub_dir")
        self.assertEqual(result.path, "my_dir/sub_dir/Foo.tsx")

    def test_dot_segments_dropped(self):
        from canvassync.utils.paths import sanitize_file_path
        self.assertEqual(sanitize_file_path("../components/./Foo.tsx").path, "components/Foo.tsx")

    def test_empty_input_yields_fallback(self):
        from canvassync.utils.paths import sanitize_file_path
        self.assertEqual(sanitize_file_path("").path, "MyComponent")
        self.assertEqual(sanitize_file_path("   ").path, "MyComponent")


class TestSanitizedName(unittest.TestCase):

    def test_selector_uses_underscore_prefix(self):
        from canvassync.utils.paths import NameKind, sanitized_name
        self.assertEqual(sanitized_name(NameKind.SELECTOR, "1abc"), "_1abc")
        self.assertEqual(sanitized_name(NameKind.VARIABLE, "1abc"), "$1abc")

    def test_directory_segments(self):
        from canvassync.utils.paths import NameKind, sanitized_name
        self.assertIsNone(sanitized_name(NameKind.DIRECTORY, ".."))
        self.assertIsNone(sanitized_name(NameKind.DIRECTORY, ""))
        self.assertEqual(sanitized_name(NameKind.DIRECTORY, "2024 assets"), "2024_assets")


class TestNormalizePath(unittest.TestCase):

    def test_collapses_segments(self):
        from canvassync.utils.paths import normalize_path
        self.assertEqual(normalize_path("a//b/./c/../d"), "a/b/d")
        self.assertEqual(normalize_path("a\\b\\c.tsx"), "a/b/c.tsx")
        self.assertEqual(normalize_path(""), "")

    def test_keeps_leading_slash(self):
        from canvassync.utils.paths import normalize_code_file_path, normalize_path
        self.assertEqual(normalize_path("/a/b/../c"), "/a/c")
        self.assertEqual(normalize_code_file_path("/a/b/../c"), "a/c")

    def test_extension_helpers(self):
        from canvassync.utils.paths import ensure_extension, is_supported_extension, strip_extension
        self.assertTrue(is_supported_extension("Foo.TSX"))
        self.assertFalse(is_supported_extension("styles.css"))
        self.assertEqual(ensure_extension("Foo"), "Foo.tsx")
        self.assertEqual(ensure_extension("lib/util.ts"), "lib/util.ts")
        self.assertEqual(strip_extension("lib/util.ts"), "lib/util")

    def test_lookup_key_is_case_insensitive(self):
        from canvassync.utils.paths import file_key_for_lookup
        self.assertEqual(file_key_for_lookup("Components/Button.tsx"),
                         file_key_for_lookup("components/button.TSX"))


class TestSanitizeRelativePath(unittest.TestCase):

    def test_adds_default_extension_without_capitalizing(self):
        from canvassync.utils.paths import sanitize_relative_path
        self.assertEqual(sanitize_relative_path("button"), "button.tsx")
        self.assertEqual(sanitize_relative_path(" Foo.tsx "), "Foo.tsx")

    def test_sanitizes_nested_names(self):
        from canvassync.utils.paths import sanitize_relative_path
        self.assertEqual(sanitize_relative_path("ui kit/my button.tsx"), "ui_kit/my_button.tsx")

    def test_pluralize(self):
        from canvassync.utils.paths import pluralize
        self.assertEqual(pluralize(1, "file"), "1 file")
        self.assertEqual(pluralize(3, "file"), "3 files")
        self.assertEqual(pluralize(2, "entry", "entries"), "2 entries")


if __name__ == "__main__":
    unittest.main()
