import unittest

from agentskills.manifest import parse_header, parse_manifest, split_manifest


class TestParseManifest(unittest.TestCase):
    def test_header_and_body(self) -> None:
        metadata, body = parse_manifest("---\nname: Foo\ndescription: Bar\n---\nBody text")

        self.assertEqual(metadata.name, "Foo")
        self.assertEqual(metadata.description, "Bar")
        self.assertIsNone(metadata.license)
        self.assertEqual(body, "Body text")

    def test_missing_header_returns_whole_text_as_body(self) -> None:
        text = "# Just a heading\n\nSome docs.\n"
        metadata, body = parse_manifest(text)

        self.assertEqual(metadata.name, "")
        self.assertEqual(metadata.description, "")
        self.assertEqual(body, text)

    def test_unclosed_header_is_not_a_header(self) -> None:
        text = "---\nname: Foo\nno closing line\n"
        metadata, body = parse_manifest(text)

        self.assertEqual(metadata.name, "")
        self.assertEqual(body, text)

    def test_multiline_continuation(self) -> None:
        metadata, body = parse_manifest("---\ndescription:\n  Line one\n  Line two\n---\n")

        self.assertEqual(metadata.description, "Line one Line two")
        self.assertEqual(body, "")

    def test_multiline_value_is_committed_by_next_key(self) -> None:
        header = "description:\n  first\n    second\nname: x\n"
        metadata = parse_header(header)

        self.assertEqual(metadata.description, "first second")
        self.assertEqual(metadata.name, "x")

    def test_unindented_line_does_not_continue(self) -> None:
        metadata = parse_header("description:\n stray\n  kept\n")

        self.assertEqual(metadata.description, "kept")

    def test_recognized_keys(self) -> None:
        text = (
            "---\n"
            "name: pdf\n"
            "description: Work with PDFs\n"
            "license: Apache-2.0\n"
            "compatibility: claude-code\n"
            "allowed-tools: Read Write\n"
            "---\n"
        )
        metadata, _ = parse_manifest(text)

        self.assertEqual(metadata.license, "Apache-2.0")
        self.assertEqual(metadata.compatibility, "claude-code")
        self.assertEqual(metadata.allowed_tools, "Read Write")
        self.assertEqual(metadata.extra, {})

    def test_unrecognized_keys_land_in_extra(self) -> None:
        metadata, _ = parse_manifest("---\nname: a\nversion: 1.2\nmetadata:\n  author: me\n---\n")

        self.assertEqual(metadata.name, "a")
        self.assertEqual(metadata.extra, {"version": "1.2", "metadata": "author: me"})

    def test_crlf_line_endings(self) -> None:
        metadata, body = parse_manifest("---\r\nname: Foo\r\ndescription: Bar\r\n---\r\nBody\r\n")

        self.assertEqual(metadata.name, "Foo")
        self.assertEqual(metadata.description, "Bar")
        self.assertEqual(body, "Body\r\n")

    def test_malformed_header_never_raises(self) -> None:
        metadata, body = parse_manifest("---\n: nope\n:::\n  orphan continuation\nname:\n---\nrest")

        self.assertEqual(metadata.name, "")
        self.assertEqual(body, "rest")

    def test_body_keeps_later_delimiters(self) -> None:
        header, body = split_manifest("---\nname: a\n---\nintro\n---\nmore\n")

        self.assertEqual(header, "name: a")
        self.assertEqual(body, "intro\n---\nmore\n")


if __name__ == "__main__":
    unittest.main()
