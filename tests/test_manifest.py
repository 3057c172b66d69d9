#!/usr/bin/env python3
"""Tests for manifest.py - manifest loading and serialization.

Tests verify:
1. Document validation (list of maps, required cmd)
2. YAML file loading and base directory
3. Serialization with digest overrides
4. Whole-manifest round-trip
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from config import ManifestError
from entry import Entry
from manifest import Manifest, ManifestLoader, load_manifest, parse_yaml


MANIFEST_TEXT = """\
- name: first
  cmd: echo one > one.txt
  files: one.txt
- cmd: |
    echo two
    echo more
  required_files:
  - one.txt
  sha: deadbeef
"""


class TestManifestFromDocument:
    """Test Manifest.from_document()."""

    def test_entries_in_order(self, tmp_path):
        manifest = Manifest.from_document(
            [{'cmd': 'a', 'name': 'one'}, {'cmd': 'b', 'name': 'two'}], tmp_path,
        )
        assert [e.name for e in manifest.entries] == ['one', 'two']
        assert len(manifest) == 2
        assert all(e.base_dir == tmp_path for e in manifest.entries)

    def test_empty_list(self, tmp_path):
        assert len(Manifest.from_document([], tmp_path)) == 0

    @pytest.mark.parametrize('data', [None, {'cmd': 'x'}, 'cmd: x'])
    def test_not_a_list_raises(self, tmp_path, data):
        with pytest.raises(ManifestError, match='expected a list'):
            Manifest.from_document(data, tmp_path)

    def test_entry_error_names_position(self, tmp_path):
        with pytest.raises(ManifestError, match="Entry 2: .*missing 'cmd' key"):
            Manifest.from_document([{'cmd': 'ok'}, {'name': 'broken'}], tmp_path)

    def test_custom_parser(self, tmp_path):
        """Any parser producing plain data can feed the manifest."""
        import json
        manifest = Manifest.from_text('[{"cmd": "true"}]', tmp_path, parser=json.loads)
        assert manifest.entries[0].cmd == 'true\n'


class TestParseYaml:
    """Test parse_yaml()."""

    def test_invalid_yaml_raises(self):
        with pytest.raises(ManifestError, match="Can't load YAML"):
            parse_yaml('- cmd: [unclosed')

    def test_literal_block_preserved(self):
        data = parse_yaml('- cmd: |\n    a\n      b\n')
        assert data == [{'cmd': 'a\n  b\n'}]


class TestManifestLoader:
    """Test ManifestLoader file handling."""

    def test_load_file(self, write_manifest):
        path = write_manifest(MANIFEST_TEXT)
        manifest = ManifestLoader().load_file(path)

        assert manifest.source_path == path.resolve()
        assert manifest.base_dir == path.resolve().parent
        assert len(manifest) == 2
        assert manifest.entries[0].files == ['one.txt']
        assert manifest.entries[1].cmd == 'echo two\necho more\n'
        assert manifest.entries[1].digest == 'deadbeef'

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ManifestError, match="doesn't exist"):
            ManifestLoader().load_file(tmp_path / 'nope.yaml')

    def test_malformed_file_names_path(self, write_manifest):
        path = write_manifest('- name: no command\n')
        with pytest.raises(ManifestError) as exc_info:
            load_manifest(path)
        assert str(path.resolve()) in str(exc_info.value)

    def test_empty_file_raises(self, write_manifest):
        path = write_manifest('')
        with pytest.raises(ManifestError):
            load_manifest(path)

    def test_write_file(self, write_manifest):
        path = write_manifest(MANIFEST_TEXT)
        ManifestLoader().write_file(path, '- cmd: |\n    true\n')
        assert path.read_text() == '- cmd: |\n    true\n'


class TestManifestSerialize:
    """Test Manifest.serialize()."""

    def test_concatenates_entries(self, tmp_path):
        manifest = Manifest(entries=[
            Entry(cmd='a\n', name='one', base_dir=tmp_path),
            Entry(cmd='b\n', base_dir=tmp_path),
        ], base_dir=tmp_path)
        assert manifest.serialize() == (
            "-\n  name: one\n  cmd: |\n    a\n"
            "-\n  cmd: |\n    b\n"
        )

    def test_digest_overrides(self, tmp_path):
        manifest = Manifest(entries=[
            Entry(cmd='a\n', digest='keep', base_dir=tmp_path),
            Entry(cmd='b\n', digest='old', base_dir=tmp_path),
        ], base_dir=tmp_path)
        text = manifest.serialize([None, 'new'])
        assert 'digest: keep' in text
        assert 'digest: new' in text
        assert 'digest: old' not in text

    def test_override_length_mismatch(self, tmp_path):
        manifest = Manifest(entries=[Entry(cmd='a\n', base_dir=tmp_path)], base_dir=tmp_path)
        with pytest.raises(ValueError):
            manifest.serialize([None, None])

    def test_round_trip(self, write_manifest):
        """Loading serialized text reproduces the same entries and text."""
        path = write_manifest(MANIFEST_TEXT)
        manifest = load_manifest(path)
        text = manifest.serialize()

        path.write_text(text)
        reloaded = load_manifest(path)

        assert reloaded.entries == manifest.entries
        assert reloaded.serialize() == text
