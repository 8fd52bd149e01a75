"""Integration tests for the production implementations with the real filesystem."""

import os

import pytest
import yaml

from crossdeploy.core import (
    RealFileSystemService,
    SubprocessExecutor,
    SystemToolLocator,
    YamlConfigLoader,
)


class TestRealFileSystemService:

    def setup_method(self):
        self.fs = RealFileSystemService()

    def test_write_read_and_size(self, tmp_path):
        path = tmp_path / 'a.txt'

        self.fs.write_file(path, 'hello')

        assert self.fs.is_file(path)
        assert self.fs.file_size(path) == 5
        assert self.fs.read_bytes(path, 2) == b'he'
        assert self.fs.read_bytes(path) == b'hello'

    def test_append_line(self, tmp_path):
        path = tmp_path / 'install.log'

        self.fs.append_line(path, '{"event": "install"}')
        self.fs.append_line(path, '{"event": "install"}\n')

        assert path.read_text().splitlines() == ['{"event": "install"}'] * 2

    def test_is_executable(self, tmp_path):
        path = tmp_path / 'main'
        path.write_bytes(b'\x7fELF')

        os.chmod(path, 0o644)
        assert self.fs.is_executable(path) is False
        os.chmod(path, 0o755)
        assert self.fs.is_executable(path) is True

    def test_replace_directory(self, tmp_path):
        staging = tmp_path / 'staging'
        self.fs.mkdir(staging)
        self.fs.write_file(staging / 'manifest.yaml', 'triple: x')

        self.fs.replace(staging, tmp_path / 'final')

        assert not staging.exists()
        assert (tmp_path / 'final' / 'manifest.yaml').exists()


class TestYamlConfigLoader:

    def test_loads_mapping(self, tmp_path):
        path = tmp_path / 'crossdeploy.yaml'
        path.write_text('targets:\n  - name: pi4\n')

        data = YamlConfigLoader(RealFileSystemService()).load_yaml(str(path))

        assert data == {'targets': [{'name': 'pi4'}]}

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('')

        assert YamlConfigLoader(RealFileSystemService()).load_yaml(str(path)) == {}

    def test_syntax_error_propagates(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text('targets: [unclosed\n')

        with pytest.raises(yaml.YAMLError):
            YamlConfigLoader(RealFileSystemService()).load_yaml(str(path))


class TestSubprocessExecutor:

    @pytest.mark.skipif(not SystemToolLocator().has_tool('sh'), reason="needs sh")
    def test_captures_output_and_returncode(self):
        result = SubprocessExecutor().run(['sh', '-c', 'echo out; echo err >&2; exit 3'])

        assert result.returncode == 3
        assert result.stdout == 'out\n'
        assert result.stderr == 'err\n'

    def test_missing_binary_raises(self):
        with pytest.raises(FileNotFoundError):
            SubprocessExecutor().run(['crossdeploy-no-such-tool'])

    @pytest.mark.skipif(not SystemToolLocator().has_tool('sh'), reason="needs sh")
    def test_undecodable_output_is_replaced(self):
        result = SubprocessExecutor().run(['sh', '-c', r"printf 'error: \377\376 bad\n' >&2; exit 101"])

        assert result.returncode == 101
        assert result.stderr.startswith('error: ')
        assert '�' in result.stderr
        assert result.stderr.endswith(' bad\n')


class TestSystemToolLocator:

    def test_has_tool(self, tmp_path, monkeypatch):
        tool = tmp_path / 'arm-linux-gnueabihf-gcc'
        tool.write_text('#!/bin/sh\n')
        os.chmod(tool, 0o755)
        monkeypatch.setenv('PATH', str(tmp_path))

        locator = SystemToolLocator()

        assert locator.has_tool('arm-linux-gnueabihf-gcc') is True
        assert locator.has_tool('crossdeploy-no-such-tool') is False
