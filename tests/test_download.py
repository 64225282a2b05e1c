import http.client
import logging
import subprocess
import urllib.error

import pytest

from cursor_installer.download import (
    DownloadManager,
    NetworkClient,
    scratch_directory,
)
from cursor_installer.errors import DownloadError, NetworkError


class TestDownloadManager:
    """Retry, placement and progress behaviour"""

    def test_fetch_places_file(self, downloader, network, tmp_path, config):
        """A successful download lands at the destination and leaves no temp files"""
        destination = tmp_path / "out" / "cursor.AppImage"
        destination.parent.mkdir()

        result = downloader.fetch("https://example.test/app", destination, "app")

        assert result == destination
        assert destination.read_bytes() == b"payload"
        assert list(config.temp_dir.iterdir()) == []
        assert not (destination.parent / ".cursor.AppImage.partial").exists()

    def test_fetch_overwrites_existing(self, downloader, network, tmp_path):
        """Prior content at the destination is replaced"""
        destination = tmp_path / "icon.svg"
        destination.write_bytes(b"stale")
        network.default = b"fresh"

        downloader.fetch("https://example.test/icon", destination, "icon")

        assert destination.read_bytes() == b"fresh"

    @pytest.mark.parametrize("failures", [0, 1, 2, 3, 5])
    def test_retry_bound(self, downloader, network, sleeps, tmp_path, failures):
        """At most three attempts, with strictly increasing delays between them"""
        network.outcomes = [NetworkError("reset")] * failures + [b"ok"]
        destination = tmp_path / "bundle"

        if failures >= 3:
            with pytest.raises(DownloadError, match="after 3 attempts"):
                downloader.fetch("https://example.test/app", destination, "app")
            assert not destination.exists()
        else:
            downloader.fetch("https://example.test/app", destination, "app")
            assert destination.read_bytes() == b"ok"

        attempts = min(failures + 1, 3)
        assert len(network.calls) == attempts
        assert sleeps == [5 * n for n in range(1, attempts)]
        assert all(a < b for a, b in zip(sleeps, sleeps[1:]))

    def test_empty_download_is_retried(self, downloader, network, sleeps, tmp_path):
        """An empty result counts as a failed attempt"""
        network.outcomes = [b"", b"data"]
        destination = tmp_path / "bundle"

        downloader.fetch("https://example.test/app", destination, "app")

        assert len(network.calls) == 2
        assert sleeps == [5]
        assert destination.read_bytes() == b"data"

    def test_unexpected_client_error_is_retried(
        self, downloader, network, sleeps, tmp_path
    ):
        """A transfer cut mid-stream counts as a failed attempt, not a crash"""
        network.outcomes = [http.client.IncompleteRead(b"hello"), b"data"]
        destination = tmp_path / "bundle"

        downloader.fetch("https://example.test/app", destination, "app")

        assert len(network.calls) == 2
        assert sleeps == [5]
        assert destination.read_bytes() == b"data"

    def test_progress_is_reported(self, network, tmp_path, mocker):
        """Percentages reach the progress collaborator"""
        bar = mocker.Mock()
        manager = DownloadManager(
            network,
            tmp_path / "scratch",
            sleep=lambda _: None,
            progress_factory=lambda desc: bar,
        )

        manager.fetch("https://example.test/app", tmp_path / "bundle", "app")

        assert [call.args[0] for call in bar.call_args_list] == [50, 100]
        bar.close.assert_called_once()

    def test_broken_progress_does_not_fail_download(self, network, tmp_path, mocker):
        """A progress renderer that raises is ignored"""
        bar = mocker.Mock(side_effect=RuntimeError("terminal gone"))
        manager = DownloadManager(
            network,
            tmp_path / "scratch",
            sleep=lambda _: None,
            progress_factory=lambda desc: bar,
        )

        manager.fetch("https://example.test/app", tmp_path / "bundle", "app")

        assert (tmp_path / "bundle").read_bytes() == b"payload"
        assert len(network.calls) == 1

    def test_move_failure_raises(self, downloader, tmp_path, mocker):
        """Failing to place the result is a download error"""
        mocker.patch(
            "cursor_installer.download.os.replace", side_effect=OSError("read-only")
        )

        with pytest.raises(DownloadError, match="Could not move"):
            downloader.fetch("https://example.test/app", tmp_path / "bundle", "app")


class TestScratchDirectory:
    def test_removed_on_exit(self, tmp_path):
        scratch = tmp_path / "cursor_installer"
        with scratch_directory(scratch) as path:
            path.mkdir()
            (path / "partial").write_bytes(b"x")
        assert not scratch.exists()

    def test_removed_on_interrupt(self, tmp_path):
        """Cleanup also runs when the block is interrupted"""
        scratch = tmp_path / "cursor_installer"
        with pytest.raises(KeyboardInterrupt):
            with scratch_directory(scratch) as path:
                path.mkdir()
                raise KeyboardInterrupt
        assert not scratch.exists()


class TestNetworkClient:
    """Transfers through urllib and the curl fallback"""

    def _response(self, mocker, chunks, length):
        response = mocker.MagicMock()
        response.headers = {"Content-Length": str(length)}
        response.read.side_effect = chunks
        opened = mocker.MagicMock()
        opened.__enter__.return_value = response
        return opened

    def test_urllib_download_with_progress(self, mocker, tmp_path):
        """Chunks are written and progress is reported in percent"""
        mock_urlopen = mocker.patch("cursor_installer.download.urllib.request.urlopen")
        mock_urlopen.return_value = self._response(mocker, [b"a" * 5, b"b" * 5, b""], 10)
        seen = []

        NetworkClient(connect_timeout=30).download(
            "https://example.test/app", tmp_path / "out", seen.append
        )

        assert (tmp_path / "out").read_bytes() == b"aaaaabbbbb"
        assert seen == [50, 100]
        assert mock_urlopen.call_args.kwargs["timeout"] == 30

    def test_falls_back_to_curl(self, mocker, tmp_path):
        """A urllib failure is retried once with curl"""
        mocker.patch(
            "cursor_installer.download.urllib.request.urlopen",
            side_effect=urllib.error.URLError("no route"),
        )
        mock_run = mocker.patch("cursor_installer.download.subprocess.run")
        mock_run.return_value = subprocess.CompletedProcess([], 0, "", "")

        NetworkClient(connect_timeout=30).download(
            "https://example.test/app", tmp_path / "out"
        )

        cmd = mock_run.call_args.args[0]
        assert cmd[0] == "curl"
        assert cmd[cmd.index("--connect-timeout") + 1] == "30"
        assert cmd[-1] == "https://example.test/app"

    def test_curl_failure_raises(self, mocker, tmp_path):
        """A non-zero curl status is a network error"""
        mocker.patch(
            "cursor_installer.download.urllib.request.urlopen",
            side_effect=urllib.error.URLError("no route"),
        )
        mocker.patch(
            "cursor_installer.download.subprocess.run",
            return_value=subprocess.CompletedProcess([], 22, "", "404 Not Found"),
        )

        with pytest.raises(NetworkError, match="status 22"):
            NetworkClient().download("https://example.test/app", tmp_path / "out")

    def test_broken_stream_falls_back_to_curl(self, mocker, tmp_path):
        """An interrupted chunked body is handed to curl instead of escaping"""
        response = mocker.MagicMock()
        response.headers = {}
        response.read.side_effect = [b"hello", http.client.IncompleteRead(b"")]
        opened = mocker.MagicMock()
        opened.__enter__.return_value = response
        mocker.patch(
            "cursor_installer.download.urllib.request.urlopen", return_value=opened
        )
        mock_run = mocker.patch("cursor_installer.download.subprocess.run")
        mock_run.return_value = subprocess.CompletedProcess([], 0, "", "")

        NetworkClient().download("https://example.test/app", tmp_path / "out")

        mock_run.assert_called_once()

    def test_short_body_is_rejected(self, mocker, tmp_path, caplog):
        """A body shorter than its Content-Length is not a successful download"""
        mocker.patch(
            "cursor_installer.download.urllib.request.urlopen",
            return_value=self._response(mocker, [b"x" * 10, b""], 1000),
        )
        mocker.patch(
            "cursor_installer.download.subprocess.run",
            return_value=subprocess.CompletedProcess(
                [], 18, "", "transfer closed with outstanding read data remaining"
            ),
        )

        with caplog.at_level(logging.WARNING):
            with pytest.raises(NetworkError, match="status 18"):
                NetworkClient().download("https://example.test/app", tmp_path / "out")
        assert "received 10 of 1000 bytes" in caplog.text
