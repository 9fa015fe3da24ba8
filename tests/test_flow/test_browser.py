"""Tests for the default-browser launcher."""

from __future__ import annotations

import webbrowser
from unittest.mock import patch

from pkcecli.browser import open_browser
from pkcecli.exceptions import BrowserLaunchWarning


class TestOpenBrowser:
    def test_success(self) -> None:
        with patch("pkcecli.browser.webbrowser.open", return_value=True) as opener:
            assert open_browser("https://idp.example.com/authorize?x=1") is None
        opener.assert_called_once_with("https://idp.example.com/authorize?x=1", new=2)

    def test_no_runnable_browser(self) -> None:
        with patch("pkcecli.browser.webbrowser.open", return_value=False):
            result = open_browser("https://idp.example.com/")
        assert isinstance(result, BrowserLaunchWarning)
        assert "no runnable browser" in str(result)

    def test_launcher_error(self) -> None:
        with patch(
            "pkcecli.browser.webbrowser.open", side_effect=webbrowser.Error("broken launcher")
        ):
            result = open_browser("https://idp.example.com/")
        assert isinstance(result, BrowserLaunchWarning)
        assert "broken launcher" in str(result)

    def test_os_error(self) -> None:
        with patch("pkcecli.browser.webbrowser.open", side_effect=OSError("no display")):
            result = open_browser("https://idp.example.com/")
        assert isinstance(result, BrowserLaunchWarning)
