"""Default-browser launcher.

Opening the browser is best effort: a failure becomes a
:class:`~pkcecli.exceptions.BrowserLaunchWarning`, is logged, and the flow
carries on because the operator can open the printed URL by hand.
"""

from __future__ import annotations

import logging
import webbrowser
from typing import Optional

from pkcecli.exceptions import BrowserLaunchWarning

logger = logging.getLogger(__name__)


def open_browser(url: str) -> Optional[BrowserLaunchWarning]:
    """Open *url* in the operator's default browser.

    Args:
        url: The URL to open.

    Returns:
        ``None`` when a browser was launched, otherwise a
        :class:`BrowserLaunchWarning` describing why it was not.
    """
    try:
        opened = webbrowser.open(url, new=2)
    except (webbrowser.Error, OSError) as exc:
        warning = BrowserLaunchWarning(f"could not open the browser: {exc}")
    else:
        if opened:
            logger.debug("Browser launched")
            return None
        warning = BrowserLaunchWarning("could not open the browser: no runnable browser found")
    logger.warning("%s", warning)
    return warning
