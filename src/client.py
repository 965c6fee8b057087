"""Mattermost driver factory for pillarbot.

We explicitly build the driver from settings so it is obvious which server
and credentials a run uses. Login happens later, as a separate startup step.
"""

from __future__ import annotations

import logging

from mattermostdriver import Driver

from settings import Settings


def build_driver(settings: Settings) -> Driver:
    """Create a mattermostdriver Driver for the configured server."""

    server = settings.server
    logging.getLogger(__name__).info(
        "Initializing Mattermost driver for %s://%s:%s", server.scheme, server.url, server.port
    )

    return Driver(
        {
            "url": server.url,
            "scheme": server.scheme,
            "port": server.port,
            "basepath": server.basepath,
            "verify": server.verify,
            "request_timeout": server.request_timeout,
            "login_id": settings.email,
            "password": settings.password,
        }
    )
