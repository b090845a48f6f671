# Overview: Flask extension instances for database, migrations and the messaging channel.

import atexit
import threading

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


class ChannelHandle:
    """
    Process-wide handle to the messaging channel client.

    Lifecycle:
    - init_app() only reserves a slot in app.extensions; nothing is built yet.
    - The first access to .client inside an app context builds exactly one
      client for that app from app.config (a DisabledChannel when the bot
      credentials are missing) and registers its close() for interpreter exit.
    - override() swaps the client for the current app (tests, scripts).
    """

    EXTENSION_KEY = "athar.channel"

    def __init__(self, app=None):
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions.setdefault(self.EXTENSION_KEY, None)

    @property
    def client(self):
        app = current_app._get_current_object()
        client = app.extensions.get(self.EXTENSION_KEY)
        if client is not None:
            return client

        with self._lock:
            client = app.extensions.get(self.EXTENSION_KEY)
            if client is None:
                from .services.messaging import build_channel

                client = build_channel(app.config)
                app.extensions[self.EXTENSION_KEY] = client
                atexit.register(client.close)
        return client

    def override(self, client) -> None:
        current_app.extensions[self.EXTENSION_KEY] = client


channel = ChannelHandle()
